"""Patient model.

Patients are never hard-deleted; `status` moves to inactive or discharged.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from recoveryline.database import Base
from recoveryline.models.types import enum_column
from recoveryline.utils.time_helpers import utc_now


class PatientStatus(str, enum.Enum):
    """Patient lifecycle states."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCHARGED = "discharged"


class Patient(Base):
    """A surgical patient enrolled in a recovery program."""

    __tablename__ = "patients"

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        unique=True,
        comment="Auth user linked to this patient",
    )

    # === Profile ===
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # === Surgery ===
    surgery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    surgery_type: Mapped[str | None] = mapped_column(String(140), nullable=True)

    # === Status ===
    status: Mapped[PatientStatus] = mapped_column(
        enum_column(PatientStatus, "patient_status"),
        nullable=False,
        default=PatientStatus.ACTIVE,
    )

    # === Timing ===
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, surgery_date={self.surgery_date})>"
