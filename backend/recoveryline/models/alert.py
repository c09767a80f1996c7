"""Alert and progress models.

Alerts are raised by the escalation trigger for provider follow-up. One
source message produces at most one alert of each type.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from recoveryline.database import Base
from recoveryline.models.types import enum_column
from recoveryline.utils.time_helpers import utc_now


class AlertType(str, enum.Enum):
    """Why an alert was raised."""

    HIGH_PAIN_SCORE = "high_pain_score"
    CONCERNING_SYMPTOMS = "concerning_symptoms"
    EMERGENCY_REQUEST = "emergency_request"
    MISSED_MEDICATION = "missed_medication"


class AlertSeverity(str, enum.Enum):
    """Provider-facing urgency."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    """Alert lifecycle states."""

    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Alert(Base):
    """Provider follow-up flag."""

    __tablename__ = "alerts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    conversation_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    source_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    alert_type: Mapped[AlertType] = mapped_column(enum_column(AlertType, "alert_type"), nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(
        enum_column(AlertSeverity, "alert_severity"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[AlertStatus] = mapped_column(
        enum_column(AlertStatus, "alert_status"),
        nullable=False,
        default=AlertStatus.OPEN,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    acknowledged_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_alert_tenant_status", "tenant_id", "status"),
        UniqueConstraint("source_message_id", "alert_type", name="uq_alert_source_type"),
    )

    def __repr__(self) -> str:
        return f"<Alert(id={self.id}, type={self.alert_type}, severity={self.severity})>"


class ProgressType(str, enum.Enum):
    """Kinds of progress entries."""

    PAIN_ASSESSMENT = "pain_assessment"
    POSITIVE_PROGRESS = "positive_progress"


class ProgressEntry(Base):
    """Patient-reported progress data point."""

    __tablename__ = "progress_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entry_type: Mapped[ProgressType] = mapped_column(
        enum_column(ProgressType, "progress_type"),
        nullable=False,
    )
    pain_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
