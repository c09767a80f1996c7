"""Patient task model.

A task is one unit of recovery work (exercise, form, video, check-in)
scheduled for a specific calendar date. `updated_at` doubles as the
last-write-wins clock when patient and provider views disagree.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from recoveryline.database import Base
from recoveryline.models.types import enum_column
from recoveryline.utils.time_helpers import utc_now


class TaskType(str, enum.Enum):
    """Kinds of recovery work."""

    EXERCISE = "exercise"
    FORM = "form"
    VIDEO = "video"
    MESSAGE = "message"
    MEDICATION = "medication"
    CHECK_IN = "check_in"


class TaskStatus(str, enum.Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    OVERDUE = "overdue"


class PatientTask(Base):
    """A task instantiated for one patient on one scheduled date."""

    __tablename__ = "patient_tasks"

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
    )

    # === Content ===
    task_type: Mapped[TaskType] = mapped_column(
        enum_column(TaskType, "task_type"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(140), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # === Scheduling ===
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)

    # === Status ===
    status: Mapped[TaskStatus] = mapped_column(
        enum_column(TaskStatus, "task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    # === Timing ===
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    __table_args__ = (
        Index("idx_task_patient_date", "patient_id", "scheduled_date"),
        Index("idx_task_status_date", "status", "scheduled_date"),
    )

    def __repr__(self) -> str:
        return f"<PatientTask(id={self.id}, status={self.status}, title={self.title[:30]}...)>"
