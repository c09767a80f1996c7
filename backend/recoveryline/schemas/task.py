"""Pydantic schemas for Task API."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recoveryline.models.task import TaskStatus, TaskType
from recoveryline.schemas.types import UtcDatetime


class TaskCreate(BaseModel):
    """Schedule a task for a patient on a recovery day."""

    task_type: TaskType
    title: str = Field(min_length=1, max_length=140)
    description: str | None = None
    day: int = Field(ge=-365, le=730, description="Recovery day (0 = day of surgery)")


class TaskResponse(BaseModel):
    """Schema for task in API responses and realtime events."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    task_type: TaskType
    title: str
    description: str | None
    scheduled_date: date
    status: TaskStatus
    completed_at: UtcDatetime | None
    updated_by: str | None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class DayTask(TaskResponse):
    """A task as shown on a day view of the recovery timeline."""

    day: int
    is_available: bool = Field(description="False for tasks on future days")


class DayTaskList(BaseModel):
    """Tasks scheduled for one recovery day."""

    patient_id: UUID
    day: int
    current_day: int
    items: list[DayTask]


class DaySummary(BaseModel):
    """Per-day task counts for the timeline sidebar."""

    day: int
    date: date
    total: int = 0
    completed: int = 0
    pending: int = 0
    missed: int = 0


class TimelineResponse(BaseModel):
    """Recovery timeline overview."""

    patient_id: UUID
    current_day: int
    days: list[DaySummary]


class SweepResponse(BaseModel):
    """Result of an overdue sweep."""

    marked_overdue: int
