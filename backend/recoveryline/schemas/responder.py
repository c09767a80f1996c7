"""Wire format of the external responder.

Request: ``{"message", "context", "patientId"}``.
Response: ``{"reply", "actions"}``.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recoveryline.schemas.actions import ResponderAction


class ContextMessage(BaseModel):
    """One message of the recent-history window."""

    role: str
    content: str


class ContextTask(BaseModel):
    """The task the patient is expected to work on now."""

    id: UUID
    title: str
    task_type: str
    status: str
    description: str | None = None


class ResponderContext(BaseModel):
    """Limited context passed along with the patient's message."""

    recovery_day: int | None = None
    surgery_type: str | None = None
    patient_name: str | None = None
    recent_messages: list[ContextMessage] = Field(default_factory=list)
    current_task: ContextTask | None = None
    open_task_count: int = 0


class ResponderRequest(BaseModel):
    """Body sent to the responder."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    context: ResponderContext
    patient_id: UUID = Field(alias="patientId")


class ResponderReply(BaseModel):
    """Validated responder output."""

    reply: str
    actions: list[ResponderAction] = Field(default_factory=list)
