"""Pydantic schemas for Conversation and Message API.

These schemas define request/response formats for conversations, messages,
pain reports and quick-reply button presses.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recoveryline.models.conversation import ConversationStatus, SenderType
from recoveryline.schemas.actions import ButtonAction, MessageAction
from recoveryline.schemas.types import UtcDatetime

MAX_MESSAGE_LENGTH = 10000


# === API Request Schemas ===


class ConversationOpen(BaseModel):
    """Get or create the active conversation for a patient."""

    patient_id: UUID


class ConversationUpdate(BaseModel):
    """Schema for updating a conversation."""

    status: ConversationStatus | None = None
    title: str | None = Field(default=None, max_length=200)


class MessageCreate(BaseModel):
    """Schema for sending a message."""

    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    client_token: str | None = Field(
        default=None,
        max_length=64,
        description="Idempotency key; resending with the same token never duplicates the message",
    )


class PainReportCreate(BaseModel):
    """Structured pain report (0 = none, 10 = worst imaginable)."""

    pain_level: int = Field(ge=0, le=10)
    client_token: str | None = Field(default=None, max_length=64)


class ButtonPress(BaseModel):
    """A quick-reply button pressed by the patient."""

    button: ButtonAction
    client_token: str | None = Field(default=None, max_length=64)


class MarkRead(BaseModel):
    """Messages the reader has now seen."""

    message_ids: list[UUID] = Field(min_length=1, max_length=500)


# === API Response Schemas ===


class ConversationResponse(BaseModel):
    """Schema for conversation in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    tenant_id: UUID
    title: str | None
    status: ConversationStatus
    created_at: UtcDatetime
    updated_at: UtcDatetime


class MessageResponse(BaseModel):
    """Schema for message in API responses and realtime events."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    patient_id: UUID
    sender_type: SenderType
    sender_id: str | None
    content: str
    actions: list[MessageAction] = Field(default_factory=list)
    client_token: str | None = None
    created_at: UtcDatetime
    read_at: UtcDatetime | None = None


class MessageListResponse(BaseModel):
    """Messages of a conversation in creation order."""

    conversation_id: UUID
    items: list[MessageResponse]
    total: int


class TurnResponse(BaseModel):
    """Everything one chat turn wrote.

    `reply` is only null for provider messages, which are not answered by
    the assistant.
    """

    message: MessageResponse
    acknowledgment: MessageResponse | None = None
    reply: MessageResponse | None = None
    used_fallback: bool = False
    alert_id: UUID | None = None
