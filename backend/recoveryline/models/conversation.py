"""Conversation and message models.

A patient has at most one open (not archived) conversation at a time. The
partial unique index on (patient_id) WHERE status <> 'archived' is what makes
get-or-create atomic: concurrent creators race on the insert, and the
loser's insert is a no-op.
"""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from recoveryline.database import Base
from recoveryline.models.types import JsonDocument, enum_column
from recoveryline.utils.time_helpers import utc_now


class ConversationStatus(str, enum.Enum):
    """Conversation lifecycle states."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    ESCALATED = "escalated"


class SenderType(str, enum.Enum):
    """Who authored a message."""

    PATIENT = "patient"
    PROVIDER = "provider"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Conversation(Base):
    """Chat thread between a patient, their care team and the assistant."""

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[ConversationStatus] = mapped_column(
        enum_column(ConversationStatus, "conversation_status"),
        nullable=False,
        default=ConversationStatus.ACTIVE,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
    )

    __table_args__ = (
        Index(
            "uq_conversation_active_patient",
            "patient_id",
            unique=True,
            postgresql_where=text("status <> 'archived'"),
            sqlite_where=text("status <> 'archived'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, patient_id={self.patient_id}, status={self.status})>"


class Message(Base):
    """A chat message. Immutable once written apart from `read_at`."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    sender_type: Mapped[SenderType] = mapped_column(
        enum_column(SenderType, "sender_type"),
        nullable=False,
    )
    sender_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    actions: Mapped[list[dict[str, Any]]] = mapped_column(
        JsonDocument,
        nullable=False,
        default=list,
        comment="Validated MessageAction variants (buttons, escalation notices)",
    )
    client_token: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Sender-supplied idempotency key",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_message_conversation_created", "conversation_id", "created_at"),
        UniqueConstraint("conversation_id", "client_token", name="uq_message_client_token"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, sender={self.sender_type}, content={self.content[:30]}...)>"
