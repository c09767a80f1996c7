"""Conversation repository.

Every write commits before returning, so a message is durable and visible to
readers before anything else (such as the responder call) happens, and then
publishes the row on the realtime hub.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import Insert, func, select, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.errors import ConversationNotFoundError
from recoveryline.models.conversation import Conversation, ConversationStatus, Message, SenderType
from recoveryline.models.patient import Patient
from recoveryline.realtime import RealtimeHub
from recoveryline.schemas.actions import ButtonAction, ButtonKind, ShowButtonsAction, dump_message_actions
from recoveryline.schemas.conversation import ConversationResponse, MessageResponse
from recoveryline.utils.time_helpers import day_bounds, utc_now

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"
CONVERSATIONS_TABLE = "conversations"

_OPEN_PREDICATE = text("status <> 'archived'")


def _dialect_insert(db: AsyncSession, table: Any) -> Insert:
    """INSERT construct supporting ON CONFLICT for the bound dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")


class ConversationRepository:
    """Data access for conversations and their messages."""

    def __init__(self, db: AsyncSession, hub: RealtimeHub | None = None):
        self.db = db
        self.hub = hub

    async def get(self, conversation_id: uuid.UUID) -> Conversation:
        """Get a conversation by ID.

        Raises:
            ConversationNotFoundError: If no such conversation exists.
        """
        result = await self.db.execute(select(Conversation).where(Conversation.id == conversation_id))
        conversation = result.scalar_one_or_none()
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    async def get_active(self, patient_id: uuid.UUID) -> Conversation | None:
        result = await self.db.execute(
            select(Conversation)
            .where(
                Conversation.patient_id == patient_id,
                Conversation.status != ConversationStatus.ARCHIVED,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_active(self, patient: Patient, title: str | None = None) -> Conversation:
        """Return the patient's open conversation, creating it if needed.

        The insert is a no-op when another writer already holds the active
        slot (partial unique index on non-archived rows), so concurrent callers all end up with
        the same row.
        """
        existing = await self.get_active(patient.id)
        if existing is not None:
            return existing

        now = utc_now()
        stmt = (
            _dialect_insert(self.db, Conversation)
            .values(
                id=uuid.uuid4(),
                patient_id=patient.id,
                tenant_id=patient.tenant_id,
                title=title,
                status=ConversationStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["patient_id"], index_where=_OPEN_PREDICATE)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        if result.rowcount:
            logger.info("Created conversation for patient %s", patient.id)

        conversation = await self.get_active(patient.id)
        if conversation is None:
            # Only possible if the row was archived between our insert and read.
            raise ConversationNotFoundError(f"open conversation for patient {patient.id}")
        return conversation

    async def set_status(self, conversation_id: uuid.UUID, status: ConversationStatus) -> Conversation:
        conversation = await self.get(conversation_id)
        if conversation.status == status:
            return conversation
        conversation.status = status
        conversation.updated_at = utc_now()
        await self.db.commit()
        self._publish_conversation(conversation)
        return conversation

    async def update_title(self, conversation_id: uuid.UUID, title: str) -> Conversation:
        conversation = await self.get(conversation_id)
        conversation.title = title
        await self.db.commit()
        return conversation

    async def list_messages(
        self,
        conversation_id: uuid.UUID,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[Message]:
        """Messages in creation order, optionally limited to [since, until)."""
        query = select(Message).where(Message.conversation_id == conversation_id)
        if since is not None:
            query = query.where(Message.created_at >= since)
        if until is not None:
            query = query.where(Message.created_at < until)
        result = await self.db.execute(query.order_by(Message.created_at.asc(), Message.id.asc()))
        return list(result.scalars().all())

    async def list_messages_for_date(self, conversation_id: uuid.UUID, day: date) -> list[Message]:
        start, end = day_bounds(day)
        return await self.list_messages(conversation_id, since=start, until=end)

    async def recent_messages(self, conversation_id: uuid.UUID, limit: int) -> list[Message]:
        """The last `limit` messages, oldest first."""
        result = await self.db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def count_messages(self, conversation_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Message).where(Message.conversation_id == conversation_id)
        )
        return result.scalar() or 0

    async def get_by_token(self, conversation_id: uuid.UUID, client_token: str) -> Message | None:
        result = await self.db.execute(
            select(Message).where(
                Message.conversation_id == conversation_id,
                Message.client_token == client_token,
            )
        )
        return result.scalar_one_or_none()

    async def append_message(
        self,
        conversation: Conversation,
        sender_type: SenderType,
        content: str,
        *,
        sender_id: str | None = None,
        actions: list | None = None,
        client_token: str | None = None,
    ) -> Message:
        """Durably append a message and push it to subscribers.

        A repeated `client_token` returns the message stored the first time
        instead of inserting a duplicate.
        """
        if client_token:
            existing = await self.get_by_token(conversation.id, client_token)
            if existing is not None:
                logger.info("Duplicate send for token %s in conversation %s", client_token, conversation.id)
                return existing

        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            patient_id=conversation.patient_id,
            sender_type=sender_type,
            sender_id=sender_id,
            content=content,
            actions=dump_message_actions(actions or []),
            client_token=client_token,
            created_at=utc_now(),
        )
        self.db.add(message)
        try:
            await self.db.commit()
        except IntegrityError:
            # Rollback expires every loaded row, the caller's conversation included.
            await self.db.rollback()
            await self.db.refresh(conversation)
            if client_token:
                existing = await self.get_by_token(conversation.id, client_token)
                if existing is not None:
                    return existing
            raise

        if self.hub is not None:
            self.hub.publish(
                MESSAGES_TABLE,
                "insert",
                MessageResponse.model_validate(message),
                conversation_id=conversation.id,
                patient_id=conversation.patient_id,
            )
        return message

    async def mark_read(self, conversation_id: uuid.UUID, message_ids: list[uuid.UUID]) -> int:
        """Set read_at on unread messages; returns how many changed."""
        result = await self.db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.id.in_(message_ids),
                Message.read_at.is_(None),
            )
            .values(read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def ensure_daily_greeting(self, conversation: Conversation, today: date, day: int) -> Message | None:
        """Open today's check-in if nothing has been said yet today."""
        start, end = day_bounds(today)
        result = await self.db.execute(
            select(func.count())
            .select_from(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.created_at >= start,
                Message.created_at < end,
            )
        )
        if result.scalar():
            return None
        buttons = ShowButtonsAction(
            buttons=[
                ButtonAction(text="Yes, let's start!", action=ButtonKind.START_CHECKIN),
                ButtonAction(text="Give me a few minutes", action=ButtonKind.POSTPONE),
            ]
        )
        return await self.append_message(
            conversation,
            SenderType.SYSTEM,
            f"Good morning! Ready to start your day {day} recovery check-in?",
            actions=[buttons],
            client_token=f"greeting-{today.isoformat()}",
        )

    def _publish_conversation(self, conversation: Conversation) -> None:
        if self.hub is None:
            return
        self.hub.publish(
            CONVERSATIONS_TABLE,
            "update",
            ConversationResponse.model_validate(conversation),
            conversation_id=conversation.id,
            patient_id=conversation.patient_id,
        )
