"""Conversation session manager.

Owns one patient's live view of their conversation: loads history and
today's tasks, follows realtime changes, and sends messages. All state
changes go through the reducer in `conversation_state`.

When the realtime subscription drops, the session resubscribes with
exponential backoff and reloads everything from the database each time it
waits, so the view is never silently stale. If every retry fails it stays in
polling mode with ``state.live`` False.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from recoveryline.context import AppContext
from recoveryline.errors import RecoveryLineError, SubscriptionError, TransientNetworkError
from recoveryline.models.conversation import SenderType
from recoveryline.realtime import RealtimeEvent, RealtimeHub, Subscription
from recoveryline.repositories.conversation import MESSAGES_TABLE, ConversationRepository
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TASKS_TABLE, TaskRepository
from recoveryline.schemas.conversation import MessageResponse
from recoveryline.schemas.task import TaskResponse
from recoveryline.services.conversation_state import (
    ConnectionChanged,
    ConversationEvent,
    ConversationState,
    MessageReceived,
    ReplyPending,
    SendFailed,
    SnapshotLoaded,
    TaskReceived,
    reduce,
)
from recoveryline.services.dispatcher import DispatchResult
from recoveryline.utils.retry import backoff_delay, retry_read
from recoveryline.utils.time_helpers import utc_now, utc_today

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ConversationSession:
    """Live, reducer-driven view of a patient's conversation."""

    def __init__(
        self,
        context: AppContext,
        patient_id: uuid.UUID,
        *,
        sender: SenderType = SenderType.PATIENT,
        sender_id: str | None = None,
        today: Callable[[], date] = utc_today,
        sleep: Sleep = asyncio.sleep,
    ):
        self.context = context
        self.patient_id = patient_id
        self.sender = sender
        self.sender_id = sender_id
        self._today = today
        self._sleep = sleep
        self.state = ConversationState()
        self.subscription: Subscription | None = None
        self._send_task: asyncio.Task | None = None
        self._closed = False

    @property
    def hub(self) -> RealtimeHub:
        return self.context.hub

    @property
    def conversation_id(self) -> uuid.UUID | None:
        return self.state.conversation_id

    @property
    def polling(self) -> bool:
        return self.subscription is None or not self.subscription.active

    def apply(self, event: ConversationEvent) -> ConversationState:
        self.state = reduce(self.state, event)
        return self.state

    # === Lifecycle ===

    async def open(self) -> ConversationState:
        """Get or create the conversation, subscribe, then load a snapshot.

        Subscribing before loading means nothing committed in between is
        missed; duplicates are dropped by the reducer.

        Raises:
            PatientNotFoundError: If the patient does not exist.
        """
        async with self.context.session_factory() as db:
            patient = await PatientRepository(db).get(self.patient_id)
            conversation = await ConversationRepository(db, self.hub).get_or_create_active(patient)
            conversation_id = conversation.id

        self.state = ConversationState(conversation_id=conversation_id)
        try:
            self._subscribe()
        except SubscriptionError as exc:
            logger.warning("Realtime unavailable for conversation %s, polling: %s", conversation_id, exc)
            await self.reload()
            self.apply(ConnectionChanged(live=False, error=str(exc)))
            return self.state

        await self.reload()
        self.apply(ConnectionChanged(live=True))
        return self.state

    async def close(self) -> None:
        """Tear down subscriptions and abandon any in-flight send."""
        self._closed = True
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None
        if self._send_task is not None and not self._send_task.done():
            self._send_task.cancel()
            try:
                await self._send_task
            except asyncio.CancelledError:
                logger.debug("Abandoned in-flight send for conversation %s", self.conversation_id)
            except (RecoveryLineError, SQLAlchemyError) as exc:
                logger.info("Discarded failed send on close: %s", exc)
        self._send_task = None

    def _subscribe(self) -> None:
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None
        self.subscription = self.hub.subscribe_many(
            [
                self.hub.channel(MESSAGES_TABLE, "conversation_id", self.conversation_id),
                self.hub.channel(TASKS_TABLE, "patient_id", self.patient_id),
            ]
        )

    # === Loading ===

    async def reload(self) -> ConversationState:
        """Full reload of messages and today's tasks, with read retries.

        Raises:
            TransientNetworkError: If the database stayed unreachable.
        """
        conversation_id = self.conversation_id
        today = self._today()

        async def load() -> SnapshotLoaded:
            async with self.context.session_factory() as db:
                messages = await ConversationRepository(db).list_messages(conversation_id)
                tasks = await TaskRepository(db).list_for_date(self.patient_id, today)
                return SnapshotLoaded(
                    conversation_id=conversation_id,
                    messages=tuple(MessageResponse.model_validate(m) for m in messages),
                    tasks=tuple(TaskResponse.model_validate(t) for t in tasks),
                    loaded_at=utc_now(),
                )

        snapshot = await retry_read(
            load,
            attempts=self.context.settings.read_retry_attempts,
            base_delay=self.context.settings.subscription_retry_base_delay,
            sleep=self._sleep,
        )
        return self.apply(snapshot)

    # === Realtime ===

    def _apply_event(self, event: RealtimeEvent) -> None:
        if event.table == MESSAGES_TABLE and isinstance(event.payload, MessageResponse):
            self.apply(MessageReceived(event.payload, origin="remote"))
        elif event.table == TASKS_TABLE and isinstance(event.payload, TaskResponse):
            self.apply(TaskReceived(event.payload, origin="remote"))

    async def pump_once(self, timeout: float | None = None) -> bool:
        """Apply at most one realtime event.

        Returns:
            True if an event was applied.
        """
        if self._closed:
            return False
        if self.subscription is None:
            await self._sleep(self.context.settings.poll_interval_seconds if timeout is None else timeout)
            await self.reload()
            return False
        try:
            event = await self.subscription.next_event(timeout)
        except SubscriptionError as exc:
            await self.reconnect(str(exc))
            return False
        if event is None:
            return False
        self._apply_event(event)
        return True

    async def reconnect(self, reason: str = "subscription dropped") -> bool:
        """Resubscribe with exponential backoff, polling while waiting.

        Returns:
            True if live again; False if retries ran out (polling mode).
        """
        settings = self.context.settings
        logger.warning("Conversation %s lost realtime (%s); reconnecting", self.conversation_id, reason)
        self.apply(ConnectionChanged(live=False, error=reason))
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None

        for attempt in range(settings.subscription_max_retries):
            if self._closed:
                return False
            await self._sleep(backoff_delay(attempt, settings.subscription_retry_base_delay))
            try:
                await self.reload()
            except TransientNetworkError as exc:
                logger.warning("Polling reload failed for conversation %s: %s", self.conversation_id, exc)
            try:
                self._subscribe()
            except SubscriptionError as exc:
                logger.warning(
                    "Resubscribe attempt %d/%d failed: %s", attempt + 1, settings.subscription_max_retries, exc
                )
                continue
            await self.reload()
            self.apply(ConnectionChanged(live=True))
            logger.info("Conversation %s live again after %d attempt(s)", self.conversation_id, attempt + 1)
            return True

        logger.error(
            "Conversation %s could not resubscribe after %d attempts; polling every %.1fs",
            self.conversation_id,
            settings.subscription_max_retries,
            settings.poll_interval_seconds,
        )
        self.apply(
            ConnectionChanged(
                live=False, error=f"realtime unavailable after {settings.subscription_max_retries} attempts"
            )
        )
        return False

    async def run(self) -> None:
        """Pump events until closed."""
        poll_interval = self.context.settings.poll_interval_seconds
        while not self._closed:
            try:
                await self.pump_once(timeout=poll_interval)
            except TransientNetworkError as exc:
                logger.warning("Conversation %s refresh failed: %s", self.conversation_id, exc)

    # === Sending ===

    async def _dispatch(self, content: str, client_token: str) -> DispatchResult:
        async with self.context.session_factory() as db:
            conversation = await ConversationRepository(db, self.hub).get(self.conversation_id)
            return await self.context.dispatcher(db).send(
                conversation,
                content,
                self.sender,
                sender_id=self.sender_id,
                client_token=client_token,
                today=self._today(),
            )

    async def send(self, content: str, client_token: str | None = None) -> DispatchResult | None:
        """Send a message and apply everything the turn wrote.

        Returns:
            The dispatch result, or None if the session was closed while the
            send was in flight (the result is discarded).

        Raises:
            ValidationError: For unusable content; state.last_error is set.
            TransientNetworkError: If the write did not complete; resend
                with the same client token to avoid a duplicate.

        On failure ``state.unsent`` holds the content and token for the retry.
        """
        token = client_token or uuid.uuid4().hex
        self.apply(ReplyPending(True))
        self._send_task = asyncio.create_task(self._dispatch(content, token))
        try:
            result = await self._send_task
        except asyncio.CancelledError:
            if self._closed:
                return None
            raise
        except SQLAlchemyError as exc:
            self.apply(SendFailed(str(exc), content, token))
            raise TransientNetworkError(f"Message could not be sent (token {token}): {exc}") from exc
        except RecoveryLineError as exc:
            self.apply(SendFailed(str(exc), content, token))
            raise
        finally:
            self._send_task = None

        if self._closed:
            return None
        for message in (result.message, result.acknowledgment, result.reply):
            if message is not None:
                self.apply(MessageReceived(MessageResponse.model_validate(message), origin="local"))
        self.apply(ReplyPending(False))
        return result
