"""Message dispatcher.

Runs one chat turn. The sender's message is committed first, so it is never
lost whatever happens afterwards; then escalation, the responder call and
the reply follow. The reply is never empty: when the responder fails, a
canned fallback is written instead. If the caller is cancelled while the
responder is thinking, the user's message stays and no reply is written;
resending with the same client token picks the turn up where it stopped.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date

from recoveryline.errors import (
    EscalationWriteError,
    InvalidTransitionError,
    ResponderUnavailableError,
    TaskNotFoundError,
    ValidationError,
)
from recoveryline.models.alert import AlertSeverity, AlertType, ProgressType
from recoveryline.models.conversation import Conversation, ConversationStatus, Message, SenderType
from recoveryline.models.patient import Patient
from recoveryline.repositories.conversation import ConversationRepository
from recoveryline.repositories.patient import PatientRepository, ProgressRepository
from recoveryline.schemas.actions import (
    ButtonAction,
    ButtonKind,
    CompleteTaskAction,
    EscalationAction,
    EscalationNotice,
    MessageAction,
    OfferProviderContactAction,
    RecordProgressAction,
    ShowButtonsAction,
)
from recoveryline.schemas.conversation import MAX_MESSAGE_LENGTH
from recoveryline.schemas.responder import (
    ContextMessage,
    ContextTask,
    ResponderContext,
    ResponderReply,
    ResponderRequest,
)
from recoveryline.services.escalation import EscalationSignal, EscalationTrigger
from recoveryline.services.fallback import FallbackContext, fallback_reply
from recoveryline.services.recovery_day import recovery_day
from recoveryline.services.responder import ResponderClient
from recoveryline.services.task_board import TaskBoard
from recoveryline.utils.time_helpers import utc_today

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 10

CHECKIN_PROMPT = "Let's begin with your pain assessment. On a scale of 0 to 10, how would you rate your pain today?"
POSTPONE_REPLY = (
    "No problem! I'll check back with you in a little while. Remember, consistency is key to your "
    "recovery. When you're ready, just let me know!"
)
TASK_DONE_REPLY = "Excellent work! Completing your tasks is key to your recovery. Keep up the great progress!"

_CONTEXT_ROLES = {
    SenderType.PATIENT: "user",
    SenderType.PROVIDER: "provider",
    SenderType.ASSISTANT: "assistant",
    SenderType.SYSTEM: "assistant",
}


def pain_band_reply(level: int) -> str:
    """Acknowledgment for a reported pain level."""
    if level <= 3:
        band = "That's great progress!"
    elif level <= 6:
        band = "Let's work on managing that discomfort."
    else:
        band = "I understand you're experiencing significant pain. Let's discuss pain management strategies."
    return f"Thank you for reporting your pain level as {level}/10. {band}"


@dataclass
class DispatchResult:
    """Everything one turn wrote."""

    message: Message
    acknowledgment: Message | None = None
    reply: Message | None = None
    used_fallback: bool = False
    alert_id: uuid.UUID | None = None
    replayed: bool = False
    completed_task_ids: list[uuid.UUID] = field(default_factory=list)


class MessageDispatcher:
    """Chat turn orchestration."""

    def __init__(
        self,
        conversations: ConversationRepository,
        patients: PatientRepository,
        progress: ProgressRepository,
        task_board: TaskBoard,
        escalation: EscalationTrigger,
        responder: ResponderClient,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
    ):
        self.conversations = conversations
        self.patients = patients
        self.progress = progress
        self.task_board = task_board
        self.escalation = escalation
        self.responder = responder
        self.context_window = context_window

    # === Public operations ===

    async def send(
        self,
        conversation: Conversation,
        content: str,
        sender: SenderType,
        *,
        sender_id: str | None = None,
        client_token: str | None = None,
        today: date | None = None,
    ) -> DispatchResult:
        """Send a message and, for patients, produce the assistant's reply.

        Raises:
            ValidationError: Empty or oversized content, or a sender type that
                cannot author messages. Nothing is persisted.
        """
        text = self._validate_content(content)
        if sender not in (SenderType.PATIENT, SenderType.PROVIDER):
            raise ValidationError(f"{sender.value} messages cannot be sent through the dispatcher")

        result = await self._replayed(conversation, client_token)
        if result is None:
            message = await self.conversations.append_message(
                conversation, sender, text, sender_id=sender_id, client_token=client_token
            )
            result = DispatchResult(message=message)
        elif result.reply is not None or result.message.sender_type != SenderType.PATIENT:
            return result
        else:
            # The earlier attempt stored the message but never answered it.
            message = result.message
            logger.info("Resuming unanswered message %s", message.id)
        if message.sender_type == SenderType.PROVIDER:
            return result

        signal = self.escalation.evaluate_text(message.content)
        if signal is not None and result.acknowledgment is None:
            result.alert_id, result.acknowledgment = await self._escalate(signal, conversation, message)

        patient = await self.patients.get(conversation.patient_id)
        today = today or utc_today()
        reply, used_fallback = await self._request_reply(conversation, patient, message, today)
        result.used_fallback = used_fallback
        await self._write_reply(result, conversation, reply)
        return result

    async def report_pain(
        self,
        conversation: Conversation,
        level: int,
        *,
        sender_id: str | None = None,
        client_token: str | None = None,
    ) -> DispatchResult:
        """Record a structured pain report.

        Raises:
            ValidationError: If `level` is outside 0..10. Nothing is persisted.
        """
        signal = self.escalation.evaluate_pain(level)
        replay = await self._replayed(conversation, client_token)
        if replay is not None:
            if replay.acknowledgment is not None:
                return self._replayed_pain_turn(replay, signal)
            message = replay.message
        else:
            message = await self.conversations.append_message(
                conversation,
                SenderType.PATIENT,
                f"My pain level today is {level}/10.",
                sender_id=sender_id,
                client_token=client_token,
            )
        return await self._pain_turn(conversation, message, level, signal, replayed=replay is not None)

    async def press_button(
        self,
        conversation: Conversation,
        button: ButtonAction,
        *,
        sender_id: str | None = None,
        client_token: str | None = None,
    ) -> DispatchResult:
        """Handle a quick-reply button from the check-in flow.

        Raises:
            ValidationError: A pain button without a level or a task button
                without a task. Nothing is persisted.
        """
        signal = None
        if button.action == ButtonKind.REPORT_PAIN:
            if button.pain_level is None:
                raise ValidationError("report_pain button requires a pain level")
            signal = self.escalation.evaluate_pain(button.pain_level)
        if button.action == ButtonKind.COMPLETE_TASK and button.task_id is None:
            raise ValidationError("complete_task button requires a task id")

        replay = await self._replayed(conversation, client_token)
        if replay is None:
            message = await self.conversations.append_message(
                conversation,
                SenderType.PATIENT,
                f"Selected: {button.text}",
                sender_id=sender_id,
                client_token=client_token,
            )
        elif button.action == ButtonKind.REPORT_PAIN and replay.acknowledgment is not None:
            return self._replayed_pain_turn(replay, signal)
        elif button.action != ButtonKind.REPORT_PAIN and replay.reply is not None:
            return replay
        else:
            message = replay.message

        if button.action == ButtonKind.REPORT_PAIN:
            return await self._pain_turn(
                conversation, message, button.pain_level, signal, replayed=replay is not None
            )

        result = DispatchResult(message=message, replayed=replay is not None)
        if button.action == ButtonKind.START_CHECKIN:
            buttons = ShowButtonsAction(
                buttons=[
                    ButtonAction(text=str(level), action=ButtonKind.REPORT_PAIN, pain_level=level)
                    for level in range(0, 11)
                ]
            )
            result.reply = await self._system(conversation, CHECKIN_PROMPT, message, actions=[buttons])
        elif button.action == ButtonKind.POSTPONE:
            result.reply = await self._system(conversation, POSTPONE_REPLY, message)
        elif button.action == ButtonKind.COMPLETE_TASK:
            task = await self.task_board.complete(button.task_id, actor=sender_id, emit_message=False)
            result.completed_task_ids.append(task.id)
            result.reply = await self._system(
                conversation,
                f"{TASK_DONE_REPLY} ({task.title})",
                message,
                actions=[CompleteTaskAction(task_id=task.id)],
            )
        return result

    # === Turn steps ===

    @staticmethod
    def _validate_content(content: str) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content must not be empty")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message content exceeds {MAX_MESSAGE_LENGTH} characters")
        return content.strip()

    async def _replayed(self, conversation: Conversation, client_token: str | None) -> DispatchResult | None:
        if not client_token:
            return None
        existing = await self.conversations.get_by_token(conversation.id, client_token)
        if existing is None:
            return None
        logger.info("Replayed send %s in conversation %s", client_token, conversation.id)
        return DispatchResult(
            message=existing,
            acknowledgment=await self.conversations.get_by_token(conversation.id, f"ack-{existing.id}"),
            reply=await self.conversations.get_by_token(conversation.id, f"reply-{existing.id}"),
            replayed=True,
        )

    async def _system(
        self,
        conversation: Conversation,
        content: str,
        source: Message,
        *,
        suffix: str = "reply",
        actions: list[MessageAction] | None = None,
    ) -> Message:
        return await self.conversations.append_message(
            conversation,
            SenderType.SYSTEM,
            content,
            actions=actions,
            client_token=f"{suffix}-{source.id}",
        )

    async def _escalate(
        self,
        signal: EscalationSignal,
        conversation: Conversation,
        source: Message,
    ) -> tuple[uuid.UUID | None, Message]:
        """Write the alert and exactly one acknowledgment for it."""
        alert_id = None
        try:
            alert, _ = await self.escalation.escalate(signal, conversation, source)
            alert_id = alert.id
        except EscalationWriteError:
            logger.exception("Escalation failed for message %s; telling the patient to call", source.id)

        if alert_id is not None and conversation.status == ConversationStatus.ACTIVE:
            await self.conversations.set_status(conversation.id, ConversationStatus.ESCALATED)

        acknowledgment = await self._system(
            conversation,
            self.escalation.acknowledgment(signal, alert_id is not None),
            source,
            suffix="ack",
            actions=[EscalationNotice(alert_id=alert_id, alert_created=alert_id is not None)],
        )
        return alert_id, acknowledgment

    async def _pain_turn(
        self,
        conversation: Conversation,
        message: Message,
        level: int,
        signal: EscalationSignal | None,
        replayed: bool = False,
    ) -> DispatchResult:
        result = DispatchResult(message=message, replayed=replayed)
        await self.progress.record(conversation.patient_id, ProgressType.PAIN_ASSESSMENT, pain_level=level)

        text = pain_band_reply(level)
        actions: list[MessageAction] = []
        if signal is not None:
            try:
                alert, _ = await self.escalation.escalate(signal, conversation, message)
                result.alert_id = alert.id
            except EscalationWriteError:
                logger.exception("Escalation failed for pain report %s", message.id)
            text = f"{text} {self.escalation.acknowledgment(signal, result.alert_id is not None)}"
            actions.append(EscalationNotice(alert_id=result.alert_id, alert_created=result.alert_id is not None))
            if result.alert_id is not None and conversation.status == ConversationStatus.ACTIVE:
                await self.conversations.set_status(conversation.id, ConversationStatus.ESCALATED)
        else:
            text = f"{text} Now, let's review your tasks for today."

        result.reply = await self._system(conversation, text, message, suffix="ack", actions=actions)
        result.acknowledgment = result.reply if signal is not None else None
        return result

    @staticmethod
    def _replayed_pain_turn(replay: DispatchResult, signal: EscalationSignal | None) -> DispatchResult:
        # A pain turn answers with a single message stored under the ack token.
        replay.reply = replay.acknowledgment
        if signal is None:
            replay.acknowledgment = None
        return replay

    async def _build_context(
        self,
        conversation: Conversation,
        patient: Patient,
        message: Message,
        today: date,
    ) -> ResponderContext:
        history = await self.conversations.recent_messages(conversation.id, self.context_window + 1)
        history = [m for m in history if m.id != message.id][-self.context_window:]

        current_day = recovery_day(patient.surgery_date, today) if patient.surgery_date else None
        open_tasks = await self.task_board.open_tasks_today(patient, today)
        current = open_tasks[0] if open_tasks else None

        return ResponderContext(
            recovery_day=current_day,
            surgery_type=patient.surgery_type,
            patient_name=patient.first_name,
            recent_messages=[ContextMessage(role=_CONTEXT_ROLES[m.sender_type], content=m.content) for m in history],
            current_task=(
                ContextTask(
                    id=current.id,
                    title=current.title,
                    task_type=current.task_type.value,
                    status=current.status.value,
                    description=current.description,
                )
                if current is not None
                else None
            ),
            open_task_count=len(open_tasks),
        )

    async def _request_reply(
        self,
        conversation: Conversation,
        patient: Patient,
        message: Message,
        today: date,
    ) -> tuple[ResponderReply, bool]:
        context = await self._build_context(conversation, patient, message, today)
        request = ResponderRequest(message=message.content, context=context, patient_id=patient.id)
        try:
            return await self.responder.reply(request), False
        except ResponderUnavailableError as exc:
            logger.warning("Responder unavailable for conversation %s, using fallback: %s", conversation.id, exc)
            text = fallback_reply(
                message.content,
                FallbackContext(recovery_day=context.recovery_day, remaining_tasks=context.open_task_count),
            )
            return ResponderReply(reply=text), True

    async def _write_reply(self, result: DispatchResult, conversation: Conversation, reply: ResponderReply) -> None:
        attached: list[MessageAction] = []
        for action in reply.actions:
            if isinstance(action, (ShowButtonsAction, OfferProviderContactAction)):
                attached.append(action)

        result.reply = await self.conversations.append_message(
            conversation,
            SenderType.SYSTEM if result.used_fallback else SenderType.ASSISTANT,
            reply.reply,
            actions=attached,
            client_token=f"reply-{result.message.id}",
        )

        for action in reply.actions:
            if isinstance(action, CompleteTaskAction):
                await self._complete_from_chat(result, action)
            elif isinstance(action, EscalationAction):
                await self._escalate_from_responder(result, conversation, action)
            elif isinstance(action, RecordProgressAction):
                await self.progress.record(
                    conversation.patient_id, ProgressType.POSITIVE_PROGRESS, note=action.note
                )

    async def _complete_from_chat(self, result: DispatchResult, action: CompleteTaskAction) -> None:
        try:
            task = await self.task_board.complete(action.task_id, actor="assistant")
        except (TaskNotFoundError, InvalidTransitionError) as exc:
            logger.warning("Responder asked to complete task %s: %s", action.task_id, exc)
            return
        result.completed_task_ids.append(task.id)

    async def _escalate_from_responder(
        self,
        result: DispatchResult,
        conversation: Conversation,
        action: EscalationAction,
    ) -> None:
        if result.acknowledgment is not None:
            return
        signal = None
        if action.pain_level is not None:
            signal = self.escalation.evaluate_pain(action.pain_level)
        if signal is None:
            signal = EscalationSignal(
                alert_type=AlertType.CONCERNING_SYMPTOMS,
                severity=AlertSeverity.HIGH,
                title="Assistant requested provider follow-up",
                description=f"Reason: {action.reason}. Message: {result.message.content[:500]}",
            )
        result.alert_id, result.acknowledgment = await self._escalate(signal, conversation, result.message)
