"""Built-in recovery assistant.

Implements the responder contract on top of the OpenAI chat completions API.
The reply text comes from the model; actions are derived from the patient's
message with keyword rules so they stay predictable whatever the model says.
"""

import logging
import re

from openai import AsyncOpenAI

from recoveryline.schemas.actions import (
    CompleteTaskAction,
    EscalationAction,
    OfferProviderContactAction,
    RecordProgressAction,
    ResponderAction,
)
from recoveryline.schemas.responder import ContextTask, ResponderContext, ResponderReply, ResponderRequest
from recoveryline.services.escalation import pain_level_in_text

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 500

NO_MODEL_REPLY = "Thank you for sharing that with me. How else can I help you with your recovery today?"
EMPTY_COMPLETION_REPLY = "I'm here to help with your recovery. Could you tell me more?"

HIGH_PAIN_LEVEL = 8

CONCERNING_KEYWORDS = (
    "emergency",
    "severe",
    "can't move",
    "infection",
    "fever",
    "chest pain",
    "can't breathe",
    "blood",
    "swelling",
    "discharge",
    "urgent",
    "help me",
    "something wrong",
    "worried",
    "scared",
)

COMPLETION_PHRASES = (
    "completed",
    "finished",
    "done",
    "yes",
    "did it",
    "already did",
)

POSITIVE_KEYWORDS = (
    "better",
    "good",
    "great",
    "improving",
    "progress",
    "feeling well",
    "getting stronger",
)

HELP_KEYWORDS = (
    "help",
    "assistance",
    "support",
    "don't know",
    "confused",
    "question",
    "need someone",
    "talk to someone",
)


def _mentions(text: str, phrases: tuple[str, ...]) -> bool:
    return any(re.search(rf"\b{re.escape(phrase)}\b", text) for phrase in phrases)


def determine_actions(message: str, current_task: ContextTask | None = None) -> list[ResponderAction]:
    """Keyword-derived follow-up actions for a patient message."""
    text = message.lower()
    actions: list[ResponderAction] = []

    level = pain_level_in_text(message)
    if level is not None and level >= HIGH_PAIN_LEVEL:
        actions.append(EscalationAction(reason="high_pain_level", pain_level=level))

    concerning = _mentions(text, CONCERNING_KEYWORDS)
    if concerning:
        actions.append(EscalationAction(reason="concerning_symptoms"))

    if current_task is not None and current_task.status != "completed" and _mentions(text, COMPLETION_PHRASES):
        actions.append(CompleteTaskAction(task_id=current_task.id))

    if _mentions(text, POSITIVE_KEYWORDS):
        actions.append(RecordProgressAction(note=message[:2000]))

    if not concerning and _mentions(text, HELP_KEYWORDS):
        actions.append(OfferProviderContactAction(reason="patient_needs_support"))

    return actions


def build_system_prompt(context: ResponderContext) -> str:
    recent = "\n".join(f"{m.role}: {m.content}" for m in context.recent_messages) or "No recent messages"
    if context.current_task is not None:
        task_line = f"Patient should complete: {context.current_task.title}"
    else:
        task_line = "No specific task assigned"
    day = context.recovery_day if context.recovery_day is not None else "unknown"

    return f"""You are a helpful recovery assistant helping patients through their joint replacement recovery.

PATIENT CONTEXT:
- Recovery Day: {day}
- Surgery Type: {context.surgery_type or "joint replacement"}
- Open tasks today: {context.open_task_count}

RECENT CONVERSATION:
{recent}

CURRENT TASK: {task_line}

GUIDELINES:
- Be encouraging, empathetic and supportive
- Ask one relevant follow-up question about pain, mobility or concerns
- If the patient reports severe pain (8+) or concerning symptoms, recommend contacting the care team
- Celebrate small wins
- Keep answers to 2-3 sentences

CONCERNING SYMPTOMS TO WATCH FOR:
- Severe pain (8+ on the scale)
- Signs of infection (fever, unusual swelling, discharge)
- Inability to move or bear weight
- Shortness of breath or chest pain
- Signs of blood clots (leg swelling, warmth, redness)"""


class AssistantService:
    """Generates responder replies with an OpenAI model."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        """Initialize AssistantService.

        Args:
            client: Pre-configured AsyncOpenAI client. Without one the service
                answers with a neutral reply and the keyword-derived actions.
            model: Chat completions model.
            max_tokens: Reply length cap.
        """
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    @property
    def has_model(self) -> bool:
        return self._client is not None

    async def reply(self, request: ResponderRequest) -> ResponderReply:
        """Answer one patient message.

        Raises:
            openai.APIError: If the model call fails.
        """
        actions = determine_actions(request.message, request.context.current_task)
        if self._client is None:
            logger.warning("OpenAI API key not configured, answering without a model")
            return ResponderReply(reply=NO_MODEL_REPLY, actions=actions)

        completion = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": build_system_prompt(request.context)},
                {"role": "user", "content": request.message},
            ],
            temperature=0.7,
            max_tokens=self._max_tokens,
        )
        text = ""
        if completion.choices:
            text = (completion.choices[0].message.content or "").strip()
        return ResponderReply(reply=text or EMPTY_COMPLETION_REPLY, actions=actions)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
