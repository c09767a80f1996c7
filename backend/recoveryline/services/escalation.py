"""Escalation trigger.

Turns pain scores and worrying message text into provider alerts. A single
chat turn raises at most one alert: the strongest matching signal wins.
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recoveryline.errors import EscalationWriteError, ValidationError
from recoveryline.models.alert import Alert, AlertSeverity, AlertType
from recoveryline.models.conversation import Conversation, Message
from recoveryline.realtime import RealtimeHub
from recoveryline.repositories.alert import AlertRepository

logger = logging.getLogger(__name__)

DEFAULT_PAIN_THRESHOLD = 8

EMERGENCY_KEYWORDS = (
    "emergency",
    "911",
    "ambulance",
    "can't breathe",
    "cannot breathe",
    "chest pain",
)

CONCERNING_KEYWORDS = (
    "fever",
    "infection",
    "infected",
    "swelling",
    "swollen",
    "discharge",
    "bleeding",
    "blood",
    "can't move",
    "something wrong",
    "redness",
    "pus",
)

_MEDICATION_LAPSE_PATTERNS = (
    re.compile(r"\bmiss(?:ed|ing)\b.*\b(?:dose|doses|medication|medications|meds|pills?)\b"),
    re.compile(r"\bforg(?:ot|otten|et)\b.*\b(?:dose|doses|medication|medications|meds|pills?)\b"),
    re.compile(r"\b(?:ran|run|running) out of\b.*\b(?:medication|medications|meds|pills?)\b"),
)

# "pain is 9", "my pain level is about 8 out of 10", "9/10 pain"; a number
# before the word only counts in its "/10" or "out of 10" form.
_PAIN_IN_TEXT = re.compile(
    r"(?<!\bno )\bpain(?:\s+(?:level|score|rating))?"
    r"(?:\s*(?:\b(?:is|was|of|at|about|around|like|maybe|now|currently|a|an)\b|[:=]))*\s*(\d{1,2})\b"
    r"|\b(\d{1,2})\s*(?:/|out of)\s*10\s+(?:of\s+)?(?:\w+\s+)?pain\b"
)


@dataclass(frozen=True)
class EscalationSignal:
    """Why a message or report needs provider attention."""

    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    pain_level: int | None = None


def pain_level_in_text(content: str) -> int | None:
    """First 0..10 pain score mentioned next to the word "pain"."""
    for match in _PAIN_IN_TEXT.finditer(content.lower()):
        value = int(match.group(1) or match.group(2))
        if 0 <= value <= 10:
            return value
    return None


class EscalationTrigger:
    """Detects escalation conditions and writes alerts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: RealtimeHub | None = None,
        pain_threshold: int = DEFAULT_PAIN_THRESHOLD,
    ):
        """Initialize EscalationTrigger.

        Args:
            session_factory: Alerts are written in their own session, so a
                failed alert write never rolls back the chat turn.
            hub: Realtime hub for alert events.
            pain_threshold: Lowest pain score that alerts the care team.
        """
        self.session_factory = session_factory
        self.hub = hub
        self.pain_threshold = pain_threshold

    def evaluate_pain(self, level: int) -> EscalationSignal | None:
        """Signal for a structured 0..10 pain report.

        Raises:
            ValidationError: If `level` is not an integer in 0..10.
        """
        if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 10:
            raise ValidationError(f"Pain level must be an integer from 0 to 10, got {level!r}")
        if level < self.pain_threshold:
            return None
        return EscalationSignal(
            alert_type=AlertType.HIGH_PAIN_SCORE,
            severity=AlertSeverity.CRITICAL if level >= 10 else AlertSeverity.HIGH,
            title=f"High pain score reported: {level}/10",
            description=f"Patient reported a pain level of {level}/10.",
            pain_level=level,
        )

    def evaluate_text(self, content: str) -> EscalationSignal | None:
        """Strongest escalation signal in free text, if any."""
        text = content.lower()

        hits = [keyword for keyword in EMERGENCY_KEYWORDS if keyword in text]
        if hits:
            return EscalationSignal(
                alert_type=AlertType.EMERGENCY_REQUEST,
                severity=AlertSeverity.CRITICAL,
                title="Possible emergency reported",
                description=f"Message mentions: {', '.join(hits)}. Message: {content[:500]}",
            )

        level = pain_level_in_text(content)
        if level is not None and level >= self.pain_threshold:
            signal = self.evaluate_pain(level)
            if signal is not None:
                return EscalationSignal(
                    alert_type=signal.alert_type,
                    severity=signal.severity,
                    title=signal.title,
                    description=f"{signal.description} Message: {content[:500]}",
                    pain_level=level,
                )

        hits = [keyword for keyword in CONCERNING_KEYWORDS if keyword in text]
        if hits:
            return EscalationSignal(
                alert_type=AlertType.CONCERNING_SYMPTOMS,
                severity=AlertSeverity.HIGH,
                title="Concerning symptoms reported",
                description=f"Message mentions: {', '.join(hits)}. Message: {content[:500]}",
            )

        if any(pattern.search(text) for pattern in _MEDICATION_LAPSE_PATTERNS):
            return EscalationSignal(
                alert_type=AlertType.MISSED_MEDICATION,
                severity=AlertSeverity.MEDIUM,
                title="Possible missed medication",
                description=f"Message: {content[:500]}",
            )
        return None

    async def escalate(
        self,
        signal: EscalationSignal,
        conversation: Conversation,
        source_message: Message | None = None,
    ) -> tuple[Alert, bool]:
        """Write the alert for a signal.

        Returns:
            The alert and whether this call created it.

        Raises:
            EscalationWriteError: If the alert could not be stored.
        """
        values = dict(
            patient_id=conversation.patient_id,
            tenant_id=conversation.tenant_id,
            alert_type=signal.alert_type,
            severity=signal.severity,
            title=signal.title,
            description=signal.description,
            conversation_id=conversation.id,
            source_message_id=source_message.id if source_message is not None else None,
        )
        try:
            async with self.session_factory() as db:
                return await AlertRepository(db, self.hub).create(**values)
        except SQLAlchemyError as exc:
            raise EscalationWriteError(f"Could not store {signal.alert_type.value} alert: {exc}") from exc

    @staticmethod
    def acknowledgment(signal: EscalationSignal, alert_created: bool) -> str:
        """Patient-facing confirmation for an escalated turn."""
        if not alert_created:
            return (
                "I wasn't able to notify your care team automatically. Please call your care team directly "
                "now. If this is an emergency, call 911."
            )
        if signal.alert_type == AlertType.EMERGENCY_REQUEST:
            return (
                "If this is a medical emergency, call 911 right away. I've also alerted your care team so "
                "they can follow up with you."
            )
        if signal.alert_type == AlertType.HIGH_PAIN_SCORE:
            return (
                f"A pain level of {signal.pain_level}/10 is significant. I've notified your care team and "
                "someone will follow up with you soon."
            )
        if signal.alert_type == AlertType.MISSED_MEDICATION:
            return (
                "Thanks for letting me know. I've let your care team know about your medication so they can "
                "advise you on what to do next."
            )
        return "Thank you for telling me. I've notified your care team so they can check on you soon."
