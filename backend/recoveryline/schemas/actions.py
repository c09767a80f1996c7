"""Typed message and responder actions.

Messages and responder replies carry structured actions (quick-reply
buttons, escalation notices, task completions). They are validated into a
closed set of tagged variants at the boundary instead of being passed
around as free-form JSON.
"""

import logging
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


class ButtonKind(str, Enum):
    """What pressing a quick-reply button does."""

    START_CHECKIN = "start_checkin"
    POSTPONE = "postpone"
    REPORT_PAIN = "report_pain"
    COMPLETE_TASK = "complete_task"


class ButtonAction(BaseModel):
    """A quick-reply button rendered under a message."""

    text: str = Field(min_length=1, max_length=80)
    action: ButtonKind
    pain_level: int | None = Field(default=None, ge=0, le=10)
    task_id: UUID | None = None


class ShowButtonsAction(BaseModel):
    """Offer quick replies to the patient."""

    type: Literal["show_buttons"] = "show_buttons"
    buttons: list[ButtonAction] = Field(min_length=1, max_length=11)


class EscalationAction(BaseModel):
    """Responder asks for provider follow-up."""

    type: Literal["escalate_to_provider"] = "escalate_to_provider"
    reason: str
    pain_level: int | None = Field(default=None, ge=0, le=10)


class EscalationNotice(BaseModel):
    """Attached to the acknowledgment message of an escalated turn."""

    type: Literal["escalation_notice"] = "escalation_notice"
    alert_id: UUID | None = None
    alert_created: bool


class CompleteTaskAction(BaseModel):
    """Responder judged that the patient finished a task."""

    type: Literal["complete_task"] = "complete_task"
    task_id: UUID


class RecordProgressAction(BaseModel):
    """Responder spotted positive progress worth recording."""

    type: Literal["record_positive_progress"] = "record_positive_progress"
    note: str = Field(max_length=2000)


class OfferProviderContactAction(BaseModel):
    """Responder suggests talking to the care team."""

    type: Literal["offer_provider_contact"] = "offer_provider_contact"
    reason: str


ResponderAction = Annotated[
    ShowButtonsAction | EscalationAction | CompleteTaskAction | RecordProgressAction | OfferProviderContactAction,
    Field(discriminator="type"),
]

MessageAction = Annotated[
    ShowButtonsAction | EscalationNotice | CompleteTaskAction | OfferProviderContactAction,
    Field(discriminator="type"),
]

_responder_action_adapter = TypeAdapter(ResponderAction)
_message_actions_adapter = TypeAdapter(list[MessageAction])


def parse_responder_actions(raw: Any) -> list[ResponderAction]:
    """Validate responder actions, dropping (and logging) anything unknown."""
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("Responder actions were not a list: %r", type(raw).__name__)
        return []

    actions: list[ResponderAction] = []
    for item in raw:
        try:
            actions.append(_responder_action_adapter.validate_python(item))
        except PydanticValidationError:
            logger.warning("Dropping unrecognised responder action: %r", item)
    return actions


def load_message_actions(raw: list[dict[str, Any]] | None) -> list[MessageAction]:
    """Rehydrate stored message actions."""
    return _message_actions_adapter.validate_python(raw or [])


def dump_message_actions(actions: list[MessageAction]) -> list[dict[str, Any]]:
    """Serialize message actions for storage."""
    return _message_actions_adapter.dump_python(actions, mode="json")
