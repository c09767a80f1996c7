"""Domain exceptions.

Routes translate these into HTTP errors; background paths (realtime pump,
websocket fan-out, alert writes during a chat turn) log and absorb them.
"""

import uuid


class RecoveryLineError(Exception):
    """Base class for all domain errors."""


class TransientNetworkError(RecoveryLineError):
    """A persistence or responder call failed to complete."""


class ResponderUnavailableError(TransientNetworkError):
    """The external responder returned non-2xx, timed out, or sent garbage."""


class NotFoundError(RecoveryLineError):
    """A referenced row does not exist."""

    entity = "Resource"

    def __init__(self, entity_id: uuid.UUID | str | None = None):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} {entity_id} not found" if entity_id else f"{self.entity} not found")


class PatientNotFoundError(NotFoundError):
    entity = "Patient"


class ConversationNotFoundError(NotFoundError):
    entity = "Conversation"


class TaskNotFoundError(NotFoundError):
    entity = "Task"


class AlertNotFoundError(NotFoundError):
    entity = "Alert"


class ValidationError(RecoveryLineError):
    """Malformed input, rejected before anything is persisted."""


class InvalidDateError(ValidationError):
    """A date argument could not be interpreted."""


class InvalidTransitionError(RecoveryLineError):
    """A task status change the state machine does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move task from {current} to {target}")


class EscalationWriteError(RecoveryLineError):
    """Alert creation failed."""


class SubscriptionError(RecoveryLineError):
    """A realtime subscription was dropped."""
