"""Client-side conversation state reducer.

Every change to what a conversation view shows goes through `reduce`, a pure
function of (state, event). Messages are append-only and deduplicated by id.
Tasks are keyed by id and reconciled last-write-wins on `updated_at`; when
two versions carry the same timestamp the more advanced status wins, so the
outcome does not depend on whether a task event or its correlated chat
message arrives first.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Literal, Mapping, Union
from uuid import UUID

from recoveryline.schemas.conversation import MessageResponse
from recoveryline.schemas.task import TaskResponse
from recoveryline.services.task_state import STATUS_RANK

Origin = Literal["local", "remote"]


@dataclass(frozen=True)
class ConversationState:
    """Immutable snapshot of one conversation view."""

    conversation_id: UUID | None = None
    messages: tuple[MessageResponse, ...] = ()
    tasks: Mapping[UUID, TaskResponse] = field(default_factory=lambda: MappingProxyType({}))
    typing: bool = False
    live: bool = False
    last_error: str | None = None
    loaded_at: datetime | None = None
    # (content, client_token) of the last send that failed, kept for retry
    unsent: tuple[str, str | None] | None = None

    def message_ids(self) -> frozenset[UUID]:
        return frozenset(m.id for m in self.messages)

    def ordered_tasks(self) -> list[TaskResponse]:
        return sorted(self.tasks.values(), key=lambda t: (t.scheduled_date, t.created_at, str(t.id)))


# === Events ===


@dataclass(frozen=True)
class SnapshotLoaded:
    """A full reload from the database replaces everything."""

    conversation_id: UUID
    messages: tuple[MessageResponse, ...]
    tasks: tuple[TaskResponse, ...]
    loaded_at: datetime | None = None


@dataclass(frozen=True)
class MessageReceived:
    message: MessageResponse
    origin: Origin = "remote"


@dataclass(frozen=True)
class TaskReceived:
    task: TaskResponse
    origin: Origin = "remote"


@dataclass(frozen=True)
class ReplyPending:
    pending: bool


@dataclass(frozen=True)
class ConnectionChanged:
    live: bool
    error: str | None = None


@dataclass(frozen=True)
class SendFailed:
    error: str
    content: str | None = None
    client_token: str | None = None


ConversationEvent = Union[SnapshotLoaded, MessageReceived, TaskReceived, ReplyPending, ConnectionChanged, SendFailed]


def _message_sort_key(message: MessageResponse) -> tuple:
    return (message.created_at, str(message.id))


def _insert_message(messages: tuple[MessageResponse, ...], message: MessageResponse) -> tuple[MessageResponse, ...]:
    if any(m.id == message.id for m in messages):
        return messages
    if not messages or _message_sort_key(messages[-1]) <= _message_sort_key(message):
        return messages + (message,)
    return tuple(sorted(messages + (message,), key=_message_sort_key))


def newer_task(current: TaskResponse | None, incoming: TaskResponse) -> TaskResponse:
    """Pick the winning version of a task (last write wins)."""
    if current is None:
        return incoming
    if incoming.updated_at != current.updated_at:
        return incoming if incoming.updated_at > current.updated_at else current
    if STATUS_RANK[incoming.status] != STATUS_RANK[current.status]:
        return incoming if STATUS_RANK[incoming.status] > STATUS_RANK[current.status] else current
    return current


def _with_task(tasks: Mapping[UUID, TaskResponse], task: TaskResponse) -> Mapping[UUID, TaskResponse]:
    winner = newer_task(tasks.get(task.id), task)
    if winner is tasks.get(task.id):
        return tasks
    updated = dict(tasks)
    updated[task.id] = winner
    return MappingProxyType(updated)


def reduce(state: ConversationState, event: ConversationEvent) -> ConversationState:
    """Apply one event and return the new state."""
    if isinstance(event, SnapshotLoaded):
        messages = tuple(sorted({m.id: m for m in event.messages}.values(), key=_message_sort_key))
        tasks: Mapping[UUID, TaskResponse] = MappingProxyType({})
        for task in event.tasks:
            tasks = _with_task(tasks, task)
        # Keep local task versions the reload has not caught up with yet.
        if state.conversation_id == event.conversation_id:
            for task in state.tasks.values():
                if task.id in tasks:
                    tasks = _with_task(tasks, task)
        return replace(
            state,
            conversation_id=event.conversation_id,
            messages=messages,
            tasks=tasks,
            last_error=None,
            loaded_at=event.loaded_at,
        )

    if isinstance(event, MessageReceived):
        if state.conversation_id is not None and event.message.conversation_id != state.conversation_id:
            return state
        messages = _insert_message(state.messages, event.message)
        typing = state.typing
        if event.message.sender_type.value in ("assistant", "system") and event.origin == "remote":
            typing = False
        unsent = state.unsent
        if unsent is not None and unsent[1] is not None and event.message.client_token == unsent[1]:
            unsent = None
        if messages is state.messages and typing == state.typing and unsent is state.unsent:
            return state
        return replace(state, messages=messages, typing=typing, unsent=unsent)

    if isinstance(event, TaskReceived):
        tasks = _with_task(state.tasks, event.task)
        if tasks is state.tasks:
            return state
        return replace(state, tasks=tasks)

    if isinstance(event, ReplyPending):
        return replace(state, typing=event.pending)

    if isinstance(event, ConnectionChanged):
        return replace(state, live=event.live, last_error=event.error if not event.live else state.last_error)

    if isinstance(event, SendFailed):
        unsent = (event.content, event.client_token) if event.content is not None else state.unsent
        return replace(state, typing=False, last_error=event.error, unsent=unsent)

    raise TypeError(f"Unknown conversation event: {type(event).__name__}")
