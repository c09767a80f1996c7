"""Tests for the conversation state reducer."""

import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

from recoveryline.models.conversation import SenderType
from recoveryline.models.task import TaskStatus, TaskType
from recoveryline.schemas.conversation import MessageResponse
from recoveryline.schemas.task import TaskResponse
from recoveryline.services.conversation_state import (
    ConnectionChanged,
    ConversationState,
    MessageReceived,
    ReplyPending,
    SendFailed,
    SnapshotLoaded,
    TaskReceived,
    newer_task,
    reduce,
)

CONVERSATION_ID = uuid.uuid4()
PATIENT_ID = uuid.uuid4()
T0 = datetime(2026, 3, 13, 9, 0, tzinfo=timezone.utc)


def make_message(seconds: int, sender: SenderType = SenderType.PATIENT, **overrides) -> MessageResponse:
    data = dict(
        id=uuid.uuid4(),
        conversation_id=CONVERSATION_ID,
        patient_id=PATIENT_ID,
        sender_type=sender,
        sender_id=None,
        content=f"message at {seconds}s",
        created_at=T0 + timedelta(seconds=seconds),
    )
    data.update(overrides)
    return MessageResponse(**data)


def make_task(status: TaskStatus = TaskStatus.PENDING, seconds: int = 0, task_id: uuid.UUID | None = None):
    return TaskResponse(
        id=task_id or uuid.uuid4(),
        patient_id=PATIENT_ID,
        task_type=TaskType.EXERCISE,
        title="Heel slides",
        description=None,
        scheduled_date=date(2026, 3, 13),
        status=status,
        completed_at=None,
        updated_by=None,
        created_at=T0,
        updated_at=T0 + timedelta(seconds=seconds),
    )


@pytest.fixture
def loaded() -> ConversationState:
    return reduce(
        ConversationState(),
        SnapshotLoaded(conversation_id=CONVERSATION_ID, messages=(make_message(0),), tasks=()),
    )


class TestMessages:
    def test_snapshot_sorts_and_dedupes(self):
        first, second = make_message(0), make_message(5)
        state = reduce(
            ConversationState(),
            SnapshotLoaded(conversation_id=CONVERSATION_ID, messages=(second, first, second), tasks=()),
        )
        assert [m.id for m in state.messages] == [first.id, second.id]

    def test_append_in_order(self, loaded):
        message = make_message(10)
        state = reduce(loaded, MessageReceived(message))
        assert state.messages[-1].id == message.id

    def test_late_message_is_inserted_in_place(self, loaded):
        later = make_message(20)
        earlier = make_message(10)
        state = reduce(reduce(loaded, MessageReceived(later)), MessageReceived(earlier))
        assert [m.created_at for m in state.messages] == sorted(m.created_at for m in state.messages)

    def test_duplicate_delivery_returns_same_state(self, loaded):
        message = make_message(10)
        once = reduce(loaded, MessageReceived(message, origin="local"))
        twice = reduce(once, MessageReceived(message, origin="remote"))
        assert twice is once
        assert len(twice.messages) == 2

    def test_other_conversation_is_ignored(self, loaded):
        stray = make_message(10, conversation_id=uuid.uuid4())
        assert reduce(loaded, MessageReceived(stray)) is loaded

    def test_remote_reply_clears_typing(self, loaded):
        typing = reduce(loaded, ReplyPending(True))
        state = reduce(typing, MessageReceived(make_message(10, SenderType.ASSISTANT)))
        assert state.typing is False

    def test_own_message_keeps_typing(self, loaded):
        typing = reduce(loaded, ReplyPending(True))
        state = reduce(typing, MessageReceived(make_message(10), origin="local"))
        assert state.typing is True

    def test_state_is_immutable(self, loaded):
        reduce(loaded, MessageReceived(make_message(10)))
        assert len(loaded.messages) == 1


class TestTasks:
    def test_newer_update_wins(self):
        task = make_task(TaskStatus.PENDING, seconds=0)
        done = make_task(TaskStatus.COMPLETED, seconds=5, task_id=task.id)
        assert newer_task(task, done) is done
        assert newer_task(done, task) is done

    def test_equal_timestamps_prefer_more_advanced_status(self):
        task = make_task(TaskStatus.IN_PROGRESS, seconds=5)
        done = make_task(TaskStatus.COMPLETED, seconds=5, task_id=task.id)
        assert newer_task(task, done) is done
        assert newer_task(done, task) is done

    def test_arrival_order_does_not_matter(self, loaded):
        started = make_task(TaskStatus.IN_PROGRESS, seconds=3)
        done = make_task(TaskStatus.COMPLETED, seconds=4, task_id=started.id)
        a = reduce(reduce(loaded, TaskReceived(started)), TaskReceived(done))
        b = reduce(reduce(loaded, TaskReceived(done)), TaskReceived(started))
        assert a.tasks[started.id].status == b.tasks[started.id].status == TaskStatus.COMPLETED

    def test_reload_keeps_local_version_that_is_ahead(self, loaded):
        stale = make_task(TaskStatus.PENDING, seconds=0)
        done = make_task(TaskStatus.COMPLETED, seconds=9, task_id=stale.id)
        state = reduce(loaded, TaskReceived(done, origin="local"))
        state = reduce(state, SnapshotLoaded(conversation_id=CONVERSATION_ID, messages=(), tasks=(stale,)))
        assert state.tasks[stale.id].status == TaskStatus.COMPLETED

    def test_tasks_view_is_read_only(self, loaded):
        state = reduce(loaded, TaskReceived(make_task()))
        with pytest.raises(TypeError):
            state.tasks[uuid.uuid4()] = make_task()


class TestConnection:
    def test_going_offline_records_error(self, loaded):
        state = reduce(loaded, ConnectionChanged(live=False, error="subscriber queue overflow"))
        assert state.live is False
        assert state.last_error == "subscriber queue overflow"

    def test_send_failure_stops_typing(self, loaded):
        state = reduce(reduce(loaded, ReplyPending(True)), SendFailed("timeout", client_token="tok"))
        assert state.typing is False
        assert state.last_error == "timeout"

    def test_snapshot_clears_error(self, loaded):
        failed = reduce(loaded, SendFailed("timeout"))
        state = reduce(failed, SnapshotLoaded(conversation_id=CONVERSATION_ID, messages=(), tasks=()))
        assert state.last_error is None


class TestUnsentInput:
    def test_send_failure_keeps_content(self, loaded):
        state = reduce(loaded, SendFailed("database is locked", "Knee feels stiff", "tok-1"))
        assert state.unsent == ("Knee feels stiff", "tok-1")

    def test_unsent_survives_reload(self, loaded):
        failed = reduce(loaded, SendFailed("timeout", "Knee feels stiff", "tok-1"))
        state = reduce(failed, SnapshotLoaded(conversation_id=CONVERSATION_ID, messages=(), tasks=()))
        assert state.unsent == ("Knee feels stiff", "tok-1")

    def test_delivered_message_clears_unsent(self, loaded):
        failed = reduce(loaded, SendFailed("timeout", "Knee feels stiff", "tok-1"))
        delivered = make_message(5, content="Knee feels stiff", client_token="tok-1")
        state = reduce(failed, MessageReceived(delivered, origin="local"))
        assert state.unsent is None

    def test_other_messages_keep_unsent(self, loaded):
        failed = reduce(loaded, SendFailed("timeout", "Knee feels stiff", "tok-1"))
        state = reduce(failed, MessageReceived(make_message(5, SenderType.PROVIDER)))
        assert state.unsent == ("Knee feels stiff", "tok-1")

    def test_unknown_event_rejected(self, loaded):
        with pytest.raises(TypeError):
            reduce(loaded, object())
