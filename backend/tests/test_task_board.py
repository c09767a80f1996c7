"""Tests for the task board and task repository transitions."""

import asyncio
import uuid
from datetime import timedelta

import pytest

from recoveryline.errors import InvalidTransitionError, TaskNotFoundError, ValidationError
from recoveryline.models.conversation import SenderType
from recoveryline.models.patient import Patient
from recoveryline.models.task import TaskStatus, TaskType
from recoveryline.repositories.conversation import ConversationRepository
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TASKS_TABLE, TaskRepository
from recoveryline.schemas.actions import CompleteTaskAction
from recoveryline.schemas.conversation import MessageResponse
from recoveryline.schemas.task import TaskCreate
from recoveryline.services.task_board import TaskBoard
from recoveryline.utils.time_helpers import utc_today

from tests.conftest import SURGERY_DAYS_AGO, TENANT_ID


@pytest.fixture
def board(db_session, hub) -> TaskBoard:
    return TaskBoard(
        PatientRepository(db_session),
        TaskRepository(db_session, hub),
        ConversationRepository(db_session, hub),
    )


class TestTasksForDay:
    @pytest.mark.asyncio
    async def test_lists_today(self, board, patient, todays_tasks):
        items = await board.tasks_for_day(patient.id, SURGERY_DAYS_AGO)
        assert [t.title for t in items] == ["Heel slides", "Daily pain check-in"]
        assert all(t.day == SURGERY_DAYS_AGO and t.is_available for t in items)

    @pytest.mark.asyncio
    async def test_future_days_are_unavailable(self, board, patient):
        await board.schedule(patient.id, TaskCreate(task_type=TaskType.VIDEO, title="Stairs", day=10))
        items = await board.tasks_for_day(patient.id, 10)
        assert len(items) == 1
        assert items[0].is_available is False

    @pytest.mark.asyncio
    async def test_no_surgery_date_means_no_timeline(self, board, db_session):
        unscheduled = Patient(tenant_id=TENANT_ID, first_name="Sam")
        db_session.add(unscheduled)
        await db_session.commit()

        assert await board.tasks_for_day(unscheduled.id, 0) == []
        with pytest.raises(ValidationError):
            await board.schedule(unscheduled.id, TaskCreate(task_type=TaskType.FORM, title="Consent", day=-1))

    @pytest.mark.asyncio
    async def test_surgery_date_change_shifts_days(self, board, db_session, patient, todays_tasks):
        patient.surgery_date = patient.surgery_date - timedelta(days=1)
        await db_session.commit()
        assert await board.tasks_for_day(patient.id, SURGERY_DAYS_AGO) == []
        assert len(await board.tasks_for_day(patient.id, SURGERY_DAYS_AGO + 1)) == 2


class TestComplete:
    @pytest.mark.asyncio
    async def test_completion_sets_timestamp_once(self, board, patient, todays_tasks):
        task = todays_tasks[0]
        first = await board.complete(task.id, actor="patient-user")
        completed_at = first.completed_at
        second = await board.complete(task.id, actor="patient-user")

        assert first.status == TaskStatus.COMPLETED
        assert second.completed_at == completed_at

    @pytest.mark.asyncio
    async def test_completion_posts_one_chat_line(self, board, db_session, patient, todays_tasks, hub):
        conversation = await ConversationRepository(db_session).get_or_create_active(patient)
        messages = hub.subscribe("messages", column="conversation_id", value=conversation.id)
        task = todays_tasks[0]

        await board.complete(task.id)
        await board.complete(task.id)

        stored = await ConversationRepository(db_session).list_messages(conversation.id)
        assert len(stored) == 1
        line = MessageResponse.model_validate(stored[0])
        assert line.sender_type == SenderType.SYSTEM
        assert line.content == "Completed: Heel slides"
        assert line.actions == [CompleteTaskAction(task_id=task.id)]
        assert (await messages.next_event(timeout=0.1)).payload.id == line.id

    @pytest.mark.asyncio
    async def test_completion_event_published(self, board, patient, todays_tasks, hub):
        events = hub.subscribe(TASKS_TABLE, column="patient_id", value=patient.id)
        await board.complete(todays_tasks[1].id)
        event = await events.next_event(timeout=0.1)
        assert event.kind == "update"
        assert event.payload.status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_skipped_task_cannot_complete(self, board, todays_tasks):
        await board.skip(todays_tasks[0].id)
        with pytest.raises(InvalidTransitionError):
            await board.complete(todays_tasks[0].id)

    @pytest.mark.asyncio
    async def test_missing_task(self, board):
        with pytest.raises(TaskNotFoundError):
            await board.complete(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_writers_apply_once(self, session_factory, hub, patient, todays_tasks):
        task_id = todays_tasks[0].id
        events = hub.subscribe(TASKS_TABLE, column="patient_id", value=patient.id)

        async def complete():
            async with session_factory() as session:
                _, changed = await TaskRepository(session, hub).transition(task_id, TaskStatus.COMPLETED, "writer")
                return changed

        results = await asyncio.gather(complete(), complete(), complete())

        assert results.count(True) == 1
        assert (await events.next_event(timeout=0.1)).payload.status == TaskStatus.COMPLETED
        assert await events.next_event(timeout=0.01) is None


class TestOverdueAndTimeline:
    @pytest.mark.asyncio
    async def test_sweep_marks_past_open_tasks(self, board, patient):
        yesterday = await board.schedule(
            patient.id, TaskCreate(task_type=TaskType.EXERCISE, title="Ankle pumps", day=SURGERY_DAYS_AGO - 1)
        )
        done = await board.schedule(
            patient.id, TaskCreate(task_type=TaskType.FORM, title="Consent", day=SURGERY_DAYS_AGO - 2)
        )
        await board.complete(done.id, emit_message=False)
        today = await board.schedule(
            patient.id, TaskCreate(task_type=TaskType.EXERCISE, title="Quad sets", day=SURGERY_DAYS_AGO)
        )

        assert await board.mark_overdue(utc_today()) == 1
        assert await board.mark_overdue(utc_today()) == 0

        tasks = {t.id: t.status for t in await board.tasks.list_for_patient(patient.id)}
        assert tasks[yesterday.id] == TaskStatus.OVERDUE
        assert tasks[done.id] == TaskStatus.COMPLETED
        assert tasks[today.id] == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_overdue_task_can_still_be_completed(self, board, patient):
        task = await board.schedule(
            patient.id, TaskCreate(task_type=TaskType.EXERCISE, title="Ankle pumps", day=SURGERY_DAYS_AGO - 1)
        )
        await board.mark_overdue(utc_today())
        assert (await board.complete(task.id)).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_timeline_counts(self, board, patient, todays_tasks):
        missed = await board.schedule(
            patient.id, TaskCreate(task_type=TaskType.EXERCISE, title="Ankle pumps", day=1)
        )
        await board.skip(missed.id)
        await board.complete(todays_tasks[0].id, emit_message=False)

        timeline = await board.timeline(patient.id)

        assert timeline.current_day == SURGERY_DAYS_AGO
        by_day = {d.day: d for d in timeline.days}
        assert by_day[1].missed == 1
        assert by_day[SURGERY_DAYS_AGO].total == 2
        assert by_day[SURGERY_DAYS_AGO].completed == 1
        assert by_day[SURGERY_DAYS_AGO].pending == 1

    @pytest.mark.asyncio
    async def test_current_task_is_first_open_today(self, board, patient, todays_tasks):
        await board.complete(todays_tasks[0].id, emit_message=False)
        current = await board.current_task(patient)
        assert current.id == todays_tasks[1].id
