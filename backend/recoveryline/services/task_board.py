"""Task board: the recovery-day view of a patient's tasks.

Resolves recovery days to calendar dates, drives status changes through the
task repository, and optionally posts a chat line when a task completes so
everyone watching the conversation sees it.
"""

import logging
import uuid
from collections import defaultdict
from datetime import date

from recoveryline.errors import ValidationError
from recoveryline.models.conversation import SenderType
from recoveryline.models.patient import Patient
from recoveryline.models.task import PatientTask, TaskStatus
from recoveryline.repositories.conversation import ConversationRepository
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TaskRepository
from recoveryline.schemas.actions import CompleteTaskAction
from recoveryline.schemas.task import DaySummary, DayTask, TaskCreate, TaskResponse, TimelineResponse
from recoveryline.services.recovery_day import date_for_day, days_since_surgery, recovery_day
from recoveryline.services.task_state import OPEN_STATUSES
from recoveryline.utils.time_helpers import utc_today

logger = logging.getLogger(__name__)

MISSED_STATUSES = frozenset({TaskStatus.OVERDUE, TaskStatus.SKIPPED})


class TaskBoard:
    """Task operations for the recovery timeline."""

    def __init__(
        self,
        patients: PatientRepository,
        tasks: TaskRepository,
        conversations: ConversationRepository | None = None,
    ):
        self.patients = patients
        self.tasks = tasks
        self.conversations = conversations

    def _to_day_task(self, patient: Patient, task: PatientTask, today: date) -> DayTask:
        return DayTask(
            **TaskResponse.model_validate(task).model_dump(),
            day=days_since_surgery(patient.surgery_date, task.scheduled_date),
            is_available=task.scheduled_date <= today,
        )

    async def tasks_for_day(self, patient_id: uuid.UUID, day: int, today: date | None = None) -> list[DayTask]:
        """Tasks scheduled on a recovery day, in creation order.

        Future days are listed but flagged unavailable. A patient without a
        surgery date has no timeline yet, so the result is empty.

        Raises:
            PatientNotFoundError: If the patient does not exist.
        """
        patient = await self.patients.get(patient_id)
        if patient.surgery_date is None:
            return []
        today = today or utc_today()
        tasks = await self.tasks.list_for_date(patient.id, date_for_day(patient.surgery_date, day))
        return [self._to_day_task(patient, task, today) for task in tasks]

    async def schedule(self, patient_id: uuid.UUID, data: TaskCreate) -> PatientTask:
        """Create a task on a recovery day.

        Raises:
            PatientNotFoundError: If the patient does not exist.
            ValidationError: If the patient has no surgery date yet.
        """
        patient = await self.patients.get(patient_id)
        if patient.surgery_date is None:
            raise ValidationError("Patient has no surgery date; tasks cannot be scheduled by recovery day")
        return await self.tasks.create(
            patient_id=patient.id,
            task_type=data.task_type,
            title=data.title,
            description=data.description,
            scheduled_date=date_for_day(patient.surgery_date, data.day),
        )

    async def complete(self, task_id: uuid.UUID, actor: str | None = None, emit_message: bool = True) -> PatientTask:
        """Mark a task completed.

        Completing an already completed task returns it unchanged and posts
        nothing, so the completion timestamp is set exactly once.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task was skipped.
        """
        task, changed = await self.tasks.transition(task_id, TaskStatus.COMPLETED, actor)
        if changed and emit_message:
            await self._announce_completion(task)
        return task

    async def start(self, task_id: uuid.UUID, actor: str | None = None) -> PatientTask:
        task, _ = await self.tasks.transition(task_id, TaskStatus.IN_PROGRESS, actor)
        return task

    async def skip(self, task_id: uuid.UUID, actor: str | None = None) -> PatientTask:
        task, _ = await self.tasks.transition(task_id, TaskStatus.SKIPPED, actor)
        return task

    async def mark_overdue(self, today: date | None = None) -> int:
        """Sweep open tasks from earlier days to overdue."""
        swept = await self.tasks.mark_overdue(today or utc_today())
        return len(swept)

    async def timeline(self, patient_id: uuid.UUID, today: date | None = None) -> TimelineResponse:
        """Per-day task counts for every day that has tasks."""
        patient = await self.patients.get(patient_id)
        today = today or utc_today()
        if patient.surgery_date is None:
            return TimelineResponse(patient_id=patient.id, current_day=0, days=[])

        by_date: dict[date, list[PatientTask]] = defaultdict(list)
        for task in await self.tasks.list_for_patient(patient.id):
            by_date[task.scheduled_date].append(task)

        days = []
        for scheduled, tasks in sorted(by_date.items()):
            days.append(
                DaySummary(
                    day=days_since_surgery(patient.surgery_date, scheduled),
                    date=scheduled,
                    total=len(tasks),
                    completed=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
                    pending=sum(1 for t in tasks if t.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)),
                    missed=sum(1 for t in tasks if t.status in MISSED_STATUSES),
                )
            )
        return TimelineResponse(
            patient_id=patient.id,
            current_day=recovery_day(patient.surgery_date, today),
            days=days,
        )

    async def open_tasks_today(self, patient: Patient, today: date | None = None) -> list[PatientTask]:
        today = today or utc_today()
        tasks = await self.tasks.list_for_date(patient.id, today)
        return [t for t in tasks if t.status in OPEN_STATUSES]

    async def current_task(self, patient: Patient, today: date | None = None) -> PatientTask | None:
        """First open task of today, in creation order."""
        open_tasks = await self.open_tasks_today(patient, today)
        return open_tasks[0] if open_tasks else None

    async def _announce_completion(self, task: PatientTask) -> None:
        if self.conversations is None:
            return
        conversation = await self.conversations.get_active(task.patient_id)
        if conversation is None:
            logger.debug("No active conversation to announce task %s", task.id)
            return
        await self.conversations.append_message(
            conversation,
            SenderType.SYSTEM,
            f"Completed: {task.title}",
            actions=[CompleteTaskAction(task_id=task.id)],
            client_token=f"task-complete-{task.id}",
        )
