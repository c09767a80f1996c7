"""Task repository.

Status changes go through a single conditional UPDATE whose WHERE clause
only matches rows in a status the state machine allows to move into the
target. Two writers racing on the same task therefore cannot both apply a
transition, and repeating a completion leaves the first completion
timestamp untouched.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.errors import TaskNotFoundError
from recoveryline.models.task import PatientTask, TaskStatus, TaskType
from recoveryline.realtime import RealtimeHub
from recoveryline.schemas.task import TaskResponse
from recoveryline.services.task_state import check_transition, sources_for
from recoveryline.utils.time_helpers import utc_now

logger = logging.getLogger(__name__)

TASKS_TABLE = "patient_tasks"

OVERDUE_SOURCES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskRepository:
    """Data access for patient tasks."""

    def __init__(self, db: AsyncSession, hub: RealtimeHub | None = None):
        self.db = db
        self.hub = hub

    async def get(self, task_id: uuid.UUID, *, refresh: bool = False) -> PatientTask:
        """Get a task by ID.

        Args:
            task_id: Task UUID.
            refresh: Overwrite any copy already in the session identity map.

        Raises:
            TaskNotFoundError: If no such task exists.
        """
        query = select(PatientTask).where(PatientTask.id == task_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        task = result.scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def create(
        self,
        patient_id: uuid.UUID,
        task_type: TaskType,
        title: str,
        scheduled_date: date,
        description: str | None = None,
    ) -> PatientTask:
        now = utc_now()
        task = PatientTask(
            patient_id=patient_id,
            task_type=task_type,
            title=title,
            description=description,
            scheduled_date=scheduled_date,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.db.add(task)
        await self.db.commit()
        self._publish(task, "insert")
        return task

    async def list_for_date(self, patient_id: uuid.UUID, scheduled_date: date) -> list[PatientTask]:
        result = await self.db.execute(
            select(PatientTask)
            .where(
                PatientTask.patient_id == patient_id,
                PatientTask.scheduled_date == scheduled_date,
            )
            .order_by(PatientTask.created_at.asc(), PatientTask.id.asc())
        )
        return list(result.scalars().all())

    async def list_between(self, patient_id: uuid.UUID, start: date, end: date) -> list[PatientTask]:
        """Tasks scheduled in [start, end], ordered by date then creation."""
        result = await self.db.execute(
            select(PatientTask)
            .where(
                PatientTask.patient_id == patient_id,
                PatientTask.scheduled_date >= start,
                PatientTask.scheduled_date <= end,
            )
            .order_by(PatientTask.scheduled_date.asc(), PatientTask.created_at.asc())
        )
        return list(result.scalars().all())

    async def list_for_patient(self, patient_id: uuid.UUID) -> list[PatientTask]:
        result = await self.db.execute(
            select(PatientTask)
            .where(PatientTask.patient_id == patient_id)
            .order_by(PatientTask.scheduled_date.asc(), PatientTask.created_at.asc())
        )
        return list(result.scalars().all())

    async def transition(
        self,
        task_id: uuid.UUID,
        target: TaskStatus,
        actor: str | None = None,
    ) -> tuple[PatientTask, bool]:
        """Move a task to `target` if the state machine allows it.

        Returns:
            The stored task and whether this call changed it. A task already
            in `target` is returned unchanged.

        Raises:
            TaskNotFoundError: If no such task exists.
            InvalidTransitionError: If the current status cannot reach `target`.
        """
        task = await self.get(task_id, refresh=True)
        if not check_transition(task.status, target):
            return task, False

        now = utc_now()
        values: dict = {"status": target, "updated_at": now, "updated_by": actor}
        if target == TaskStatus.COMPLETED:
            values["completed_at"] = now

        result = await self.db.execute(
            update(PatientTask)
            .where(
                PatientTask.id == task_id,
                PatientTask.status.in_(sorted(sources_for(target))),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        changed = bool(result.rowcount)

        task = await self.get(task_id, refresh=True)
        if not changed:
            # Another writer moved the task first; report against what it stored.
            logger.info("Task %s changed concurrently, now %s", task_id, task.status.value)
            check_transition(task.status, target)
            return task, False

        logger.info("Task %s -> %s by %s", task_id, target.value, actor or "system")
        self._publish(task, "update")
        return task, True

    async def mark_overdue(self, today: date) -> list[PatientTask]:
        """Move open tasks scheduled before `today` to overdue."""
        result = await self.db.execute(
            select(PatientTask.id).where(
                PatientTask.scheduled_date < today,
                PatientTask.status.in_(OVERDUE_SOURCES),
            )
        )
        candidate_ids = list(result.scalars().all())
        if not candidate_ids:
            return []

        now = utc_now()
        await self.db.execute(
            update(PatientTask)
            .where(
                PatientTask.id.in_(candidate_ids),
                PatientTask.status.in_(OVERDUE_SOURCES),
            )
            .values(status=TaskStatus.OVERDUE, updated_at=now, updated_by="system:overdue-sweep")
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        result = await self.db.execute(
            select(PatientTask)
            .where(
                PatientTask.id.in_(candidate_ids),
                PatientTask.status == TaskStatus.OVERDUE,
            )
            .execution_options(populate_existing=True)
        )
        swept = list(result.scalars().all())
        for task in swept:
            self._publish(task, "update")
        logger.info("Marked %d tasks overdue before %s", len(swept), today.isoformat())
        return swept

    def _publish(self, task: PatientTask, kind: str) -> None:
        if self.hub is None:
            return
        self.hub.publish(TASKS_TABLE, kind, TaskResponse.model_validate(task), patient_id=task.patient_id)
