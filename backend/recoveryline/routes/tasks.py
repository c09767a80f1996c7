"""Task API routes.

Status changes from the task board. Transitions follow the task state
machine; a repeated completion is a no-op that returns the stored task.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.auth import Identity, require_provider, verify_bearer_token
from recoveryline.context import AppContext, get_app_context
from recoveryline.database import get_db
from recoveryline.errors import InvalidTransitionError, TaskNotFoundError
from recoveryline.models.task import PatientTask
from recoveryline.repositories.task import TaskRepository
from recoveryline.routes.patients import load_patient
from recoveryline.schemas.task import SweepResponse, TaskResponse
from recoveryline.utils.time_helpers import utc_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


async def _load_task(db: AsyncSession, task_id: uuid.UUID, identity: Identity) -> PatientTask:
    try:
        task = await TaskRepository(db).get(task_id)
    except TaskNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    await load_patient(db, task.patient_id, identity)
    return task


def _conflict(exc: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=str(exc),
    )


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TaskResponse:
    """Mark a task completed and post a completion note to the chat.

    Raises:
        HTTPException: 404 if task not found, 409 if it was skipped.
    """
    await _load_task(db, task_id, identity)
    try:
        task = await ctx.task_board(db).complete(task_id, actor=identity.user_id)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/start", response_model=TaskResponse)
async def start_task(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TaskResponse:
    """Move a pending or overdue task to in progress."""
    await _load_task(db, task_id, identity)
    try:
        task = await ctx.task_board(db).start(task_id, actor=identity.user_id)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/skip", response_model=TaskResponse)
async def skip_task(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TaskResponse:
    """Skip a task that is not completed."""
    await _load_task(db, task_id, identity)
    try:
        task = await ctx.task_board(db).skip(task_id, actor=identity.user_id)
    except InvalidTransitionError as exc:
        raise _conflict(exc)
    return TaskResponse.model_validate(task)


@router.post("/sweep-overdue", response_model=SweepResponse)
async def sweep_overdue(
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    _provider: Identity = Depends(require_provider),
) -> SweepResponse:
    """Mark open tasks from earlier days as overdue."""
    marked = await ctx.task_board(db).mark_overdue(utc_today())
    logger.info("Overdue sweep marked %d task(s)", marked)
    return SweepResponse(marked_overdue=marked)
