"""Patient API routes.

Onboarding, provider edits, the recovery-day calculator and the task board
views of a patient's timeline.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.auth import Identity, ensure_patient_access, require_provider, verify_bearer_token
from recoveryline.context import AppContext, get_app_context
from recoveryline.database import get_db
from recoveryline.errors import PatientNotFoundError, ValidationError
from recoveryline.models.patient import Patient
from recoveryline.repositories.patient import PatientRepository
from recoveryline.schemas.patient import PatientCreate, PatientResponse, PatientUpdate, RecoveryDayResponse
from recoveryline.schemas.task import DayTaskList, TaskCreate, TaskResponse, TimelineResponse
from recoveryline.services.recovery_day import days_since_surgery, recovery_day
from recoveryline.utils.time_helpers import utc_today

router = APIRouter(prefix="/patients", tags=["patients"])


async def load_patient(db: AsyncSession, patient_id: uuid.UUID, identity: Identity) -> Patient:
    """Fetch a patient the caller may see.

    Raises:
        HTTPException: 404 if missing, 403 if not the caller's record.
    """
    try:
        patient = await PatientRepository(db).get(patient_id)
    except PatientNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found",
        )
    ensure_patient_access(identity, patient)
    return patient


@router.post("", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    data: PatientCreate,
    db: AsyncSession = Depends(get_db),
    _provider: Identity = Depends(require_provider),
) -> PatientResponse:
    """Onboard a patient."""
    patient = await PatientRepository(db).create(data)
    return PatientResponse.model_validate(patient)


@router.get("/{patient_id}", response_model=PatientResponse)
async def get_patient(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(verify_bearer_token),
) -> PatientResponse:
    """Get a single patient by ID.

    Raises:
        HTTPException: 404 if patient not found.
    """
    patient = await load_patient(db, patient_id, identity)
    return PatientResponse.model_validate(patient)


@router.patch("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: uuid.UUID,
    data: PatientUpdate,
    db: AsyncSession = Depends(get_db),
    _provider: Identity = Depends(require_provider),
) -> PatientResponse:
    """Change surgery date, surgery type or status.

    Moving the surgery date shifts every recovery day, since days are
    derived from it rather than stored.
    """
    try:
        patient = await PatientRepository(db).update(patient_id, data)
    except PatientNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found",
        )
    return PatientResponse.model_validate(patient)


@router.get("/{patient_id}/recovery-day", response_model=RecoveryDayResponse)
async def get_recovery_day(
    patient_id: uuid.UUID,
    on: date | None = Query(default=None, description="Reference date (defaults to today, UTC)"),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(verify_bearer_token),
) -> RecoveryDayResponse:
    """Current recovery day (day 0 is the day of surgery).

    Raises:
        HTTPException: 404 if patient not found, 409 if no surgery date is set.
    """
    patient = await load_patient(db, patient_id, identity)
    if patient.surgery_date is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Patient has no surgery date",
        )
    reference = on or utc_today()
    return RecoveryDayResponse(
        patient_id=patient.id,
        surgery_date=patient.surgery_date,
        reference_date=reference,
        recovery_day=recovery_day(patient.surgery_date, reference),
        days_since_surgery=days_since_surgery(patient.surgery_date, reference),
    )


@router.get("/{patient_id}/tasks", response_model=DayTaskList)
async def list_day_tasks(
    patient_id: uuid.UUID,
    day: int | None = Query(default=None, ge=-365, le=730, description="Recovery day; defaults to today"),
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> DayTaskList:
    """Tasks for one recovery day."""
    patient = await load_patient(db, patient_id, identity)
    today = utc_today()
    current_day = recovery_day(patient.surgery_date, today) if patient.surgery_date else 0
    selected = current_day if day is None else day
    items = await ctx.task_board(db).tasks_for_day(patient.id, selected, today)
    return DayTaskList(patient_id=patient.id, day=selected, current_day=current_day, items=items)


@router.post("/{patient_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def schedule_task(
    patient_id: uuid.UUID,
    data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    _provider: Identity = Depends(require_provider),
) -> TaskResponse:
    """Schedule a task on a recovery day.

    Raises:
        HTTPException: 404 if patient not found, 409 if no surgery date is set.
    """
    try:
        task = await ctx.task_board(db).schedule(patient_id, data)
    except PatientNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found",
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        )
    return TaskResponse.model_validate(task)


@router.get("/{patient_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    patient_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TimelineResponse:
    """Per-day task counts across the recovery timeline."""
    patient = await load_patient(db, patient_id, identity)
    return await ctx.task_board(db).timeline(patient.id)
