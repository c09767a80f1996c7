"""Patient and progress repositories."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.errors import PatientNotFoundError
from recoveryline.models.alert import ProgressEntry, ProgressType
from recoveryline.models.patient import Patient
from recoveryline.schemas.patient import PatientCreate, PatientUpdate

logger = logging.getLogger(__name__)


class PatientRepository:
    """Data access for patients."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, patient_id: uuid.UUID) -> Patient:
        """Get a patient by ID.

        Raises:
            PatientNotFoundError: If no such patient exists.
        """
        result = await self.db.execute(select(Patient).where(Patient.id == patient_id))
        patient = result.scalar_one_or_none()
        if patient is None:
            raise PatientNotFoundError(patient_id)
        return patient

    async def get_by_user(self, user_id: str) -> Patient | None:
        result = await self.db.execute(select(Patient).where(Patient.user_id == user_id))
        return result.scalar_one_or_none()

    async def create(self, data: PatientCreate) -> Patient:
        patient = Patient(**data.model_dump())
        self.db.add(patient)
        await self.db.commit()
        logger.info("Onboarded patient %s", patient.id)
        return patient

    async def update(self, patient_id: uuid.UUID, data: PatientUpdate) -> Patient:
        """Apply provider edits (surgery date/type, status).

        Raises:
            PatientNotFoundError: If no such patient exists.
        """
        patient = await self.get(patient_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "status" and value is None:
                continue
            setattr(patient, field, value)
        await self.db.commit()
        return patient


class ProgressRepository:
    """Patient-reported progress entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        patient_id: uuid.UUID,
        entry_type: ProgressType,
        *,
        pain_level: int | None = None,
        note: str | None = None,
    ) -> ProgressEntry:
        entry = ProgressEntry(
            patient_id=patient_id,
            entry_type=entry_type,
            pain_level=pain_level,
            note=note,
        )
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def list_for_patient(self, patient_id: uuid.UUID, limit: int = 50) -> list[ProgressEntry]:
        result = await self.db.execute(
            select(ProgressEntry)
            .where(ProgressEntry.patient_id == patient_id)
            .order_by(ProgressEntry.recorded_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
