"""Pydantic schemas for Patient API."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from recoveryline.models.patient import PatientStatus
from recoveryline.schemas.types import UtcDatetime


class PatientCreate(BaseModel):
    """Schema for onboarding a patient."""

    tenant_id: UUID
    user_id: str | None = None
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    surgery_date: date | None = None
    surgery_type: str | None = Field(default=None, max_length=140)


class PatientUpdate(BaseModel):
    """Fields a provider may change after onboarding."""

    surgery_date: date | None = None
    surgery_type: str | None = Field(default=None, max_length=140)
    status: PatientStatus | None = None


class PatientResponse(BaseModel):
    """Schema for patient in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    user_id: str | None
    first_name: str
    last_name: str
    surgery_date: date | None
    surgery_type: str | None
    status: PatientStatus
    created_at: UtcDatetime


class RecoveryDayResponse(BaseModel):
    """Current recovery day for a patient."""

    patient_id: UUID
    surgery_date: date
    reference_date: date
    recovery_day: int
    days_since_surgery: int
