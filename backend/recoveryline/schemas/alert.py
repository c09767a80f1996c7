"""Pydantic schemas for Alert API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict

from recoveryline.models.alert import AlertSeverity, AlertStatus, AlertType
from recoveryline.schemas.types import UtcDatetime


class AlertUpdate(BaseModel):
    """Provider acknowledgment or resolution."""

    status: AlertStatus


class AlertResponse(BaseModel):
    """Schema for alert in API responses and realtime events."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    patient_id: UUID
    tenant_id: UUID
    conversation_id: UUID | None
    source_message_id: UUID | None
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str | None
    status: AlertStatus
    created_at: UtcDatetime
    acknowledged_at: UtcDatetime | None
    acknowledged_by: str | None


class AlertListResponse(BaseModel):
    """Alerts for a tenant, newest first."""

    items: list[AlertResponse]
    total: int
