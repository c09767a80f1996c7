"""Provider alert queue routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.auth import Identity, require_provider
from recoveryline.context import AppContext, get_app_context
from recoveryline.database import get_db
from recoveryline.errors import AlertNotFoundError
from recoveryline.models.alert import AlertStatus
from recoveryline.repositories.alert import AlertRepository
from recoveryline.schemas.alert import AlertListResponse, AlertResponse, AlertUpdate

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=AlertListResponse)
async def list_alerts(
    tenant_id: uuid.UUID | None = Query(default=None),
    patient_id: uuid.UUID | None = Query(default=None),
    alert_status: AlertStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    _provider: Identity = Depends(require_provider),
) -> AlertListResponse:
    """Alerts newest first, filtered by tenant, patient or status."""
    items, total = await AlertRepository(db, ctx.hub).list_alerts(
        tenant_id,
        status=alert_status,
        patient_id=patient_id,
        limit=limit,
        offset=offset,
    )
    return AlertListResponse(
        items=[AlertResponse.model_validate(a) for a in items],
        total=total,
    )


@router.patch("/{alert_id}", response_model=AlertResponse)
async def update_alert(
    alert_id: uuid.UUID,
    data: AlertUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    provider: Identity = Depends(require_provider),
) -> AlertResponse:
    """Acknowledge or resolve an alert.

    Raises:
        HTTPException: 404 if alert not found.
    """
    try:
        alert = await AlertRepository(db, ctx.hub).update_status(alert_id, data.status, provider.user_id)
    except AlertNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Alert not found",
        )
    return AlertResponse.model_validate(alert)
