"""Alert repository."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.errors import AlertNotFoundError
from recoveryline.models.alert import Alert, AlertSeverity, AlertStatus, AlertType
from recoveryline.realtime import RealtimeHub
from recoveryline.schemas.alert import AlertResponse
from recoveryline.utils.time_helpers import utc_now

logger = logging.getLogger(__name__)

ALERTS_TABLE = "alerts"


class AlertRepository:
    """Data access for provider alerts."""

    def __init__(self, db: AsyncSession, hub: RealtimeHub | None = None):
        self.db = db
        self.hub = hub

    async def get(self, alert_id: uuid.UUID) -> Alert:
        result = await self.db.execute(select(Alert).where(Alert.id == alert_id))
        alert = result.scalar_one_or_none()
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    async def _get_for_source(self, source_message_id: uuid.UUID, alert_type: AlertType) -> Alert | None:
        result = await self.db.execute(
            select(Alert).where(
                Alert.source_message_id == source_message_id,
                Alert.alert_type == alert_type,
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        patient_id: uuid.UUID,
        tenant_id: uuid.UUID,
        alert_type: AlertType,
        severity: AlertSeverity,
        title: str,
        description: str | None = None,
        conversation_id: uuid.UUID | None = None,
        source_message_id: uuid.UUID | None = None,
    ) -> tuple[Alert, bool]:
        """Create an alert unless one already exists for the source message.

        Returns:
            The alert and whether it was newly created.
        """
        if source_message_id is not None:
            existing = await self._get_for_source(source_message_id, alert_type)
            if existing is not None:
                return existing, False

        alert = Alert(
            patient_id=patient_id,
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            source_message_id=source_message_id,
            alert_type=alert_type,
            severity=severity,
            title=title,
            description=description,
            status=AlertStatus.OPEN,
            created_at=utc_now(),
        )
        self.db.add(alert)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if source_message_id is not None:
                existing = await self._get_for_source(source_message_id, alert_type)
                if existing is not None:
                    return existing, False
            raise

        logger.warning(
            "Alert %s raised for patient %s: %s (%s)",
            alert.id,
            patient_id,
            alert_type.value,
            severity.value,
        )
        self._publish(alert, "insert")
        return alert, True

    async def list_alerts(
        self,
        tenant_id: uuid.UUID | None = None,
        *,
        status: AlertStatus | None = None,
        patient_id: uuid.UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Alert], int]:
        """Alerts newest first, with the unpaginated total."""
        query = select(Alert)
        count_query = select(func.count()).select_from(Alert)
        filters = []
        if tenant_id is not None:
            filters.append(Alert.tenant_id == tenant_id)
        if status is not None:
            filters.append(Alert.status == status)
        if patient_id is not None:
            filters.append(Alert.patient_id == patient_id)
        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(query.order_by(Alert.created_at.desc()).limit(limit).offset(offset))
        return list(result.scalars().all()), total

    async def update_status(self, alert_id: uuid.UUID, status: AlertStatus, actor: str) -> Alert:
        alert = await self.get(alert_id)
        if alert.status == status:
            return alert
        alert.status = status
        if status != AlertStatus.OPEN and alert.acknowledged_at is None:
            alert.acknowledged_at = utc_now()
            alert.acknowledged_by = actor
        await self.db.commit()
        self._publish(alert, "update")
        return alert

    def _publish(self, alert: Alert, kind: str) -> None:
        if self.hub is None:
            return
        self.hub.publish(
            ALERTS_TABLE,
            kind,
            AlertResponse.model_validate(alert),
            tenant_id=alert.tenant_id,
            patient_id=alert.patient_id,
        )
