"""Tests for patient API routes."""

from datetime import timedelta

import pytest

from recoveryline.utils.time_helpers import utc_today

from tests.conftest import SURGERY_DAYS_AGO, TENANT_ID


class TestCreateAndUpdate:
    @pytest.mark.asyncio
    async def test_provider_onboards_patient(self, client, provider_headers):
        """Providers create patients; status starts active."""
        response = await client.post(
            "/api/patients",
            json={
                "tenant_id": str(TENANT_ID),
                "first_name": "Morgan",
                "surgery_date": utc_today().isoformat(),
                "surgery_type": "Hip replacement",
            },
            headers=provider_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["first_name"] == "Morgan"
        assert body["status"] == "active"

    @pytest.mark.asyncio
    async def test_patients_cannot_onboard(self, client, auth_headers):
        response = await client.post(
            "/api/patients",
            json={"tenant_id": str(TENANT_ID), "first_name": "Morgan"},
            headers=auth_headers,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_moving_surgery_date_shifts_recovery_day(self, client, patient, provider_headers, auth_headers):
        """Recovery day is derived from the surgery date, never stored."""
        new_date = (patient.surgery_date - timedelta(days=2)).isoformat()
        response = await client.patch(
            f"/api/patients/{patient.id}", json={"surgery_date": new_date}, headers=provider_headers
        )
        assert response.status_code == 200

        day = await client.get(f"/api/patients/{patient.id}/recovery-day", headers=auth_headers)
        assert day.json()["recovery_day"] == SURGERY_DAYS_AGO + 2

    @pytest.mark.asyncio
    async def test_update_missing_patient(self, client, provider_headers):
        response = await client.patch(
            "/api/patients/00000000-0000-4000-8000-000000000000",
            json={"surgery_type": "Knee"},
            headers=provider_headers,
        )
        assert response.status_code == 404


class TestRecoveryDay:
    @pytest.mark.asyncio
    async def test_today(self, client, patient, auth_headers):
        response = await client.get(f"/api/patients/{patient.id}/recovery-day", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["recovery_day"] == SURGERY_DAYS_AGO
        assert body["days_since_surgery"] == SURGERY_DAYS_AGO

    @pytest.mark.asyncio
    async def test_before_surgery_floors_at_day_zero(self, client, patient, auth_headers):
        """Pre-op dates stay on day 0; the signed offset is still reported."""
        on = (patient.surgery_date - timedelta(days=2)).isoformat()
        response = await client.get(f"/api/patients/{patient.id}/recovery-day?on={on}", headers=auth_headers)
        body = response.json()
        assert body["recovery_day"] == 0
        assert body["days_since_surgery"] == -2

    @pytest.mark.asyncio
    async def test_invalid_date_is_rejected(self, client, patient, auth_headers):
        response = await client.get(f"/api/patients/{patient.id}/recovery-day?on=2024-13-45", headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_no_surgery_date_conflicts(self, client, provider_headers):
        created = await client.post(
            "/api/patients",
            json={"tenant_id": str(TENANT_ID), "first_name": "Pat"},
            headers=provider_headers,
        )
        response = await client.get(
            f"/api/patients/{created.json()['id']}/recovery-day", headers=provider_headers
        )
        assert response.status_code == 409


class TestDayTasks:
    @pytest.mark.asyncio
    async def test_defaults_to_today(self, client, patient, todays_tasks, auth_headers):
        response = await client.get(f"/api/patients/{patient.id}/tasks", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["day"] == SURGERY_DAYS_AGO
        assert body["current_day"] == SURGERY_DAYS_AGO
        assert [t["title"] for t in body["items"]] == ["Heel slides", "Daily pain check-in"]

    @pytest.mark.asyncio
    async def test_schedule_future_task(self, client, patient, provider_headers, auth_headers):
        """Tasks on future days are listed but not yet available."""
        created = await client.post(
            f"/api/patients/{patient.id}/tasks",
            json={"task_type": "video", "title": "Stair practice", "day": SURGERY_DAYS_AGO + 4},
            headers=provider_headers,
        )
        assert created.status_code == 201

        response = await client.get(
            f"/api/patients/{patient.id}/tasks?day={SURGERY_DAYS_AGO + 4}", headers=auth_headers
        )
        items = response.json()["items"]
        assert [t["title"] for t in items] == ["Stair practice"]
        assert items[0]["is_available"] is False

    @pytest.mark.asyncio
    async def test_timeline(self, client, patient, todays_tasks, auth_headers):
        response = await client.get(f"/api/patients/{patient.id}/timeline", headers=auth_headers)
        assert response.status_code == 200
        days = {d["day"]: d for d in response.json()["days"]}
        assert days[SURGERY_DAYS_AGO]["total"] == 2
