"""Tests for conversation API routes."""

import uuid

import pytest
import pytest_asyncio

from recoveryline.errors import ResponderUnavailableError

from tests.conftest import ASSISTANT_REPLY, SURGERY_DAYS_AGO


@pytest_asyncio.fixture
async def conversation_id(client, patient, auth_headers) -> str:
    response = await client.post("/api/conversations", json={"patient_id": str(patient.id)}, headers=auth_headers)
    assert response.status_code == 200
    return response.json()["id"]


async def message_contents(client, conversation_id, headers, query=""):
    response = await client.get(f"/api/conversations/{conversation_id}/messages{query}", headers=headers)
    return [m["content"] for m in response.json()["items"]]


class TestOpen:
    @pytest.mark.asyncio
    async def test_open_posts_one_greeting_per_day(self, client, patient, conversation_id, auth_headers):
        """Opening twice returns the same conversation and greets once."""
        again = await client.post(
            "/api/conversations", json={"patient_id": str(patient.id)}, headers=auth_headers
        )
        assert again.json()["id"] == conversation_id

        response = await client.get(f"/api/conversations/{conversation_id}/messages", headers=auth_headers)
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["content"] == f"Good morning! Ready to start your day {SURGERY_DAYS_AGO} recovery check-in?"
        assert items[0]["actions"][0]["type"] == "show_buttons"

    @pytest.mark.asyncio
    async def test_provider_open_does_not_greet(self, client, patient, provider_headers):
        response = await client.post(
            "/api/conversations", json={"patient_id": str(patient.id)}, headers=provider_headers
        )
        assert await message_contents(client, response.json()["id"], provider_headers) == []

    @pytest.mark.asyncio
    async def test_missing_conversation(self, client, auth_headers):
        response = await client.get(f"/api/conversations/{uuid.uuid4()}", headers=auth_headers)
        assert response.status_code == 404


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_patient_gets_reply(self, client, conversation_id, auth_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "Knee feels stiff this morning"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        body = response.json()
        assert body["message"]["sender_type"] == "patient"
        assert body["message"]["client_token"]
        assert body["reply"]["content"] == ASSISTANT_REPLY
        assert body["used_fallback"] is False

    @pytest.mark.asyncio
    async def test_resend_with_token_does_not_duplicate(self, client, conversation_id, auth_headers):
        payload = {"content": "Hello", "client_token": "retry-1"}
        first = await client.post(f"/api/conversations/{conversation_id}/messages", json=payload, headers=auth_headers)
        second = await client.post(f"/api/conversations/{conversation_id}/messages", json=payload, headers=auth_headers)

        assert second.json()["message"]["id"] == first.json()["message"]["id"]
        assert (await message_contents(client, conversation_id, auth_headers)).count("Hello") == 1

    @pytest.mark.asyncio
    async def test_blank_content_returns_token(self, client, conversation_id, auth_headers):
        """A rejected send hands back the token to retry with."""
        response = await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "   ", "client_token": "tok-blank"},
            headers=auth_headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["client_token"] == "tok-blank"

    @pytest.mark.asyncio
    async def test_responder_down_uses_fallback(self, client, conversation_id, auth_headers, responder):
        responder.reply.side_effect = ResponderUnavailableError("responder returned 503")
        response = await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "I did my exercises"},
            headers=auth_headers,
        )
        body = response.json()
        assert response.status_code == 201
        assert body["used_fallback"] is True
        assert body["reply"]["sender_type"] == "system"

    @pytest.mark.asyncio
    async def test_provider_message_has_no_reply(self, client, conversation_id, provider_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "Call us if the swelling grows."},
            headers=provider_headers,
        )
        assert response.status_code == 201
        assert response.json()["reply"] is None
        assert response.json()["message"]["sender_type"] == "provider"

    @pytest.mark.asyncio
    async def test_other_patient_forbidden(self, client, conversation_id, make_token):
        token = await make_token("someone-else")
        response = await client.post(
            f"/api/conversations/{conversation_id}/messages",
            json={"content": "hi"},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 403


class TestCheckIn:
    @pytest.mark.asyncio
    async def test_start_checkin_button(self, client, conversation_id, auth_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/buttons",
            json={"button": {"text": "Yes, let's start!", "action": "start_checkin"}},
            headers=auth_headers,
        )
        assert response.status_code == 201
        buttons = response.json()["reply"]["actions"][0]["buttons"]
        assert [b["pain_level"] for b in buttons] == list(range(11))

    @pytest.mark.asyncio
    async def test_high_pain_report_escalates(self, client, conversation_id, auth_headers, provider_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/pain-reports",
            json={"pain_level": 9},
            headers=auth_headers,
        )
        assert response.status_code == 201
        assert response.json()["alert_id"] is not None

        conversation = await client.get(f"/api/conversations/{conversation_id}", headers=auth_headers)
        assert conversation.json()["status"] == "escalated"
        alerts = await client.get("/api/alerts?status=open", headers=provider_headers)
        assert alerts.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_pain_out_of_range(self, client, conversation_id, auth_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/pain-reports",
            json={"pain_level": 12},
            headers=auth_headers,
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_providers_cannot_answer_checkins(self, client, conversation_id, provider_headers):
        response = await client.post(
            f"/api/conversations/{conversation_id}/pain-reports",
            json={"pain_level": 3},
            headers=provider_headers,
        )
        assert response.status_code == 403


class TestHistory:
    @pytest.mark.asyncio
    async def test_messages_for_recovery_day(self, client, conversation_id, auth_headers):
        today = await message_contents(client, conversation_id, auth_headers, f"?day={SURGERY_DAYS_AGO}")
        assert len(today) == 1
        assert await message_contents(client, conversation_id, auth_headers, "?day=0") == []

    @pytest.mark.asyncio
    async def test_mark_read(self, client, conversation_id, auth_headers):
        messages = await client.get(f"/api/conversations/{conversation_id}/messages", headers=auth_headers)
        ids = [m["id"] for m in messages.json()["items"]]

        response = await client.post(
            f"/api/conversations/{conversation_id}/read", json={"message_ids": ids}, headers=auth_headers
        )
        assert response.json() == {"updated": 1}


class TestUpdate:
    @pytest.mark.asyncio
    async def test_archive_then_open_creates_new(self, client, patient, conversation_id, auth_headers, provider_headers):
        archived = await client.patch(
            f"/api/conversations/{conversation_id}", json={"status": "archived"}, headers=provider_headers
        )
        assert archived.json()["status"] == "archived"

        fresh = await client.post("/api/conversations", json={"patient_id": str(patient.id)}, headers=auth_headers)
        assert fresh.json()["id"] != conversation_id

    @pytest.mark.asyncio
    async def test_reopen_conflicts_with_open_conversation(
        self, client, patient, conversation_id, auth_headers, provider_headers
    ):
        """Only one non-archived conversation per patient."""
        await client.patch(f"/api/conversations/{conversation_id}", json={"status": "archived"}, headers=provider_headers)
        await client.post("/api/conversations", json={"patient_id": str(patient.id)}, headers=auth_headers)

        response = await client.patch(
            f"/api/conversations/{conversation_id}", json={"status": "active"}, headers=provider_headers
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_patients_cannot_update(self, client, conversation_id, auth_headers):
        response = await client.patch(
            f"/api/conversations/{conversation_id}", json={"title": "Mine"}, headers=auth_headers
        )
        assert response.status_code == 403
