"""Tests for the built-in assistant and its route."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from recoveryline.schemas.actions import (
    CompleteTaskAction,
    EscalationAction,
    OfferProviderContactAction,
    RecordProgressAction,
)
from recoveryline.schemas.responder import ContextMessage, ContextTask, ResponderContext, ResponderRequest
from recoveryline.services.assistant import (
    NO_MODEL_REPLY,
    AssistantService,
    build_system_prompt,
    determine_actions,
)

TASK = ContextTask(id=uuid.uuid4(), title="Heel slides", task_type="exercise", status="pending")


def completion(text: str | None):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def make_request(message: str) -> ResponderRequest:
    return ResponderRequest(
        message=message,
        context=ResponderContext(recovery_day=3, current_task=TASK),
        patient_id=uuid.uuid4(),
    )


class TestDetermineActions:
    def test_high_pain_escalates(self):
        actions = determine_actions("my pain is 9 today")
        assert EscalationAction(reason="high_pain_level", pain_level=9) in actions

    def test_moderate_pain_does_not_escalate(self):
        assert not any(isinstance(a, EscalationAction) for a in determine_actions("pain is 5"))

    def test_counts_near_pain_are_not_scores(self):
        assert determine_actions("On day 9 my pain is 3") == []

    def test_completion_of_current_task(self):
        actions = determine_actions("I finished them", TASK)
        assert CompleteTaskAction(task_id=TASK.id) in actions

    def test_completion_needs_a_current_task(self):
        assert not any(isinstance(a, CompleteTaskAction) for a in determine_actions("done!"))

    def test_concerning_words_suppress_support_offer(self):
        actions = determine_actions("I'm scared and confused about the swelling")
        assert EscalationAction(reason="concerning_symptoms") in actions
        assert not any(isinstance(a, OfferProviderContactAction) for a in actions)

    def test_positive_progress(self):
        actions = determine_actions("Walking is better today")
        assert any(isinstance(a, RecordProgressAction) for a in actions)


class TestSystemPrompt:
    def test_includes_context(self):
        context = ResponderContext(
            recovery_day=5,
            surgery_type="Hip replacement",
            recent_messages=[ContextMessage(role="user", content="knee feels stiff")],
            current_task=TASK,
            open_task_count=2,
        )
        prompt = build_system_prompt(context)
        assert "Recovery Day: 5" in prompt
        assert "Hip replacement" in prompt
        assert "user: knee feels stiff" in prompt
        assert "Patient should complete: Heel slides" in prompt


class TestAssistantService:
    @pytest.mark.asyncio
    async def test_without_model_uses_neutral_reply(self):
        reply = await AssistantService(None).reply(make_request("feeling better"))
        assert reply.reply == NO_MODEL_REPLY
        assert any(isinstance(a, RecordProgressAction) for a in reply.actions)

    @pytest.mark.asyncio
    async def test_uses_model_text(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion("  Keep it up!  "))
        service = AssistantService(client, model="test-model")

        reply = await service.reply(make_request("hello"))

        assert reply.reply == "Keep it up!"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["messages"][1] == {"role": "user", "content": "hello"}

    @pytest.mark.asyncio
    async def test_empty_completion_still_replies(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=completion(None))
        reply = await AssistantService(client).reply(make_request("hello"))
        assert reply.reply.strip()


class TestAssistantRoute:
    @pytest.mark.asyncio
    async def test_reply_speaks_wire_format(self, client):
        response = await client.post(
            "/api/assistant/reply",
            json={"message": "I finished my exercises", "context": {"recovery_day": 2}, "patientId": str(uuid.uuid4())},
        )
        assert response.status_code == 200
        assert response.json()["reply"] == NO_MODEL_REPLY

    @pytest.mark.asyncio
    async def test_model_failure_is_bad_gateway(self, client, app_context):
        failing = MagicMock()
        failing.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=MagicMock())
        )
        app_context.assistant = AssistantService(failing)

        response = await client.post(
            "/api/assistant/reply",
            json={"message": "hi", "context": {}, "patientId": str(uuid.uuid4())},
        )
        assert response.status_code == 502

    @pytest.mark.asyncio
    async def test_shared_key_enforced_when_configured(self, client, app_context):
        app_context.settings.responder_api_key = "s3cret"
        body = {"message": "hi", "context": {}, "patientId": str(uuid.uuid4())}

        assert (await client.post("/api/assistant/reply", json=body)).status_code == 401
        ok = await client.post("/api/assistant/reply", json=body, headers={"X-API-Key": "s3cret"})
        assert ok.status_code == 200
