"""Application context: the long-lived collaborators of the service.

Built once in the FastAPI lifespan (or by a script) and handed to routes
through `get_app_context`. Nothing in the core reaches for module-level
clients; everything is wired from here, which is what tests override.
"""

from dataclasses import dataclass

import httpx
from fastapi.requests import HTTPConnection
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recoveryline.config import Settings
from recoveryline.realtime import RealtimeHub
from recoveryline.repositories.conversation import ConversationRepository
from recoveryline.repositories.patient import PatientRepository, ProgressRepository
from recoveryline.repositories.task import TaskRepository
from recoveryline.services.assistant import AssistantService
from recoveryline.services.dispatcher import MessageDispatcher
from recoveryline.services.escalation import EscalationTrigger
from recoveryline.services.responder import ResponderClient
from recoveryline.services.task_board import TaskBoard


@dataclass
class AppContext:
    """Shared service wiring."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    hub: RealtimeHub
    responder: ResponderClient
    assistant: AssistantService

    def conversations(self, db: AsyncSession) -> ConversationRepository:
        return ConversationRepository(db, self.hub)

    def task_board(self, db: AsyncSession) -> TaskBoard:
        return TaskBoard(PatientRepository(db), TaskRepository(db, self.hub), self.conversations(db))

    def escalation(self) -> EscalationTrigger:
        return EscalationTrigger(self.session_factory, self.hub, self.settings.escalation_pain_threshold)

    def dispatcher(self, db: AsyncSession) -> MessageDispatcher:
        return MessageDispatcher(
            conversations=self.conversations(db),
            patients=PatientRepository(db),
            progress=ProgressRepository(db),
            task_board=self.task_board(db),
            escalation=self.escalation(),
            responder=self.responder,
            context_window=self.settings.responder_context_window,
        )

    async def aclose(self) -> None:
        self.hub.close()
        await self.responder.aclose()
        await self.assistant.close()


def build_app_context(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> AppContext:
    """Wire the production context from settings."""
    assistant_client = None
    if settings.openai_api_key:
        assistant_client = AsyncOpenAI(api_key=settings.openai_api_key)

    return AppContext(
        settings=settings,
        session_factory=session_factory,
        hub=RealtimeHub(queue_size=settings.realtime_queue_size),
        responder=ResponderClient(
            httpx.AsyncClient(headers={"X-API-Key": settings.responder_api_key} if settings.responder_api_key else None),
            settings.responder_url,
            timeout=settings.responder_timeout_seconds,
        ),
        assistant=AssistantService(assistant_client, model=settings.assistant_model),
    )


def get_app_context(connection: HTTPConnection) -> AppContext:
    """FastAPI dependency (HTTP and websocket) returning the context on app state."""
    return connection.app.state.context
