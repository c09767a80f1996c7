"""RecoveryLine ASGI application.

Run with ``uvicorn recoveryline.main:app``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from recoveryline import __version__
from recoveryline.config import Settings, settings
from recoveryline.context import build_app_context
from recoveryline.database import async_session_maker
from recoveryline.routes import alerts, assistant, conversations, patients, tasks

logger = logging.getLogger(__name__)

API_ROUTERS = (patients.router, conversations.router, tasks.router, alerts.router, assistant.router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the app context: hub, responder client and assistant."""
    context = build_app_context(settings, async_session_maker)
    app.state.context = context
    if not context.assistant.has_model:
        logger.warning("OPENAI_API_KEY not set - built-in assistant answers without a model")
    logger.info("Responder at %s, escalation threshold %d", settings.responder_url, settings.escalation_pain_threshold)

    yield

    await context.aclose()
    logger.info("RecoveryLine shut down; live subscribers dropped")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp fixed security headers on every response."""

    HEADERS = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        # Chat history is patient data
        "Cache-Control": "no-store",
    }

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(self.HEADERS)
        return response


def create_app(config: Settings = settings) -> FastAPI:
    application = FastAPI(
        title="RecoveryLine",
        description="Post-surgical recovery timeline and conversational check-ins",
        version=__version__,
        lifespan=lifespan,
    )
    application.add_middleware(SecurityHeadersMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Authorization", "X-API-Key", "Content-Type"],
    )
    for router in API_ROUTERS:
        application.include_router(router, prefix="/api")

    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "healthy"}

    @application.get("/")
    async def root() -> dict:
        return {"name": "RecoveryLine API", "version": __version__, "docs": "/docs"}

    return application


app = create_app()
