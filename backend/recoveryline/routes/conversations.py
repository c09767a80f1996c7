"""Conversation API routes.

Chat turns (messages, quick-reply buttons, pain reports), day-windowed
history, read receipts and the websocket live channel.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recoveryline.auth import Identity, require_provider, resolve_token, verify_bearer_token
from recoveryline.context import AppContext, get_app_context
from recoveryline.database import get_db
from recoveryline.errors import (
    ConversationNotFoundError,
    InvalidTransitionError,
    PatientNotFoundError,
    SubscriptionError,
    TaskNotFoundError,
    ValidationError,
)
from recoveryline.models.auth import UserRole
from recoveryline.models.conversation import Conversation, SenderType
from recoveryline.repositories.conversation import MESSAGES_TABLE
from recoveryline.repositories.patient import PatientRepository
from recoveryline.repositories.task import TASKS_TABLE
from recoveryline.routes.patients import load_patient
from recoveryline.schemas.conversation import (
    ButtonPress,
    ConversationOpen,
    ConversationResponse,
    ConversationUpdate,
    MarkRead,
    MessageCreate,
    MessageListResponse,
    MessageResponse,
    PainReportCreate,
    TurnResponse,
)
from recoveryline.services.dispatcher import DispatchResult
from recoveryline.services.recovery_day import date_for_day, recovery_day
from recoveryline.utils.time_helpers import utc_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

# Seconds between keepalive pings on an idle live channel
LIVE_PING_INTERVAL = 25.0


async def load_conversation(
    db: AsyncSession,
    ctx: AppContext,
    conversation_id: uuid.UUID,
    identity: Identity,
) -> Conversation:
    """Fetch a conversation the caller may see.

    Raises:
        HTTPException: 404 if missing, 403 if it belongs to another patient.
    """
    try:
        conversation = await ctx.conversations(db).get(conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    await load_patient(db, conversation.patient_id, identity)
    return conversation


def _turn_response(result: DispatchResult) -> TurnResponse:
    return TurnResponse(
        message=MessageResponse.model_validate(result.message),
        acknowledgment=MessageResponse.model_validate(result.acknowledgment) if result.acknowledgment else None,
        reply=MessageResponse.model_validate(result.reply) if result.reply else None,
        used_fallback=result.used_fallback,
        alert_id=result.alert_id,
    )


def _turn_error(exc: Exception, client_token: str) -> HTTPException:
    """Map a failed turn to an HTTP error that carries the retry token."""
    if isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, TaskNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, InvalidTransitionError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HTTPException(status_code=code, detail={"message": str(exc), "client_token": client_token})


def _sender_for(identity: Identity) -> SenderType:
    return SenderType.PATIENT if identity.role == UserRole.PATIENT else SenderType.PROVIDER


def _require_patient(identity: Identity) -> None:
    if identity.role != UserRole.PATIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only patients can answer check-in prompts",
        )


@router.post("", response_model=ConversationResponse)
async def open_conversation(
    data: ConversationOpen,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> ConversationResponse:
    """Get or create the patient's open conversation.

    When a patient opens it on a day with no messages yet, today's check-in
    greeting is posted.
    """
    patient = await load_patient(db, data.patient_id, identity)
    repo = ctx.conversations(db)
    conversation = await repo.get_or_create_active(patient)
    if identity.role == UserRole.PATIENT and patient.surgery_date is not None:
        today = utc_today()
        await repo.ensure_daily_greeting(conversation, today, recovery_day(patient.surgery_date, today))
    return ConversationResponse.model_validate(conversation)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> ConversationResponse:
    """Get a single conversation by ID."""
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    return ConversationResponse.model_validate(conversation)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: uuid.UUID,
    data: ConversationUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    _provider: Identity = Depends(require_provider),
) -> ConversationResponse:
    """Retitle, archive, escalate or reopen a conversation."""
    repo = ctx.conversations(db)
    try:
        conversation = await repo.get(conversation_id)
        if data.title is not None:
            conversation = await repo.update_title(conversation_id, data.title)
        if data.status is not None:
            conversation = await repo.set_status(conversation_id, data.status)
    except ConversationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        )
    except SQLAlchemyError:
        # Reopening while the patient already has another open conversation.
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Patient already has an open conversation",
        )
    return ConversationResponse.model_validate(conversation)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def list_messages(
    conversation_id: uuid.UUID,
    day: int | None = Query(default=None, ge=-365, le=730, description="Only messages from this recovery day"),
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> MessageListResponse:
    """Messages in creation order, optionally for one recovery day."""
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    repo = ctx.conversations(db)
    if day is None:
        messages = await repo.list_messages(conversation.id)
    else:
        patient = await PatientRepository(db).get(conversation.patient_id)
        if patient.surgery_date is None:
            messages = []
        else:
            messages = await repo.list_messages_for_date(conversation.id, date_for_day(patient.surgery_date, day))
    return MessageListResponse(
        conversation_id=conversation.id,
        items=[MessageResponse.model_validate(m) for m in messages],
        total=len(messages),
    )


@router.post("/{conversation_id}/messages", response_model=TurnResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: uuid.UUID,
    data: MessageCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TurnResponse:
    """Send a message; patients get the assistant's reply in the same turn.

    A failed send answers with the client token to resend with, so the
    retry cannot duplicate the message.
    """
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    token = data.client_token or uuid.uuid4().hex
    try:
        result = await ctx.dispatcher(db).send(
            conversation,
            data.content,
            _sender_for(identity),
            sender_id=identity.user_id,
            client_token=token,
        )
    except (ValidationError, PatientNotFoundError, SQLAlchemyError) as exc:
        logger.warning("Send failed in conversation %s: %s", conversation_id, exc)
        raise _turn_error(exc, token)
    return _turn_response(result)


@router.post("/{conversation_id}/buttons", response_model=TurnResponse, status_code=status.HTTP_201_CREATED)
async def press_button(
    conversation_id: uuid.UUID,
    data: ButtonPress,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TurnResponse:
    """Answer a quick-reply button (check-in, pain level, postpone, task done)."""
    _require_patient(identity)
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    token = data.client_token or uuid.uuid4().hex
    try:
        result = await ctx.dispatcher(db).press_button(
            conversation,
            data.button,
            sender_id=identity.user_id,
            client_token=token,
        )
    except (ValidationError, TaskNotFoundError, InvalidTransitionError, SQLAlchemyError) as exc:
        logger.warning("Button press failed in conversation %s: %s", conversation_id, exc)
        raise _turn_error(exc, token)
    return _turn_response(result)


@router.post("/{conversation_id}/pain-reports", response_model=TurnResponse, status_code=status.HTTP_201_CREATED)
async def report_pain(
    conversation_id: uuid.UUID,
    data: PainReportCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> TurnResponse:
    """Structured 0-10 pain report; 8 or more alerts the care team."""
    _require_patient(identity)
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    token = data.client_token or uuid.uuid4().hex
    try:
        result = await ctx.dispatcher(db).report_pain(
            conversation,
            data.pain_level,
            sender_id=identity.user_id,
            client_token=token,
        )
    except (ValidationError, SQLAlchemyError) as exc:
        logger.warning("Pain report failed in conversation %s: %s", conversation_id, exc)
        raise _turn_error(exc, token)
    return _turn_response(result)


@router.post("/{conversation_id}/read")
async def mark_read(
    conversation_id: uuid.UUID,
    data: MarkRead,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    identity: Identity = Depends(verify_bearer_token),
) -> dict:
    """Record read receipts."""
    conversation = await load_conversation(db, ctx, conversation_id, identity)
    updated = await ctx.conversations(db).mark_read(conversation.id, data.message_ids)
    return {"updated": updated}


@router.websocket("/{conversation_id}/live")
async def live_channel(
    websocket: WebSocket,
    conversation_id: uuid.UUID,
    token: str | None = Query(default=None),
    ctx: AppContext = Depends(get_app_context),
) -> None:
    """Push message and task changes for a conversation.

    Each frame is ``{"table", "kind", "row"}``. When the server drops the
    subscription (slow consumer, restart) it sends ``{"type": "resync"}``
    and closes; the client reconnects and reloads over HTTP.
    """
    async with ctx.session_factory() as db:
        identity = await resolve_token(db, token) if token else None
        if identity is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        try:
            conversation = await load_conversation(db, ctx, conversation_id, identity)
        except HTTPException as exc:
            logger.info("Live channel refused for %s: %s", conversation_id, exc.detail)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        patient_id = conversation.patient_id

    await websocket.accept()
    hub = ctx.hub
    try:
        subscription = hub.subscribe_many(
            [
                hub.channel(MESSAGES_TABLE, "conversation_id", conversation_id),
                hub.channel(TASKS_TABLE, "patient_id", patient_id),
            ]
        )
    except SubscriptionError as exc:
        logger.warning("Live channel unavailable for %s: %s", conversation_id, exc)
        await websocket.send_json({"type": "resync", "reason": str(exc)})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    try:
        while True:
            try:
                event = await subscription.next_event(timeout=LIVE_PING_INTERVAL)
            except SubscriptionError as exc:
                await websocket.send_json({"type": "resync", "reason": str(exc)})
                await websocket.close(code=status.WS_1012_SERVICE_RESTART)
                return
            if event is None:
                await websocket.send_json({"type": "ping"})
                continue
            await websocket.send_json(event.to_json())
    except WebSocketDisconnect:
        logger.debug("Live channel for %s disconnected", conversation_id)
    finally:
        subscription.close()
