"""Built-in responder endpoint.

Speaks the responder wire format so the message dispatcher can point at it
(the default ``RESPONDER_URL``) or at any external webhook.
"""

import logging
import secrets

import openai
from fastapi import APIRouter, Depends, Header, HTTPException, status

from recoveryline.context import AppContext, get_app_context
from recoveryline.schemas.responder import ResponderReply, ResponderRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistant", tags=["assistant"])


def verify_responder_key(
    x_api_key: str | None = Header(default=None),
    ctx: AppContext = Depends(get_app_context),
) -> None:
    """Check the shared responder key when one is configured.

    Raises:
        HTTPException: 401 if the key is missing or wrong.
    """
    expected = ctx.settings.responder_api_key
    if not expected:
        return
    if x_api_key is None or not secrets.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid responder key",
        )


@router.post("/reply", response_model=ResponderReply)
async def assistant_reply(
    request: ResponderRequest,
    ctx: AppContext = Depends(get_app_context),
    _key: None = Depends(verify_responder_key),
) -> ResponderReply:
    """Answer a patient message with the recovery assistant.

    Raises:
        HTTPException: 502 if the model call fails; callers fall back to a
            canned reply.
    """
    try:
        return await ctx.assistant.reply(request)
    except openai.APIError as exc:
        logger.error("Assistant model call failed for patient %s: %s", request.patient_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Assistant unavailable",
        )
