"""HTTP client for the external responder.

The responder receives ``{"message", "context", "patientId"}`` and answers
``{"reply", "actions"}``. Anything other than a well-formed 2xx answer with
a non-empty reply raises ResponderUnavailableError; the dispatcher turns
that into a canned fallback.
"""

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from recoveryline.errors import ResponderUnavailableError
from recoveryline.schemas.actions import parse_responder_actions
from recoveryline.schemas.responder import ResponderReply, ResponderRequest

logger = logging.getLogger(__name__)


class ResponderClient:
    """Posts chat turns to the responder URL."""

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float = 15.0):
        self.client = client
        self.url = url
        self.timeout = timeout

    async def reply(self, request: ResponderRequest) -> ResponderReply:
        """Ask the responder for a reply.

        Raises:
            ResponderUnavailableError: On timeout, transport failure, non-2xx
                status, malformed body or empty reply.
        """
        payload = request.model_dump(by_alias=True, mode="json")
        try:
            response = await self.client.post(self.url, json=payload, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            raise ResponderUnavailableError(f"Responder timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ResponderUnavailableError(f"Responder request failed: {exc}") from exc

        if not response.is_success:
            raise ResponderUnavailableError(f"Responder returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise ResponderUnavailableError("Responder returned a non-JSON body") from exc
        if not isinstance(body, dict):
            raise ResponderUnavailableError("Responder returned a non-object body")

        text = body.get("reply")
        if not isinstance(text, str) or not text.strip():
            raise ResponderUnavailableError("Responder returned an empty reply")

        try:
            return ResponderReply(reply=text.strip(), actions=parse_responder_actions(body.get("actions")))
        except PydanticValidationError as exc:
            raise ResponderUnavailableError(f"Responder reply failed validation: {exc}") from exc

    async def aclose(self) -> None:
        await self.client.aclose()
