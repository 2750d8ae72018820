"""Helpers shared by every aiohttp provider client."""

import json
import logging
from typing import Any, Optional

import aiohttp

from .errors import CredentialRejected, UpstreamError

logger = logging.getLogger(__name__)


def client_timeout(seconds: float) -> aiohttp.ClientTimeout:
    """Bounded total timeout applied to one provider call."""
    return aiohttp.ClientTimeout(total=seconds)


def auth_headers(api_key: str) -> dict:
    return {"Authorization": f"Bearer {api_key}"}


def extract_error_message(body: str) -> str:
    """Pull a human-readable message out of an error body.

    Understands the OpenAI-style ``{"error": {"message": ...}}`` envelope and the
    proxy's ``{"error": "..."}`` shape, and falls back to the raw text.
    """
    try:
        data: Any = json.loads(body)
    except (TypeError, ValueError):
        return body.strip() or "empty response"

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
    return body.strip()


async def raise_for_provider_status(response: aiohttp.ClientResponse, service: str) -> None:
    """Map a non-success response onto the provider error taxonomy."""
    if 200 <= response.status < 300:
        return

    body = await response.text()
    message = extract_error_message(body)
    if response.status == 401:
        logger.error(f"{service}: credential rejected")
        raise CredentialRejected(f"{service} rejected the API key: {message}")

    logger.error(f"{service} API error: {response.status} - {message}")
    raise UpstreamError(f"{service} API error: {message}", status=response.status)


class ProviderSession:
    """aiohttp session handling shared by every provider client.

    A client either borrows a session (``session=`` or ``use_session``), which it
    never closes, or creates its own on first use and closes it in ``close``.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    def use_session(self, session: aiohttp.ClientSession) -> None:
        """Borrow ``session`` for all further requests."""
        self._session = session
        self._owns_session = False

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
