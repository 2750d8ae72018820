"""Transcription through the local FluentCoach proxy."""

import asyncio
import logging
from typing import Optional

import aiohttp

from .base import AbstractTranscriber
from .groq_backend import parse_transcription_body
from ..errors import UpstreamError
from ..http_utils import ProviderSession, client_timeout, raise_for_provider_status
from ..models.audio import AudioBlob

logger = logging.getLogger(__name__)


class ProxyTranscriber(ProviderSession, AbstractTranscriber):
    """Posts the raw recording to ``/api/transcribe`` with an ``x-api-key`` header."""

    service_name = "Transcription proxy"

    def __init__(self, proxy_url: str, timeout_seconds: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = f"{proxy_url.rstrip('/')}/api/transcribe"
        self.timeout_seconds = timeout_seconds
        ProviderSession.__init__(self, session)

    async def transcribe(self, blob: AudioBlob, api_key: str) -> str:
        self.check_preconditions(blob, api_key)
        headers = {"x-api-key": api_key.strip(), "Content-Type": blob.mime_type}

        try:
            async with self._get_session().post(
                self.url, headers=headers, data=blob.data,
                timeout=client_timeout(self.timeout_seconds),
            ) as response:
                await raise_for_provider_status(response, self.service_name)
                body = await response.text()
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"{self.service_name} timed out after {self.timeout_seconds:.0f}s") from e
        except aiohttp.ClientError as e:
            raise UpstreamError(f"{self.service_name} request failed: {e}") from e

        return parse_transcription_body(body)
