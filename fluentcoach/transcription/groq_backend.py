"""Groq speech-to-text backend (OpenAI-compatible transcription endpoint)."""

import asyncio
import json
import logging
import time
from typing import Optional

import aiohttp

from .base import AbstractTranscriber
from ..audio.encoder import extension_for
from ..errors import MalformedResponse, UpstreamError
from ..http_utils import ProviderSession, auth_headers, client_timeout, raise_for_provider_status
from ..models.audio import AudioBlob

logger = logging.getLogger(__name__)


class GroqTranscriber(ProviderSession, AbstractTranscriber):
    """Cloud transcription via a multipart upload to ``/audio/transcriptions``."""

    service_name = "Groq Whisper"

    def __init__(self,
                 api_base: str = "https://api.groq.com/openai/v1",
                 model: str = "distil-whisper-large-v3-en",
                 timeout_seconds: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize Groq transcription backend.

        Args:
            api_base: Base URL of the OpenAI-compatible API
            model: Speech-to-text model identifier
            timeout_seconds: Total time allowed for one request
            session: Shared client session; one is created lazily when omitted
        """
        self.url = f"{api_base.rstrip('/')}/audio/transcriptions"
        self.model = model
        self.timeout_seconds = timeout_seconds
        ProviderSession.__init__(self, session)

        logger.info(f"GroqTranscriber initialized with model: {model}")

    def _build_form(self, blob: AudioBlob) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("model", self.model)
        form.add_field(
            "file",
            blob.data,
            filename=f"recording.{extension_for(blob.mime_type)}",
            content_type=blob.mime_type,
        )
        form.add_field("response_format", "json")
        return form

    async def transcribe(self, blob: AudioBlob, api_key: str) -> str:
        """Transcribe a recording using Groq's hosted Whisper model."""
        self.check_preconditions(blob, api_key)
        start_time = time.time()
        logger.debug(f"Uploading {len(blob.data)} bytes ({blob.mime_type}) for transcription")

        try:
            async with self._get_session().post(
                self.url,
                headers=auth_headers(api_key.strip()),
                data=self._build_form(blob),
                timeout=client_timeout(self.timeout_seconds),
            ) as response:
                await raise_for_provider_status(response, self.service_name)
                body = await response.text()
        except asyncio.TimeoutError as e:
            logger.error(f"Transcription timed out after {self.timeout_seconds}s")
            raise UpstreamError(f"{self.service_name} timed out after {self.timeout_seconds:.0f}s") from e
        except aiohttp.ClientError as e:
            logger.error(f"Transcription request failed: {e}")
            raise UpstreamError(f"{self.service_name} request failed: {e}") from e

        text = parse_transcription_body(body)
        logger.info(f"Transcription complete in {time.time() - start_time:.2f}s: '{text}'")
        return text


def parse_transcription_body(body: str) -> str:
    """Extract the ``text`` field from a transcription response body."""
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Transcription response is not JSON: {body[:200]!r}") from e

    if not isinstance(data, dict) or not isinstance(data.get("text"), str):
        raise MalformedResponse("Transcription response has no text field")
    return data["text"]
