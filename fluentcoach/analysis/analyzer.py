"""Transcript analysis clients producing validated AnalysisResult objects."""

import asyncio
import json
import logging
import time
from typing import Optional

import aiohttp
from pydantic import ValidationError

from .chat_engine import ChatCompletionEngine
from .prompt import build_messages
from ..errors import InputTooShort, MalformedResponse, MissingCredential, UpstreamError
from ..http_utils import ProviderSession, client_timeout, raise_for_provider_status
from ..models.analysis import AnalysisResult
from ..models.preferences import Level, normalize_roleplay

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 2


def parse_analysis(content: str, conversational: bool) -> AnalysisResult:
    """Validate a JSON analysis payload against the AnalysisResult shape.

    Outside conversational mode any ``reply`` is discarded; in conversational
    mode a missing or empty ``reply`` is a malformed response.
    """
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Analysis is not valid JSON: {str(content)[:200]!r}") from e

    if not isinstance(data, dict):
        raise MalformedResponse("Analysis is not a JSON object")
    if "fluency_score" not in data:
        raise MalformedResponse("Analysis is missing fluency_score")

    if conversational:
        reply = data.get("reply")
        if not isinstance(reply, str) or not reply.strip():
            raise MalformedResponse("Conversational analysis is missing a reply")
    else:
        data["reply"] = None

    try:
        return AnalysisResult.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Analysis does not match the expected shape: {e}") from e


class BaseAnalysisClient:
    """Shared input checks for analysis clients."""

    def check_input(self, text: str, api_key: Optional[str]) -> str:
        cleaned = (text or "").strip()
        if len(cleaned) < MIN_TEXT_LENGTH:
            raise InputTooShort(f"Text too short to analyze ({len(cleaned)} characters)")
        if not api_key or not api_key.strip():
            raise MissingCredential()
        return cleaned

    async def analyze(self, text: str, level: Level, roleplay: str,
                      conversational: bool, api_key: str) -> AnalysisResult:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class AnalysisClient(BaseAnalysisClient):
    """Stateless analysis: one request fully determines one response."""

    def __init__(self, engine: ChatCompletionEngine, temperature: float = 0.3):
        """Initialize analysis client.

        Args:
            engine: Chat-completion engine used for the request
            temperature: Sampling temperature for analysis
        """
        self.engine = engine
        self.temperature = temperature

    async def analyze(self, text: str, level: Level, roleplay: str,
                      conversational: bool, api_key: str) -> AnalysisResult:
        """Critique ``text`` for grammar and fluency.

        Args:
            text: Transcript, at least 2 characters after trimming
            level: Student level for calibration
            roleplay: Scenario identifier selecting the persona
            conversational: Also request an in-character reply
            api_key: Provider credential

        Returns:
            Validated analysis result

        Raises:
            InputTooShort: Before any network call, for text under 2 characters
            MissingCredential: Before any network call, when no key is given
            MalformedResponse: If the model output does not match the shape
        """
        cleaned = self.check_input(text, api_key)
        level = Level.parse(level)
        roleplay = normalize_roleplay(roleplay)
        start_time = time.time()

        content = await self.engine.complete(
            build_messages(cleaned, level, roleplay, conversational),
            api_key,
            temperature=self.temperature,
        )
        result = parse_analysis(content, conversational)

        logger.info(f"Analysis complete in {time.time() - start_time:.2f}s: "
                    f"score={result.fluency_score}, corrections={len(result.grammar_corrections)}")
        return result

    async def close(self) -> None:
        await self.engine.close()


class ProxyAnalysisClient(ProviderSession, BaseAnalysisClient):
    """Analysis through the local proxy's ``/api/analyze`` endpoint."""

    service_name = "Analysis proxy"

    def __init__(self, proxy_url: str, timeout_seconds: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = f"{proxy_url.rstrip('/')}/api/analyze"
        self.timeout_seconds = timeout_seconds
        ProviderSession.__init__(self, session)

    async def analyze(self, text: str, level: Level, roleplay: str,
                      conversational: bool, api_key: str) -> AnalysisResult:
        cleaned = self.check_input(text, api_key)
        payload = {
            "text": cleaned,
            "level": Level.parse(level).value,
            "roleplay": normalize_roleplay(roleplay),
            "isConversation": conversational,
        }

        try:
            async with self._get_session().post(
                self.url, json=payload, headers={"x-api-key": api_key.strip()},
                timeout=client_timeout(self.timeout_seconds),
            ) as response:
                await raise_for_provider_status(response, self.service_name)
                body = await response.text()
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"{self.service_name} timed out after {self.timeout_seconds:.0f}s") from e
        except aiohttp.ClientError as e:
            raise UpstreamError(f"{self.service_name} request failed: {e}") from e

        return parse_analysis(body, conversational)
