"""Chat-completion engine for sending structured-output requests."""

import asyncio
import json
import logging
from typing import List, Dict, Optional

import aiohttp

from ..errors import MalformedResponse, MissingCredential, UpstreamError
from ..http_utils import ProviderSession, auth_headers, client_timeout, raise_for_provider_status

logger = logging.getLogger(__name__)


class ChatCompletionEngine(ProviderSession):
    """Sends chat messages to an OpenAI-compatible endpoint and returns the reply content."""

    service_name = "Groq chat"

    def __init__(self,
                 api_base: str = "https://api.groq.com/openai/v1",
                 model: str = "llama-3.3-70b-versatile",
                 timeout_seconds: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize chat-completion engine.

        Args:
            api_base: Base URL of the OpenAI-compatible API
            model: Chat model used for analysis
            timeout_seconds: Total time allowed for one request
            session: Shared client session; one is created lazily when omitted
        """
        self.url = f"{api_base.rstrip('/')}/chat/completions"
        self.model = model
        self.timeout_seconds = timeout_seconds
        ProviderSession.__init__(self, session)

        logger.info(f"ChatCompletionEngine initialized with model: {model}")

    async def complete(self, messages: List[Dict[str, str]], api_key: str,
                       temperature: float = 0.3, json_object: bool = True) -> str:
        """Send messages and get the first choice's content.

        Args:
            messages: Chat messages (system + user)
            api_key: Provider API key
            temperature: Sampling temperature (0.0 to 1.0)
            json_object: Request strict JSON output

        Returns:
            Content string of ``choices[0].message``

        Raises:
            MissingCredential: If no API key is given
            CredentialRejected / UpstreamError: On provider failure, timeout or connection error
            MalformedResponse: If the response envelope is not as expected
        """
        if not api_key or not api_key.strip():
            raise MissingCredential()

        data = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if json_object:
            data["response_format"] = {"type": "json_object"}

        try:
            async with self._get_session().post(
                self.url,
                headers=auth_headers(api_key.strip()),
                json=data,
                timeout=client_timeout(self.timeout_seconds),
            ) as response:
                await raise_for_provider_status(response, self.service_name)
                body = await response.text()
        except asyncio.TimeoutError as e:
            logger.error(f"Chat completion timed out after {self.timeout_seconds}s")
            raise UpstreamError(f"{self.service_name} timed out after {self.timeout_seconds:.0f}s") from e
        except aiohttp.ClientError as e:
            logger.error(f"Chat completion request failed: {e}")
            raise UpstreamError(f"{self.service_name} request failed: {e}") from e

        try:
            result = json.loads(body)
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(f"Unexpected chat completion envelope: {body[:200]!r}") from e

        if not isinstance(content, str):
            raise MalformedResponse("Chat completion content is not a string")
        return content.strip()
