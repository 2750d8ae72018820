"""Local HTTP proxy that attaches the credential and forwards to the provider."""

import json
import logging
import os
from typing import Optional

import aiohttp
from aiohttp import web

from ..analysis.analyzer import AnalysisClient
from ..analysis.chat_engine import ChatCompletionEngine
from ..config import FluentCoachConfig
from ..errors import (
    CredentialRejected,
    InputTooShort,
    MalformedResponse,
    MissingCredential,
    UpstreamError,
)
from ..models.audio import AudioBlob
from ..models.preferences import Level, DEFAULT_ROLEPLAY
from ..transcription.groq_backend import GroqTranscriber

logger = logging.getLogger(__name__)

DEFAULT_AUDIO_TYPE = "audio/webm"

ANALYZER_KEY = web.AppKey("analyzer", AnalysisClient)
TRANSCRIBER_KEY = web.AppKey("transcriber", GroqTranscriber)
ENV_VAR_KEY = web.AppKey("env_var", str)


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _api_key(request: web.Request) -> Optional[str]:
    key = request.headers.get("x-api-key") or os.environ.get(request.app[ENV_VAR_KEY])
    return key.strip() if key and key.strip() else None


def _status_for(error: Exception) -> int:
    if isinstance(error, (MissingCredential, CredentialRejected)):
        return 401
    if isinstance(error, (InputTooShort, ValueError)):
        return 400
    return 500


async def handle_analyze(request: web.Request) -> web.Response:
    """POST /api/analyze: ``{text, level, roleplay, isConversation}`` -> AnalysisResult."""
    if request.method != "POST":
        return error_response("Method not allowed", 405)

    api_key = _api_key(request)
    if not api_key:
        return error_response("Missing API Key", 401)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return error_response("Request body must be JSON", 400)
    if not isinstance(body, dict):
        return error_response("Request body must be a JSON object", 400)

    text = body.get("text")
    if not isinstance(text, str) or len(text.strip()) < 2:
        return error_response("Text too short", 400)

    try:
        level = Level.parse(body.get("level") or Level.INTERMEDIATE.value)
        roleplay = str(body.get("roleplay") or DEFAULT_ROLEPLAY)
        result = await request.app[ANALYZER_KEY].analyze(
            text, level, roleplay, bool(body.get("isConversation", False)), api_key)
    except (ValueError, MissingCredential, InputTooShort, UpstreamError, MalformedResponse) as e:
        logger.error(f"Analysis error: {e}")
        return error_response(str(e), _status_for(e))

    return web.json_response(result.model_dump())


async def handle_transcribe(request: web.Request) -> web.Response:
    """POST /api/transcribe: raw audio body -> ``{text}``."""
    if request.method != "POST":
        return error_response("Method not allowed", 405)

    api_key = _api_key(request)
    if not api_key:
        return error_response("Missing API Key", 401)

    data = await request.read()
    if not data:
        return error_response("Empty audio body", 400)

    blob = AudioBlob(
        data=data,
        mime_type=request.content_type if request.content_type.startswith("audio/") else DEFAULT_AUDIO_TYPE,
        sample_rate=0,
        channels=0,
        duration_seconds=0.0,
    )
    try:
        text = await request.app[TRANSCRIBER_KEY].transcribe(blob, api_key)
    except (ValueError, MissingCredential, UpstreamError, MalformedResponse) as e:
        logger.error(f"Transcription error: {e}")
        return error_response(str(e), _status_for(e))

    return web.json_response({"text": text})


async def _client_session(app: web.Application):
    """One client session for both upstream clients, closed on cleanup."""
    session = aiohttp.ClientSession()
    app[ANALYZER_KEY].engine.use_session(session)
    app[TRANSCRIBER_KEY].use_session(session)
    yield
    await session.close()
    logger.info("Proxy client session closed")


def create_app(config: FluentCoachConfig) -> web.Application:
    """Build the proxy application from configuration."""
    timeout = config.get_timeout_seconds()
    api_base = config.get('provider.api_base')

    app = web.Application()
    app[ANALYZER_KEY] = AnalysisClient(
        ChatCompletionEngine(api_base=api_base,
                             model=config.get('provider.analysis_model'),
                             timeout_seconds=timeout),
        temperature=float(config.get('provider.temperature', 0.3)),
    )
    app[TRANSCRIBER_KEY] = GroqTranscriber(api_base=api_base,
                                           model=config.get('provider.transcription_model'),
                                           timeout_seconds=timeout)
    app[ENV_VAR_KEY] = config.get('credentials.env_var', 'GROQ_API_KEY')

    app.router.add_route("*", "/api/analyze", handle_analyze)
    app.router.add_route("*", "/api/transcribe", handle_transcribe)
    app.cleanup_ctx.append(_client_session)

    logger.info(f"Proxy app created (provider: {api_base})")
    return app


def run_proxy(config: FluentCoachConfig) -> None:
    host = config.get('server.host', '127.0.0.1')
    port = int(config.get('server.port', 8080))
    logger.info(f"Starting proxy on http://{host}:{port}")
    web.run_app(create_app(config), host=host, port=port, print=None)
