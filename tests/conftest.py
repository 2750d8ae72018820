"""Pytest configuration and fixtures for FluentCoach tests."""

import json
import logging
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

import numpy as np
import pytest
from aiohttp import web

from fluentcoach.audio.encoder import encode_wav
from fluentcoach.models.analysis import AnalysisResult
from fluentcoach.storage import KeyValueStore


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TEST_API_KEY = "gsk_test_0123456789abcdef"

SAMPLE_ANALYSIS = {
    "grammar_corrections": [
        {"original": "I goes", "correction": "I go", "explanation": "Subject-verb agreement"}
    ],
    "fluency_score": 72,
    "tips": ["Use contractions to sound more natural"],
    "positive_feedback": "Clear pronunciation and good pace.",
    "reply": None,
}


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def kv_store(temp_data_dir):
    return KeyValueStore(str(Path(temp_data_dir) / "store"))


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # 1024 samples of 16-bit audio (440Hz sine)
    sample_rate = 16000
    duration = 1024 / sample_rate
    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * 440 * t)
    return (wave_data * 32767 * 0.5).astype(np.int16).tobytes()


@pytest.fixture
def sample_blob(sample_audio_chunk):
    return encode_wav([sample_audio_chunk] * 4, 16000, 1)


@pytest.fixture
def sample_analysis():
    return AnalysisResult.model_validate(SAMPLE_ANALYSIS)


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"name": "Mock Mic", "index": 0}

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def feed_audio(mock_pyaudio):
    """Push chunks through the stream callback handed to the last ``open`` call."""
    def feed(chunks):
        callback = mock_pyaudio['instance'].open.call_args.kwargs['stream_callback']
        return [callback(chunk, len(chunk) // 2, {}, 0) for chunk in chunks]
    return feed


@pytest.fixture
def api_key():
    return TEST_API_KEY


class FakeProvider:
    """In-process stand-in for the OpenAI-compatible provider API."""

    def __init__(self):
        self.api_base = ""
        self.transcription_text = "Hello, I goes to the market yesterday."
        self.transcription_body = None  # raw body override
        self.analysis = dict(SAMPLE_ANALYSIS)
        self.chat_content = None  # raw content override
        self.reply = "That sounds lovely! What did you buy?"
        self.status = 200
        self.error_message = "Something went wrong"
        self.requests = []

    def calls(self, endpoint):
        return [r for r in self.requests if r["endpoint"] == endpoint]

    def _error(self):
        return web.json_response({"error": {"message": self.error_message}}, status=self.status)

    async def handle_transcriptions(self, request):
        form = await request.post()
        upload = form.get("file")
        self.requests.append({
            "endpoint": "transcriptions",
            "authorization": request.headers.get("Authorization"),
            "model": form.get("model"),
            "response_format": form.get("response_format"),
            "filename": getattr(upload, "filename", None),
            "content_type": getattr(upload, "content_type", None),
            "size": len(upload.file.read()) if upload is not None else 0,
        })
        if self.status != 200:
            return self._error()
        if self.transcription_body is not None:
            return web.Response(text=self.transcription_body, content_type="application/json")
        return web.json_response({"text": self.transcription_text})

    async def handle_chat(self, request):
        body = await request.json()
        self.requests.append({
            "endpoint": "chat",
            "authorization": request.headers.get("Authorization"),
            "body": body,
        })
        if self.status != 200:
            return self._error()

        content = self.chat_content
        if content is None:
            analysis = dict(self.analysis)
            system_prompt = body["messages"][0]["content"]
            analysis["reply"] = self.reply if '"reply": null' not in system_prompt else None
            content = json.dumps(analysis)
        return web.json_response({"choices": [{"message": {"role": "assistant", "content": content}}]})


@pytest.fixture
async def fake_provider(aiohttp_server):
    """Fake Groq API served on a local port; ``api_base`` points at it."""
    provider = FakeProvider()
    app = web.Application()
    app.router.add_post("/openai/v1/audio/transcriptions", provider.handle_transcriptions)
    app.router.add_post("/openai/v1/chat/completions", provider.handle_chat)
    server = await aiohttp_server(app)
    provider.api_base = str(server.make_url("/openai/v1"))
    return provider
