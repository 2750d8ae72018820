"""Practice service that drives capture, transcription, analysis and history."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import List, Optional

from ..analysis.analyzer import BaseAnalysisClient
from ..audio.capture import AudioCapture, CaptureHandle
from ..errors import InputTooShort, MissingCredential, PermissionDenied, PersistenceFailure, SpeechUnavailable
from ..models.analysis import AnalysisResult
from ..models.audio import CaptureStatus
from ..models.conversation import ConversationMessage, Role
from ..models.history import HistoryEntry
from ..models.preferences import Level, Preferences
from ..speech.base import AbstractSpeaker
from ..storage.history_store import SessionHistoryStore
from ..transcription.base import AbstractTranscriber

logger = logging.getLogger(__name__)


class PracticeService:
    """Owns the live view state and runs one pipeline step at a time.

    Every failure is caught here, stored in ``last_error`` and leaves the
    capture idle, so the caller always gets control back.
    """

    def __init__(self,
                 preferences: Preferences,
                 capture: AudioCapture,
                 transcriber: AbstractTranscriber,
                 analyzer: BaseAnalysisClient,
                 history: SessionHistoryStore,
                 persist_conversation: bool = False,
                 speaker: Optional[AbstractSpeaker] = None):
        """Initialize practice service.

        Args:
            preferences: Credential and preference snapshot used for every call
            capture: Microphone capture
            transcriber: Speech-to-text backend
            analyzer: Analysis client
            history: Session history store
            persist_conversation: Also record conversation turns in history
            speaker: Reads conversation replies aloud; replies are silent when omitted
        """
        self.preferences = preferences
        self.capture = capture
        self.transcriber = transcriber
        self.analyzer = analyzer
        self.history = history
        self.persist_conversation = persist_conversation
        self.speaker = speaker

        # Live view state
        self.transcript = ""
        self.analysis: Optional[AnalysisResult] = None
        self.messages: List[ConversationMessage] = []
        self.last_error: Optional[Exception] = None

        self._handle: Optional[CaptureHandle] = None
        self._cycle_closed = False
        self._cycle = 0
        self._analysis_lock = asyncio.Lock()
        self._pending_analyses = 0
        self._last_message_id = 0

    @property
    def needs_onboarding(self) -> bool:
        return not self.preferences.has_credential

    @property
    def status(self) -> CaptureStatus:
        return self.capture.status

    @property
    def is_analyzing(self) -> bool:
        return self._pending_analyses > 0

    def update_preferences(self, preferences: Preferences) -> None:
        """Replace the preference snapshot after an explicit user save."""
        self.preferences = preferences
        logger.info(f"Preferences updated: level={preferences.level.value}, roleplay={preferences.roleplay}")

    def _require_credential(self) -> str:
        if self.needs_onboarding:
            logger.warning("No API key configured; onboarding required")
            raise MissingCredential()
        return self.preferences.api_key.strip()

    def _surface(self, error: Exception) -> None:
        self.last_error = error
        logger.error(f"Pipeline step failed: {error}")

    # Capture and transcription

    async def start_recording(self) -> None:
        """Start a capture turn.

        Raises:
            MissingCredential: If onboarding is required
            PermissionDenied: If the microphone is unavailable (capture is back to idle)
            CaptureBusy: If a recording is already running
        """
        self._require_credential()
        try:
            self._handle = await asyncio.to_thread(self.capture.start_capture)
        except PermissionDenied as e:
            self._surface(e)
            self.capture.recover()
            raise
        self.last_error = None
        logger.info("Recording started")

    async def _stop_and_transcribe(self) -> Optional[str]:
        if self._handle is None:
            logger.debug("Stop requested with no active recording")
            return None
        handle, self._handle = self._handle, None

        if self.needs_onboarding:
            await asyncio.to_thread(self.capture.release)
        api_key = self._require_credential()

        try:
            blob = await asyncio.to_thread(self.capture.stop_capture, handle)
        except Exception as e:
            self._surface(e)
            self.capture.fail(e)
            self.capture.recover()
            return None

        if blob is None:
            return None

        try:
            text = await self.transcriber.transcribe(blob, api_key)
        except Exception as e:
            self._surface(e)
            self.capture.fail(e)
            self.capture.recover()
            return None

        self.capture.finish()
        return text.strip()

    async def stop_recording(self) -> Optional[str]:
        """Stop the current turn and add its transcript to the analysis cycle.

        Returns:
            The new turn's text, or None when nothing was captured or a step failed
        """
        text = await self._stop_and_transcribe()
        if text is None:
            return None
        self.add_transcript(text)
        return text

    def add_transcript(self, text: str) -> None:
        """Add text to the current analysis cycle, starting a new cycle after an analysis."""
        if self._cycle_closed:
            self.transcript = ""
            self._cycle_closed = False
            self._cycle += 1
        if text:
            self.transcript = f"{self.transcript} {text}".strip()
        logger.debug(f"Transcript now {len(self.transcript)} characters")

    # Analysis

    @asynccontextmanager
    async def _queued_analysis(self):
        # asyncio.Lock wakes waiters in FIFO order, so requests queue rather than drop
        self._pending_analyses += 1
        try:
            async with self._analysis_lock:
                yield
        finally:
            self._pending_analyses -= 1

    async def analyze_transcript(self) -> Optional[AnalysisResult]:
        """Analyze the accumulated transcript and record it in history.

        Returns:
            The analysis, or None if the text was too short or the request failed
        """
        api_key = self._require_credential()
        text = self.transcript
        level, roleplay = self.preferences.level, self.preferences.roleplay
        # Turns recorded while this request waits belong to the next cycle
        cycle, was_closed = self._cycle, self._cycle_closed
        self._cycle_closed = True

        async with self._queued_analysis():
            try:
                result = await self.analyzer.analyze(text, level, roleplay, False, api_key)
            except InputTooShort as e:
                logger.info(f"Skipping analysis: {e}")
                self._reopen_cycle(cycle, was_closed)
                return None
            except Exception as e:
                # Prior transcript and analysis stay visible
                self._surface(e)
                self._reopen_cycle(cycle, was_closed)
                return None

            self.analysis = result
            self.last_error = None
            await self._record_history(text, result, level, roleplay, "practice")
            return result

    def _reopen_cycle(self, cycle: int, was_closed: bool) -> None:
        # Only when no newer turn has started a fresh cycle meanwhile
        if cycle == self._cycle:
            self._cycle_closed = was_closed

    async def practice_turn(self) -> Optional[AnalysisResult]:
        """Stop recording, transcribe, then analyze."""
        text = await self.stop_recording()
        if text is None:
            return None
        return await self.analyze_transcript()

    async def _record_history(self, transcript: str, analysis: AnalysisResult,
                              level: Level, roleplay: str, mode: str) -> Optional[HistoryEntry]:
        try:
            return await asyncio.to_thread(self.history.record, transcript, analysis, level, roleplay, mode)
        except PersistenceFailure as e:
            logger.warning(f"Could not save practice history: {e}")
            return None

    # Conversation mode

    def _next_message_id(self) -> int:
        candidate = int(time.time() * 1000)
        if candidate <= self._last_message_id:
            candidate = self._last_message_id + 1
        self._last_message_id = candidate
        return candidate

    async def send_message(self, text: str, speak: bool = True) -> Optional[ConversationMessage]:
        """Add a user turn and get the in-character reply with its analysis.

        The reply is read aloud unless ``speak`` is false, in which case the
        caller can show it first and call ``speak`` itself.

        Returns:
            The AI message, or None if the text was too short or the request failed
        """
        api_key = self._require_credential()
        text = (text or "").strip()
        if len(text) < 2:
            logger.debug("Ignoring conversation turn that is too short")
            return None

        level, roleplay = self.preferences.level, self.preferences.roleplay
        self.messages.append(ConversationMessage(id=self._next_message_id(), role=Role.USER, content=text))

        async with self._queued_analysis():
            try:
                result = await self.analyzer.analyze(text, level, roleplay, True, api_key)
            except InputTooShort:
                return None
            except Exception as e:
                self._surface(e)
                return None

            ai_message = ConversationMessage(
                id=self._next_message_id(),
                role=Role.AI,
                content=result.reply,
                analysis=result,
            )
            self.messages.append(ai_message)
            self.last_error = None
            if self.persist_conversation:
                await self._record_history(text, result, level, roleplay, "conversation")

        if speak:
            await self.speak(ai_message.content)
        return ai_message

    async def converse_turn(self, speak: bool = True) -> Optional[ConversationMessage]:
        """Stop recording and send the turn's transcript as a conversation message."""
        text = await self._stop_and_transcribe()
        if not text:
            return None
        return await self.send_message(text, speak=speak)

    async def speak(self, text: str) -> bool:
        """Read text aloud with the preferred voice.

        Speech is best effort: a missing or failing engine is logged, not raised.

        Returns:
            True if the text was spoken
        """
        if self.speaker is None or not text:
            return False
        try:
            await self.speaker.speak(text, self.preferences.preferred_voice_id)
        except SpeechUnavailable as e:
            logger.warning(f"Could not speak reply: {e}")
            return False
        return True

    async def replay_last_reply(self) -> Optional[ConversationMessage]:
        """Speak the latest partner reply again."""
        for message in reversed(self.messages):
            if message.role is Role.AI:
                await self.speak(message.content)
                return message
        return None

    # History

    def restore(self, entry_id: int) -> HistoryEntry:
        """Load a past session back into the live view.

        Raises:
            KeyError: If no entry has that id
        """
        entry = self.history.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)

        self.transcript = entry.transcript
        self.analysis = entry.analysis
        self.preferences = replace(self.preferences, level=entry.level, roleplay=entry.roleplay)
        self._cycle_closed = True
        self._cycle += 1
        logger.info(f"Restored history entry {entry_id}")
        return entry

    async def close(self) -> None:
        self.capture.release()
        self._handle = None
        await self.transcriber.close()
        await self.analyzer.close()
        if self.speaker is not None:
            await self.speaker.close()
        logger.info("PracticeService closed")
