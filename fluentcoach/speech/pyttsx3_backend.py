"""Offline speech output through pyttsx3."""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import pyttsx3

from .base import AbstractSpeaker, Voice, normalize_language, select_voice
from ..errors import SpeechUnavailable

logger = logging.getLogger(__name__)


class Pyttsx3Speaker(AbstractSpeaker):
    """Speaks with the platform engine (SAPI5, NSSpeechSynthesizer or eSpeak).

    The engine is not thread safe, so every call runs on one dedicated worker
    thread and the engine is created there on first use.
    """

    service_name = "pyttsx3"

    def __init__(self, rate_factor: float = 0.95, driver_name: Optional[str] = None):
        """Initialize speaker.

        Args:
            rate_factor: Multiplier applied to the engine's default speaking rate
            driver_name: pyttsx3 driver to force; the platform default when omitted
        """
        self.rate_factor = rate_factor
        self.driver_name = driver_name
        self._engine = None
        self._base_rate: Optional[int] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="speech")

    def _get_engine(self):
        if self._engine is None:
            try:
                self._engine = pyttsx3.init(self.driver_name)
            except (OSError, RuntimeError) as e:
                raise SpeechUnavailable(f"No speech engine available: {e}") from e
            self._base_rate = int(self._engine.getProperty('rate'))
            logger.info(f"Speech engine started (default rate {self._base_rate} wpm)")
        return self._engine

    def _voices(self) -> List[Voice]:
        voices = []
        for raw in self._get_engine().getProperty('voices') or []:
            languages = getattr(raw, 'languages', None) or []
            voices.append(Voice(
                id=str(raw.id),
                name=str(getattr(raw, 'name', None) or raw.id),
                lang=normalize_language(languages[0]) if languages else "",
            ))
        return voices

    def _speak(self, text: str, voice_id: Optional[str]) -> Optional[Voice]:
        engine = self._get_engine()
        voice = select_voice(self._voices(), voice_id)
        if voice is not None:
            engine.setProperty('voice', voice.id)
        engine.setProperty('rate', int(self._base_rate * self.rate_factor))

        start_time = time.time()
        engine.say(text)
        engine.runAndWait()
        logger.debug(f"Spoke {len(text)} characters in {time.time() - start_time:.2f}s "
                     f"with voice {voice.name if voice else '<default>'}")
        return voice

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except SpeechUnavailable:
            raise
        except (OSError, RuntimeError) as e:
            raise SpeechUnavailable(f"{self.service_name} failed: {e}") from e

    async def speak(self, text: str, voice_id: Optional[str] = None) -> Optional[Voice]:
        text = (text or "").strip()
        if not text:
            return None
        return await self._run(self._speak, text, voice_id)

    async def list_voices(self) -> List[Voice]:
        return await self._run(self._voices)

    async def close(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            await asyncio.get_running_loop().run_in_executor(self._executor, engine.stop)
        self._executor.shutdown(wait=False)
