"""Microphone capture with push-driven buffering and scoped device ownership."""

import itertools
import logging
import threading
from datetime import datetime
from typing import Optional, List, Dict, Set

import pyaudio

from ..errors import CaptureBusy, PermissionDenied
from ..models.audio import AudioBlob, AudioStats, CaptureStatus
from .audio_pub import AudioPublisher
from .encoder import encode_wav
from .level_meter import LevelMeter

logger = logging.getLogger(__name__)


_TRANSITIONS: Dict[CaptureStatus, Set[CaptureStatus]] = {
    CaptureStatus.IDLE: {CaptureStatus.RECORDING, CaptureStatus.ERROR},
    CaptureStatus.RECORDING: {CaptureStatus.PROCESSING, CaptureStatus.IDLE, CaptureStatus.ERROR},
    CaptureStatus.PROCESSING: {CaptureStatus.IDLE, CaptureStatus.ERROR},
    CaptureStatus.ERROR: {CaptureStatus.IDLE},
}

_handle_ids = itertools.count(1)


class CaptureHandle:
    """One recording session. Owns the device until it is stopped or released."""

    def __init__(self, pyaudio_instance: pyaudio.PyAudio):
        self.handle_id = next(_handle_ids)
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = pyaudio_instance
        self.stream: Optional[pyaudio.Stream] = None
        self.chunks: List[bytes] = []
        self.started_at = datetime.now()
        self.closed = False

    @property
    def captured_bytes(self) -> int:
        return sum(len(chunk) for chunk in self.chunks)


class AudioCapture:
    """Records one microphone turn at a time into an immutable audio blob."""

    def __init__(
        self,
        publisher: Optional[AudioPublisher] = None,
        level_meter: Optional[LevelMeter] = None,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        format: int = pyaudio.paInt16,
    ):
        """Initialize audio capture with specified parameters.

        Args:
            publisher: Receives capture status transitions
            level_meter: Optional live visualisation fed from the audio callback
            sample_rate: Audio sample rate (16kHz suits speech-to-text)
            chunk_size: Frames per buffer delivered by the device
            channels: Number of audio channels (1 for mono)
            format: Audio format (16-bit signed int)
        """
        self.publisher = publisher
        self.level_meter = level_meter
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels
        self.format = format

        self._lock = threading.Lock()
        self._status = CaptureStatus.IDLE
        self._handle: Optional[CaptureHandle] = None

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.total_chunks = 0

    @property
    def status(self) -> CaptureStatus:
        return self._status

    @property
    def is_recording(self) -> bool:
        return self._status == CaptureStatus.RECORDING

    def _transition(self, new_status: CaptureStatus, force: bool = False) -> None:
        previous = self._status
        if previous == new_status:
            return
        if not force and new_status not in _TRANSITIONS[previous]:
            raise RuntimeError(f"Illegal capture transition: {previous.value} -> {new_status.value}")
        self._status = new_status
        if self.publisher:
            self.publisher.publish_status(previous, new_status)

    def start_capture(self) -> CaptureHandle:
        """Acquire the microphone and start buffering audio.

        Returns:
            Handle to pass to ``stop_capture``

        Raises:
            CaptureBusy: If a recording is already active or the previous turn is unresolved
            PermissionDenied: If no input device is available or access was refused
        """
        with self._lock:
            if self._status == CaptureStatus.RECORDING:
                logger.warning("Recording already in progress")
                raise CaptureBusy("Recording already in progress")
            if self._status != CaptureStatus.IDLE:
                raise CaptureBusy(f"Capture is {self._status.value}, cannot start a new recording")

            logger.info("Starting audio capture")
            pyaudio_instance = pyaudio.PyAudio()
            handle = CaptureHandle(pyaudio_instance)
            try:
                pyaudio_instance.get_default_input_device_info()
                handle.stream = pyaudio_instance.open(
                    format=self.format,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    frames_per_buffer=self.chunk_size,
                    stream_callback=self._make_callback(handle),
                )
            except OSError as e:
                logger.error(f"Microphone unavailable: {e}")
                self._release_handle(handle)
                self._transition(CaptureStatus.ERROR)
                raise PermissionDenied(f"Microphone unavailable: {e}") from e

            self._handle = handle
            self.start_time = handle.started_at
            self.total_chunks = 0
            if self.level_meter:
                self.level_meter.reset()
            self._transition(CaptureStatus.RECORDING)

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk (handle {handle.handle_id})")
        return handle

    def _make_callback(self, handle: CaptureHandle):
        def on_audio(in_data, frame_count, time_info, status_flags):
            if handle.closed:
                return (None, pyaudio.paComplete)
            if status_flags:
                logger.debug(f"Input status flags: {status_flags}")
            handle.chunks.append(in_data)
            self.total_chunks += 1
            if self.level_meter:
                self.level_meter.feed(in_data)
            return (None, pyaudio.paContinue)
        return on_audio

    def stop_capture(self, handle: CaptureHandle) -> Optional[AudioBlob]:
        """Release the microphone and return everything captured as one blob.

        Returns:
            The encoded recording, or None if no audio was gathered (status returns to idle)
        """
        with self._lock:
            if handle is not self._handle or self._status != CaptureStatus.RECORDING:
                raise ValueError("Handle does not belong to the active recording")

            self._release_handle(handle)
            self._handle = None
            chunks = list(handle.chunks)

            if not chunks:
                logger.info("Recording stopped before any audio was captured")
                self._transition(CaptureStatus.IDLE)
                return None

            try:
                blob = encode_wav(chunks, self.sample_rate, self.channels)
            except Exception:
                self._transition(CaptureStatus.ERROR)
                raise

            self._transition(CaptureStatus.PROCESSING)

        logger.info(f"Recording stopped. Chunks: {len(chunks)}, "
                    f"duration: {blob.duration_seconds:.2f}s, blob: {len(blob)} bytes")
        return blob

    def finish(self) -> None:
        """Mark downstream processing of the last blob as complete."""
        with self._lock:
            self._transition(CaptureStatus.IDLE)

    def fail(self, error: Exception) -> None:
        """Enter the error state, releasing the device if still recording."""
        with self._lock:
            logger.error(f"Capture failed: {error}")
            if self._handle is not None:
                self._release_handle(self._handle)
                self._handle = None
            self._transition(CaptureStatus.ERROR)

    def recover(self) -> None:
        """Return to idle once an error has been surfaced."""
        with self._lock:
            if self._status == CaptureStatus.ERROR:
                self._transition(CaptureStatus.IDLE)

    def release(self) -> None:
        """Tear down from any state; used on shutdown."""
        with self._lock:
            if self._handle is not None:
                logger.info("Releasing active recording")
                self._release_handle(self._handle)
                self._handle = None
            self._transition(CaptureStatus.IDLE, force=True)

    def _release_handle(self, handle: CaptureHandle) -> None:
        """Stop the stream, close it and terminate PyAudio; every step always runs."""
        handle.closed = True
        stream, handle.stream = handle.stream, None
        pyaudio_instance, handle.pyaudio_instance = handle.pyaudio_instance, None
        try:
            if stream is not None:
                try:
                    stream.stop_stream()
                finally:
                    stream.close()
        except OSError as e:
            logger.warning(f"Error closing audio stream: {e}")
        finally:
            if pyaudio_instance is not None:
                pyaudio_instance.terminate()

    def get_recording_stats(self) -> AudioStats:
        """Get current recording statistics."""
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()

        return AudioStats(
            is_recording=self.is_recording,
            duration_seconds=duration,
            sample_rate=self.sample_rate,
            chunk_size=self.chunk_size,
            total_chunks=self.total_chunks,
            peak_level=self.level_meter.last_peak if self.level_meter else 0.0,
        )

    def __del__(self):
        """Ensure the microphone is released on deletion."""
        if getattr(self, "_handle", None) is not None:
            self.release()
