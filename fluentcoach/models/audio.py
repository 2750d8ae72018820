"""Audio-related data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class CaptureStatus(Enum):
    """State of an audio capture instance."""
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass(frozen=True)
class AudioBlob:
    """One finished recording, encoded and ready for upload."""
    data: bytes
    mime_type: str
    sample_rate: int
    channels: int
    duration_seconds: float

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class AudioStats:
    """Audio recording statistics."""
    is_recording: bool
    duration_seconds: float
    sample_rate: int
    chunk_size: int
    total_chunks: int
    peak_level: float = 0.0


@dataclass
class LevelFrame:
    """Frequency-domain snapshot of the live microphone signal."""
    bins: List[int] = field(default_factory=list)  # 0-255 per frequency bin
    peak_level: float = 0.0  # 0.0-1.0 of full scale
    timestamp: float = 0.0
