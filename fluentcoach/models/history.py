"""Session history models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from .analysis import AnalysisResult
from .preferences import Level


@dataclass
class HistoryEntry:
    """One persisted transcript + analysis pair."""
    id: int  # Milliseconds since epoch at creation, strictly increasing per store
    timestamp: str  # ISO-8601 instant
    transcript: str
    analysis: AnalysisResult
    level: Level
    roleplay: str
    mode: str = "practice"  # "practice" | "conversation"

    @classmethod
    def create(cls, entry_id: int, transcript: str, analysis: AnalysisResult,
               level: Level, roleplay: str, mode: str = "practice") -> "HistoryEntry":
        timestamp = datetime.fromtimestamp(entry_id / 1000, tz=timezone.utc).isoformat()
        return cls(
            id=entry_id,
            timestamp=timestamp,
            transcript=transcript,
            analysis=analysis,
            level=level,
            roleplay=roleplay,
            mode=mode,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "transcript": self.transcript,
            "analysis": self.analysis.model_dump(),
            "level": self.level.value,
            "roleplay": self.roleplay,
            "mode": self.mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=int(data["id"]),
            timestamp=data["timestamp"],
            transcript=data["transcript"],
            analysis=AnalysisResult.model_validate(data["analysis"]),
            level=Level.parse(data["level"]),
            roleplay=data["roleplay"],
            mode=data.get("mode", "practice"),
        )
