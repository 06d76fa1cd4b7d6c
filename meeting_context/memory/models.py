"""Data models for context retrieval.

These records are ephemeral: they are built per query (or per room for the
conversation store) and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QueryStrategy(Enum):
    """Retrieval strategy chosen for a question."""
    COMPREHENSIVE = "comprehensive"
    TARGETED = "targeted"


class TurnRole(Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ContextLine:
    """A line of live transcript."""

    speaker: str
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RankedContextLine:
    """A historical transcript line with its similarity and source meeting."""

    speaker: str
    text: str
    timestamp: datetime
    meeting_id: str
    meeting_type: str
    similarity: float
    meeting_label: str = ""
    meeting_date: Optional[datetime] = None

    @property
    def dedup_key(self) -> Tuple[str, datetime]:
        """Identity used when merging similarity and recency candidates."""
        return (self.meeting_id, self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "meeting_id": self.meeting_id,
            "meeting_type": self.meeting_type,
            "similarity": self.similarity,
        }


@dataclass
class ScoredCandidate:
    """A ranked candidate payload and its similarity to the query."""

    payload: Any
    similarity: float


@dataclass
class Degradation:
    """A recoverable failure that reduced the content of a retrieval result."""

    stage: str
    error_type: str
    message: str

    @classmethod
    def from_error(cls, error: Exception) -> "Degradation":
        return cls(
            stage=getattr(error, "stage", "retrieval"),
            error_type=type(error).__name__,
            message=str(error),
        )


@dataclass
class RetrievalResult:
    """Context assembled for one question.

    ``used_context`` and ``total_count`` are derived from the two line lists,
    so they can never disagree with them.
    """

    live_context: List[ContextLine] = field(default_factory=list)
    historical_context: List[RankedContextLine] = field(default_factory=list)
    strategy: Optional[QueryStrategy] = None
    degradations: List[Degradation] = field(default_factory=list)

    @property
    def used_context(self) -> bool:
        return bool(self.live_context) or bool(self.historical_context)

    @property
    def total_count(self) -> int:
        return len(self.live_context) + len(self.historical_context)

    @property
    def degraded(self) -> bool:
        return bool(self.degradations)

    def record(self, error: Exception) -> None:
        """Record a caught retrieval failure."""
        self.degradations.append(Degradation.from_error(error))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the engine-facing dictionary shape."""
        return {
            "live_context": [line.to_dict() for line in self.live_context],
            "historical_context": [line.to_dict() for line in self.historical_context],
            "used_context": self.used_context,
            "total_count": self.total_count,
            "strategy": self.strategy.value if self.strategy else None,
            "degraded": [d.stage for d in self.degradations],
        }


@dataclass
class RoomStats:
    """Aggregate statistics over a room's meetings that have content."""

    total_meetings: int = 0
    total_transcripts: int = 0
    meeting_types: List[str] = field(default_factory=list)
    frequent_participants: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_meetings": self.total_meetings,
            "total_transcripts": self.total_transcripts,
            "meeting_types": list(self.meeting_types),
            "frequent_participants": list(self.frequent_participants),
        }


@dataclass
class ConversationTurn:
    """One question or answer in a room's assistant conversation."""

    role: TurnRole
    text: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class EmbeddingCoverage:
    """How much of a room's transcript history is searchable."""

    room_name: str
    total_meetings: int = 0
    meetings_with_embeddings: int = 0
    total_transcripts: int = 0
    embedded_transcripts: int = 0
    inconsistent_meetings: List[str] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        """Fraction of transcript lines that have embeddings."""
        if self.total_transcripts == 0:
            return 0.0
        return self.embedded_transcripts / self.total_transcripts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room_name": self.room_name,
            "total_meetings": self.total_meetings,
            "meetings_with_embeddings": self.meetings_with_embeddings,
            "total_transcripts": self.total_transcripts,
            "embedded_transcripts": self.embedded_transcripts,
            "coverage": round(self.coverage, 3),
            "inconsistent_meetings": list(self.inconsistent_meetings),
        }
