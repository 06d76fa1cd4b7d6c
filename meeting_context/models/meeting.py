"""Persistent records for meeting rooms, meetings and transcripts.

All models use Pydantic v2 for validation and serialization. Each record has
an explicit ``from_row`` mapper for the storage tier it lives in, so no
untyped row dictionaries cross the store boundary.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class MeetingRoom(BaseModel):
    """A meeting room as resolved from the room registry."""

    id: str = Field(..., description="Room identifier")
    room_name: str = Field(..., description="Human-readable unique room name")
    title: Optional[str] = Field(None, description="Display title")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MeetingRoom":
        """Create a room from a ``meeting_rooms`` row."""
        return cls(
            id=row["id"],
            room_name=row["room_name"],
            title=row["title"],
            created_at=_parse_datetime(row["created_at"]) or datetime.now(),
        )


class MeetingMetadata(BaseModel):
    """Cheap, always-loaded metadata for one meeting session.

    ``ended_at``, ``transcript_count`` and ``has_embeddings`` are written by
    the transcript capture side and the embedding write path; the retrieval
    engine only reads them.
    """

    id: str = Field(..., description="Meeting identifier")
    room_id: str = Field(..., description="Owning room identifier")
    type: str = Field(..., description="Free-text meeting label, e.g. 'Daily Standup'")
    title: Optional[str] = Field(None, description="Optional meeting title")
    started_at: datetime = Field(..., description="Session start")
    ended_at: Optional[datetime] = Field(None, description="Session end")
    participant_names: List[str] = Field(default_factory=list, description="Participants in join order")
    transcript_count: int = Field(0, ge=0, description="Number of transcript entries")
    has_embeddings: bool = Field(False, description="Whether the embedding set for this meeting is complete")
    summary: Optional[str] = Field(None, description="Post-meeting summary text")
    embeddings_generated_at: Optional[datetime] = Field(None, description="When embeddings were last written")
    embedding_error: Optional[str] = Field(None, description="Last embedding generation error")

    @field_validator("participant_names", mode="before")
    @classmethod
    def clean_participants(cls, v):
        """Drop blank names, keep order."""
        if not v:
            return []
        return [name.strip() for name in v if name and name.strip()]

    @property
    def label(self) -> str:
        """Name used when citing this meeting in a context block."""
        return self.title or self.type

    def has_content(self) -> bool:
        """Whether the meeting has at least one transcript or a non-empty summary."""
        return self.transcript_count > 0 or bool(self.summary and self.summary.strip())

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MeetingMetadata":
        """Create metadata from a ``meetings`` row."""
        return cls(
            id=row["id"],
            room_id=row["room_id"],
            type=row["type"],
            title=row["title"],
            started_at=_parse_datetime(row["started_at"]),
            ended_at=_parse_datetime(row["ended_at"]),
            participant_names=json.loads(row["participant_names"] or "[]"),
            transcript_count=row["transcript_count"],
            has_embeddings=bool(row["has_embeddings"]),
            summary=row["summary"],
            embeddings_generated_at=_parse_datetime(row["embeddings_generated_at"]),
            embedding_error=row["embedding_error"],
        )


class TranscriptEntry(BaseModel):
    """One finalized line of a meeting transcript. Immutable once written."""

    speaker: str = Field(..., min_length=1, description="Speaker name")
    text: str = Field(..., description="Spoken text")
    timestamp: datetime = Field(..., description="When the line was spoken")
    speaker_confidence: Optional[float] = Field(
        None, ge=0.0, le=1.0, description="Diarization confidence"
    )

    model_config = {"frozen": True}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "TranscriptEntry":
        """Create an entry from a ``transcripts`` row."""
        return cls(
            speaker=row["speaker"],
            text=row["text"],
            timestamp=_parse_datetime(row["timestamp"]),
            speaker_confidence=row["speaker_confidence"],
        )


class TranscriptEmbedding(BaseModel):
    """Vector payload for one transcript line, stored in the vector tier."""

    meeting_id: str = Field(..., description="Owning meeting")
    room_id: str = Field(..., description="Owning room (for room-scoped indexing)")
    transcript_index: int = Field(..., ge=0, description="Position in the meeting transcript")
    speaker: str = Field(..., description="Speaker name")
    text: str = Field(..., description="Spoken text")
    timestamp: datetime = Field(..., description="When the line was spoken")
    meeting_type: str = Field("", description="Meeting label at write time")
    meeting_date: Optional[datetime] = Field(None, description="Meeting start at write time")
    vector: List[float] = Field(default_factory=list, description="Embedding vector")

    @property
    def record_id(self) -> str:
        """Vector-tier identifier, unique per (meeting, transcript index)."""
        return f"{self.meeting_id}:{self.transcript_index}"

    def to_vector_metadata(self) -> Dict[str, Any]:
        """Flatten provenance into vector-store metadata (str/int/float/bool only)."""
        meeting_date = self.meeting_date or self.timestamp
        return {
            "meeting_id": self.meeting_id,
            "room_id": self.room_id,
            "transcript_index": self.transcript_index,
            "speaker": self.speaker,
            "timestamp": self.timestamp.isoformat(),
            "meeting_type": self.meeting_type,
            "meeting_date": meeting_date.isoformat(),
            "meeting_date_epoch": meeting_date.timestamp(),
        }

    @classmethod
    def from_vector_record(
        cls,
        document: str,
        metadata: Mapping[str, Any],
        vector: Any,
    ) -> "TranscriptEmbedding":
        """Rebuild an embedding row from vector-store data."""
        return cls(
            meeting_id=metadata["meeting_id"],
            room_id=metadata["room_id"],
            transcript_index=int(metadata["transcript_index"]),
            speaker=metadata["speaker"],
            text=document or "",
            timestamp=_parse_datetime(metadata["timestamp"]),
            meeting_type=metadata.get("meeting_type", ""),
            meeting_date=_parse_datetime(metadata.get("meeting_date")),
            vector=[float(x) for x in vector] if vector is not None else [],
        )
