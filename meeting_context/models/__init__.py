"""Persistent data models."""

from meeting_context.models.meeting import (
    MeetingMetadata,
    MeetingRoom,
    TranscriptEmbedding,
    TranscriptEntry,
)

__all__ = [
    "MeetingMetadata",
    "MeetingRoom",
    "TranscriptEmbedding",
    "TranscriptEntry",
]
