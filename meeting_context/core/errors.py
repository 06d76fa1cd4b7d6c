"""Exception taxonomy for the context engine.

Retrieval failures derive from ``RetrievalError`` and are recoverable: the
retriever catches them and records a ``Degradation`` on the result instead of
raising. Write-path errors (``MeetingNotFound``, ``EmbeddingIntegrityError``)
are caller errors and propagate.
"""

from typing import Optional


class ContextEngineError(Exception):
    """Base class for all context engine errors."""
    pass


class RetrievalError(ContextEngineError):
    """A recoverable failure while assembling context for one query."""

    stage: str = "retrieval"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class RoomNotFound(RetrievalError):
    """Room identifier did not resolve to a meeting room."""

    stage = "room_lookup"

    def __init__(self, room_name: str):
        super().__init__(f"Room not found: {room_name}")
        self.room_name = room_name


class EmbeddingUnavailable(RetrievalError):
    """Embedding provider failed, timed out or returned an unusable response."""

    stage = "query_embedding"

    def __init__(self, reason: str):
        super().__init__(f"Embedding provider unavailable: {reason}")
        self.reason = reason


class StoreUnavailable(RetrievalError):
    """Metadata or vector tier call failed or timed out."""

    stage = "store"

    def __init__(self, operation: str, reason: str):
        super().__init__(f"Store operation '{operation}' failed: {reason}")
        self.operation = operation
        self.reason = reason


class InvalidTranscriptLine(ContextEngineError):
    """A live-transcript line that does not have the ``speaker: text`` shape."""

    def __init__(self, line: str):
        super().__init__(f"Not a 'speaker: text' line: {line[:80]!r}")
        self.line = line


class MeetingNotFound(ContextEngineError):
    """Write path referenced a meeting that does not exist."""

    def __init__(self, meeting_id: str):
        super().__init__(f"Meeting not found: {meeting_id}")
        self.meeting_id = meeting_id


class EmbeddingIntegrityError(ContextEngineError):
    """A batch of transcript embeddings failed validation before being written."""
    pass
