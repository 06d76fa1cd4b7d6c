"""Tiered store: SQLite metadata tier in front of the ChromaDB vector tier.

Ordinary reads (rooms, meeting metadata, transcripts) never touch the vector
tier. Embedding rows are loaded only for meetings whose metadata says a
complete embedding set exists.

Every call carries a timeout. Failures and timeouts surface as
``StoreUnavailable``; write-path caller errors (``MeetingNotFound``,
``EmbeddingIntegrityError``) propagate unchanged.
"""

import asyncio
from typing import Any, Awaitable, List, Optional, Tuple

from meeting_context.core.errors import (
    ContextEngineError,
    EmbeddingIntegrityError,
    MeetingNotFound,
    RoomNotFound,
    StoreUnavailable,
)
from meeting_context.core.logging import get_logger, log_exception
from meeting_context.database.sqlite_manager import SQLiteManager
from meeting_context.memory.models import EmbeddingCoverage
from meeting_context.memory.vector_store import TranscriptEmbeddingStore
from meeting_context.models.meeting import (
    MeetingMetadata,
    MeetingRoom,
    TranscriptEmbedding,
    TranscriptEntry,
)

logger = get_logger(__name__)

EmbeddingRow = Tuple[TranscriptEmbedding, MeetingMetadata]


class TieredStore:
    """Read/write access to meeting metadata and transcript embeddings."""

    def __init__(
        self,
        metadata_db: SQLiteManager,
        vector_store: TranscriptEmbeddingStore,
        timeout_seconds: float = 10.0,
    ):
        """Initialize the store.

        Args:
            metadata_db: Metadata and transcript tier
            vector_store: Embedding tier
            timeout_seconds: Timeout applied to every tier call
        """
        self.metadata_db = metadata_db
        self.vector_store = vector_store
        self.timeout_seconds = timeout_seconds

    async def initialize(self):
        await self.metadata_db.initialize()

    async def close(self):
        await self.metadata_db.close()

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Run one tier call with the store timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("store_timeout", operation=operation, timeout=self.timeout_seconds)
            raise StoreUnavailable(operation, f"timed out after {self.timeout_seconds}s")
        except ContextEngineError:
            raise
        except Exception as e:
            logger.warning("store_call_failed", operation=operation, error=str(e))
            raise StoreUnavailable(operation, str(e)) from e

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_room(self, room_name: str) -> MeetingRoom:
        """Resolve a room by name.

        Raises:
            RoomNotFound: If no room has this name
            StoreUnavailable: If the metadata tier fails
        """
        room = await self._call("get_room", self.metadata_db.get_room_by_name(room_name))
        if room is None:
            raise RoomNotFound(room_name)
        return room

    async def list_rooms(self) -> List[MeetingRoom]:
        return await self._call("list_rooms", self.metadata_db.list_rooms())

    async def get_meeting(self, meeting_id: str) -> Optional[MeetingMetadata]:
        return await self._call("get_meeting", self.metadata_db.get_meeting(meeting_id))

    async def get_transcripts(self, meeting_id: str) -> List[TranscriptEntry]:
        return await self._call("get_transcripts", self.metadata_db.get_transcripts(meeting_id))

    async def list_candidate_meetings(self, room_id: str, limit: int) -> List[MeetingMetadata]:
        """A room's most recent meetings, metadata only."""
        return await self._call(
            "list_meetings", self.metadata_db.list_meetings_for_room(room_id, limit)
        )

    async def fetch_embeddings(
        self, meetings: List[MeetingMetadata]
    ) -> Tuple[List[EmbeddingRow], List[StoreUnavailable]]:
        """Load embedding rows for meetings that have a complete set.

        One concurrent fetch per meeting. A failed fetch drops that meeting's
        rows and is reported in the second element instead of failing the
        whole call.

        Returns:
            (rows paired with their meeting, in meeting order then transcript
            order; fetch failures)
        """
        embedded = [m for m in meetings if m.has_embeddings]
        if not embedded:
            return [], []

        results = await asyncio.gather(
            *[
                self._call(
                    "get_meeting_embeddings",
                    self.vector_store.get_meeting_embeddings(meeting.id),
                )
                for meeting in embedded
            ],
            return_exceptions=True,
        )

        rows: List[EmbeddingRow] = []
        failures: List[StoreUnavailable] = []
        for meeting, result in zip(embedded, results):
            if isinstance(result, StoreUnavailable):
                failures.append(result)
                continue
            if isinstance(result, BaseException):
                raise result
            rows.extend((row, meeting) for row in result)

        return rows, failures

    # =========================================================================
    # Embedding Write Path
    # =========================================================================

    async def store_meeting_embeddings(
        self, meeting_id: str, rows: List[TranscriptEmbedding]
    ) -> int:
        """Atomically replace a meeting's embedding set.

        The metadata flag is cleared first, the vector rows are replaced in
        one batch, and only then is the flag set. A failure at any step
        removes whatever rows were written and leaves the flag cleared, so a
        reader never sees a partial set flagged as complete.

        Args:
            meeting_id: Meeting the rows belong to
            rows: One row per transcript line, indices 0..n-1

        Returns:
            Number of rows stored

        Raises:
            MeetingNotFound: If the meeting does not exist
            EmbeddingIntegrityError: If the rows do not form a valid set
            StoreUnavailable: If a tier call fails (after rollback)
        """
        meeting = await self.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFound(meeting_id)
        self._validate_batch(meeting, rows)

        await self._call("mark_embeddings_pending", self.metadata_db.mark_embeddings_pending(meeting_id))

        try:
            await self._call(
                "replace_meeting_embeddings",
                self.vector_store.replace_meeting_embeddings(meeting_id, rows),
            )
            if rows:
                await self._call(
                    "mark_embeddings_ready",
                    self.metadata_db.mark_embeddings_ready(meeting_id, len(rows)),
                )
        except (Exception, asyncio.CancelledError) as e:
            await asyncio.shield(self.mark_embedding_failure(meeting_id, str(e) or type(e).__name__))
            raise

        logger.info("meeting_embeddings_stored", meeting_id=meeting_id, count=len(rows))
        return len(rows)

    async def mark_embedding_failure(self, meeting_id: str, error: str):
        """Record a failed generation and remove any rows for the meeting.

        Cleanup errors are logged; the caller re-raises the original failure.
        """
        try:
            await self._call(
                "delete_meeting_embeddings",
                self.vector_store.delete_meeting_embeddings(meeting_id),
            )
            await self._call(
                "mark_embeddings_failed",
                self.metadata_db.mark_embeddings_failed(meeting_id, error),
            )
        except ContextEngineError as cleanup_error:
            log_exception(logger, "embedding_rollback_failed", cleanup_error, meeting_id=meeting_id)
            return

        logger.warning("meeting_embeddings_failed", meeting_id=meeting_id, error=error)

    def _validate_batch(self, meeting: MeetingMetadata, rows: List[TranscriptEmbedding]):
        if len(rows) != meeting.transcript_count:
            raise EmbeddingIntegrityError(
                f"Meeting {meeting.id} has {meeting.transcript_count} transcripts "
                f"but {len(rows)} embedding rows were supplied"
            )

        indices = sorted(row.transcript_index for row in rows)
        if indices != list(range(len(rows))):
            raise EmbeddingIntegrityError(
                f"Transcript indices for meeting {meeting.id} must be 0..{len(rows) - 1} without gaps"
            )

        dimensions = None
        for row in rows:
            if row.meeting_id != meeting.id:
                raise EmbeddingIntegrityError(
                    f"Row {row.record_id} does not belong to meeting {meeting.id}"
                )
            if not row.vector:
                raise EmbeddingIntegrityError(f"Row {row.record_id} has an empty vector")
            if dimensions is None:
                dimensions = len(row.vector)
            elif len(row.vector) != dimensions:
                raise EmbeddingIntegrityError(
                    f"Row {row.record_id} has {len(row.vector)} dimensions, expected {dimensions}"
                )

    # =========================================================================
    # Administration
    # =========================================================================

    async def delete_meeting(self, meeting_id: str):
        """Delete a meeting, its transcripts and its embedding rows.

        Raises:
            MeetingNotFound: If the meeting does not exist
        """
        meeting = await self.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFound(meeting_id)

        await self._call(
            "delete_meeting_embeddings",
            self.vector_store.delete_meeting_embeddings(meeting_id),
        )
        await self._call("delete_meeting", self.metadata_db.delete_meeting(meeting_id))

    async def check_consistency(self, meeting_id: str) -> bool:
        """Whether the embedding flag agrees with the stored row count.

        Raises:
            MeetingNotFound: If the meeting does not exist
        """
        meeting = await self.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFound(meeting_id)

        count = await self._call(
            "count_meeting_embeddings",
            self.vector_store.count_meeting_embeddings(meeting_id),
        )
        return self._is_consistent(meeting, count)

    async def embedding_coverage(self, room_name: str, limit: int = 500) -> EmbeddingCoverage:
        """Summarize how much of a room's history has embeddings.

        Args:
            room_name: Room to inspect
            limit: Most recent meetings to include

        Raises:
            RoomNotFound: If the room does not exist
        """
        room = await self.get_room(room_name)
        meetings = await self.list_candidate_meetings(room.id, limit)

        counts = await asyncio.gather(
            *[
                self._call(
                    "count_meeting_embeddings",
                    self.vector_store.count_meeting_embeddings(meeting.id),
                )
                for meeting in meetings
            ]
        )

        coverage = EmbeddingCoverage(room_name=room_name, total_meetings=len(meetings))
        for meeting, count in zip(meetings, counts):
            coverage.total_transcripts += meeting.transcript_count
            coverage.embedded_transcripts += count
            if meeting.has_embeddings:
                coverage.meetings_with_embeddings += 1
            if not self._is_consistent(meeting, count):
                coverage.inconsistent_meetings.append(meeting.id)

        if coverage.inconsistent_meetings:
            logger.warning(
                "embedding_inconsistency_detected",
                room_name=room_name,
                meetings=coverage.inconsistent_meetings,
            )
        return coverage

    @staticmethod
    def _is_consistent(meeting: MeetingMetadata, count: int) -> bool:
        if meeting.has_embeddings:
            return count == meeting.transcript_count
        return count == 0
