"""Unit tests for the tiered store.

Runs against an in-memory SQLite metadata tier and a temporary ChromaDB
vector tier.
"""

import asyncio
from datetime import datetime

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from meeting_context.core.errors import (
    EmbeddingIntegrityError,
    MeetingNotFound,
    RoomNotFound,
    StoreUnavailable,
)
from meeting_context.database.sqlite_manager import SQLiteManager
from meeting_context.memory.tiered_store import TieredStore
from meeting_context.memory.vector_store import TranscriptEmbeddingStore
from meeting_context.models.meeting import TranscriptEntry


@pytest_asyncio.fixture
async def store(temp_chroma_dir):
    """Create a tiered store over fresh tiers."""
    tiered = TieredStore(
        metadata_db=SQLiteManager(db_path=":memory:"),
        vector_store=TranscriptEmbeddingStore(persist_directory=temp_chroma_dir),
        timeout_seconds=5.0,
    )
    await tiered.initialize()
    yield tiered
    await tiered.close()


async def _meeting_with_lines(store, room_id, count, days_ago=1):
    meeting = await store.metadata_db.create_meeting(
        room_id, "Daily Standup", started_at=datetime(2025, 3, 10 - days_ago, 9, 0)
    )
    for i in range(count):
        await store.metadata_db.append_transcript(
            meeting.id,
            TranscriptEntry(speaker="Alice", text=f"line {i}", timestamp=datetime(2025, 3, 1, 9, i)),
        )
    return meeting


class TestReads:
    """Test read operations and timeouts."""

    @pytest.mark.asyncio
    async def test_get_room(self, store):
        """Test room lookup and RoomNotFound."""
        room = await store.metadata_db.create_room("standup-alpha")

        assert (await store.get_room("standup-alpha")).id == room.id
        with pytest.raises(RoomNotFound):
            await store.get_room("nonexistent")

    @pytest.mark.asyncio
    async def test_fetch_embeddings_only_for_flagged_meetings(self, store, make_embedding):
        """Test only meetings with has_embeddings are read from the vector tier."""
        room = await store.metadata_db.create_room("standup-alpha")
        embedded = await _meeting_with_lines(store, room.id, 2, days_ago=1)
        pending = await _meeting_with_lines(store, room.id, 2, days_ago=2)
        await store.store_meeting_embeddings(
            embedded.id, [make_embedding(embedded.id, i, [1.0, 0.0], room_id=room.id) for i in range(2)]
        )

        meetings = await store.list_candidate_meetings(room.id, limit=10)
        rows, failures = await store.fetch_embeddings(meetings)

        assert failures == []
        assert [m.id for m in meetings] == [embedded.id, pending.id]
        assert {meeting.id for _, meeting in rows} == {embedded.id}
        assert [row.transcript_index for row, _ in rows] == [0, 1]

    @pytest.mark.asyncio
    async def test_fetch_failure_is_reported_per_meeting(self, store, make_meeting):
        """Test a failing vector read is returned as a failure, not raised."""
        store.vector_store.get_meeting_embeddings = AsyncMock(side_effect=RuntimeError("disk I/O"))

        rows, failures = await store.fetch_embeddings([make_meeting("m1", has_embeddings=True)])

        assert rows == []
        assert len(failures) == 1
        assert isinstance(failures[0], StoreUnavailable)
        assert failures[0].operation == "get_meeting_embeddings"

    @pytest.mark.asyncio
    async def test_timeout_becomes_store_unavailable(self, store):
        """Test a slow tier call times out as StoreUnavailable."""
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)

        store.timeout_seconds = 0.05
        store.metadata_db.get_room_by_name = slow

        with pytest.raises(StoreUnavailable, match="timed out"):
            await store.get_room("standup-alpha")


class TestEmbeddingWritePath:
    """Test the atomic embedding write protocol."""

    @pytest.mark.asyncio
    async def test_store_sets_flag_and_count(self, store, make_embedding):
        """Test a successful write flags the meeting and stays consistent."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 3)

        stored = await store.store_meeting_embeddings(
            meeting.id, [make_embedding(meeting.id, i, [1.0, 0.5]) for i in range(3)]
        )

        loaded = await store.get_meeting(meeting.id)
        assert stored == 3
        assert loaded.has_embeddings is True
        assert loaded.transcript_count == 3
        assert await store.check_consistency(meeting.id) is True

    @pytest.mark.asyncio
    async def test_missing_meeting(self, store, make_embedding):
        """Test writing to an unknown meeting fails loudly."""
        with pytest.raises(MeetingNotFound):
            await store.store_meeting_embeddings("missing", [make_embedding("missing", 0, [1.0])])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("indices, vectors", [
        ([0, 1], [[1.0], [1.0]]),              # count differs from transcripts
        ([0, 2, 3], [[1.0], [1.0], [1.0]]),    # gap in indices
        ([0, 1, 2], [[1.0], [], [1.0]]),       # empty vector
        ([0, 1, 2], [[1.0], [1.0, 2.0], [1.0]]),  # mixed dimensions
    ])
    async def test_integrity_errors(self, store, make_embedding, indices, vectors):
        """Test invalid batches are rejected before anything is written."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 3)
        rows = [make_embedding(meeting.id, i, v) for i, v in zip(indices, vectors)]

        with pytest.raises(EmbeddingIntegrityError):
            await store.store_meeting_embeddings(meeting.id, rows)

        assert await store.vector_store.count_meeting_embeddings(meeting.id) == 0
        assert (await store.get_meeting(meeting.id)).has_embeddings is False

    @pytest.mark.asyncio
    async def test_rows_for_meeting_without_transcripts_rejected(self, store, make_embedding):
        """Test a meeting with no transcript lines accepts no embedding rows."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 0)

        with pytest.raises(EmbeddingIntegrityError):
            await store.store_meeting_embeddings(meeting.id, [make_embedding(meeting.id, 0, [1.0])])

        loaded = await store.get_meeting(meeting.id)
        assert loaded.transcript_count == 0
        assert loaded.has_embeddings is False
        assert await store.vector_store.count_meeting_embeddings(meeting.id) == 0

    @pytest.mark.asyncio
    async def test_foreign_row_rejected(self, store, make_embedding):
        """Test rows belonging to another meeting are rejected."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 1)

        with pytest.raises(EmbeddingIntegrityError):
            await store.store_meeting_embeddings(meeting.id, [make_embedding("other", 0, [1.0])])

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back(self, store, make_embedding):
        """Test a failure after the vector write leaves no rows and no flag."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 2)
        store.metadata_db.mark_embeddings_ready = AsyncMock(side_effect=RuntimeError("database is locked"))

        with pytest.raises(StoreUnavailable):
            await store.store_meeting_embeddings(
                meeting.id, [make_embedding(meeting.id, i, [1.0, 0.0]) for i in range(2)]
            )

        loaded = await store.get_meeting(meeting.id)
        assert loaded.has_embeddings is False
        assert "database is locked" in loaded.embedding_error
        assert await store.vector_store.count_meeting_embeddings(meeting.id) == 0
        assert await store.check_consistency(meeting.id) is True

    @pytest.mark.asyncio
    async def test_regeneration_replaces_rows(self, store, make_embedding):
        """Test writing a meeting twice leaves exactly one set."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 2)
        rows = [make_embedding(meeting.id, i, [1.0, 0.0]) for i in range(2)]

        await store.store_meeting_embeddings(meeting.id, rows)
        await store.store_meeting_embeddings(meeting.id, rows)

        assert await store.vector_store.count_meeting_embeddings(meeting.id) == 2
        assert await store.check_consistency(meeting.id) is True

    @pytest.mark.asyncio
    async def test_empty_meeting_stays_unflagged(self, store):
        """Test a meeting without transcripts stores nothing and stays unflagged."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 0)

        assert await store.store_meeting_embeddings(meeting.id, []) == 0
        assert (await store.get_meeting(meeting.id)).has_embeddings is False


class TestAdministration:
    """Test deletion, consistency checks and coverage."""

    @pytest.mark.asyncio
    async def test_delete_meeting_cascades(self, store, make_embedding):
        """Test deleting a meeting removes metadata, transcripts and embeddings."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 2)
        await store.store_meeting_embeddings(
            meeting.id, [make_embedding(meeting.id, i, [1.0, 0.0]) for i in range(2)]
        )

        await store.delete_meeting(meeting.id)

        assert await store.get_meeting(meeting.id) is None
        assert await store.get_transcripts(meeting.id) == []
        assert await store.vector_store.count_meeting_embeddings(meeting.id) == 0
        with pytest.raises(MeetingNotFound):
            await store.delete_meeting(meeting.id)

    @pytest.mark.asyncio
    async def test_check_consistency_detects_orphans(self, store, make_embedding):
        """Test rows without the flag are reported as inconsistent."""
        room = await store.metadata_db.create_room("standup-alpha")
        meeting = await _meeting_with_lines(store, room.id, 1)
        await store.vector_store.replace_meeting_embeddings(
            meeting.id, [make_embedding(meeting.id, 0, [1.0])]
        )

        assert await store.check_consistency(meeting.id) is False

    @pytest.mark.asyncio
    async def test_embedding_coverage(self, store, make_embedding):
        """Test coverage totals and inconsistent meetings for a room."""
        room = await store.metadata_db.create_room("standup-alpha")
        done = await _meeting_with_lines(store, room.id, 2, days_ago=1)
        await _meeting_with_lines(store, room.id, 2, days_ago=2)
        orphaned = await _meeting_with_lines(store, room.id, 1, days_ago=3)
        await store.store_meeting_embeddings(
            done.id, [make_embedding(done.id, i, [1.0, 0.0]) for i in range(2)]
        )
        await store.vector_store.replace_meeting_embeddings(
            orphaned.id, [make_embedding(orphaned.id, 0, [1.0, 0.0])]
        )

        coverage = await store.embedding_coverage("standup-alpha")

        assert coverage.total_meetings == 3
        assert coverage.meetings_with_embeddings == 1
        assert coverage.total_transcripts == 5
        assert coverage.embedded_transcripts == 3
        assert coverage.inconsistent_meetings == [orphaned.id]
