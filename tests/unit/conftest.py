"""Shared fixtures for unit tests."""

import os
import shutil
import tempfile
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from meeting_context.core.errors import RoomNotFound
from meeting_context.models.meeting import MeetingMetadata, MeetingRoom, TranscriptEmbedding

BASE_TIME = datetime(2025, 3, 3, 9, 0, 0)


@pytest.fixture
def temp_chroma_dir():
    """Create a temporary directory for ChromaDB, clean up after test."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    if os.path.exists(temp_dir):
        shutil.rmtree(temp_dir)


@pytest.fixture
def make_meeting():
    """Factory for meeting metadata."""

    def _make(
        meeting_id: str = "m1",
        room_id: str = "room-1",
        meeting_type: str = "Daily Standup",
        days_ago: int = 1,
        transcript_count: int = 0,
        has_embeddings: bool = False,
        participants: Optional[List[str]] = None,
        summary: Optional[str] = None,
        title: Optional[str] = None,
    ) -> MeetingMetadata:
        return MeetingMetadata(
            id=meeting_id,
            room_id=room_id,
            type=meeting_type,
            title=title,
            started_at=BASE_TIME - timedelta(days=days_ago),
            participant_names=participants or [],
            transcript_count=transcript_count,
            has_embeddings=has_embeddings,
            summary=summary,
        )

    return _make


@pytest.fixture
def make_embedding():
    """Factory for transcript embedding rows."""

    def _make(
        meeting_id: str,
        index: int,
        vector: List[float],
        speaker: str = "Alice",
        text: Optional[str] = None,
        minutes: Optional[int] = None,
        room_id: str = "room-1",
    ) -> TranscriptEmbedding:
        return TranscriptEmbedding(
            meeting_id=meeting_id,
            room_id=room_id,
            transcript_index=index,
            speaker=speaker,
            text=text or f"line {index} of {meeting_id}",
            timestamp=BASE_TIME + timedelta(minutes=minutes if minutes is not None else index),
            meeting_type="Daily Standup",
            vector=vector,
        )

    return _make


class FakeTieredStore:
    """In-memory stand-in for TieredStore used by retrieval tests."""

    def __init__(
        self,
        rooms: Optional[Dict[str, MeetingRoom]] = None,
        meetings: Optional[Dict[str, List[MeetingMetadata]]] = None,
        embeddings: Optional[Dict[str, List[TranscriptEmbedding]]] = None,
    ):
        self.rooms = rooms or {}
        self.meetings = meetings or {}
        self.embeddings = embeddings or {}
        self.fetch_failures = []
        self.list_limits: List[int] = []
        self.fetched_meeting_ids: List[str] = []

    async def get_room(self, room_name: str) -> MeetingRoom:
        if room_name not in self.rooms:
            raise RoomNotFound(room_name)
        return self.rooms[room_name]

    async def list_candidate_meetings(self, room_id: str, limit: int) -> List[MeetingMetadata]:
        self.list_limits.append(limit)
        ordered = sorted(self.meetings.get(room_id, []), key=lambda m: m.started_at, reverse=True)
        return ordered[:limit]

    async def fetch_embeddings(self, meetings) -> Tuple[list, list]:
        rows = []
        for meeting in meetings:
            if not meeting.has_embeddings:
                continue
            self.fetched_meeting_ids.append(meeting.id)
            rows.extend((row, meeting) for row in self.embeddings.get(meeting.id, []))
        return rows, list(self.fetch_failures)


@pytest.fixture
def room():
    return MeetingRoom(id="room-1", room_name="standup-alpha", title="Standup Alpha")


@pytest.fixture
def fake_store(room):
    return FakeTieredStore(rooms={room.room_name: room})


@pytest.fixture
def gateway():
    """Embedding gateway mock returning a fixed query vector."""
    mock = AsyncMock()
    mock.embed = AsyncMock(return_value=[1.0, 0.0])
    return mock
