"""SQLite metadata tier for meeting rooms, meetings and transcripts."""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiosqlite
from ulid import ULID

from meeting_context.core.errors import MeetingNotFound
from meeting_context.core.logging import get_logger
from meeting_context.models.meeting import MeetingMetadata, MeetingRoom, TranscriptEntry

logger = get_logger(__name__)


class SQLiteManager:
    """Manage the meeting metadata tables.

    Rows are mapped to typed records on the way out; callers never see
    ``aiosqlite.Row`` objects.
    """

    def __init__(self, db_path: str = "./data/meeting_context.db"):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file, or ':memory:'
        """
        self.db_path = db_path
        # For in-memory databases, maintain a persistent connection
        self._is_memory = (db_path == ":memory:")
        self._conn = None
        self._initialized = False
        self._write_lock = asyncio.Lock()
        self._ensure_db_directory()

    def _ensure_db_directory(self):
        """Ensure database directory exists."""
        if not self._is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Initialize database with schema."""
        if self._initialized:
            return

        schema_path = Path(__file__).parent / "schema.sql"

        if self._is_memory:
            self._conn = await aiosqlite.connect(self.db_path)
            db = self._conn
        else:
            db = await aiosqlite.connect(self.db_path)

        try:
            with open(schema_path, 'r') as f:
                schema_sql = f.read()

            await db.executescript(schema_sql)
            await db.commit()
        finally:
            if not self._is_memory:
                await db.close()

        self._initialized = True
        logger.info("database_initialized", path=self.db_path)

    async def close(self):
        """Close database connection (mainly for in-memory databases)."""
        if self._conn:
            await self._conn.close()
            self._conn = None
        self._initialized = False

    @asynccontextmanager
    async def _get_connection(self):
        """Get database connection as async context manager.

        For in-memory databases, yields the persistent connection.
        For file-based databases, creates a new connection and closes it when done.
        """
        if self._is_memory:
            if not self._conn:
                raise RuntimeError("Database not initialized. Call initialize() first.")
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute("PRAGMA foreign_keys = ON")
            yield self._conn
        else:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                await db.execute("PRAGMA foreign_keys = ON")
                yield db

    @staticmethod
    def generate_identifier() -> str:
        """Generate a time-ordered identifier for rooms and meetings."""
        return str(ULID())

    # =========================================================================
    # Room Operations
    # =========================================================================

    async def create_room(self, room_name: str, title: Optional[str] = None) -> MeetingRoom:
        """Create a meeting room.

        Args:
            room_name: Unique human-readable room name
            title: Optional display title

        Returns:
            The created room
        """
        room = MeetingRoom(id=self.generate_identifier(), room_name=room_name, title=title)
        async with self._write_lock:
            async with self._get_connection() as db:
                await db.execute(
                    "INSERT INTO meeting_rooms (id, room_name, title, created_at) VALUES (?, ?, ?, ?)",
                    (room.id, room.room_name, room.title, room.created_at.isoformat())
                )
                await db.commit()

        logger.info("room_created", room_id=room.id, room_name=room_name)
        return room

    async def get_room_by_name(self, room_name: str) -> Optional[MeetingRoom]:
        """Resolve a room by its name."""
        async with self._get_connection() as db:
            async with db.execute(
                "SELECT * FROM meeting_rooms WHERE room_name = ?", (room_name,)
            ) as cursor:
                row = await cursor.fetchone()
                return MeetingRoom.from_row(row) if row else None

    async def list_rooms(self) -> List[MeetingRoom]:
        """List all rooms by name."""
        async with self._get_connection() as db:
            async with db.execute("SELECT * FROM meeting_rooms ORDER BY room_name") as cursor:
                rows = await cursor.fetchall()
                return [MeetingRoom.from_row(row) for row in rows]

    # =========================================================================
    # Meeting Operations
    # =========================================================================

    async def create_meeting(
        self,
        room_id: str,
        meeting_type: str,
        started_at: Optional[datetime] = None,
        title: Optional[str] = None,
        participant_names: Optional[List[str]] = None,
    ) -> MeetingMetadata:
        """Start a meeting session in a room.

        Args:
            room_id: Owning room
            meeting_type: Free-text meeting label
            started_at: Session start (defaults to now)
            title: Optional meeting title
            participant_names: Participants in join order

        Returns:
            The created meeting metadata
        """
        meeting = MeetingMetadata(
            id=self.generate_identifier(),
            room_id=room_id,
            type=meeting_type,
            title=title,
            started_at=started_at or datetime.now(),
            participant_names=participant_names or [],
        )
        async with self._write_lock:
            async with self._get_connection() as db:
                await db.execute(
                    """INSERT INTO meetings (
                        id, room_id, type, title, started_at, participant_names
                    ) VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        meeting.id, meeting.room_id, meeting.type, meeting.title,
                        meeting.started_at.isoformat(),
                        json.dumps(meeting.participant_names),
                    )
                )
                await db.commit()

        logger.info("meeting_created", meeting_id=meeting.id, room_id=room_id, type=meeting_type)
        return meeting

    async def get_meeting(self, meeting_id: str) -> Optional[MeetingMetadata]:
        """Get meeting metadata by id."""
        async with self._get_connection() as db:
            async with db.execute(
                "SELECT * FROM meetings WHERE id = ?", (meeting_id,)
            ) as cursor:
                row = await cursor.fetchone()
                return MeetingMetadata.from_row(row) if row else None

    async def list_meetings_for_room(self, room_id: str, limit: int) -> List[MeetingMetadata]:
        """List a room's meetings, most recent start first.

        Args:
            room_id: Room identifier
            limit: Maximum number of meetings to return

        Returns:
            Meetings ordered by ``started_at`` descending
        """
        async with self._get_connection() as db:
            async with db.execute(
                """SELECT * FROM meetings
                   WHERE room_id = ?
                   ORDER BY started_at DESC, id DESC
                   LIMIT ?""",
                (room_id, limit)
            ) as cursor:
                rows = await cursor.fetchall()
                return [MeetingMetadata.from_row(row) for row in rows]

    async def end_meeting(self, meeting_id: str, ended_at: Optional[datetime] = None):
        """Record the end of a meeting session."""
        await self._update_meeting(
            meeting_id,
            "UPDATE meetings SET ended_at = ? WHERE id = ?",
            ((ended_at or datetime.now()).isoformat(), meeting_id),
        )

    async def set_summary(self, meeting_id: str, summary: str):
        """Attach post-meeting summary text."""
        await self._update_meeting(
            meeting_id,
            "UPDATE meetings SET summary = ? WHERE id = ?",
            (summary, meeting_id),
        )

    async def mark_embeddings_pending(self, meeting_id: str):
        """Clear the embeddings flag before a write starts."""
        await self._update_meeting(
            meeting_id,
            "UPDATE meetings SET has_embeddings = 0, embedding_error = NULL WHERE id = ?",
            (meeting_id,),
        )

    async def mark_embeddings_ready(self, meeting_id: str, transcript_count: int):
        """Set the embeddings flag once every transcript line has a vector row."""
        await self._update_meeting(
            meeting_id,
            """UPDATE meetings
               SET has_embeddings = 1,
                   transcript_count = ?,
                   embeddings_generated_at = ?,
                   embedding_error = NULL
               WHERE id = ?""",
            (transcript_count, datetime.now().isoformat(), meeting_id),
        )

    async def mark_embeddings_failed(self, meeting_id: str, error: str):
        """Clear the embeddings flag and record the failure reason."""
        await self._update_meeting(
            meeting_id,
            "UPDATE meetings SET has_embeddings = 0, embedding_error = ? WHERE id = ?",
            (error, meeting_id),
        )

    async def delete_meeting(self, meeting_id: str) -> bool:
        """Delete a meeting and (by cascade) its transcripts.

        Returns:
            True if a meeting row was deleted
        """
        async with self._write_lock:
            async with self._get_connection() as db:
                cursor = await db.execute("DELETE FROM meetings WHERE id = ?", (meeting_id,))
                deleted = cursor.rowcount
                await db.commit()

        if deleted:
            logger.info("meeting_deleted", meeting_id=meeting_id)
        return bool(deleted)

    async def _update_meeting(self, meeting_id: str, sql: str, params: tuple):
        async with self._write_lock:
            async with self._get_connection() as db:
                cursor = await db.execute(sql, params)
                updated = cursor.rowcount
                await db.commit()
        if not updated:
            raise MeetingNotFound(meeting_id)

    # =========================================================================
    # Transcript Operations
    # =========================================================================

    async def append_transcript(self, meeting_id: str, entry: TranscriptEntry) -> int:
        """Append a finalized transcript line to a meeting.

        Lines are immutable once written, and a meeting whose embedding set is
        complete does not accept new lines (the set would no longer cover
        every transcript).

        Args:
            meeting_id: Owning meeting
            entry: Transcript line

        Returns:
            Index assigned to the line
        """
        async with self._write_lock:
            async with self._get_connection() as db:
                async with db.execute(
                    "SELECT transcript_count, has_embeddings FROM meetings WHERE id = ?",
                    (meeting_id,)
                ) as cursor:
                    row = await cursor.fetchone()
                if not row:
                    raise MeetingNotFound(meeting_id)
                if row["has_embeddings"]:
                    raise ValueError(
                        f"Meeting {meeting_id} already has embeddings; transcript is closed"
                    )

                index = row["transcript_count"]
                await db.execute(
                    """INSERT INTO transcripts (
                        meeting_id, transcript_index, speaker, text, timestamp, speaker_confidence
                    ) VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        meeting_id, index, entry.speaker, entry.text,
                        entry.timestamp.isoformat(), entry.speaker_confidence,
                    )
                )
                await db.execute(
                    "UPDATE meetings SET transcript_count = transcript_count + 1 WHERE id = ?",
                    (meeting_id,)
                )
                await db.commit()

        return index

    async def get_transcripts(self, meeting_id: str) -> List[TranscriptEntry]:
        """Get a meeting's transcript lines in index order."""
        async with self._get_connection() as db:
            async with db.execute(
                """SELECT * FROM transcripts
                   WHERE meeting_id = ?
                   ORDER BY transcript_index""",
                (meeting_id,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [TranscriptEntry.from_row(row) for row in rows]
