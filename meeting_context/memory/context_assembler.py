"""Formatting of retrieval results and room statistics for the answering model."""

from collections import Counter
from typing import List, Optional

from meeting_context.core.errors import RetrievalError
from meeting_context.core.logging import get_logger
from meeting_context.memory.models import RetrievalResult, RoomStats
from meeting_context.memory.tiered_store import TieredStore

logger = get_logger(__name__)


class ContextAssembler:
    """Turns retrieval output into prompt text and computes room statistics."""

    def __init__(self, store: TieredStore, stats_window: int = 50, top_participants: int = 5):
        """Initialize the assembler.

        Args:
            store: Tiered store (metadata tier only is read)
            stats_window: Most recent meetings scanned by ``room_stats``
            top_participants: Number of frequent participants reported
        """
        self.store = store
        self.stats_window = stats_window
        self.top_participants = top_participants

    def format_context(
        self,
        result: RetrievalResult,
        stats: Optional[RoomStats] = None,
        room_name: Optional[str] = None,
    ) -> str:
        """Render a result as a context block.

        A ROOM CONTEXT section comes first when ``stats`` cover at least one
        meeting. Live lines keep their original order. Historical lines keep
        rank order and are annotated with the source meeting and a rounded
        similarity percentage.
        """
        sections: List[str] = []

        if stats is not None and stats.total_meetings > 0:
            sections.append(self._format_room_context(stats, room_name))

        if result.live_context:
            lines = ["CURRENT MEETING:", "(What was just said in the live meeting)"]
            lines.extend(f"{line.speaker}: {line.text}" for line in result.live_context)
            sections.append("\n".join(lines))

        if result.historical_context:
            lines = [
                "RELEVANT HISTORICAL CONTEXT:",
                "(Relevant excerpts from past meetings in this room)",
            ]
            for line in result.historical_context:
                label = line.meeting_label or line.meeting_type
                percent = int(round(line.similarity * 100))
                lines.append(f"[{label}] ({percent}% relevant) {line.speaker}: {line.text}")
            sections.append("\n".join(lines))

        return "\n\n".join(sections)

    @staticmethod
    def _format_room_context(stats: RoomStats, room_name: Optional[str]) -> str:
        lines = ["ROOM CONTEXT:"]
        if room_name:
            lines.append(f"Room: {room_name}")
        lines.append(f"Total meetings: {stats.total_meetings}")
        lines.append(f"Total transcripts: {stats.total_transcripts}")
        if stats.meeting_types:
            lines.append(f"Meeting types: {', '.join(stats.meeting_types)}")
        if stats.frequent_participants:
            lines.append(f"Frequent participants: {', '.join(stats.frequent_participants)}")
        return "\n".join(lines)

    async def room_stats(self, room_name: str) -> RoomStats:
        """Aggregate statistics over a room's recent meetings that have content.

        Meetings with neither transcripts nor a summary are excluded from
        every count. Only metadata is read.

        Returns:
            RoomStats, zeroed for an unknown room or a store failure
        """
        try:
            room = await self.store.get_room(room_name)
            meetings = await self.store.list_candidate_meetings(room.id, self.stats_window)
        except RetrievalError as e:
            logger.warning("room_stats_unavailable", room=room_name, stage=e.stage, error=str(e))
            return RoomStats()

        with_content = [m for m in meetings if m.has_content()]

        meeting_types: List[str] = []
        participants: Counter = Counter()
        for meeting in with_content:
            if meeting.type not in meeting_types:
                meeting_types.append(meeting.type)
            # A participant counts once per meeting
            participants.update(dict.fromkeys(meeting.participant_names, 1))

        return RoomStats(
            total_meetings=len(with_content),
            total_transcripts=sum(m.transcript_count for m in with_content),
            meeting_types=meeting_types,
            frequent_participants=[
                name for name, _ in participants.most_common(self.top_participants)
            ],
        )
