"""
Meeting context service

In-process API used by the answering-model layer: context retrieval, room
statistics, prompt context, embedding generation for finished meetings and
per-room conversation history.
"""

import asyncio
from typing import Any, Dict, List, Optional

from meeting_context.core.config import Settings, get_settings
from meeting_context.core.errors import (
    EmbeddingIntegrityError,
    EmbeddingUnavailable,
    MeetingNotFound,
    StoreUnavailable,
)
from meeting_context.core.logging import get_logger, log_exception, setup_logging
from meeting_context.database.sqlite_manager import SQLiteManager
from meeting_context.memory.classifier import KeywordQueryClassifier
from meeting_context.memory.context_assembler import ContextAssembler
from meeting_context.memory.embedding_service import EmbeddingGateway
from meeting_context.memory.models import (
    ConversationTurn,
    EmbeddingCoverage,
    RetrievalResult,
    TurnRole,
)
from meeting_context.memory.ranker import SimilarityRanker
from meeting_context.memory.retrieval import ContextRetriever
from meeting_context.memory.session_store import ConversationSessionStore
from meeting_context.memory.tiered_store import TieredStore
from meeting_context.memory.vector_store import TranscriptEmbeddingStore
from meeting_context.models.meeting import TranscriptEmbedding

logger = get_logger(__name__)


class MeetingContextService:
    """
    Context engine facade for one process.

    All collaborators are passed in; use ``create_context_service`` to wire
    them from settings.
    """

    def __init__(
        self,
        store: TieredStore,
        gateway: EmbeddingGateway,
        retriever: ContextRetriever,
        assembler: ContextAssembler,
        sessions: ConversationSessionStore,
    ):
        self.store = store
        self.gateway = gateway
        self.retriever = retriever
        self.assembler = assembler
        self.sessions = sessions

    async def initialize(self):
        await self.store.initialize()
        logger.info("context_service_initialized")

    async def close(self):
        await self.store.close()

    # =========================================================================
    # Retrieval
    # =========================================================================

    async def retrieve(
        self,
        room_name: str,
        query: str,
        live_transcript: Optional[str] = None,
        is_live: bool = False,
    ) -> RetrievalResult:
        return await self.retriever.retrieve(room_name, query, live_transcript, is_live)

    async def retrieve_context(
        self,
        room_name: str,
        query: str,
        live_transcript: Optional[str] = None,
        is_live: bool = False,
    ) -> Dict[str, Any]:
        """Retrieve context as a plain dictionary.

        Keys: ``live_context``, ``historical_context``, ``used_context``,
        ``total_count``, ``strategy`` and ``degraded`` (stages that failed).
        """
        result = await self.retrieve(room_name, query, live_transcript, is_live)
        return result.to_dict()

    async def get_room_stats(self, room_name: str) -> Dict[str, Any]:
        stats = await self.assembler.room_stats(room_name)
        return stats.to_dict()

    async def build_prompt_context(
        self,
        room_name: str,
        query: str,
        live_transcript: Optional[str] = None,
        is_live: bool = False,
    ) -> str:
        """Retrieve and format the context block for the answering model.

        Room statistics are gathered alongside retrieval and rendered as a
        ROOM CONTEXT section ahead of the transcript sections.
        """
        result, stats = await asyncio.gather(
            self.retrieve(room_name, query, live_transcript, is_live),
            self.assembler.room_stats(room_name),
        )
        return self.assembler.format_context(result, stats, room_name)

    # =========================================================================
    # Embedding Write Path
    # =========================================================================

    async def generate_meeting_embeddings(self, meeting_id: str) -> int:
        """Embed every transcript line of a finished meeting and store the set.

        Each line is embedded as ``"speaker: text"``. A meeting with no
        transcripts stores nothing and keeps ``has_embeddings`` false.

        Returns:
            Number of embedding rows stored

        Raises:
            MeetingNotFound: If the meeting does not exist
            EmbeddingUnavailable: If the provider fails (the meeting is marked failed)
            StoreUnavailable: If a store call fails
        """
        meeting = await self.store.get_meeting(meeting_id)
        if meeting is None:
            raise MeetingNotFound(meeting_id)

        meeting_log = get_logger(__name__, meeting_id=meeting_id, room_id=meeting.room_id)
        transcripts = await self.store.get_transcripts(meeting_id)
        if not transcripts:
            meeting_log.info("meeting_has_no_transcripts")
            return await self.store.store_meeting_embeddings(meeting_id, [])

        texts = [f"{entry.speaker}: {entry.text}" for entry in transcripts]
        meeting_log.info("meeting_embedding_started", transcripts=len(texts))
        try:
            vectors = await self.gateway.embed_batch(texts)
        except EmbeddingUnavailable as e:
            await self.store.mark_embedding_failure(meeting_id, str(e))
            raise

        rows = [
            TranscriptEmbedding(
                meeting_id=meeting.id,
                room_id=meeting.room_id,
                transcript_index=index,
                speaker=entry.speaker,
                text=entry.text,
                timestamp=entry.timestamp,
                meeting_type=meeting.type,
                meeting_date=meeting.started_at,
                vector=vector,
            )
            for index, (entry, vector) in enumerate(zip(transcripts, vectors))
        ]
        return await self.store.store_meeting_embeddings(meeting_id, rows)

    async def backfill_embeddings(
        self,
        room_names: Optional[List[str]] = None,
        meetings_per_room: int = 100,
    ) -> Dict[str, int]:
        """Generate embeddings for meetings that have transcripts but no embeddings.

        A meeting that fails is recorded as failed and skipped; the run
        continues with the next one.

        Args:
            room_names: Rooms to process (all rooms by default)
            meetings_per_room: Most recent meetings considered per room

        Returns:
            Counts of rooms, meetings and transcripts processed, and failures
        """
        if room_names is None:
            rooms = await self.store.list_rooms()
        else:
            rooms = [await self.store.get_room(name) for name in room_names]

        stats = {"rooms": len(rooms), "meetings": 0, "transcripts": 0, "failed": 0}
        for room in rooms:
            meetings = await self.store.list_candidate_meetings(room.id, meetings_per_room)
            for meeting in meetings:
                if meeting.transcript_count == 0 or meeting.has_embeddings:
                    continue
                try:
                    count = await self.generate_meeting_embeddings(meeting.id)
                except (EmbeddingUnavailable, StoreUnavailable, EmbeddingIntegrityError) as e:
                    log_exception(logger, "backfill_meeting_failed", e, meeting_id=meeting.id)
                    stats["failed"] += 1
                    continue
                stats["meetings"] += 1
                stats["transcripts"] += count

            logger.info("backfill_room_complete", room=room.room_name, meetings=len(meetings))

        logger.info("backfill_complete", **stats)
        return stats

    async def delete_meeting(self, meeting_id: str):
        await self.store.delete_meeting(meeting_id)

    async def embedding_coverage(self, room_name: str) -> EmbeddingCoverage:
        return await self.store.embedding_coverage(room_name)

    async def threshold_report(
        self, room_name: str, query: str, max_meetings: int = 20
    ) -> Dict[float, int]:
        """Count a room's embedding rows at or above each similarity threshold.

        Used to tune strategy thresholds against real meetings. Unlike
        ``retrieve``, failures propagate.
        """
        room = await self.store.get_room(room_name)
        meetings = await self.store.list_candidate_meetings(room.id, max_meetings)
        rows, failures = await self.store.fetch_embeddings(meetings)
        if failures:
            raise failures[0]

        query_vector = await self.gateway.embed(query)
        return self.retriever.ranker.threshold_sweep(
            query_vector, [(row.vector, row) for row, _ in rows]
        )

    # =========================================================================
    # Conversation History
    # =========================================================================

    async def record_turn(self, room_name: str, role: TurnRole, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, text=text)
        await self.sessions.append(room_name, turn)
        return turn

    def recent_turns(self, room_name: str, n: int = 10) -> List[ConversationTurn]:
        return self.sessions.recent(room_name, n)

    async def clear_conversation(self, room_name: str):
        await self.sessions.clear(room_name)


def create_context_service(
    settings: Optional[Settings] = None,
    configure_logging: bool = True,
) -> MeetingContextService:
    """Wire a context service from settings.

    Args:
        settings: Settings to use (process settings by default)
        configure_logging: Whether to apply the logging settings

    Returns:
        An uninitialized MeetingContextService; call ``initialize()`` before use
    """
    settings = settings or get_settings()

    if configure_logging:
        setup_logging(
            log_level=settings.app.log_level,
            json_format=settings.app.json_logs,
            log_file=settings.app.log_file,
            environment=settings.app.environment,
        )

    for message in settings.validate_all():
        logger.warning("settings_check", message=message)

    store = TieredStore(
        metadata_db=SQLiteManager(db_path=settings.store.sqlite_path),
        vector_store=TranscriptEmbeddingStore(
            collection_name=settings.store.embedding_collection,
            persist_directory=settings.store.chroma_directory,
        ),
        timeout_seconds=settings.store.timeout_seconds,
    )
    gateway = EmbeddingGateway(
        model=settings.embedding.model,
        base_url=settings.embedding.base_url,
        timeout_seconds=settings.embedding.timeout_seconds,
        max_retries=settings.embedding.max_retries,
        batch_size=settings.embedding.batch_size,
        max_chars=settings.embedding.max_chars,
        normalize=settings.embedding.normalize,
    )
    retriever = ContextRetriever(
        store=store,
        gateway=gateway,
        classifier=KeywordQueryClassifier(),
        ranker=SimilarityRanker(),
        config=settings.retrieval,
    )

    return MeetingContextService(
        store=store,
        gateway=gateway,
        retriever=retriever,
        assembler=ContextAssembler(store),
        sessions=ConversationSessionStore(max_turns=settings.session.max_turns),
    )
