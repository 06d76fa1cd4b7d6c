"""Context retrieval for meeting questions.

Given a room, a question and optionally the live transcript, decides which
live and historical transcript lines are relevant and returns them as a
``RetrievalResult``. Downstream failures never propagate: they are recorded
as degradations on the result, which then carries whatever context was
still available.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from meeting_context.core.config import RetrievalConfig
from meeting_context.core.errors import (
    EmbeddingUnavailable,
    InvalidTranscriptLine,
    RetrievalError,
    StoreUnavailable,
)
from meeting_context.core.logging import get_logger
from meeting_context.memory.classifier import KeywordQueryClassifier, QueryClassifier
from meeting_context.memory.embedding_service import EmbeddingGateway
from meeting_context.memory.models import (
    ContextLine,
    QueryStrategy,
    RankedContextLine,
    RetrievalResult,
    ScoredCandidate,
)
from meeting_context.memory.ranker import SimilarityRanker
from meeting_context.memory.tiered_store import TieredStore
from meeting_context.models.meeting import MeetingRoom

logger = get_logger(__name__)

LIVE_LINE_PATTERN = re.compile(r"^([^:]+):\s*(.+)$")


def _recency_key(timestamp: datetime) -> float:
    """Sortable instant for naive (treated as UTC) and aware timestamps alike."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.timestamp()


def parse_transcript_line(line: str, timestamp: Optional[datetime] = None) -> ContextLine:
    """Parse one ``speaker: text`` line.

    Raises:
        InvalidTranscriptLine: If the line does not have that shape or either
            part is blank
    """
    match = LIVE_LINE_PATTERN.match(line.strip())
    if not match:
        raise InvalidTranscriptLine(line)

    speaker = match.group(1).strip()
    text = match.group(2).strip()
    if not speaker or not text:
        raise InvalidTranscriptLine(line)

    return ContextLine(speaker=speaker, text=text, timestamp=timestamp or datetime.now())


def parse_live_transcript(text: str, timestamp: Optional[datetime] = None) -> List[ContextLine]:
    """Parse live transcript text into context lines, dropping malformed lines."""
    if not text:
        return []

    timestamp = timestamp or datetime.now()
    lines = []
    dropped = 0
    for raw in text.splitlines():
        if not raw.strip():
            continue
        try:
            lines.append(parse_transcript_line(raw, timestamp))
        except InvalidTranscriptLine:
            dropped += 1

    if dropped:
        logger.debug("live_lines_dropped", dropped=dropped, kept=len(lines))
    return lines


@dataclass(frozen=True)
class StrategyTunables:
    """Retrieval limits for one strategy."""

    max_meetings: int
    threshold: float
    result_cap: int
    recency_fallback: bool = False


def tunables_from_config(config: RetrievalConfig) -> Dict[QueryStrategy, StrategyTunables]:
    return {
        QueryStrategy.TARGETED: StrategyTunables(
            max_meetings=config.targeted_max_meetings,
            threshold=config.targeted_threshold,
            result_cap=config.targeted_result_cap,
        ),
        QueryStrategy.COMPREHENSIVE: StrategyTunables(
            max_meetings=config.comprehensive_max_meetings,
            threshold=config.comprehensive_threshold,
            result_cap=config.comprehensive_result_cap,
            recency_fallback=True,
        ),
    }


class ContextRetriever:
    """Assembles live and historical context for a question.

    Collaborators are injected so tests can pass fakes.

    Features:
    - Strategy selection through a pluggable classifier
    - Query embedding concurrent with the candidate-meeting fetch
    - Threshold and cap per strategy
    - Recency fallback merge for comprehensive questions
    """

    def __init__(
        self,
        store: TieredStore,
        gateway: EmbeddingGateway,
        classifier: Optional[QueryClassifier] = None,
        ranker: Optional[SimilarityRanker] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        """Initialize the retriever.

        Args:
            store: Tiered store for rooms, meetings and embedding rows
            gateway: Embedding gateway for the query
            classifier: Query classifier (keyword heuristic by default)
            ranker: Similarity ranker
            config: Strategy tunables
        """
        self.store = store
        self.gateway = gateway
        self.classifier = classifier or KeywordQueryClassifier()
        self.ranker = ranker or SimilarityRanker()
        self.config = config or RetrievalConfig()
        self.tunables = tunables_from_config(self.config)

    async def retrieve(
        self,
        room_name: str,
        query: str,
        live_transcript: Optional[str] = None,
        is_live: bool = False,
    ) -> RetrievalResult:
        """Retrieve context for a question asked in a room.

        Args:
            room_name: Room the question was asked in
            query: The question
            live_transcript: Current meeting transcript, one ``speaker: text`` per line
            is_live: Whether a meeting is in progress

        Returns:
            RetrievalResult; never raises for downstream failures
        """
        logger.info("context_retrieval_started", room=room_name, is_live=is_live)
        result = RetrievalResult()

        try:
            room = await self.store.get_room(room_name)
        except RetrievalError as e:
            logger.warning("context_room_unavailable", room=room_name, stage=e.stage, error=str(e))
            result.record(e)
            return result

        if is_live and live_transcript:
            result.live_context = parse_live_transcript(live_transcript)

        result.strategy = self.classifier.classify(query)
        tunables = self.tunables[result.strategy]

        embed_task = asyncio.create_task(self._embed_query(query))
        try:
            result.historical_context = await self._historical_context(
                room, tunables, embed_task, result
            )
        finally:
            if not embed_task.done():
                embed_task.cancel()
            elif not embed_task.cancelled():
                # Mark the exception retrieved when the result was never awaited
                embed_task.exception()

        logger.info(
            "context_retrieval_completed",
            room=room_name,
            strategy=result.strategy.value,
            live=len(result.live_context),
            historical=len(result.historical_context),
            degraded=[d.stage for d in result.degradations],
        )
        return result

    async def _embed_query(self, query: str) -> List[float]:
        if not query or not query.strip():
            raise EmbeddingUnavailable("query is empty")
        return await self.gateway.embed(query)

    async def _historical_context(
        self,
        room: MeetingRoom,
        tunables: StrategyTunables,
        embed_task: "asyncio.Task[List[float]]",
        result: RetrievalResult,
    ) -> List[RankedContextLine]:
        try:
            meetings = await self.store.list_candidate_meetings(room.id, tunables.max_meetings)
        except StoreUnavailable as e:
            result.record(e)
            return []

        embedded = [m for m in meetings if m.has_embeddings]
        if not embedded:
            logger.info("no_embedded_meetings", room=room.room_name, candidates=len(meetings))
            return []

        rows, failures = await self.store.fetch_embeddings(embedded)
        for failure in failures:
            result.record(failure)
        if not rows:
            return []

        try:
            query_vector = await embed_task
        except EmbeddingUnavailable as e:
            logger.warning("query_embedding_unavailable", room=room.room_name, error=str(e))
            result.record(e)
            return []

        candidates = [(row.vector, (row, meeting)) for row, meeting in rows]
        hits = self.ranker.top(query_vector, candidates, tunables.threshold, tunables.result_cap)
        lines = [self._to_line(c) for c in hits]

        if tunables.recency_fallback and len(lines) < self.config.fallback_trigger:
            lines = self._merge_recent(lines, self.ranker.rank(query_vector, candidates))

        return lines

    def _merge_recent(
        self, lines: List[RankedContextLine], ranked: List[ScoredCandidate]
    ) -> List[RankedContextLine]:
        """Top up similarity hits with the most recent rows, without duplicates."""
        cap = self.config.fallback_merged_cap
        merged: List[RankedContextLine] = []
        seen = set()
        for line in lines:
            if line.dedup_key not in seen:
                seen.add(line.dedup_key)
                merged.append(line)

        recent = sorted(ranked, key=lambda c: _recency_key(c.payload[0].timestamp), reverse=True)
        added = 0
        for candidate in recent[:self.config.fallback_recent_rows]:
            if len(merged) >= cap:
                break
            line = self._to_line(candidate)
            if line.dedup_key in seen:
                continue
            seen.add(line.dedup_key)
            merged.append(line)
            added += 1

        logger.debug("recency_fallback_merged", similarity_hits=len(lines), added=added)
        return merged[:cap]

    @staticmethod
    def _to_line(candidate: ScoredCandidate) -> RankedContextLine:
        row, meeting = candidate.payload
        return RankedContextLine(
            speaker=row.speaker,
            text=row.text,
            timestamp=row.timestamp,
            meeting_id=row.meeting_id,
            meeting_type=meeting.type,
            similarity=candidate.similarity,
            meeting_label=meeting.label,
            meeting_date=meeting.started_at,
        )
