"""Context retrieval components.

This package provides:
- Tiered storage of meeting metadata and transcript embeddings
- Query embedding, classification and similarity ranking
- Retrieval of live and historical context for a question
- Context formatting and per-room conversation history
"""

from meeting_context.memory.models import (
    ContextLine,
    ConversationTurn,
    Degradation,
    EmbeddingCoverage,
    QueryStrategy,
    RankedContextLine,
    RetrievalResult,
    RoomStats,
    ScoredCandidate,
    TurnRole,
)
from meeting_context.memory.classifier import KeywordQueryClassifier, QueryClassifier
from meeting_context.memory.ranker import SimilarityRanker, cosine_similarity
from meeting_context.memory.embedding_service import EmbeddingGateway
from meeting_context.memory.vector_store import TranscriptEmbeddingStore
from meeting_context.memory.tiered_store import TieredStore
from meeting_context.memory.retrieval import ContextRetriever, parse_live_transcript
from meeting_context.memory.context_assembler import ContextAssembler
from meeting_context.memory.session_store import ConversationSessionStore

__all__ = [
    "ContextLine",
    "ConversationTurn",
    "Degradation",
    "EmbeddingCoverage",
    "QueryStrategy",
    "RankedContextLine",
    "RetrievalResult",
    "RoomStats",
    "ScoredCandidate",
    "TurnRole",
    "KeywordQueryClassifier",
    "QueryClassifier",
    "SimilarityRanker",
    "cosine_similarity",
    "EmbeddingGateway",
    "TranscriptEmbeddingStore",
    "TieredStore",
    "ContextRetriever",
    "parse_live_transcript",
    "ContextAssembler",
    "ConversationSessionStore",
]
