"""Vector tier for transcript embeddings.

One ChromaDB record per transcript line, keyed ``"<meeting_id>:<index>"``,
with provenance (speaker, timestamp, meeting type and date) in metadata.
ChromaDB calls are blocking, so they run in a worker thread.
"""

import asyncio
from typing import Any, List, Optional

import chromadb
from chromadb.config import Settings

from meeting_context.core.logging import get_logger
from meeting_context.models.meeting import TranscriptEmbedding

logger = get_logger(__name__)


class TranscriptEmbeddingStore:
    """ChromaDB-backed store for transcript embeddings.

    Features:
    - Persistent vector storage with ChromaDB
    - Per-meeting replace and delete
    - Ordered retrieval of a meeting's embedding rows
    """

    def __init__(
        self,
        collection_name: str = "transcript_embeddings",
        persist_directory: str = "./data/chroma",
        client: Optional[Any] = None,
    ):
        """Initialize the embedding store.

        Args:
            collection_name: Name of the ChromaDB collection
            persist_directory: Directory for persistent storage
            client: Optional pre-built ChromaDB client
        """
        self.collection_name = collection_name
        self.persist_directory = persist_directory

        self.client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=Settings(
                anonymized_telemetry=False,
                allow_reset=True,
            ),
        )

        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def replace_meeting_embeddings(
        self, meeting_id: str, rows: List[TranscriptEmbedding]
    ) -> None:
        """Replace every embedding row of a meeting.

        Args:
            meeting_id: Meeting whose rows are replaced
            rows: New rows (may be empty, which just clears the meeting)
        """
        await asyncio.to_thread(self.collection.delete, where={"meeting_id": meeting_id})

        if not rows:
            return

        await asyncio.to_thread(
            self.collection.add,
            ids=[row.record_id for row in rows],
            embeddings=[row.vector for row in rows],
            documents=[row.text for row in rows],
            metadatas=[row.to_vector_metadata() for row in rows],
        )
        logger.debug("meeting_embeddings_replaced", meeting_id=meeting_id, count=len(rows))

    async def get_meeting_embeddings(self, meeting_id: str) -> List[TranscriptEmbedding]:
        """Get a meeting's embedding rows in transcript order.

        Args:
            meeting_id: Meeting identifier

        Returns:
            Rows sorted by transcript index
        """
        result = await asyncio.to_thread(
            self.collection.get,
            where={"meeting_id": meeting_id},
            include=["embeddings", "documents", "metadatas"],
        )

        if not result["ids"]:
            return []

        rows = [
            TranscriptEmbedding.from_vector_record(
                document=result["documents"][i],
                metadata=result["metadatas"][i],
                vector=result["embeddings"][i],
            )
            for i in range(len(result["ids"]))
        ]
        rows.sort(key=lambda row: row.transcript_index)
        return rows

    async def count_meeting_embeddings(self, meeting_id: str) -> int:
        """Count a meeting's embedding rows without loading vectors."""
        result = await asyncio.to_thread(
            self.collection.get,
            where={"meeting_id": meeting_id},
            include=["metadatas"],
        )
        return len(result["ids"])

    async def delete_meeting_embeddings(self, meeting_id: str) -> None:
        """Delete every embedding row of a meeting."""
        await asyncio.to_thread(self.collection.delete, where={"meeting_id": meeting_id})
        logger.debug("meeting_embeddings_deleted", meeting_id=meeting_id)

    async def count(self) -> int:
        """Total number of embedding rows in the collection."""
        return await asyncio.to_thread(self.collection.count)
