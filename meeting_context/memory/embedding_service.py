"""Embedding gateway for transcript and query text.

Vectors come from an Ollama embedding model (nomic-embed-text by default).
Every provider failure, timeout or unusable response surfaces as
``EmbeddingUnavailable`` so retrieval can degrade instead of failing.
"""

import asyncio
import math
from typing import Any, List, Optional

import httpx
import ollama
from ollama import AsyncClient
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from meeting_context.core.errors import EmbeddingUnavailable
from meeting_context.core.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_ERRORS = (httpx.TransportError, ConnectionError)


class EmbeddingGateway:
    """Client for the external embedding provider.

    Features:
    - Single and batch embedding through one provider call per batch
    - Bounded retry of transient transport errors
    - A timeout on every call
    - Optional L2 normalization
    """

    def __init__(
        self,
        model: str = "nomic-embed-text",
        base_url: str = "http://localhost:11434",
        timeout_seconds: float = 15.0,
        max_retries: int = 2,
        batch_size: int = 100,
        max_chars: int = 32768,
        normalize: bool = False,
        client: Optional[Any] = None,
    ):
        """Initialize the gateway.

        Args:
            model: Ollama embedding model to use
            base_url: Ollama server URL
            timeout_seconds: Upper bound for one provider call, retries included
            max_retries: Attempts for transient transport errors
            batch_size: Texts per provider call in ``embed_batch``
            max_chars: Texts longer than this are truncated
            normalize: Whether to normalize embeddings to unit length
            client: Optional pre-built ``ollama.AsyncClient``
        """
        self.model = model
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.batch_size = batch_size
        self.max_chars = max_chars
        self.normalize = normalize
        self.client = client or AsyncClient(host=base_url)

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is empty or whitespace-only
            EmbeddingUnavailable: If the provider fails or times out
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        vectors = await self._call_provider([self._truncate_text(text)])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts, ``batch_size`` per provider call.

        Args:
            texts: Texts to embed, none of them blank

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []

        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise ValueError(f"Text at position {i} cannot be empty")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            chunk = [self._truncate_text(t) for t in texts[start:start + self.batch_size]]
            vectors.extend(await self._call_provider(chunk))

        logger.info("batch_embeddings_generated", model=self.model, count=len(vectors))
        return vectors

    async def _call_provider(self, inputs: List[str]) -> List[List[float]]:
        try:
            response = await asyncio.wait_for(
                self._embed_with_retry(inputs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("embedding_timeout", model=self.model, timeout=self.timeout_seconds)
            raise EmbeddingUnavailable(f"timed out after {self.timeout_seconds}s")
        except ollama.ResponseError as e:
            logger.warning("embedding_provider_error", model=self.model, status=e.status_code, error=e.error)
            raise EmbeddingUnavailable(f"provider error {e.status_code}: {e.error}") from e
        except (httpx.HTTPError, ConnectionError) as e:
            logger.warning("embedding_provider_unreachable", model=self.model, error=str(e))
            raise EmbeddingUnavailable(f"provider unreachable: {e}") from e

        embeddings = response["embeddings"] if response is not None else None
        if not embeddings or len(embeddings) != len(inputs):
            got = len(embeddings) if embeddings else 0
            raise EmbeddingUnavailable(f"expected {len(inputs)} embeddings, got {got}")

        vectors = []
        for embedding in embeddings:
            vector = [float(x) for x in embedding]
            if not vector:
                raise EmbeddingUnavailable("provider returned an empty vector")
            if self.normalize:
                vector = self._normalize_embedding(vector)
            vectors.append(vector)
        return vectors

    async def _embed_with_retry(self, inputs: List[str]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                return await self.client.embed(model=self.model, input=inputs)

    def _truncate_text(self, text: str) -> str:
        """Truncate text to ``max_chars``."""
        if len(text) <= self.max_chars:
            return text
        return text[:self.max_chars]

    def _normalize_embedding(self, embedding: List[float]) -> List[float]:
        """Normalize embedding to unit length (L2 normalization).

        Args:
            embedding: Vector to normalize

        Returns:
            Normalized vector
        """
        norm = math.sqrt(sum(x**2 for x in embedding))

        if norm == 0:
            return embedding

        return [x / norm for x in embedding]
