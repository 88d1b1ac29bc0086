"""Similarity search engine: query text in, ranked chunks with their documents out.

This module is the primary public interface for retrieval.  It composes an
embedding provider with any :class:`ChunkStore` so callers (the chat
endpoint, scripts, tests) never touch either directly.

Usage::

    from kiosk_rag.retrieval.retriever import SimilaritySearchEngine

    engine = SimilaritySearchEngine(store, embedder)
    for result in engine.search("Where can I get help with rent?"):
        print(result.short_ref(), result.similarity, result.content[:80])
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from kiosk_rag.retrieval.base import ChunkStore, validate_dimension
from kiosk_rag.retrieval.models import SearchResult

if TYPE_CHECKING:
    from kiosk_rag.ingestion.embedder import EmbeddingProvider

logger = logging.getLogger(__name__)


class SimilaritySearchEngine:
    """Cosine-similarity search over a :class:`ChunkStore`.

    Parameters
    ----------
    store:
        Backend holding the chunks.
    embedder:
        Provider used to embed query text.  Only needed for :meth:`search`.
    default_limit:
        Maximum number of results when the caller gives none.
    default_threshold:
        Minimum similarity when the caller gives none.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: EmbeddingProvider | None = None,
        *,
        default_limit: int = 5,
        default_threshold: float = 0.3,
    ) -> None:
        self._check_params(default_limit, default_threshold)
        self._store = store
        self._embedder = embedder
        self.default_limit = default_limit
        self.default_threshold = default_threshold

    @property
    def store(self) -> ChunkStore:
        return self._store

    # -- public API -----------------------------------------------------------

    def search_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Rank stored chunks against a pre-computed query vector.

        Returns
        -------
        list[SearchResult]
            At most *limit* results with ``similarity >= threshold``, best
            first.  An empty list means nothing relevant was found.

        Raises
        ------
        DimensionMismatchError
            If the query vector's length differs from the store's.
        ValueError
            If ``limit < 1`` or *threshold* lies outside ``[0, 1]``.
        """
        limit = self.default_limit if limit is None else limit
        threshold = self.default_threshold if threshold is None else threshold
        self._check_params(limit, threshold)
        vector = validate_dimension(embedding, self._store.dimension)

        results = self._store.search_by_similarity(vector, limit=limit, threshold=threshold)
        logger.debug("Similarity search returned %d result(s) (limit=%d, threshold=%.2f)", len(results), limit, threshold)
        return results

    def search(
        self,
        query: str,
        *,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Embed *query* and run :meth:`search_by_embedding`."""
        if self._embedder is None:
            raise RuntimeError("SimilaritySearchEngine.search needs an embedding provider")
        return self.search_by_embedding(self._embedder.embed_one(query), limit=limit, threshold=threshold)

    async def asearch(
        self,
        query: str,
        *,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Async :meth:`search`; the blocking store query runs in a worker thread."""
        if self._embedder is None:
            raise RuntimeError("SimilaritySearchEngine.search needs an embedding provider")
        vector = await self._embedder.aembed_one(query)
        return await asyncio.to_thread(self.search_by_embedding, vector, limit=limit, threshold=threshold)

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _check_params(limit: int, threshold: float) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
