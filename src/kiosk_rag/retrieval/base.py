"""Abstract base class for document/chunk store backends.

Adding a new backend only requires subclassing :class:`ChunkStore` and
implementing the abstract methods.  The ingestion pipeline and the search
engine are backend-agnostic and receive a store instance explicitly; there
is no process-wide store handle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from kiosk_rag.errors import DimensionMismatchError
from kiosk_rag.retrieval.models import Chunk, Document, SearchResult


def validate_dimension(vector: Sequence[float], dimension: int) -> list[float]:
    """Return *vector* as a ``list[float]`` or raise :class:`DimensionMismatchError`.

    Vectors are never truncated or padded.
    """
    if len(vector) != dimension:
        raise DimensionMismatchError(dimension, len(vector))
    return [float(x) for x in vector]


class ChunkStore(ABC):
    """Backend-agnostic document/chunk store with similarity search.

    Parameters
    ----------
    dimension:
        Exact length every stored or queried embedding must have.

    Stores are usable as context managers::

        with create_store() as store:
            store.search_by_similarity(vector, limit=5, threshold=0.3)
    """

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension

    # -- lifecycle ------------------------------------------------------------

    def open(self) -> None:
        """Acquire connections / create schema.  No-op by default."""

    def close(self) -> None:
        """Release connections.  No-op by default."""

    def __enter__(self) -> ChunkStore:
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- documents ------------------------------------------------------------

    @abstractmethod
    def find_document(self, title: str, source_url: str | None) -> Document | None:
        """Exact match on ``(title, source_url)``; ``None`` and ``""`` differ."""
        ...

    @abstractmethod
    def ensure_document(self, title: str, source_url: str | None) -> tuple[Document, bool]:
        """Return the document for this identity, creating it when absent.

        The flag is ``True`` only when this call inserted the document.
        Implementations enforce uniqueness at the storage layer: when a
        concurrent writer already created the identity, the existing
        document is returned with ``False`` instead of a duplicate.
        """
        ...

    def create_document(self, title: str, source_url: str | None) -> Document:
        """Create the document for this identity (or fetch it) and return it."""
        document, _ = self.ensure_document(title, source_url)
        return document

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """Delete a document and all its chunks.  Returns ``False`` when absent."""
        ...

    # -- chunks ---------------------------------------------------------------

    @abstractmethod
    def find_chunk(self, document_id: str, content: str) -> Chunk | None:
        """Exact content match within one document."""
        ...

    @abstractmethod
    def create_chunk(
        self,
        document_id: str,
        section_title: str | None,
        content: str,
        embedding: Sequence[float],
    ) -> Chunk:
        """Insert a new chunk.

        Raises
        ------
        DimensionMismatchError
            When ``len(embedding) != self.dimension``.
        DuplicateChunkError
            When the ``(document_id, content)`` identity is already stored.
        StoreError
            When the owning document does not exist or the backend fails.
        """
        ...

    @abstractmethod
    def update_chunk(
        self,
        chunk_id: str,
        section_title: str | None,
        embedding: Sequence[float],
    ) -> Chunk:
        """Overwrite section title and embedding of an existing chunk in place."""
        ...

    # -- search ---------------------------------------------------------------

    @abstractmethod
    def search_by_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> list[SearchResult]:
        """Return chunks with cosine similarity >= *threshold*, best first.

        At most *limit* results are returned; an empty list means nothing
        relevant was found.
        """
        ...

    # -- introspection --------------------------------------------------------

    @abstractmethod
    def count_documents(self) -> int: ...

    @abstractmethod
    def count_chunks(self) -> int: ...

    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
