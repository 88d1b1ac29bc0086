"""
Retrieval: document/chunk storage and similarity search.

The store sits behind a small abstract interface so that ingestion and
answering never need to know which database is backing retrieval.

Public surface
--------------
- :class:`SimilaritySearchEngine`: main entry point for search.
- :class:`ChunkStore`: abstract backend.
- :class:`PostgresChunkStore`, :class:`ChromaChunkStore`,
  :class:`InMemoryChunkStore`: concrete backends.
- :class:`Document`, :class:`Chunk`, :class:`SearchResult`: data models.
- :func:`create_store`: settings-driven backend factory.
"""

from kiosk_rag.retrieval.base import ChunkStore
from kiosk_rag.retrieval.factory import create_store
from kiosk_rag.retrieval.memory_store import InMemoryChunkStore
from kiosk_rag.retrieval.models import Chunk, Document, SearchResult
from kiosk_rag.retrieval.retriever import SimilaritySearchEngine

__all__ = [
    "Chunk",
    "ChromaChunkStore",
    "ChunkStore",
    "Document",
    "InMemoryChunkStore",
    "PostgresChunkStore",
    "SearchResult",
    "SimilaritySearchEngine",
    "create_store",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import the database backends so importing the package stays light."""
    if name == "ChromaChunkStore":
        from kiosk_rag.retrieval.chroma_store import ChromaChunkStore

        return ChromaChunkStore
    if name == "PostgresChunkStore":
        from kiosk_rag.retrieval.pg_store import PostgresChunkStore

        return PostgresChunkStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
