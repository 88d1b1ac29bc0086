"""In-process store backend: exact cosine scan over dictionaries.

Meant for tests and local experiments.  Uniqueness of document identities
and ``(document_id, content)`` pairs is enforced under a single lock so the
store behaves like the database backends under concurrent ingestion.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Sequence
from uuid import uuid4

from kiosk_rag.errors import DuplicateChunkError, StoreError
from kiosk_rag.retrieval.base import ChunkStore, validate_dimension
from kiosk_rag.retrieval.models import Chunk, Document, SearchResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``1 - cosine_distance(a, b)``; zero vectors score ``0.0``."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryChunkStore(ChunkStore):
    """Dictionary-backed :class:`ChunkStore`."""

    def __init__(self, dimension: int) -> None:
        super().__init__(dimension)
        self._lock = threading.RLock()
        self._documents: dict[str, Document] = {}
        self._documents_by_key: dict[tuple[str, str | None], str] = {}
        self._chunks: dict[str, Chunk] = {}
        self._chunks_by_key: dict[tuple[str, str], str] = {}

    # -- documents ------------------------------------------------------------

    def find_document(self, title: str, source_url: str | None) -> Document | None:
        with self._lock:
            doc_id = self._documents_by_key.get((title, source_url))
            return self._documents[doc_id] if doc_id else None

    def ensure_document(self, title: str, source_url: str | None) -> tuple[Document, bool]:
        with self._lock:
            existing = self.find_document(title, source_url)
            if existing is not None:
                return existing, False
            doc = Document(id=str(uuid4()), title=title, source_url=source_url)
            self._documents[doc.id] = doc
            self._documents_by_key[doc.identity] = doc.id
            return doc, True

    def delete_document(self, document_id: str) -> bool:
        with self._lock:
            doc = self._documents.pop(document_id, None)
            if doc is None:
                return False
            del self._documents_by_key[doc.identity]
            owned = [c for c in self._chunks.values() if c.document_id == document_id]
            for chunk in owned:
                del self._chunks[chunk.id]
                del self._chunks_by_key[(chunk.document_id, chunk.content)]
            return True

    # -- chunks ---------------------------------------------------------------

    def find_chunk(self, document_id: str, content: str) -> Chunk | None:
        with self._lock:
            chunk_id = self._chunks_by_key.get((document_id, content))
            return self._chunks[chunk_id] if chunk_id else None

    def create_chunk(
        self,
        document_id: str,
        section_title: str | None,
        content: str,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        with self._lock:
            if document_id not in self._documents:
                raise StoreError(f"Unknown document id {document_id!r}")
            if (document_id, content) in self._chunks_by_key:
                raise DuplicateChunkError(document_id)
            chunk = Chunk(
                id=str(uuid4()),
                document_id=document_id,
                section_title=section_title,
                content=content,
                embedding=vector,
            )
            self._chunks[chunk.id] = chunk
            self._chunks_by_key[(document_id, content)] = chunk.id
            return chunk

    def update_chunk(
        self,
        chunk_id: str,
        section_title: str | None,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        with self._lock:
            current = self._chunks.get(chunk_id)
            if current is None:
                raise StoreError(f"Unknown chunk id {chunk_id!r}")
            updated = current.model_copy(update={"section_title": section_title, "embedding": vector})
            self._chunks[chunk_id] = updated
            return updated

    # -- search ---------------------------------------------------------------

    def search_by_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> list[SearchResult]:
        query = validate_dimension(query_embedding, self.dimension)
        with self._lock:
            scored = [(cosine_similarity(query, c.embedding), c) for c in self._chunks.values()]
            documents = dict(self._documents)

        # sorted() is stable, so equal scores keep insertion order
        ranked = sorted(
            (pair for pair in scored if pair[0] >= threshold),
            key=lambda pair: pair[0],
            reverse=True,
        )
        results: list[SearchResult] = []
        for similarity, chunk in ranked[:limit]:
            doc = documents[chunk.document_id]
            results.append(
                SearchResult(
                    chunk_id=chunk.id,
                    content=chunk.content,
                    section_title=chunk.section_title,
                    similarity=similarity,
                    document_id=doc.id,
                    document_title=doc.title,
                    source_url=doc.source_url,
                )
            )
        return results

    # -- introspection --------------------------------------------------------

    def count_documents(self) -> int:
        with self._lock:
            return len(self._documents)

    def count_chunks(self) -> int:
        with self._lock:
            return len(self._chunks)
