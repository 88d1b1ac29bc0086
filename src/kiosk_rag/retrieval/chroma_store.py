"""Chroma implementation of the document/chunk store.

Chunks live in a collection created with ``hnsw:space=cosine`` so the HNSW
index returns cosine distances directly.  Documents live in a small registry
collection next to it.

Identity is content-addressed: document ids are ``uuid5`` of the
``(title, source_url)`` pair and chunk ids are ``uuid5`` of
``(document_id, content)``.  Two writers racing on the same identity
therefore address the same record and cannot create a duplicate.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID, uuid5

import chromadb

from kiosk_rag.config import settings
from kiosk_rag.errors import DuplicateChunkError, KioskRagError, StoreError
from kiosk_rag.retrieval.base import ChunkStore, validate_dimension
from kiosk_rag.retrieval.models import Chunk, Document, SearchResult

logger = logging.getLogger(__name__)

_ID_NAMESPACE = UUID("6f1c7a52-3c55-4b8e-9a57-0d5c2f0e8b41")

# The registry collection is only ever read by id, never by vector.
_REGISTRY_VECTOR = [1.0]


def document_id_for(title: str, source_url: str | None) -> str:
    """Deterministic id for a document identity; ``None`` and ``""`` differ."""
    return str(uuid5(_ID_NAMESPACE, json.dumps(["document", title, source_url])))


def chunk_id_for(document_id: str, content: str) -> str:
    """Deterministic id for a ``(document_id, content)`` pair."""
    return str(uuid5(_ID_NAMESPACE, json.dumps(["chunk", document_id, content])))


@contextmanager
def _backend_errors(action: str) -> Iterator[None]:
    try:
        yield
    except KioskRagError:
        raise
    except Exception as exc:
        raise StoreError(f"Chroma {action} failed: {exc}") from exc


class ChromaChunkStore(ChunkStore):
    """Chroma-backed chunk store.

    Parameters
    ----------
    dimension:
        Embedding length enforced on every write and query.
    collection_name:
        Name of the chunk collection; documents use ``<name>_documents``.
    client:
        A ready ``chromadb`` client.  When *None* an ``HttpClient`` is built
        from *host* / *port* on :meth:`open`.
    """

    def __init__(
        self,
        dimension: int = settings.embedding_dim,
        collection_name: str = settings.chroma_collection,
        *,
        client: Any | None = None,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
    ) -> None:
        super().__init__(dimension)
        self.collection_name = collection_name
        self._host = host
        self._port = port
        self._client = client
        self._chunks: Any = None
        self._documents: Any = None

    # -- lifecycle ------------------------------------------------------------

    def open(self) -> None:
        if self._chunks is not None:
            return
        with _backend_errors("connect"):
            if self._client is None:
                self._client = chromadb.HttpClient(host=self._host, port=self._port)
            self._chunks = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
            self._documents = self._client.get_or_create_collection(
                name=f"{self.collection_name}_documents",
            )
        logger.info("Opened Chroma collections %r (dim=%d)", self.collection_name, self.dimension)

    def close(self) -> None:
        self._chunks = None
        self._documents = None

    def _require_open(self) -> None:
        if self._chunks is None:
            self.open()

    # -- documents ------------------------------------------------------------

    def _get_document(self, document_id: str) -> Document | None:
        self._require_open()
        with _backend_errors("document lookup"):
            found = self._documents.get(ids=[document_id], include=["metadatas"])
        if not found["ids"]:
            return None
        meta = found["metadatas"][0]
        return Document(
            id=document_id,
            title=meta["title"],
            source_url=meta["source_url"] if meta["has_source"] else None,
        )

    def find_document(self, title: str, source_url: str | None) -> Document | None:
        return self._get_document(document_id_for(title, source_url))

    def ensure_document(self, title: str, source_url: str | None) -> tuple[Document, bool]:
        doc = Document(id=document_id_for(title, source_url), title=title, source_url=source_url)
        if self._get_document(doc.id) is not None:
            return doc, False
        # upsert: a concurrent creator may have written it since the lookup
        with _backend_errors("document create"):
            self._documents.upsert(
                ids=[doc.id],
                embeddings=[_REGISTRY_VECTOR],
                documents=[title],
                metadatas=[
                    {
                        "title": title,
                        "source_url": source_url or "",
                        "has_source": source_url is not None,
                    }
                ],
            )
        return doc, True

    def delete_document(self, document_id: str) -> bool:
        if self._get_document(document_id) is None:
            return False
        with _backend_errors("document delete"):
            self._chunks.delete(where={"document_id": document_id})
            self._documents.delete(ids=[document_id])
        return True

    # -- chunks ---------------------------------------------------------------

    def _get_chunk(self, chunk_id: str) -> Chunk | None:
        self._require_open()
        with _backend_errors("chunk lookup"):
            found = self._chunks.get(ids=[chunk_id], include=["documents", "metadatas", "embeddings"])
        if not found["ids"]:
            return None
        meta = found["metadatas"][0]
        return Chunk(
            id=chunk_id,
            document_id=meta["document_id"],
            section_title=meta.get("section_title") or None,
            content=found["documents"][0],
            embedding=[float(x) for x in found["embeddings"][0]],
        )

    def find_chunk(self, document_id: str, content: str) -> Chunk | None:
        chunk = self._get_chunk(chunk_id_for(document_id, content))
        if chunk is None or chunk.content != content:
            return None
        return chunk

    def create_chunk(
        self,
        document_id: str,
        section_title: str | None,
        content: str,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        if self._get_document(document_id) is None:
            raise StoreError(f"Unknown document id {document_id!r}")
        chunk = Chunk(
            id=chunk_id_for(document_id, content),
            document_id=document_id,
            section_title=section_title,
            content=content,
            embedding=vector,
        )
        if self._get_chunk(chunk.id) is not None:
            raise DuplicateChunkError(document_id)
        with _backend_errors("chunk create"):
            self._chunks.add(
                ids=[chunk.id],
                embeddings=[vector],
                documents=[content],
                metadatas=[{"document_id": document_id, "section_title": section_title or ""}],
            )
        return chunk

    def update_chunk(
        self,
        chunk_id: str,
        section_title: str | None,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        current = self._get_chunk(chunk_id)
        if current is None:
            raise StoreError(f"Unknown chunk id {chunk_id!r}")
        with _backend_errors("chunk update"):
            self._chunks.update(
                ids=[chunk_id],
                embeddings=[vector],
                metadatas=[{"document_id": current.document_id, "section_title": section_title or ""}],
            )
        return current.model_copy(update={"section_title": section_title, "embedding": vector})

    # -- search ---------------------------------------------------------------

    def search_by_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> list[SearchResult]:
        query = validate_dimension(query_embedding, self.dimension)
        self._require_open()
        with _backend_errors("query"):
            total = self._chunks.count()
            if total == 0:
                return []
            results = self._chunks.query(
                query_embeddings=[query],
                n_results=min(limit, total),
                include=["documents", "metadatas", "distances"],
            )

        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        # Cosine space: distance = 1 - cosine similarity.
        hits = [
            (1.0 - float(dist), chunk_id, content, meta)
            for chunk_id, content, meta, dist in zip(ids, docs, metas, distances)
            if 1.0 - float(dist) >= threshold
        ]
        hits.sort(key=lambda hit: hit[0], reverse=True)

        owners: dict[str, Document | None] = {}
        out: list[SearchResult] = []
        for similarity, chunk_id, content, meta in hits[:limit]:
            doc_id = meta["document_id"]
            if doc_id not in owners:
                owners[doc_id] = self._get_document(doc_id)
            doc = owners[doc_id]
            if doc is None:
                logger.warning("Chunk %s references missing document %s", chunk_id, doc_id)
                continue
            out.append(
                SearchResult(
                    chunk_id=chunk_id,
                    content=content or "",
                    section_title=meta.get("section_title") or None,
                    similarity=similarity,
                    document_id=doc.id,
                    document_title=doc.title,
                    source_url=doc.source_url,
                )
            )
        return out

    # -- introspection --------------------------------------------------------

    def count_documents(self) -> int:
        self._require_open()
        with _backend_errors("count"):
            return self._documents.count()

    def count_chunks(self) -> int:
        self._require_open()
        with _backend_errors("count"):
            return self._chunks.count()

    def health_check(self) -> bool:
        try:
            self._require_open()
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
