"""PostgreSQL + pgvector implementation of the document/chunk store.

Every public method runs in its own short transaction.  Creation uses
``INSERT … ON CONFLICT DO NOTHING`` against the identity constraints, which
makes check-then-insert race-safe across concurrent importers.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Select, create_engine, delete, func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from kiosk_rag.config import settings
from kiosk_rag.errors import DuplicateChunkError, KioskRagError, StoreError
from kiosk_rag.retrieval.base import ChunkStore, validate_dimension
from kiosk_rag.retrieval.models import Chunk, Document, SearchResult
from kiosk_rag.retrieval.pg_schema import (
    CHUNK_IDENTITY_CONSTRAINT,
    DOCUMENT_IDENTITY_CONSTRAINT,
    build_schema,
    content_hash,
)

logger = logging.getLogger(__name__)


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class PostgresChunkStore(ChunkStore):
    """pgvector-backed chunk store.

    Parameters
    ----------
    dimension:
        Embedding length; also the ``vector(D)`` column size.
    database_url:
        SQLAlchemy URL, e.g. ``postgresql+psycopg://user:pw@host/db``.
    engine:
        Pre-built engine (tests / shared pools).  Overrides *database_url*.
    create_schema:
        Run ``CREATE EXTENSION vector`` and ``CREATE TABLE IF NOT EXISTS``
        on :meth:`open`.
    """

    def __init__(
        self,
        dimension: int = settings.embedding_dim,
        database_url: str = settings.database_url,
        *,
        engine: Engine | None = None,
        echo: bool = settings.database_echo,
        create_schema: bool = True,
    ) -> None:
        super().__init__(dimension)
        self._database_url = database_url
        self._echo = echo
        self._engine = engine
        self._owns_engine = engine is None
        self._create_schema = create_schema
        self._schema_ready = False
        self.schema = build_schema(dimension)

    # -- lifecycle ------------------------------------------------------------

    def open(self) -> None:
        if self._engine is None:
            self._engine = create_engine(
                self._database_url,
                echo=self._echo,
                pool_pre_ping=True,  # Verify connections before using
            )
            self._owns_engine = True
        if self._create_schema and not self._schema_ready:
            try:
                with self._engine.begin() as conn:
                    conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                    self.schema.metadata.create_all(conn)
            except SQLAlchemyError as exc:
                raise StoreError(f"PostgreSQL schema creation failed: {exc}") from exc
            self._schema_ready = True
            logger.info("PostgreSQL schema ready (dim=%d)", self.dimension)

    def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None
        self._schema_ready = False

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Connection]:
        if self._engine is None or (self._create_schema and not self._schema_ready):
            self.open()
        try:
            with self._engine.begin() as conn:
                yield conn
        except KioskRagError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(f"PostgreSQL {action} failed: {exc}") from exc

    # -- row mapping ----------------------------------------------------------

    @staticmethod
    def _document(row: Any) -> Document:
        return Document(id=str(row.id), title=row.title, source_url=row.source_url)

    @staticmethod
    def _chunk(row: Any) -> Chunk:
        return Chunk(
            id=str(row.id),
            document_id=str(row.document_id),
            section_title=row.section_title,
            content=row.content,
            embedding=[float(x) for x in row.embedding],
        )

    # -- documents ------------------------------------------------------------

    def _document_identity_clause(self, title: str, source_url: str | None) -> Any:
        docs = self.schema.documents
        source_clause = docs.c.source_url.is_(None) if source_url is None else docs.c.source_url == source_url
        return (docs.c.title == title) & source_clause

    def find_document(self, title: str, source_url: str | None) -> Document | None:
        docs = self.schema.documents
        stmt = select(docs).where(self._document_identity_clause(title, source_url))
        with self._transaction("document lookup") as conn:
            row = conn.execute(stmt).first()
        return self._document(row) if row is not None else None

    def ensure_document(self, title: str, source_url: str | None) -> tuple[Document, bool]:
        docs = self.schema.documents
        stmt = (
            pg_insert(docs)
            .values(id=uuid.uuid4(), title=title, source_url=source_url)
            .on_conflict_do_nothing(constraint=DOCUMENT_IDENTITY_CONSTRAINT)
            .returning(docs)
        )
        with self._transaction("document create") as conn:
            row = conn.execute(stmt).first()
            created = row is not None
            if row is None:
                # lost the race: another writer committed this identity first
                row = conn.execute(
                    select(docs).where(self._document_identity_clause(title, source_url))
                ).first()
        if row is None:
            raise StoreError(f"Document {title!r} vanished during creation")
        return self._document(row), created

    def delete_document(self, document_id: str) -> bool:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return False
        docs = self.schema.documents
        with self._transaction("document delete") as conn:
            deleted = conn.execute(delete(docs).where(docs.c.id == doc_uuid).returning(docs.c.id)).first()
        return deleted is not None

    # -- chunks ---------------------------------------------------------------

    def find_chunk(self, document_id: str, content: str) -> Chunk | None:
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            return None
        chunks = self.schema.chunks
        stmt = select(chunks).where(
            chunks.c.document_id == doc_uuid,
            chunks.c.content_hash == content_hash(content),
            chunks.c.content == content,
        )
        with self._transaction("chunk lookup") as conn:
            row = conn.execute(stmt).first()
        return self._chunk(row) if row is not None else None

    def create_chunk(
        self,
        document_id: str,
        section_title: str | None,
        content: str,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        doc_uuid = _as_uuid(document_id)
        if doc_uuid is None:
            raise StoreError(f"Unknown document id {document_id!r}")
        chunks = self.schema.chunks
        stmt = (
            pg_insert(chunks)
            .values(
                id=uuid.uuid4(),
                document_id=doc_uuid,
                section_title=section_title,
                content=content,
                content_hash=content_hash(content),
                embedding=vector,
            )
            .on_conflict_do_nothing(constraint=CHUNK_IDENTITY_CONSTRAINT)
            .returning(chunks)
        )
        with self._transaction("chunk create") as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise DuplicateChunkError(document_id)
        return self._chunk(row)

    def update_chunk(
        self,
        chunk_id: str,
        section_title: str | None,
        embedding: Sequence[float],
    ) -> Chunk:
        vector = validate_dimension(embedding, self.dimension)
        chunk_uuid = _as_uuid(chunk_id)
        chunks = self.schema.chunks
        row = None
        if chunk_uuid is not None:
            stmt = (
                update(chunks)
                .where(chunks.c.id == chunk_uuid)
                .values(section_title=section_title, embedding=vector)
                .returning(chunks)
            )
            with self._transaction("chunk update") as conn:
                row = conn.execute(stmt).first()
        if row is None:
            raise StoreError(f"Unknown chunk id {chunk_id!r}")
        return self._chunk(row)

    # -- search ---------------------------------------------------------------

    def search_by_similarity(
        self,
        query_embedding: Sequence[float],
        *,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> list[SearchResult]:
        query = validate_dimension(query_embedding, self.dimension)
        stmt = self._search_statement(query, limit=limit, threshold=threshold)
        with self._transaction("similarity search") as conn:
            rows = conn.execute(stmt).all()

        return [
            SearchResult(
                chunk_id=str(row.id),
                content=row.content,
                section_title=row.section_title,
                similarity=float(row.similarity),
                document_id=str(row.document_id),
                document_title=row.document_title,
                source_url=row.source_url,
            )
            for row in rows
        ]

    def _search_statement(self, query: list[float], *, limit: int, threshold: float) -> Select:
        chunks = self.schema.chunks
        docs = self.schema.documents

        # ORDER BY the bare distance so the planner can walk the HNSW index;
        # the id breaks ties so equal scores come back in a stable order.
        distance = chunks.c.embedding.cosine_distance(query)
        similarity = (1 - distance).label("similarity")
        return (
            select(
                chunks.c.id,
                chunks.c.content,
                chunks.c.section_title,
                chunks.c.document_id,
                docs.c.title.label("document_title"),
                docs.c.source_url,
                similarity,
            )
            .join(docs, chunks.c.document_id == docs.c.id)
            .where(1 - distance >= threshold)
            .order_by(distance, chunks.c.id)
            .limit(limit)
        )

    # -- introspection --------------------------------------------------------

    def count_documents(self) -> int:
        with self._transaction("count") as conn:
            return conn.execute(select(func.count()).select_from(self.schema.documents)).scalar_one()

    def count_chunks(self) -> int:
        with self._transaction("count") as conn:
            return conn.execute(select(func.count()).select_from(self.schema.chunks)).scalar_one()

    def health_check(self) -> bool:
        try:
            with self._transaction("health check") as conn:
                conn.execute(text("SELECT 1"))
            return True
        except StoreError:
            logger.warning("PostgreSQL health-check failed", exc_info=True)
            return False
