"""PostgreSQL schema for documents and text chunks.

Tables are built per embedding dimension because the ``vector(D)`` column
type and its HNSW index are fixed at DDL time.

Constraints
-----------
* ``documents``: ``UNIQUE NULLS NOT DISTINCT (title, source_url)`` so that two
  rows with the same title and no source cannot coexist, while ``NULL`` and
  ``''`` remain different values.
* ``text_chunks``: ``UNIQUE (document_id, content_hash)`` where
  ``content_hash`` is the SHA-256 of ``content`` (long texts do not fit a
  btree key), ``ON DELETE CASCADE`` to ``documents``.
* ``text_chunks_embedding_idx``: HNSW with ``vector_cosine_ops``.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, ForeignKey, Index, MetaData, String, Table, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from kiosk_rag.retrieval.models import TITLE_MAX_LENGTH

DOCUMENT_IDENTITY_CONSTRAINT = "documents_title_source_url_key"
CHUNK_IDENTITY_CONSTRAINT = "text_chunks_document_id_content_hash_key"


def content_hash(content: str) -> str:
    """Hex SHA-256 of *content* used in the chunk uniqueness key."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ChunkSchema:
    """SQLAlchemy ``Table`` objects sharing one :class:`MetaData`."""

    metadata: MetaData
    documents: Table
    chunks: Table


def build_schema(dimension: int, *, hnsw_m: int = 16, hnsw_ef_construction: int = 64) -> ChunkSchema:
    """Define the ``documents`` / ``text_chunks`` tables for *dimension*."""
    metadata = MetaData()

    documents = Table(
        "documents",
        metadata,
        Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        Column("title", String(TITLE_MAX_LENGTH), nullable=False),
        Column("source_url", Text, nullable=True),
        UniqueConstraint(
            "title",
            "source_url",
            name=DOCUMENT_IDENTITY_CONSTRAINT,
            postgresql_nulls_not_distinct=True,
        ),
    )

    chunks = Table(
        "text_chunks",
        metadata,
        Column("id", UUID(as_uuid=True), primary_key=True, default=uuid.uuid4),
        Column(
            "document_id",
            UUID(as_uuid=True),
            ForeignKey("documents.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        Column("section_title", String(TITLE_MAX_LENGTH), nullable=True),
        Column("content", Text, nullable=False),
        Column("content_hash", String(64), nullable=False),
        Column("embedding", Vector(dimension), nullable=False),
        UniqueConstraint("document_id", "content_hash", name=CHUNK_IDENTITY_CONSTRAINT),
    )

    Index(
        "text_chunks_embedding_idx",
        chunks.c.embedding,
        postgresql_using="hnsw",
        postgresql_with={"m": hnsw_m, "ef_construction": hnsw_ef_construction},
        postgresql_ops={"embedding": "vector_cosine_ops"},
    )

    return ChunkSchema(metadata=metadata, documents=documents, chunks=chunks)
