"""Store factory: picks the backend named by ``settings.store_backend``.

Backend modules are imported lazily so that selecting ``memory`` never pulls
in ``chromadb`` or the PostgreSQL driver.
"""

from __future__ import annotations

import logging

from kiosk_rag.config import Settings, settings as default_settings
from kiosk_rag.retrieval.base import ChunkStore

logger = logging.getLogger(__name__)

BACKENDS = ("postgres", "chroma", "memory")


def create_store(backend: str | None = None, *, config: Settings | None = None) -> ChunkStore:
    """Build an *unopened* store for *backend* (defaults to the configured one).

    Raises
    ------
    ValueError
        If the backend name is unknown.
    """
    config = config or default_settings
    name = (backend or config.store_backend).lower()

    if name == "postgres":
        from kiosk_rag.retrieval.pg_store import PostgresChunkStore

        logger.info("Creating PostgreSQL chunk store")
        return PostgresChunkStore(
            dimension=config.embedding_dim,
            database_url=config.database_url,
            echo=config.database_echo,
        )

    if name == "chroma":
        from kiosk_rag.retrieval.chroma_store import ChromaChunkStore

        logger.info("Creating Chroma chunk store at %s:%d", config.chroma_host, config.chroma_port)
        return ChromaChunkStore(
            dimension=config.embedding_dim,
            collection_name=config.chroma_collection,
            host=config.chroma_host,
            port=config.chroma_port,
        )

    if name == "memory":
        from kiosk_rag.retrieval.memory_store import InMemoryChunkStore

        logger.info("Creating in-memory chunk store")
        return InMemoryChunkStore(dimension=config.embedding_dim)

    raise ValueError(f"Unsupported store_backend={name!r}. Choose from: {', '.join(BACKENDS)}.")
