"""
Ingestion: parsing, repairing, embedding and loading document chunks.

Converts tab-delimited chunk files (or JSON document lists) into documents
and embedded chunks in a :class:`~kiosk_rag.retrieval.base.ChunkStore`,
idempotently.
"""
