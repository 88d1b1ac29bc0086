"""Exception hierarchy shared by ingestion, storage and retrieval.

Lookup misses are *not* errors: stores return ``None`` or an empty list and
the answer layer turns an empty search into the fixed deflection message.
"""

from __future__ import annotations


class KioskRagError(Exception):
    """Base class for every error raised by :mod:`kiosk_rag`."""


class MalformedRowError(KioskRagError, ValueError):
    """A tabular row is missing its title, content or embedding field."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class InvalidEmbeddingError(KioskRagError, ValueError):
    """Embedding text is not a JSON array of exactly ``D`` numbers."""

    def __init__(self, document_title: str, reason: str) -> None:
        super().__init__(f"Invalid embedding format in row for {document_title!r}: {reason}")
        self.document_title = document_title
        self.reason = reason


class DimensionMismatchError(KioskRagError, ValueError):
    """A vector does not have the configured dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Invalid embedding dimensions: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class EmptyInputError(KioskRagError, ValueError):
    """An embedding was requested for blank text."""


class ProviderError(KioskRagError, RuntimeError):
    """The upstream embedding / chat service failed (network, quota, auth …)."""


class StoreError(KioskRagError, RuntimeError):
    """The document/chunk store could not complete an operation."""


class DuplicateChunkError(StoreError):
    """The ``(document_id, content)`` identity is already stored."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"Duplicate chunk content for document {document_id!r}")
        self.document_id = document_id
