"""Domain models for stored documents, chunks and similarity-search results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 512


class Document(BaseModel):
    """A named source grouping one or more chunks.

    Identity is the ``(title, source_url)`` pair.  ``source_url=None`` means
    "no source" and is a different identity from ``source_url=""``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    source_url: str | None = None

    @property
    def identity(self) -> tuple[str, str | None]:
        return (self.title, self.source_url)


class Chunk(BaseModel):
    """A unit of retrievable text owned by exactly one :class:`Document`.

    Attributes
    ----------
    id:
        Store-assigned unique identifier.
    document_id:
        Owning document.
    section_title:
        Optional heading the passage was taken from.
    content:
        Passage text; together with ``document_id`` this is the dedup key.
    embedding:
        Dense vector of the configured dimensionality.
    """

    id: str
    document_id: str
    section_title: str | None = Field(default=None, max_length=TITLE_MAX_LENGTH)
    content: str = Field(min_length=1)
    embedding: list[float]


class SearchResult(BaseModel):
    """A ranked chunk joined with its owning document for presentation."""

    chunk_id: str
    content: str
    section_title: str | None = None
    similarity: float
    document_id: str
    document_title: str
    source_url: str | None = None

    def short_ref(self) -> str:
        """Return a compact ``[title§section]`` reference string."""
        section = self.section_title or "?"
        return f"[{self.document_title}§{section}]"

    def __str__(self) -> str:  # noqa: D105
        return f"{self.short_ref()} ({self.similarity:.3f}) {self.content[:120]}…"
