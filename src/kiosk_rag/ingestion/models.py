"""Records flowing through ingestion: parsed rows and run reports."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Column order of the tab-delimited interchange format.
TSV_COLUMNS = ("document_title", "source_url", "section_title", "chunk_content", "embedding")
TSV_HEADER = "\t".join(TSV_COLUMNS)


class ChunkRow(BaseModel):
    """One validated line of the ingestion file.

    Optional fields are ``""`` when absent; :attr:`document_key` and
    :attr:`section` give the persisted (``None`` for empty) form.
    """

    model_config = ConfigDict(frozen=True)

    document_title: str = Field(min_length=1)
    source_url: str = ""
    section_title: str = ""
    chunk_content: str = Field(min_length=1)
    embedding: list[float]

    @property
    def document_key(self) -> tuple[str, str | None]:
        """``(title, source_url)`` with an empty source normalized to ``None``."""
        return (self.document_title, self.source_url or None)

    @property
    def section(self) -> str | None:
        return self.section_title or None


class IngestMode(str, Enum):
    """What to do with a row whose chunk already exists."""

    INSERT_ONLY = "insert-only"
    UPDATE_EXISTING = "update-existing"


class GroupFailure(BaseModel):
    """A document group aborted by a store error.

    Attributes
    ----------
    document_title / source_url:
        Identity key of the group.
    succeeded_rows:
        Number of rows of the group committed before the failure.
    failed_row:
        0-based index, within the group, of the row that failed
        (``None`` when the document lookup/creation itself failed).
    error:
        ``str()`` of the underlying exception.
    """

    document_title: str
    source_url: str | None = None
    succeeded_rows: int = 0
    failed_row: int | None = None
    failed_content: str | None = None
    error: str


class IngestionReport(BaseModel):
    """Counters returned by :meth:`IngestionPipeline.ingest`."""

    documents_created: int = 0
    chunks_created: int = 0
    chunks_updated: int = 0
    chunks_skipped: int = 0
    total_rows: int = 0
    failures: list[GroupFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def chunks_updated_or_skipped(self) -> int:
        return self.chunks_updated + self.chunks_skipped

    def merge(self, other: IngestionReport) -> None:
        """Fold *other*'s counters into this report (``total_rows`` excluded)."""
        self.documents_created += other.documents_created
        self.chunks_created += other.chunks_created
        self.chunks_updated += other.chunks_updated
        self.chunks_skipped += other.chunks_skipped
        self.failures.extend(other.failures)

    def summary(self) -> str:
        lines = [
            "Import Summary:",
            f"  Documents created: {self.documents_created}",
            f"  Chunks created: {self.chunks_created}",
            f"  Chunks updated: {self.chunks_updated}",
            f"  Chunks skipped (duplicates): {self.chunks_skipped}",
            f"  Total rows processed: {self.total_rows}",
        ]
        for failure in self.failures:
            lines.append(
                f"  FAILED {failure.document_title!r} ({failure.source_url or 'no source'}): "
                f"{failure.succeeded_rows} row(s) committed, row {failure.failed_row} failed: {failure.error}"
            )
        return "\n".join(lines)
