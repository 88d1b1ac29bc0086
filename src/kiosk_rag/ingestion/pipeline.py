"""Idempotent ingestion of parsed rows into a :class:`ChunkStore`.

Identity is content-addressed (documents by ``(title, source_url)``,
chunks by ``(document_id, content)``), so running the same file twice, or
resuming after a crash half-way through, never duplicates anything.

Usage::

    from kiosk_rag.ingestion.pipeline import IngestionPipeline
    from kiosk_rag.retrieval.factory import create_store

    with create_store() as store:
        report = IngestionPipeline(store).import_file("data/document-chunks.tsv")
        print(report.summary())
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from kiosk_rag.errors import DimensionMismatchError, DuplicateChunkError, StoreError
from kiosk_rag.ingestion.models import ChunkRow, GroupFailure, IngestionReport, IngestMode
from kiosk_rag.ingestion.parser import parse_file
from kiosk_rag.retrieval.base import ChunkStore
from kiosk_rag.retrieval.models import Chunk

logger = logging.getLogger(__name__)

DocumentKey = tuple[str, str | None]


def group_rows(rows: Sequence[ChunkRow]) -> dict[DocumentKey, list[ChunkRow]]:
    """Group rows by document identity.

    Groups appear in first-seen order and rows keep file order inside their
    group; a key that reappears later in the file joins its earlier group.
    """
    groups: dict[DocumentKey, list[ChunkRow]] = {}
    for row in rows:
        groups.setdefault(row.document_key, []).append(row)
    return groups


class IngestionPipeline:
    """Load or update parsed rows into *store*.

    Parameters
    ----------
    store:
        Target store (already opened, or opened lazily by the backend).
    max_workers:
        Number of document groups processed concurrently.  Rows of a single
        group always run sequentially on one worker, which serializes every
        operation on the same identity key.
    """

    def __init__(self, store: ChunkStore, *, max_workers: int = 1) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.store = store
        self.max_workers = max_workers

    # -- public API -----------------------------------------------------------

    def ingest(self, rows: Sequence[ChunkRow], mode: IngestMode = IngestMode.INSERT_ONLY) -> IngestionReport:
        """Ingest *rows* and return the run's counters.

        Raises
        ------
        DimensionMismatchError
            Before any write, if a row's embedding length differs from the
            store's dimension.
        """
        mode = IngestMode(mode)
        for row in rows:
            if len(row.embedding) != self.store.dimension:
                raise DimensionMismatchError(self.store.dimension, len(row.embedding))

        groups = group_rows(rows)
        logger.info(
            "Ingesting %d rows in %d document group(s), mode=%s, workers=%d",
            len(rows),
            len(groups),
            mode.value,
            self.max_workers,
        )

        if self.max_workers == 1 or len(groups) <= 1:
            partials = [self._ingest_group(key, group, mode) for key, group in groups.items()]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ingest") as pool:
                futures = [pool.submit(self._ingest_group, key, group, mode) for key, group in groups.items()]
                partials = [future.result() for future in futures]

        report = IngestionReport(total_rows=len(rows))
        for partial in partials:
            report.merge(partial)

        logger.info(
            "Import finished: %d document(s) created, %d chunk(s) created, "
            "%d updated, %d skipped, %d row(s) total, %d failed group(s)",
            report.documents_created,
            report.chunks_created,
            report.chunks_updated,
            report.chunks_skipped,
            report.total_rows,
            len(report.failures),
        )
        return report

    def import_file(
        self,
        path: str | Path,
        mode: IngestMode = IngestMode.INSERT_ONLY,
    ) -> IngestionReport:
        """Parse *path* completely (fail-fast), then :meth:`ingest` it."""
        logger.info("Importing chunks from: %s", path)
        rows = parse_file(path, dimension=self.store.dimension)
        return self.ingest(rows, mode)

    # -- internals ------------------------------------------------------------

    def _ingest_group(self, key: DocumentKey, rows: list[ChunkRow], mode: IngestMode) -> IngestionReport:
        title, source_url = key
        report = IngestionReport()

        try:
            document = self.store.find_document(title, source_url)
            if document is None:
                document, created = self.store.ensure_document(title, source_url)
                if created:
                    report.documents_created += 1
                    logger.info("  Created document: %r", title)
                else:
                    logger.info("  Document %r was created concurrently", title)
            else:
                logger.info("  Found existing document: %r", title)
        except StoreError as exc:
            logger.error("  Document %r failed: %s", title, exc)
            report.failures.append(GroupFailure(document_title=title, source_url=source_url, error=str(exc)))
            return report

        for index, row in enumerate(rows):
            try:
                existing = self.store.find_chunk(document.id, row.chunk_content)
                if existing is None:
                    existing = self._create_chunk(document.id, row)
                    if existing is None:
                        report.chunks_created += 1
                        continue
                if mode is IngestMode.UPDATE_EXISTING:
                    self.store.update_chunk(existing.id, row.section, row.embedding)
                    report.chunks_updated += 1
                else:
                    report.chunks_skipped += 1
            except StoreError as exc:
                logger.error(
                    "  Document %r aborted at row %d of %d: %s", title, index + 1, len(rows), exc
                )
                report.failures.append(
                    GroupFailure(
                        document_title=title,
                        source_url=source_url,
                        succeeded_rows=index,
                        failed_row=index,
                        failed_content=row.chunk_content[:200],
                        error=str(exc),
                    )
                )
                break

        return report

    def _create_chunk(self, document_id: str, row: ChunkRow) -> Chunk | None:
        """Insert *row*; return the stored chunk instead when another writer won the race."""
        try:
            self.store.create_chunk(document_id, row.section, row.chunk_content, row.embedding)
            return None
        except DuplicateChunkError as exc:
            winner = self.store.find_chunk(document_id, row.chunk_content)
            if winner is None:
                raise StoreError(f"{exc}, but the stored chunk could not be read back") from exc
            logger.info("  Chunk already stored by a concurrent import: %r", row.chunk_content[:60])
            return winner
