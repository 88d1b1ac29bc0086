"""Command-line entry points.

Each ``*_main`` returns a process exit code so console scripts and tests can
call it directly::

    kiosk-rag-import data/document-chunks.tsv --update
    kiosk-rag-clean data/raw.tsv
    kiosk-rag-embed data/documents.json
    kiosk-rag-add-embeddings data/partial.tsv
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence

from kiosk_rag.config import settings
from kiosk_rag.errors import KioskRagError
from kiosk_rag.ingestion.embedder import get_embedding_provider
from kiosk_rag.ingestion.exporter import add_embeddings_to_tsv, embed_and_export
from kiosk_rag.ingestion.models import IngestMode
from kiosk_rag.ingestion.pipeline import IngestionPipeline
from kiosk_rag.ingestion.repair import repair_file
from kiosk_rag.retrieval.factory import create_store

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def import_main(argv: Sequence[str] | None = None) -> int:
    """Load a TSV of pre-embedded chunks into the configured store."""
    parser = argparse.ArgumentParser(description="Import document chunks into the store")
    parser.add_argument(
        "path",
        nargs="?",
        default=settings.import_default_path,
        help="TSV file to import (default: %(default)s)",
    )
    parser.add_argument(
        "--update",
        action="store_true",
        help="Overwrite section title and embedding of chunks that already exist",
    )
    parser.add_argument("--backend", default=None, help="Store backend (default: settings.store_backend)")
    parser.add_argument("--workers", type=int, default=settings.ingest_max_workers, help="Parallel document groups")
    args = parser.parse_args(argv)
    configure_logging()

    mode = IngestMode.UPDATE_EXISTING if args.update else IngestMode.INSERT_ONLY
    try:
        with create_store(args.backend) as store:
            report = IngestionPipeline(store, max_workers=args.workers).import_file(args.path, mode)
    except (KioskRagError, OSError, ValueError) as exc:
        logger.error("Import failed: %s", exc)
        return 1

    print(report.summary())
    return 0 if report.ok else 1


def clean_main(argv: Sequence[str] | None = None) -> int:
    """Repair line breaks and encoding damage in an ingestion file."""
    parser = argparse.ArgumentParser(description="Repair a tab-delimited ingestion file")
    parser.add_argument("input", help="File to repair (never modified unless also given as output)")
    parser.add_argument("output", nargs="?", default=None, help="Destination (default: <stem>-clean<suffix>)")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        result, target = repair_file(args.input, args.output)
    except OSError as exc:
        logger.error("Repair failed: %s", exc)
        return 1

    print(f"Clean file written to: {target}")
    print(f"  Rows merged: {result.rows_merged}")
    print(f"  Rows altered: {result.rows_altered}")
    print(f"  Total rows: {result.total_rows}")
    return 0


def embed_main(argv: Sequence[str] | None = None) -> int:
    """Embed a JSON document list into an import-ready TSV."""
    parser = argparse.ArgumentParser(description="Generate embeddings for JSON documents and write a TSV")
    parser.add_argument("input", help="JSON array of {documentTitle, sourceUrl?, chunks: [...]}")
    parser.add_argument(
        "output",
        nargs="?",
        default=settings.import_default_path,
        help="TSV destination (default: %(default)s)",
    )
    args = parser.parse_args(argv)
    configure_logging()

    try:
        result = embed_and_export(args.input, args.output, embedder=get_embedding_provider())
    except (KioskRagError, OSError, ValueError) as exc:
        logger.error("Embedding failed: %s", exc)
        return 1

    print(f"Wrote {len(result.rows)} chunk(s) to {result.output_path}")
    print(f"  New embeddings generated: {result.embeddings_generated}")
    print(f'Next step: run "kiosk-rag-import {result.output_path}"')
    return 0


def add_embeddings_main(argv: Sequence[str] | None = None) -> int:
    """Fill in the embedding column of a partial TSV."""
    parser = argparse.ArgumentParser(description="Add missing embeddings to a TSV file")
    parser.add_argument("input", help="4- or 5-column TSV")
    parser.add_argument("output", nargs="?", default=None, help="Destination (default: <stem>-embedded<suffix>)")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        result = add_embeddings_to_tsv(args.input, args.output, embedder=get_embedding_provider())
    except (KioskRagError, OSError) as exc:
        logger.error("Embedding failed: %s", exc)
        return 1

    print(f"Wrote {len(result.rows)} row(s) to {result.output_path}")
    print(f"  New embeddings generated: {result.embeddings_generated}")
    print(f'Next step: run "kiosk-rag-import {result.output_path}"')
    return 0
