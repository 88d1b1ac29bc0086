"""Produce import-ready TSV files from raw chunk sources.

Two entry points, both embedding only what is missing:

* :func:`embed_and_export` turns a JSON list of documents into a TSV.
* :func:`add_embeddings_to_tsv` completes a 4- or 5-column TSV whose
  embedding column is absent, empty or unparsable.

Input JSON shape::

    [
      {
        "documentTitle": "Resource Guide 2025",
        "sourceUrl": "https://example.com/guide.pdf",
        "chunks": [
          {"sectionTitle": "Financial Aid", "content": "Information about ..."}
        ]
      }
    ]
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from kiosk_rag.errors import EmptyInputError, InvalidEmbeddingError, MalformedRowError
from kiosk_rag.ingestion.embedder import EmbeddingProvider
from kiosk_rag.ingestion.models import TSV_COLUMNS, TSV_HEADER, ChunkRow
from kiosk_rag.ingestion.parser import COMMENT_MARKER, DELIMITER, is_header, parse_embedding

logger = logging.getLogger(__name__)

_FIELD_BREAKS = re.compile(r"[\t\r\n]+")


@dataclass
class PendingRow:
    """A row whose embedding may still have to be generated."""

    document_title: str
    source_url: str
    section_title: str
    chunk_content: str
    embedding: list[float] | None = None

    def complete(self) -> ChunkRow:
        return ChunkRow(
            document_title=self.document_title,
            source_url=self.source_url,
            section_title=self.section_title,
            chunk_content=self.chunk_content,
            embedding=self.embedding or [],
        )


@dataclass
class ExportResult:
    rows: list[ChunkRow]
    embeddings_generated: int
    output_path: Path


def _flatten(value: str) -> str:
    return _FIELD_BREAKS.sub(" ", value).strip()


def format_row(row: ChunkRow) -> str:
    """Render *row* as one TSV line (no trailing newline)."""
    return DELIMITER.join(
        [
            _flatten(row.document_title),
            _flatten(row.source_url),
            _flatten(row.section_title),
            _flatten(row.chunk_content),
            json.dumps(row.embedding),
        ]
    )


def render_tsv(rows: list[ChunkRow]) -> str:
    return "\n".join([TSV_HEADER, *(format_row(row) for row in rows)]) + "\n"


def default_embedded_path(input_path: str | Path) -> Path:
    """``guide.tsv`` -> ``guide-embedded.tsv`` in the same directory."""
    path = Path(input_path)
    return path.with_name(f"{path.stem}-embedded{path.suffix}")


def fill_missing_embeddings(pending: list[PendingRow], embedder: EmbeddingProvider) -> int:
    """Embed every row lacking a vector, in one batched pass; returns the count."""
    missing = [row for row in pending if row.embedding is None]
    if not missing:
        logger.info("All chunks already have embeddings, no generation needed")
        return 0
    logger.info("Generating embeddings for %d chunk(s) (dim=%d)", len(missing), embedder.dimension)
    vectors = embedder.embed_batch([row.chunk_content for row in missing])
    for row, vector in zip(missing, vectors):
        row.embedding = vector
    logger.info("Generated %d embedding(s)", len(vectors))
    return len(vectors)


def _existing_embedding(raw: object, *, document_title: str, dimension: int) -> list[float] | None:
    """A usable pre-computed embedding, or ``None`` when it must be regenerated."""
    if raw is None or raw == "":
        return None
    text = raw if isinstance(raw, str) else json.dumps(raw)
    if not text.strip().startswith("["):
        return None
    try:
        return parse_embedding(text.strip(), document_title=document_title, dimension=dimension)
    except InvalidEmbeddingError as exc:
        logger.warning("Regenerating embedding for %r: %s", document_title, exc)
        return None


def load_json_documents(path: str | Path, *, dimension: int) -> list[PendingRow]:
    """Read the JSON document list at *path* into pending rows.

    Raises
    ------
    MalformedRowError
        The file is not a list of ``{documentTitle, chunks: [...]}`` objects.
    EmptyInputError
        A chunk's content is blank, or the file holds no chunk at all.
    """
    documents = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(documents, list):
        raise MalformedRowError("Input JSON must be an array of documents")

    pending: list[PendingRow] = []
    for document in documents:
        if (
            not isinstance(document, dict)
            or not document.get("documentTitle")
            or not isinstance(document.get("chunks"), list)
        ):
            raise MalformedRowError(f"Invalid document structure: {json.dumps(document)[:200]}")
        title = str(document["documentTitle"]).strip()
        for chunk in document["chunks"]:
            content = str(chunk.get("content") or "").strip() if isinstance(chunk, dict) else ""
            if not content:
                raise EmptyInputError(f"Empty chunk content in document {title!r}")
            pending.append(
                PendingRow(
                    document_title=title,
                    source_url=str(document.get("sourceUrl") or "").strip(),
                    section_title=str(chunk.get("sectionTitle") or "").strip(),
                    chunk_content=content,
                    embedding=_existing_embedding(
                        chunk.get("embedding"), document_title=title, dimension=dimension
                    ),
                )
            )

    if not pending:
        raise EmptyInputError("No chunks found in input file")
    logger.info("Read %d document(s), %d chunk(s)", len(documents), len(pending))
    return pending


def load_partial_tsv(path: str | Path, *, dimension: int) -> list[PendingRow]:
    """Read a 4- or 5-column TSV; rows missing a title or content are skipped."""
    lines = [
        line.rstrip("\r")
        for line in Path(path).read_text(encoding="utf-8").split("\n")
        if line.strip() and not line.startswith(COMMENT_MARKER)
    ]
    if lines and is_header(lines[0]):
        lines = lines[1:]

    pending: list[PendingRow] = []
    for line_number, line in enumerate(lines, 1):
        fields = line.split(DELIMITER)
        if len(fields) < len(TSV_COLUMNS) - 1:
            logger.warning("Skipping row %d: expected at least 4 fields, got %d", line_number, len(fields))
            continue
        fields += [""] * (len(TSV_COLUMNS) - len(fields))
        title, source, section, content, embedding = (f.strip() for f in fields[: len(TSV_COLUMNS)])
        if not title or not content:
            logger.warning("Skipping row %d with missing required fields", line_number)
            continue
        pending.append(
            PendingRow(
                document_title=title,
                source_url=source,
                section_title=section,
                chunk_content=content,
                embedding=_existing_embedding(embedding, document_title=title, dimension=dimension),
            )
        )

    if not pending:
        raise EmptyInputError("No valid rows found in TSV file")
    logger.info("Found %d chunk(s)", len(pending))
    return pending


def _write(pending: list[PendingRow], generated: int, output: Path) -> ExportResult:
    rows = [row.complete() for row in pending]
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_tsv(rows), encoding="utf-8")
    logger.info("Wrote %d row(s) to %s (%d new embedding(s))", len(rows), output, generated)
    return ExportResult(rows=rows, embeddings_generated=generated, output_path=output)


def embed_and_export(
    input_path: str | Path,
    output_path: str | Path,
    *,
    embedder: EmbeddingProvider,
) -> ExportResult:
    """JSON documents -> import-ready TSV at *output_path*."""
    logger.info("Reading input from: %s", input_path)
    pending = load_json_documents(input_path, dimension=embedder.dimension)
    generated = fill_missing_embeddings(pending, embedder)
    return _write(pending, generated, Path(output_path))


def add_embeddings_to_tsv(
    input_path: str | Path,
    output_path: str | Path | None = None,
    *,
    embedder: EmbeddingProvider,
) -> ExportResult:
    """Complete the embedding column of a TSV; default output ``<stem>-embedded<suffix>``."""
    logger.info("Reading input from: %s", input_path)
    pending = load_partial_tsv(input_path, dimension=embedder.dimension)
    generated = fill_missing_embeddings(pending, embedder)
    target = Path(output_path) if output_path else default_embedded_path(input_path)
    return _write(pending, generated, target)
