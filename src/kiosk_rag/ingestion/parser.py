"""Tab-delimited ingestion file parser.

File format (UTF-8)::

    # comment lines start with '#'
    document_title<TAB>source_url<TAB>section_title<TAB>chunk_content<TAB>embedding
    Handbook<TAB><TAB>Intro<TAB>Welcome to ...<TAB>[0.01, -0.02, ...]

Parsing is fail-fast: the first bad line raises and no row is returned, so
a malformed file never reaches the store.
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path

from kiosk_rag.config import settings
from kiosk_rag.errors import InvalidEmbeddingError, MalformedRowError
from kiosk_rag.ingestion.models import TSV_COLUMNS, ChunkRow
from kiosk_rag.retrieval.models import TITLE_MAX_LENGTH

logger = logging.getLogger(__name__)

DELIMITER = "\t"
COMMENT_MARKER = "#"
HEADER_PREFIX = TSV_COLUMNS[0]


def is_header(line: str) -> bool:
    """The header is recognised by its leading field name."""
    return line.split(DELIMITER, 1)[0].strip() == HEADER_PREFIX


def is_ignorable(line: str) -> bool:
    """Blank, comment and header lines carry no data."""
    return not line.strip() or line.startswith(COMMENT_MARKER) or is_header(line)


def parse_embedding(raw: str, *, document_title: str, dimension: int) -> list[float]:
    """Parse a JSON numeric array of exactly *dimension* elements."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidEmbeddingError(document_title, f"not valid JSON ({exc.msg})") from exc

    if not isinstance(value, list):
        raise InvalidEmbeddingError(document_title, "embedding must be a JSON array")
    if len(value) != dimension:
        raise InvalidEmbeddingError(
            document_title, f"embedding must be an array of {dimension} numbers, got {len(value)}"
        )
    vector: list[float] = []
    for item in value:
        # bool is an int subclass; reject it explicitly
        if isinstance(item, bool) or not isinstance(item, (int, float)) or not math.isfinite(item):
            raise InvalidEmbeddingError(document_title, f"non-numeric component {item!r}")
        vector.append(float(item))
    return vector


def parse_line(line: str, *, line_number: int | None = None, dimension: int = settings.embedding_dim) -> ChunkRow:
    """Parse one data line into a :class:`ChunkRow`."""
    fields = line.rstrip("\r\n").split(DELIMITER)
    if len(fields) > len(TSV_COLUMNS):
        raise MalformedRowError(
            f"expected {len(TSV_COLUMNS)} tab-separated fields, got {len(fields)}",
            line_number=line_number,
        )
    fields += [""] * (len(TSV_COLUMNS) - len(fields))
    title, source, section, content, embedding_text = (f.strip() for f in fields)

    missing = [
        name
        for name, value in (("document_title", title), ("chunk_content", content), ("embedding", embedding_text))
        if not value
    ]
    if missing:
        raise MalformedRowError(f"missing required field(s): {', '.join(missing)}", line_number=line_number)
    if len(title) > TITLE_MAX_LENGTH or len(section) > TITLE_MAX_LENGTH:
        raise MalformedRowError(
            f"document/section title longer than {TITLE_MAX_LENGTH} characters", line_number=line_number
        )

    return ChunkRow(
        document_title=title,
        source_url=source,
        section_title=section,
        chunk_content=content,
        embedding=parse_embedding(embedding_text, document_title=title, dimension=dimension),
    )


def parse_rows(text: str, *, dimension: int = settings.embedding_dim) -> list[ChunkRow]:
    """Parse the whole file content, in file order.

    Raises
    ------
    MalformedRowError
        A line lacks its title, content or embedding.
    InvalidEmbeddingError
        An embedding is not a JSON array of *dimension* numbers.
    """
    rows: list[ChunkRow] = []
    for line_number, line in enumerate(text.split("\n"), 1):
        if is_ignorable(line):
            continue
        rows.append(parse_line(line, line_number=line_number, dimension=dimension))
    logger.info("Parsed %d rows", len(rows))
    return rows


def parse_file(path: str | Path, *, dimension: int = settings.embedding_dim) -> list[ChunkRow]:
    """Read *path* as UTF-8 and :func:`parse_rows` it."""
    return parse_rows(Path(path).read_text(encoding="utf-8"), dimension=dimension)
