"""Repair pass for hand-edited or spreadsheet-exported ingestion files.

Two independent fixes, applied in order:

1. **Structure**: a field containing a literal line break splits one record
   over several physical lines.  A line with fewer tab-separated fields than
   the header is a continuation and is appended (space-joined) to the record
   being accumulated.
2. **Encoding**: every field is cleaned of replacement characters,
   typographic punctuation, non-breaking spaces, control characters,
   embedded newlines and repeated spaces.

The header line and column order are preserved.  The input file is never
modified unless the caller explicitly asks for it as the output path.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from kiosk_rag.ingestion.parser import DELIMITER, is_header

logger = logging.getLogger(__name__)

# U+FFFD as decoded by a UTF-8 -> Mac Roman round trip.
MOJIBAKE_REPLACEMENT = "ÔøΩ"

_TRANSLATIONS = str.maketrans(
    {
        "�": None,  # replacement character
        "“": '"',
        "”": '"',
        "‘": "'",
        "’": "'",
        "–": "-",  # en dash
        "—": "-",  # em dash
        " ": " ",  # no-break space
    }
)
# Keep tab/newline, printable ASCII and everything from U+00A0 upwards.
_NON_PRINTABLE = re.compile(r"[^\t\n\x20-\x7e -\U0010ffff]")
_NEWLINES = re.compile(r"[\r\n]+")
_SPACES = re.compile(r" +")


@dataclass
class RepairResult:
    """Outcome of :func:`repair_text`.

    Attributes
    ----------
    text:
        Repaired file content (header first, one record per line).
    rows_merged:
        Continuation lines folded into a preceding record.
    rows_altered:
        Records whose text changed during encoding cleanup.
    total_rows:
        Data records in the output.
    """

    text: str
    rows_merged: int = 0
    rows_altered: int = 0
    total_rows: int = 0


def clean_field(value: str) -> str:
    """Normalise one field's text."""
    value = value.replace(MOJIBAKE_REPLACEMENT, "").translate(_TRANSLATIONS)
    value = _NEWLINES.sub(" ", value)
    value = _NON_PRINTABLE.sub("", value)
    value = _SPACES.sub(" ", value)
    return value.strip()


def clean_row(row: str) -> str:
    return DELIMITER.join(clean_field(field) for field in row.split(DELIMITER))


def merge_broken_rows(lines: list[str], expected_fields: int) -> tuple[list[str], int]:
    """Re-join records split across lines; returns ``(rows, rows_merged)``."""
    rows: list[str] = []
    current: str | None = None
    merged = 0
    for raw in lines:
        line = raw.rstrip("\r")
        if not line.strip():
            continue
        if current is not None and len(line.split(DELIMITER)) < expected_fields:
            current = f"{current} {line.strip(' ')}"
            merged += 1
            continue
        if current is not None:
            rows.append(current)
        current = line
    if current is not None:
        rows.append(current)
    return rows, merged


def repair_text(content: str) -> RepairResult:
    """Repair the structure and encoding of an ingestion file's content."""
    lines = content.split("\n")
    header_index = next((i for i, line in enumerate(lines) if is_header(line)), 0)
    preamble = [line.rstrip("\r") for line in lines[:header_index]]
    header = lines[header_index].rstrip("\r") if lines else ""
    expected_fields = len(header.split(DELIMITER))
    logger.info("Expected %d fields per row", expected_fields)

    rows, merged = merge_broken_rows(lines[header_index + 1 :], expected_fields)
    if merged:
        logger.info("Merged %d broken continuation lines", merged)
    else:
        logger.info("No structural issues found")

    cleaned: list[str] = []
    altered = 0
    for index, row in enumerate(rows):
        fixed = clean_row(row)
        if fixed != row:
            altered += 1
            if altered <= 5:
                logger.info("Fixed encoding in row %d", index + 1)
        cleaned.append(fixed)
    logger.info("Rows altered during cleanup: %d", altered)

    text = "\n".join([*preamble, header, *cleaned]) + "\n"
    return RepairResult(text=text, rows_merged=merged, rows_altered=altered, total_rows=len(cleaned))


def default_clean_path(input_path: str | Path) -> Path:
    """``guide.tsv`` -> ``guide-clean.tsv`` in the same directory."""
    path = Path(input_path)
    return path.with_name(f"{path.stem}-clean{path.suffix}")


def repair_file(input_path: str | Path, output_path: str | Path | None = None) -> tuple[RepairResult, Path]:
    """Repair *input_path* and write the result; returns ``(result, output_path)``."""
    source = Path(input_path)
    target = Path(output_path) if output_path else default_clean_path(source)
    result = repair_text(source.read_text(encoding="utf-8", errors="replace"))
    if target.resolve() == source.resolve():
        logger.warning("Output path equals input path; %s will be overwritten", source)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(result.text, encoding="utf-8")
    logger.info(
        "Wrote %s (rows merged: %d, rows altered: %d, total rows: %d)",
        target,
        result.rows_merged,
        result.rows_altered,
        result.total_rows,
    )
    return result, target
