"""Runsheet text extractor — spreadsheet exports flattened to text.

Supported layouts (first header line found in the first 10 lines wins):

    ROW 1: Book and Page | Instrument Number | Instrument Type | ...
    ROW 2: 12/340 | 1950-123 | WD | ...

    Book and Page | Instrument Number | Instrument Type | ...
    12/340 | 1950-123 | WD | ...

    Book and Page<TAB>Instrument Number<TAB>...

``||NEWLINE||`` inside a cell stands for a line break inside the original
spreadsheet cell.  Without any header line the default runsheet columns
are assumed.
"""

import re
import logging

from leasecheck.config import DEFAULT_RUNSHEET_HEADERS
from leasecheck.pipeline.extractors.base import (
    BaseExtractor, ExtractionError, ExtractionResult, RunsheetSource,
)
from leasecheck.pipeline.llm_client import LLMProgressCallback
from leasecheck.pipeline.utils import NEWLINE_MARKER

logger = logging.getLogger(__name__)

_HEADER_SCAN_LINES = 10
_ROW_RE = re.compile(r'^\s*ROW\s+(\d+)\s*:\s?(.*)$', re.IGNORECASE)
_PIPE_SPLIT_RE = re.compile(r"[ \t]*\|[ \t]*")
_EXCEL_FILE_RE = re.compile(r'EXCEL FILE:\s*(.+)', re.IGNORECASE)
# "55209OR-158N-102W-Sec. 18-E2NE (final).xlsx" → "158N-102W-Sec. 18-E2NE"
_FILENAME_LEGAL_RE = re.compile(r'(\d+N-\d+W-Sec\.\s*\d+[^(]*)', re.IGNORECASE)
_FILE_EXTENSION_RE = re.compile(r'\.(xlsx?|csv|txt|pdf)\s*$', re.IGNORECASE)


def _split_cells(line: str, separator: str) -> list[str]:
    # The newline marker is itself made of pipes: restore it before splitting
    line = line.replace(NEWLINE_MARKER, "\n")
    cells = line.split("\t") if separator == "\t" else _PIPE_SPLIT_RE.split(line)
    return [c.strip() for c in cells]


def _find_headers(lines: list[str]) -> tuple[list[str], str, int]:
    """Return (headers, separator, header line index or -1)."""
    for i, line in enumerate(lines[:_HEADER_SCAN_LINES]):
        row = _ROW_RE.match(line)
        if row and row.group(1) == "1":
            return _split_cells(row.group(2), "|"), "|", i
        if "book and page" in line.lower():
            if "|" in line:
                return _split_cells(line, "|"), "|", i
            if "\t" in line:
                return _split_cells(line, "\t"), "\t", i
    return list(DEFAULT_RUNSHEET_HEADERS), "|", -1


def _is_header_repeat(row: dict[str, str], headers: list[str]) -> bool:
    return all(row.get(h, "").strip().lower() == h.strip().lower() for h in headers if h)


def parse_runsheet_text(text: str) -> list[dict[str, str]]:
    """Parse a flattened runsheet export into ``{header: cell}`` rows."""
    lines = (text or "").splitlines()
    headers, separator, header_index = _find_headers(lines)
    rows: list[dict[str, str]] = []

    for i, line in enumerate(lines):
        if i == header_index or not line.strip():
            continue
        numbered = _ROW_RE.match(line)
        if numbered:
            cells = _split_cells(numbered.group(2), "|")
        elif separator in line and not _EXCEL_FILE_RE.search(line):
            cells = _split_cells(line, separator)
            # Loose lines must look like a data row, not prose that happens to hold a pipe
            if len(cells) < len(headers) - 2:
                continue
        else:
            continue

        row = {h: (cells[j] if j < len(cells) else "") for j, h in enumerate(headers)}
        if _is_header_repeat(row, headers) or not any(row.values()):
            continue
        rows.append(row)

    logger.info(f"Runsheet text: {len(rows)} rows parsed ({len(lines)} lines, "
                f"{'default' if header_index < 0 else 'found'} headers)")
    return rows


def find_prospect_hint(text: str) -> str:
    """Legal description carried by an ``EXCEL FILE:`` line, if any."""
    for line in (text or "").splitlines():
        m = _EXCEL_FILE_RE.search(line)
        if not m:
            continue
        legal = _FILENAME_LEGAL_RE.search(m.group(1))
        if legal:
            return _FILE_EXTENSION_RE.sub("", legal.group(1)).strip(" -_")
    return ""


class RunsheetTextExtractor(BaseExtractor):
    name = "runsheet text"

    async def extract(self, source: RunsheetSource,
                      on_progress: LLMProgressCallback | None = None) -> ExtractionResult:
        if not source.text or not source.text.strip():
            raise ExtractionError("no runsheet text supplied")
        rows = parse_runsheet_text(source.text)
        if not rows:
            raise ExtractionError("no runsheet rows found in text")
        return ExtractionResult(rows=rows, prospect_hint=find_prospect_hint(source.text))
