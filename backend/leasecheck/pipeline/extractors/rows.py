"""Structured-row extractor — rows the caller already holds (spreadsheet grid or dicts)."""

import logging
from collections.abc import Mapping, Sequence

from leasecheck.config import DEFAULT_RUNSHEET_HEADERS
from leasecheck.pipeline.extractors.base import (
    BaseExtractor, ExtractionError, ExtractionResult, RunsheetSource,
)
from leasecheck.pipeline.llm_client import LLMProgressCallback

logger = logging.getLogger(__name__)


def _is_header_row(cells: Sequence) -> bool:
    return any(str(c).strip().lower() == "instrument type" for c in cells)


class StructuredRowsExtractor(BaseExtractor):
    """Accepts mappings as-is; grids (lists of cells) are keyed by their header row.

    A grid whose first row carries no "Instrument Type" header is read with
    the default runsheet columns.
    """

    name = "structured rows"

    async def extract(self, source: RunsheetSource,
                      on_progress: LLMProgressCallback | None = None) -> ExtractionResult:
        if not source.rows:
            raise ExtractionError("no structured rows supplied")

        rows: list[dict] = []
        headers = list(DEFAULT_RUNSHEET_HEADERS)
        for i, raw in enumerate(source.rows):
            if isinstance(raw, Mapping):
                rows.append(dict(raw))
            elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
                if i == 0 and _is_header_row(raw):
                    headers = [str(c).strip() for c in raw]
                    continue
                rows.append({h: (raw[j] if j < len(raw) else "") for j, h in enumerate(headers)})
            else:
                # Left for the normalizer, which drops and flags it
                rows.append(raw)

        if not rows:
            raise ExtractionError("structured rows contain only a header")
        logger.info(f"StructuredRowsExtractor: {len(rows)} rows from {source.filename or 'caller'}")
        return ExtractionResult(rows=rows)
