"""Ordered extractor fallback: first strategy that yields rows wins.

Every failed attempt is kept as an ``extraction`` review flag so the final
report shows how its rows were obtained and what was tried first.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from leasecheck.pipeline.extractors.base import BaseExtractor, ExtractionError, RunsheetSource
from leasecheck.pipeline.extractors.llm import LLMRunsheetExtractor
from leasecheck.pipeline.extractors.rows import StructuredRowsExtractor
from leasecheck.pipeline.extractors.runsheet import RunsheetTextExtractor, find_prospect_hint
from leasecheck.pipeline.llm_client import LLMProgressCallback
from leasecheck.pipeline.models import FLAG_EXTRACTION, ReviewFlag

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    rows: list[dict[str, Any]] = field(default_factory=list)
    flags: list[ReviewFlag] = field(default_factory=list)
    extractor: str = ""
    prospect_hint: str = ""

    @property
    def succeeded(self) -> bool:
        return bool(self.extractor)


class ExtractionChain:
    def __init__(self, extractors: Sequence[BaseExtractor]):
        self.extractors = list(extractors)

    async def run(self, source: RunsheetSource,
                  on_progress: LLMProgressCallback | None = None) -> ExtractionOutcome:
        outcome = ExtractionOutcome()
        doc = source.filename or ""
        for extractor in self.extractors:
            try:
                result = await extractor.extract(source, on_progress=on_progress)
            except (ExtractionError, httpx.HTTPError, json.JSONDecodeError, ValueError) as e:
                logger.warning(f"[{doc or 'runsheet'}] {extractor.name} failed: {e}")
                outcome.flags.append(ReviewFlag(f"{extractor.name}: {e}", doc=doc,
                                                category=FLAG_EXTRACTION))
                continue
            outcome.rows = result.rows
            outcome.extractor = extractor.name
            outcome.prospect_hint = result.prospect_hint
            logger.info(f"[{doc or 'runsheet'}] {len(result.rows)} rows via {extractor.name}")
            break
        else:
            logger.error(f"[{doc or 'runsheet'}] All {len(self.extractors)} extractors failed")

        if not outcome.prospect_hint:
            outcome.prospect_hint = find_prospect_hint(source.text)
        return outcome


def default_chain(ai_enabled: Optional[bool] = None) -> ExtractionChain:
    """Structured rows, then runsheet text, then the LLM when it is enabled."""
    llm = LLMRunsheetExtractor(enabled=ai_enabled)
    extractors: list[BaseExtractor] = [StructuredRowsExtractor(), RunsheetTextExtractor()]
    if llm.enabled:
        extractors.append(llm)
    return ExtractionChain(extractors)
