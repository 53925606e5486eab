"""LLM runsheet extractor — last resort for exports the text parser cannot read."""

import logging
from collections.abc import Mapping

from leasecheck.config import AI_EXTRACTION_ENABLED
from leasecheck.pipeline.extractors.base import (
    BaseExtractor, ExtractionError, ExtractionResult, RunsheetSource,
)
from leasecheck.pipeline.llm_client import call_llm, LLMProgressCallback
from leasecheck.pipeline.schemas import EXTRACT_RUNSHEET_SCHEMA

logger = logging.getLogger(__name__)


class LLMRunsheetExtractor(BaseExtractor):
    """Asks the local Ollama model to transcribe runsheet rows as JSON."""

    name = "AI extraction"

    SYSTEM_PROMPT = """You are an oil and gas title analyst reading a mineral runsheet.
Transcribe EVERY recorded instrument as one row, in the order listed.
Copy names, dates, fractions and legal descriptions exactly as written; never infer
or complete missing values, leave them empty instead.
Put each grantor or grantee on its own line and keep any fraction beside the name,
e.g. "Alice Roe (1/2)".
If the document states the tract (township, range, section), return it as "prospect"."""

    def __init__(self, enabled: bool | None = None):
        self.enabled = AI_EXTRACTION_ENABLED if enabled is None else enabled

    async def extract(self, source: RunsheetSource,
                      on_progress: LLMProgressCallback | None = None) -> ExtractionResult:
        if not self.enabled:
            raise ExtractionError("AI extraction is disabled")
        if not source.text or not source.text.strip():
            raise ExtractionError("no runsheet text supplied")

        name = source.filename or "runsheet"
        result = await call_llm(
            prompt=f"Extract all runsheet rows from this document:\n\n{source.text}",
            system_prompt=self.SYSTEM_PROMPT,
            expect_json=EXTRACT_RUNSHEET_SCHEMA,
            task_label=f"{name} extraction ({len(source.text):,} chars)",
            on_progress=on_progress,
        )
        if not isinstance(result, dict):
            raise ExtractionError("model returned a non-object response")
        if result.get("_fallback"):
            raise ExtractionError(result.get("_error", "model call failed"))

        rows = [dict(r) for r in result.get("rows") or [] if isinstance(r, Mapping)]
        if not rows:
            raise ExtractionError("model returned no rows")
        logger.info(f"LLMRunsheetExtractor: {len(rows)} rows from {name}")
        return ExtractionResult(rows=rows, prospect_hint=str(result.get("prospect") or "").strip())
