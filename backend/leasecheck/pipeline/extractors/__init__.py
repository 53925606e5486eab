"""Runsheet extractors and the fallback chain that orders them."""

from .base import BaseExtractor, ExtractionError, ExtractionResult, RunsheetSource
from .rows import StructuredRowsExtractor
from .runsheet import RunsheetTextExtractor
from .llm import LLMRunsheetExtractor
from .chain import ExtractionChain, ExtractionOutcome, default_chain

__all__ = [
    "BaseExtractor",
    "ExtractionError",
    "ExtractionResult",
    "RunsheetSource",
    "StructuredRowsExtractor",
    "RunsheetTextExtractor",
    "LLMRunsheetExtractor",
    "ExtractionChain",
    "ExtractionOutcome",
    "default_chain",
]
