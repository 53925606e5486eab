"""Base extractor interface shared by every runsheet extraction strategy."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from leasecheck.pipeline.llm_client import LLMProgressCallback

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised by an extractor that cannot produce rows from its source."""


@dataclass
class RunsheetSource:
    """Whatever the caller has for one tract: structured rows, exported text, or both."""
    rows: Optional[list[Any]] = None
    text: str = ""
    filename: str = ""


@dataclass
class ExtractionResult:
    rows: list[dict[str, Any]] = field(default_factory=list)
    prospect_hint: str = ""


class BaseExtractor(ABC):
    """Abstract base for runsheet extraction strategies."""

    name = "extractor"

    @abstractmethod
    async def extract(self, source: RunsheetSource,
                      on_progress: LLMProgressCallback | None = None) -> ExtractionResult:
        """Turn a runsheet source into raw ``{column: value}`` rows.

        Args:
            source: the caller's runsheet input
            on_progress: Async callback for LLM progress updates

        Returns:
            ExtractionResult with at least one row

        Raises:
            ExtractionError: when this strategy cannot read the source
        """
        pass
