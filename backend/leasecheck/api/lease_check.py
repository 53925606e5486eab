"""Lease-check endpoints: rows in, runsheet text in, and batches of tracts."""

import asyncio
import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field

from leasecheck.config import MAX_CONCURRENT_RUNS
from leasecheck.pipeline.engine import run_lease_check
from leasecheck.pipeline.extractors import RunsheetSource, default_chain
from leasecheck.pipeline.models import LeaseCheckReport
from leasecheck.reports.generator import render_html_report

router = APIRouter()
logger = logging.getLogger(__name__)

# Engine runs are CPU-bound; the semaphore caps how many occupy worker threads at once
_run_semaphore = asyncio.Semaphore(MAX_CONCURRENT_RUNS)


class LeaseOverrideModel(BaseModel):
    productionPresent: Optional[bool] = None
    topLease: bool = False
    boundaryPugh: bool = False
    depthPugh: bool = False
    coveredAcres: Optional[float] = None


class RunRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(default_factory=list)
    targetLegalDescription: str
    asOfDate: Optional[date] = None
    leaseOverrides: dict[str, LeaseOverrideModel] = Field(default_factory=dict)
    prospect: Optional[str] = None


class AnalyzeRequest(BaseModel):
    documentText: str = ""
    rows: Optional[list[Any]] = None
    filename: str = ""
    targetLegalDescription: Optional[str] = None
    asOfDate: Optional[date] = None
    leaseOverrides: dict[str, LeaseOverrideModel] = Field(default_factory=dict)
    prospect: Optional[str] = None


class BatchRequest(BaseModel):
    tracts: list[RunRequest]


def _overrides(models: dict[str, LeaseOverrideModel]) -> dict[str, dict]:
    return {key: m.model_dump() for key, m in models.items()}


async def _run_in_worker(**kwargs) -> LeaseCheckReport:
    async with _run_semaphore:
        return await asyncio.to_thread(run_lease_check, **kwargs)


def _respond(report: LeaseCheckReport, fmt: str):
    if fmt == "html":
        return HTMLResponse(render_html_report(report))
    return JSONResponse(report.to_dict())


@router.post("/run")
async def run(request: RunRequest, format: str = Query("json", pattern="^(json|html)$")):
    """Compute ownership and leasehold status for one tract from runsheet rows."""
    if not request.targetLegalDescription.strip():
        raise HTTPException(status_code=422, detail="targetLegalDescription is required")
    report = await _run_in_worker(
        rows=request.rows,
        target_legal_description=request.targetLegalDescription,
        as_of=request.asOfDate,
        lease_overrides=_overrides(request.leaseOverrides),
        prospect=request.prospect,
    )
    return _respond(report, format)


@router.post("/analyze")
async def analyze(request: AnalyzeRequest, format: str = Query("json", pattern="^(json|html)$")):
    """Extract rows from a runsheet export, then run the lease check.

    The tract comes from ``targetLegalDescription`` or, failing that, from the
    ``EXCEL FILE:`` line of the export.
    """
    source = RunsheetSource(rows=request.rows, text=request.documentText, filename=request.filename)
    outcome = await default_chain().run(source)

    target = (request.targetLegalDescription or "").strip() or outcome.prospect_hint
    if not target:
        raise HTTPException(
            status_code=422,
            detail="targetLegalDescription is required when the runsheet does not name its tract",
        )
    logger.info(f"Analyze '{request.filename or 'runsheet'}': {len(outcome.rows)} rows via "
                f"{outcome.extractor or 'no extractor'}, tract '{target}'")

    report = await _run_in_worker(
        rows=outcome.rows,
        target_legal_description=target,
        as_of=request.asOfDate,
        lease_overrides=_overrides(request.leaseOverrides),
        prospect=request.prospect or outcome.prospect_hint or None,
        extra_flags=outcome.flags,
    )
    return _respond(report, format)


@router.post("/batch")
async def batch(request: BatchRequest):
    """Evaluate several independent tracts concurrently."""
    if not request.tracts:
        raise HTTPException(status_code=400, detail="No tracts specified")
    for i, tract in enumerate(request.tracts):
        if not tract.targetLegalDescription.strip():
            raise HTTPException(status_code=422, detail=f"tracts[{i}].targetLegalDescription is required")

    reports = await asyncio.gather(*[
        _run_in_worker(
            rows=t.rows,
            target_legal_description=t.targetLegalDescription,
            as_of=t.asOfDate,
            lease_overrides=_overrides(t.leaseOverrides),
            prospect=t.prospect,
        )
        for t in request.tracts
    ])
    logger.info(f"Batch: {len(reports)} tracts evaluated")
    return {"reports": [r.to_dict() for r in reports]}
