"""Lease-check engine — one synchronous run over one tract.

Control flow:
  normalize rows → filter events to the tract → replay the ledger
  → resolve leasehold status per owner → assemble the report

The engine holds no state between runs and does no I/O, so callers may run
many tracts in parallel.  Malformed records never raise; they surface as
review flags on the returned report.
"""

import logging
from datetime import date
from fractions import Fraction
from typing import Any, Iterable, Mapping, Optional

from leasecheck.config import EngineConfig, TRACE_ENABLED
from leasecheck.pipeline.identity import DEFAULT_MATCHER, NameMatcher
from leasecheck.pipeline.ledger import replay
from leasecheck.pipeline.lease_status import resolve_status
from leasecheck.pipeline.legal_description import (
    compute_acreage,
    format_legal_description,
    match_legal_descriptions,
    parse_legal_description,
)
from leasecheck.pipeline.models import (
    DEED_LIKE_TYPES,
    FLAG_AMBIGUITY,
    FLAG_EXTRACTION,
    FLAG_PARSE,
    InstrumentType,
    LandRecordEvent,
    LeaseCheckReport,
    LeaseholdStatus,
    LeaseOverride,
    LeaseResolution,
    LegalMatch,
    ReviewFlag,
)
from leasecheck.pipeline.normalizer import normalize_rows
from leasecheck.pipeline.report import assemble_report, placeholder_report

logger = logging.getLogger(__name__)

ACREAGE_UNRESOLVED_NOTE = "gross acreage requires manual verification"

_CONVEYANCE_TYPES = DEED_LIKE_TYPES | {
    InstrumentType.PATENT, InstrumentType.PROBATE_DISTRIBUTION, InstrumentType.CONTRACT_FOR_DEED,
}


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


def _coerce_overrides(overrides: Optional[Mapping[str, Any]]) -> dict[str, LeaseOverride]:
    out: dict[str, LeaseOverride] = {}
    for key, value in (overrides or {}).items():
        if isinstance(value, LeaseOverride):
            out[str(key)] = value
        elif isinstance(value, Mapping):
            out[str(key)] = LeaseOverride.from_dict(dict(value))
    return out


def filter_to_tract(events: Iterable[LandRecordEvent], target_legal_description: str
                    ) -> tuple[list[LandRecordEvent], list[ReviewFlag]]:
    """Keep events whose legal description intersects the tract, flagging assumptions."""
    tract = parse_legal_description(target_legal_description)
    kept: list[LandRecordEvent] = []
    flags: list[ReviewFlag] = []
    for event in events:
        match = match_legal_descriptions(tract, event.legal_description)
        _trace(f"MATCH {event.label} '{event.legal_description}' → {match.value}")
        if match is LegalMatch.NO_MATCH:
            continue
        if not event.legal_description.strip():
            flags.append(ReviewFlag("instrument carries no legal description; assumed to cover "
                                    "the tract", doc=event.label, category=FLAG_PARSE))
        elif match is LegalMatch.PARTIAL and event.instrument_type is not InstrumentType.LEASE:
            flags.append(ReviewFlag(f"instrument only partly overlaps the tract "
                                    f"({event.legal_description}); applied to the whole tract, "
                                    f"requires manual verification",
                                    doc=event.label, category=FLAG_AMBIGUITY))
        elif match is LegalMatch.SUBSET and event.instrument_type in _CONVEYANCE_TYPES:
            flags.append(ReviewFlag(f"conveyance covers only part of the tract "
                                    f"({event.legal_description}); applied to the whole tract, "
                                    f"requires manual verification",
                                    doc=event.label, category=FLAG_AMBIGUITY))
        kept.append(event)
    return kept, flags


def run_lease_check(
    rows: Iterable[Mapping[str, Any]],
    target_legal_description: str,
    as_of: Optional[date] = None,
    lease_overrides: Optional[Mapping[str, Any]] = None,
    config: Optional[EngineConfig] = None,
    matcher: Optional[NameMatcher] = None,
    prospect: Optional[str] = None,
    extra_flags: Iterable[ReviewFlag] = (),
) -> LeaseCheckReport:
    """Compute current mineral ownership and leasehold status for one tract.

    Args:
        rows: raw runsheet rows (any column naming)
        target_legal_description: the tract, e.g. "158-102 18: E2NE4" or "NE 1/4"
        as_of: evaluation date, today when omitted
        lease_overrides: reviewer facts keyed by lease id or document reference,
            ``{"productionPresent", "topLease", "boundaryPugh", "depthPugh", "coveredAcres"}``
        config: engine parameters; environment defaults when omitted
        matcher: name identity policy; variant matching when omitted
        prospect: display name; derived from the legal description when omitted
        extra_flags: flags from the caller's extraction step

    Returns:
        LeaseCheckReport (never raises for malformed records)
    """
    cfg = config or EngineConfig()
    matcher = matcher or DEFAULT_MATCHER
    as_of = as_of or date.today()
    prospect = prospect or format_legal_description(target_legal_description)
    flags: list[ReviewFlag] = list(extra_flags)

    # ── Tract acreage ──
    tract = parse_legal_description(target_legal_description)
    acreage = compute_acreage(tract)
    acres = acreage.acres
    for note in acreage.notes:
        flags.append(ReviewFlag(note, doc=target_legal_description, category=FLAG_AMBIGUITY))
    estimated = False
    if acres is None:
        if not acreage.notes:
            flags.append(ReviewFlag(f"tract acreage unresolved; {ACREAGE_UNRESOLVED_NOTE}",
                                    doc=target_legal_description, category=FLAG_AMBIGUITY))
        if cfg.estimate_unresolved_acreage:
            acres = Fraction(str(cfg.estimated_acres))
            estimated = True
            flags.append(ReviewFlag(f"tract acreage estimated at {cfg.estimated_acres:g} acres; "
                                    f"estimate only, {ACREAGE_UNRESOLVED_NOTE}",
                                    doc=target_legal_description, category=FLAG_AMBIGUITY))

    # ── Normalize and filter ──
    normalized = normalize_rows(rows, cfg)
    flags.extend(normalized.flags)

    if not normalized.events:
        extraction_failed = any(f.category == FLAG_EXTRACTION for f in flags)
        reason = ("no land-record events could be extracted" if extraction_failed
                  else "no land-record events supplied")
        return placeholder_report(prospect, acres, reason, as_of, flags, cfg, estimated)

    events, match_flags = filter_to_tract(normalized.events, target_legal_description)
    flags.extend(match_flags)
    if not events:
        return placeholder_report(prospect, acres, "no land-record events match the tract",
                                  as_of, flags, cfg, estimated)
    remarks, _ = filter_to_tract(normalized.remarks, target_legal_description)

    # ── Ledger ──
    ledger = replay(events, matcher=matcher, config=cfg)

    # ── Lease status per owner ──
    leases = [e for e in events if e.instrument_type is InstrumentType.LEASE]
    releases = [e for e in events if e.instrument_type is InstrumentType.LEASE_RELEASE]
    overrides = _coerce_overrides(lease_overrides)
    production_events = [*events, *remarks]

    resolutions: list[LeaseResolution] = []
    for entry in ledger.active_entries():
        if entry.is_placeholder:
            resolutions.append(LeaseResolution(
                LeaseholdStatus.UNKNOWN, None,
                ["ownership not traceable to a patent; requires additional research"],
            ))
            continue
        resolutions.append(resolve_status(
            entry.name, leases, releases, as_of,
            production_events=production_events,
            matcher=matcher,
            config=cfg,
            overrides=overrides,
            pending_contracts=ledger.pending_contracts,
            predecessors=entry.predecessors,
            tract=tract,
        ))

    report = assemble_report(
        prospect, acres, ledger, resolutions, events, as_of,
        flags=flags, config=cfg, matcher=matcher, acres_estimated=estimated,
        well_events=remarks,
    )
    logger.info(
        f"Lease check '{prospect}': {len(events)}/{len(normalized.events)} events on tract, "
        f"{len(report.owners)} owners, {len(report.flags)} flags"
    )
    return report


class RunsheetAccumulator:
    """Collects runsheet rows arriving in chunks and recomputes from scratch.

    Extraction services are rate limited, so rows often arrive in batches.
    The ledger is never updated incrementally: every ``report()`` replays the
    full accumulated row set.
    """

    def __init__(self, target_legal_description: str, config: Optional[EngineConfig] = None,
                 matcher: Optional[NameMatcher] = None):
        self.target_legal_description = target_legal_description
        self.config = config
        self.matcher = matcher
        self._rows: list[Mapping[str, Any]] = []
        self._flags: list[ReviewFlag] = []

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, rows: Iterable[Mapping[str, Any]], flags: Iterable[ReviewFlag] = ()) -> int:
        added = list(rows)
        self._rows.extend(added)
        self._flags.extend(flags)
        _trace(f"ACCUMULATOR +{len(added)} rows (total {len(self._rows)})")
        return len(added)

    def clear(self):
        self._rows.clear()
        self._flags.clear()

    def report(self, as_of: Optional[date] = None, lease_overrides: Optional[Mapping[str, Any]] = None,
               prospect: Optional[str] = None) -> LeaseCheckReport:
        return run_lease_check(
            list(self._rows), self.target_legal_description, as_of=as_of,
            lease_overrides=lease_overrides, config=self.config, matcher=self.matcher,
            prospect=prospect, extra_flags=list(self._flags),
        )
