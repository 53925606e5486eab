"""Lease matcher and leasehold status resolver.

For one current owner:

  1. Candidate leases name the owner as lessor (variant matching), or the
     vendee of a contract for deed the owner has not yet closed.
  2. The most recently recorded candidate is the lease of record.
  3. A later release by that lease's lessee opens the interest outright.
  4. Otherwise expiration = dated date + primary term, and

        as_of <  expiration              → CurrentlyLeased
        as_of >= expiration, no signal   → Expired
        as_of >= expiration, production  → ExpiredPotentialHBP (flagged)

Leases granted by a predecessor in title bind the owner only while they are
still in force or potentially held by production.
"""

import re
import logging
from datetime import date
from typing import Iterable, Optional, Sequence

from leasecheck.config import EngineConfig, TRACE_ENABLED
from leasecheck.pipeline.identity import DEFAULT_MATCHER, NameMatcher
from leasecheck.pipeline.legal_description import (
    ParsedLegal,
    match_legal_descriptions,
    overlap_acres,
)
from leasecheck.pipeline.models import (
    InstrumentType,
    LandRecordEvent,
    LeaseholdStatus,
    LeaseOverride,
    LeaseRecord,
    LeaseResolution,
    LegalMatch,
    PendingContract,
    display_date,
)
from leasecheck.pipeline.utils import add_years

logger = logging.getLogger(__name__)

CONTRACT_NOTE = "possible co-lessor under unresolved contract for deed."

_IN_FORCE = frozenset({LeaseholdStatus.CURRENTLY_LEASED, LeaseholdStatus.EXPIRED_POTENTIAL_HBP})


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# 1. TERM PARSING
# ═══════════════════════════════════════════════════

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6, "seven": 7,
    "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12, "fifteen": 15,
    "twenty": 20,
}
_WORDS_BY_NUMBER = {v: k.capitalize() for k, v in _NUMBER_WORDS.items()}

# "3 year term", "3-year", "(3) years", "5 yrs"
_NUMERIC_TERM_RE = re.compile(r'\(?\b(\d{1,2})\s*\)?\s*-?\s*(?:years?|yrs?)\b', re.IGNORECASE)
# "Three years", "three-year primary term"
_WORD_TERM_RE = re.compile(
    r'\b(' + '|'.join(_NUMBER_WORDS) + r')\b\s*(?:\(\s*\d{1,2}\s*\))?\s*-?\s*(?:years?|yrs?)\b',
    re.IGNORECASE,
)


def describe_term(years: int) -> str:
    """3 → "Three (3) Years"."""
    word = _WORDS_BY_NUMBER.get(years)
    unit = "Year" if years == 1 else "Years"
    return f"{word} ({years}) {unit}" if word else f"{years} {unit}"


def parse_term_years(*texts: str) -> Optional[int]:
    """Primary term in whole years from the first text that states one.

    Examples:
      "3 year term"              → 3
      "Three (3) years, 1/8th"   → 3
      "five-year primary term"   → 5
      "paid up lease"            → None
    """
    for text in texts:
        if not text:
            continue
        m = _WORD_TERM_RE.search(text)
        if m:
            return _NUMBER_WORDS[m.group(1).lower()]
        m = _NUMERIC_TERM_RE.search(text)
        if m and 0 < int(m.group(1)) <= 99:
            return int(m.group(1))
    return None


def compute_expiration(lease: LandRecordEvent, years: int) -> tuple[Optional[date], list[str]]:
    """Expiration = dated date + term, falling back to the recorded date."""
    notes: list[str] = []
    if lease.dated_date is not None:
        if lease.dated_year_only:
            notes.append(f"lease {lease.label} is dated by year only; expiration is approximate")
        return add_years(lease.dated_date, years), notes
    if lease.recorded_date is not None:
        notes.append(f"lease {lease.label} has no dated date; expiration computed from the "
                     f"recorded date")
        return add_years(lease.recorded_date, years), notes
    return None, notes


# ═══════════════════════════════════════════════════
# 2. PRODUCTION SIGNALS
# ═══════════════════════════════════════════════════

_PRODUCTION_RE = re.compile(
    r'\b(wells?|producing|production|produced|royalt(?:y|ies)|division\s+orders?|'
    r'spud(?:ded)?|drill(?:ed|ing)?)\b',
    re.IGNORECASE,
)
_AS_WELL_RE = re.compile(r'\bas\s+well\b', re.IGNORECASE)
# A lease's own royalty rate ("3/16 royalty") is not a production signal
_ROYALTY_RATE_RE = re.compile(r'\d+\s*/\s*\d+(?:th|ths)?\s+royalt(?:y|ies)', re.IGNORECASE)
# Production-side instruments; a royalty or mineral deed conveys, it does not prove production
_PRODUCTION_TYPE_RE = re.compile(
    r'division\s+orders?|royalty\s+(?:payments?|statements?|checks?|remittances?)', re.IGNORECASE,
)


def mentions_production(text: str) -> bool:
    if not text:
        return False
    text = _ROYALTY_RATE_RE.sub(" ", _AS_WELL_RE.sub(" ", text))
    return bool(_PRODUCTION_RE.search(text))


def production_signals(events: Iterable[LandRecordEvent]) -> list[str]:
    """Labels of events whose comments or instrument type suggest production."""
    labels = []
    for event in events:
        production_type = (event.instrument_type is InstrumentType.OTHER
                           and _PRODUCTION_TYPE_RE.search(event.raw_instrument_type or ""))
        if mentions_production(event.comments) or production_type:
            labels.append(event.label)
    return labels


# ═══════════════════════════════════════════════════
# 3. RESOLUTION
# ═══════════════════════════════════════════════════

def _order(event: LandRecordEvent) -> tuple:
    return (event.sort_date, event.row_index)


def _lease_record(lease: LandRecordEvent, years: Optional[int], expiration: Optional[date],
                  defaulted: bool) -> LeaseRecord:
    return LeaseRecord(
        event_id=lease.event_id,
        lessors=tuple(lease.grantor_names),
        lessees=tuple(lease.grantee_names),
        dated_date=lease.dated_date,
        recorded_date=lease.recorded_date,
        term_years=years,
        term_description=describe_term(years) if years else "",
        computed_expiration=expiration,
        document_reference=lease.document_reference,
        covered_lands=(lease.legal_description,) if lease.legal_description else (),
        term_is_default=defaulted,
        dated_year_only=lease.dated_year_only,
        recorded_year_only=lease.recorded_year_only,
    )


def _find_override(lease: LandRecordEvent,
                   overrides: Optional[dict[str, LeaseOverride]]) -> Optional[LeaseOverride]:
    if not overrides:
        return None
    for key in (lease.event_id, lease.document_reference, *lease.document_reference.split(" / ")):
        if key and key in overrides:
            return overrides[key]
    return None


def _release_for(lease: LandRecordEvent, releases: Sequence[LandRecordEvent],
                 matcher: NameMatcher) -> Optional[LandRecordEvent]:
    for release in releases:
        if _order(release) <= _order(lease):
            continue
        releasor_text = "\n".join(release.grantor_names)
        for lessee in lease.grantee_names:
            if matcher.names_party(lessee, releasor_text) or matcher.names_party(lessee, release.comments):
                return release
        if lease.document_reference and lease.document_reference in release.comments:
            return release
    return None


def evaluate_lease(lease: LandRecordEvent, releases: Sequence[LandRecordEvent], as_of: date,
                   *, production_events: Iterable[LandRecordEvent] = (),
                   matcher: Optional[NameMatcher] = None, config: Optional[EngineConfig] = None,
                   override: Optional[LeaseOverride] = None,
                   tract: Optional[ParsedLegal] = None) -> LeaseResolution:
    """Classify one lease as of a date (release, term math, HBP heuristic, overrides)."""
    matcher = matcher or DEFAULT_MATCHER
    cfg = config or EngineConfig()
    flags: list[str] = []

    years = parse_term_years(lease.term_text, lease.comments)
    defaulted = years is None
    if defaulted:
        years = cfg.default_term_years
        flags.append(f"lease {lease.label} states no primary term; a {years}-year default term "
                     f"was assumed and requires manual verification")
    expiration, notes = compute_expiration(lease, years)
    flags.extend(notes)
    record = _lease_record(lease, years, expiration, defaulted)

    release = _release_for(lease, releases, matcher)
    if release is not None:
        _trace(f"LEASE {lease.label} released by {release.label}")
        return LeaseResolution(LeaseholdStatus.OPEN, record,
                               [f"lease {lease.label} released by {release.label}"])

    if expiration is None:
        status = LeaseholdStatus.CURRENTLY_LEASED
        flags.append(f"lease {lease.label} carries no usable date; expiration "
                     f"requires production verification")
    elif as_of < expiration:
        status = LeaseholdStatus.CURRENTLY_LEASED
    elif override is not None and override.production_present is True:
        status = LeaseholdStatus.CURRENTLY_LEASED
        flags.append(f"primary term expired {display_date(expiration)}; held by production "
                     f"per reviewer-supplied production information")
    elif override is not None and override.production_present is False:
        status = LeaseholdStatus.EXPIRED
    else:
        signals = production_signals(production_events)
        if signals:
            status = LeaseholdStatus.EXPIRED_POTENTIAL_HBP
            flags.append(f"primary term expired {display_date(expiration)}; production noted in "
                         f"{', '.join(signals)}; held-by-production status requires production "
                         f"verification")
        else:
            status = LeaseholdStatus.EXPIRED

    resolution = LeaseResolution(status, record, flags)
    if override is not None:
        _apply_override(resolution, lease, override)
    if tract is not None and lease.legal_description:
        _apportion_partial_lease(resolution, lease, tract)
    _trace(f"LEASE {lease.label}: {status.value} exp={display_date(expiration)}")
    return resolution


def _apply_override(resolution: LeaseResolution, lease: LandRecordEvent, override: LeaseOverride):
    if override.top_lease:
        resolution.flags.append(f"lease {lease.label} is a top lease; an underlying lease may still "
                                f"be in force and requires manual verification")
    if override.depth_pugh:
        resolution.flags.append(f"lease {lease.label} carries a depth Pugh clause; it holds only "
                                f"the producing depths")
    if override.boundary_pugh:
        if override.covered_acres is not None:
            if resolution.status in _IN_FORCE:
                resolution.leased_acres = float(override.covered_acres)
            resolution.flags.append(f"lease {lease.label} limited by a boundary Pugh clause to "
                                    f"{override.covered_acres:g} acres")
        else:
            resolution.flags.append(f"lease {lease.label} carries a boundary Pugh clause but no "
                                    f"covered acreage was supplied; apportionment requires "
                                    f"manual verification")


def _apportion_partial_lease(resolution: LeaseResolution, lease: LandRecordEvent, tract: ParsedLegal):
    match = match_legal_descriptions(tract, lease.legal_description)
    if match not in (LegalMatch.SUBSET, LegalMatch.PARTIAL):
        return
    resolution.flags.append(f"lease {lease.label} covers only part of the tract "
                            f"({lease.legal_description})")
    if resolution.leased_acres is None and resolution.status in _IN_FORCE:
        acres = overlap_acres(tract, lease.legal_description)
        if acres is not None:
            resolution.leased_acres = float(acres)
        else:
            resolution.flags.append("partial lease acreage requires manual verification")


def resolve_status(owner: str, lease_events: Sequence[LandRecordEvent],
                   release_events: Sequence[LandRecordEvent], as_of: date,
                   *, production_events: Iterable[LandRecordEvent] = (),
                   matcher: Optional[NameMatcher] = None, config: Optional[EngineConfig] = None,
                   overrides: Optional[dict[str, LeaseOverride]] = None,
                   pending_contracts: Iterable[PendingContract] = (),
                   predecessors: Iterable[str] = (),
                   tract: Optional[ParsedLegal] = None) -> LeaseResolution:
    """Leasehold status of one owner as of a date.

    Args:
        owner: current owner name from the ledger
        lease_events: tract-matching Lease events in replay order
        release_events: tract-matching LeaseRelease events in replay order
        as_of: evaluation date
        production_events: events scanned for the held-by-production heuristic
        overrides: reviewer-supplied facts keyed by lease id or document reference
        pending_contracts: contracts for deed the ledger could not close
        predecessors: earlier owners of this interest, for leases that still bind it
        tract: parsed target tract, for partial-coverage apportionment
    """
    matcher = matcher or DEFAULT_MATCHER
    leases = [e for e in lease_events if e.instrument_type is InstrumentType.LEASE]
    releases = [e for e in release_events if e.instrument_type is InstrumentType.LEASE_RELEASE]
    production_events = list(production_events)

    notes: list[str] = []
    vendees = [c.vendee for c in pending_contracts
               if any(matcher.same_party(owner, v) for v in c.vendors)]
    if vendees:
        notes.append(CONTRACT_NOTE)

    def names_any(lease: LandRecordEvent, names: Iterable[str]) -> bool:
        lessor_text = "\n".join(lease.grantor_names)
        return any(matcher.names_party(n, lessor_text) for n in names)

    own = [le for le in leases if names_any(le, [owner, *vendees])]
    inherited = [le for le in leases if le not in own and names_any(le, predecessors)]

    def evaluate(lease: LandRecordEvent) -> LeaseResolution:
        return evaluate_lease(
            lease, releases, as_of, production_events=production_events, matcher=matcher,
            config=config, override=_find_override(lease, overrides), tract=tract,
        )

    chosen: Optional[LeaseResolution] = None
    own_latest = max(own, key=_order) if own else None
    if own_latest is not None:
        chosen = evaluate(own_latest)
    if inherited:
        pred_latest = max(inherited, key=_order)
        if own_latest is None or _order(pred_latest) > _order(own_latest):
            pred = evaluate(pred_latest)
            if pred.status in _IN_FORCE:
                pred.flags.insert(0, f"lease {pred_latest.label} by predecessor in title "
                                     f"{', '.join(pred_latest.grantor_names)} still burdens this interest")
                chosen = pred

    if chosen is None:
        chosen = LeaseResolution(LeaseholdStatus.OPEN, None, [])
    chosen.flags = notes + chosen.flags
    return chosen
