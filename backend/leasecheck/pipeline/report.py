"""Report assembler — merges the ledger and lease statuses into owner rows.

Percentages are formatted from exact fractions at the very end.  When the
ledger sums to exactly 1, largest-remainder rounding makes the displayed
strings total exactly ``100.00000000``; otherwise each value is rounded on
its own and the ledger's imbalance flag stands.
"""

import re
import logging
from datetime import date
from fractions import Fraction
from typing import Iterable, Optional, Sequence

from leasecheck.config import EngineConfig
from leasecheck.pipeline.identity import DEFAULT_MATCHER, NameMatcher
from leasecheck.pipeline.models import (
    FLAG_AMBIGUITY,
    FLAG_SYSTEMIC,
    UNKNOWN_OWNER_RESEARCH,
    InstrumentType,
    LandRecordEvent,
    LeaseCheckReport,
    LeaseholdStatus,
    LeaseResolution,
    LedgerEntry,
    OwnershipLedger,
    OwnerReport,
    ReviewFlag,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════
# 1. NUMBERS
# ═══════════════════════════════════════════════════

def _round_half_up(value: Fraction) -> int:
    return int((value * 2 + 1) // 2)


def _units_to_string(units: int, decimals: int) -> str:
    scale = 10 ** decimals
    sign = "-" if units < 0 else ""
    units = abs(units)
    if decimals == 0:
        return f"{sign}{units}"
    return f"{sign}{units // scale}.{units % scale:0{decimals}d}"


def format_percentages(fractions: Sequence[Fraction], decimals: int = 8) -> list[str]:
    """Percent strings (no "%" sign) for exact fractions of the estate.

    Examples (8 decimals):
      [1/2, 1/2]        → ["50.00000000", "50.00000000"]
      [1/3, 1/3, 1/3]   → ["33.33333334", "33.33333333", "33.33333333"]
    """
    scale = 100 * 10 ** decimals
    exact = [Fraction(f) * scale for f in fractions]
    if sum(fractions, Fraction(0)) != 1:
        return [_units_to_string(_round_half_up(x), decimals) for x in exact]

    floors = [int(x // 1) for x in exact]
    shortfall = scale - sum(floors)
    # Largest remainders first; ties keep ledger order
    by_remainder = sorted(range(len(exact)), key=lambda i: (-(exact[i] - floors[i]), i))
    for i in by_remainder[:shortfall]:
        floors[i] += 1
    return [_units_to_string(u, decimals) for u in floors]


def net_acres(acres: Optional[Fraction], interest: Fraction, decimals: int) -> Optional[float]:
    if acres is None:
        return None
    return round(float(acres * interest), decimals)


# ═══════════════════════════════════════════════════
# 2. WELLS AND LIMITATIONS
# ═══════════════════════════════════════════════════

_WELL_RE = re.compile(r'\b(wells?|production|producing|drill(?:ing|ed)?)\b', re.IGNORECASE)
_AS_WELL_RE = re.compile(r'\bas\s+well\b', re.IGNORECASE)


def extract_wells(events: Iterable[LandRecordEvent]) -> list[str]:
    """Comments that mention wells, production or drilling, in record order."""
    wells: list[str] = []
    for event in events:
        comments = (event.comments or "").strip()
        if comments and _WELL_RE.search(_AS_WELL_RE.sub(" ", comments)) and comments not in wells:
            wells.append(comments)
    return wells


STANDARD_LIMITATIONS = [
    "Title subject to all easements, restrictions, reservations, and covenants of record",
    "Subject to all valid liens, encumbrances, and claims not specifically released",
    "Mineral ownership subject to all valid outstanding oil and gas leases",
]


def limitations_and_exceptions(events: Iterable[LandRecordEvent]) -> str:
    events = list(events)

    def comments_mention(*words: str) -> bool:
        return any(w in (e.comments or "").lower() for e in events for w in words)

    limitations: list[str] = []
    if any(e.instrument_type is InstrumentType.TAX_DEED for e in events):
        limitations.append("Subject to potential tax deed limitations and statutory redemption periods")
    if comments_mention("foreclosure") or any("foreclosure" in e.raw_instrument_type.lower() for e in events):
        limitations.append("Subject to foreclosure proceedings and potential redemption rights")
    if comments_mention("reservation", "reserved", "except"):
        limitations.append("Subject to mineral reservations and exceptions as noted in conveyances")
    if any(e.instrument_type is InstrumentType.CORRECTION_DEED for e in events) or comments_mention("correction"):
        limitations.append("Subject to title corrections and clarifications noted in record")
    limitations.extend(STANDARD_LIMITATIONS)
    return ". ".join(limitations) + "."


# ═══════════════════════════════════════════════════
# 3. ASSEMBLY
# ═══════════════════════════════════════════════════

def _owner_flags(entry: LedgerEntry, ledger: OwnershipLedger, matcher: NameMatcher) -> list[str]:
    notes = []
    for flag in ledger.flags:
        if flag.owner and (flag.owner == entry.name or matcher.names_party(entry.name, flag.owner)):
            text = f"{flag.doc}: {flag.note}" if flag.doc else flag.note
            if text not in notes:
                notes.append(text)
    return notes


def assemble_report(
    prospect: str,
    tract_acres: Optional[Fraction],
    ledger: OwnershipLedger,
    resolutions: Sequence[LeaseResolution],
    events: Sequence[LandRecordEvent],
    as_of: date,
    flags: Iterable[ReviewFlag] = (),
    config: Optional[EngineConfig] = None,
    matcher: Optional[NameMatcher] = None,
    acres_estimated: bool = False,
    well_events: Iterable[LandRecordEvent] = (),
) -> LeaseCheckReport:
    """Build the owner-by-owner report.

    ``resolutions`` is aligned with ``ledger.active_entries()``.  Flags from
    earlier stages come in through ``flags``; ledger and lease flags are added
    here so the report carries every uncertainty of the run.
    """
    cfg = config or EngineConfig()
    matcher = matcher or DEFAULT_MATCHER
    active = ledger.active_entries()
    all_flags: list[ReviewFlag] = list(flags) + list(ledger.flags)

    # Largest interest first; ties keep ledger order
    order = sorted(range(len(active)), key=lambda i: -active[i].interest)
    percents = format_percentages([e.interest for e in active], cfg.percent_decimals)

    owners: list[OwnerReport] = []
    for i in order:
        entry, resolution = active[i], resolutions[i]
        name = UNKNOWN_OWNER_RESEARCH if entry.is_placeholder else entry.name
        lease_doc = resolution.last_lease.document_reference if resolution.last_lease else ""
        for note in resolution.flags:
            all_flags.append(ReviewFlag(note, doc=lease_doc, owner=name, category=FLAG_AMBIGUITY))

        review = list(resolution.flags) + _owner_flags(entry, ledger, matcher)
        if acres_estimated:
            review.append("net acres are provisional: tract acreage is an estimate")

        owner = OwnerReport(
            name=name,
            interest_percent=percents[i],
            net_acres=net_acres(tract_acres, entry.interest, cfg.net_acre_decimals),
            leasehold_status=resolution.status,
            last_lease_of_record=resolution.last_lease,
            review_flags=review,
            qualifiers=list(entry.qualifiers),
            net_acres_provisional=acres_estimated or tract_acres is None,
        )
        if resolution.leased_acres is not None and tract_acres is not None:
            leased = min(Fraction(resolution.leased_acres), tract_acres)
            owner.leased_net_acres = net_acres(leased, entry.interest, cfg.net_acre_decimals)
            owner.open_net_acres = net_acres(tract_acres - leased, entry.interest, cfg.net_acre_decimals)
        owners.append(owner)

    report = LeaseCheckReport(
        prospect=prospect,
        total_acres=float(tract_acres) if tract_acres is not None else None,
        owners=owners,
        wells=extract_wells([*events, *well_events]),
        limitations_and_exceptions=limitations_and_exceptions(events),
        flags=all_flags,
        as_of=as_of,
        total_acres_is_estimate=acres_estimated,
    )
    logger.info(f"Report assembled: {len(owners)} owners, {len(all_flags)} flags")
    return report


def placeholder_report(
    prospect: str,
    tract_acres: Optional[Fraction],
    reason: str,
    as_of: date,
    flags: Iterable[ReviewFlag] = (),
    config: Optional[EngineConfig] = None,
    acres_estimated: bool = False,
) -> LeaseCheckReport:
    """Structurally valid report for runs with nothing to replay."""
    cfg = config or EngineConfig()
    all_flags = list(flags) + [ReviewFlag(reason, owner=UNKNOWN_OWNER_RESEARCH, category=FLAG_SYSTEMIC)]
    owner = OwnerReport(
        name=UNKNOWN_OWNER_RESEARCH,
        interest_percent=format_percentages([Fraction(1)], cfg.percent_decimals)[0],
        net_acres=net_acres(tract_acres, Fraction(1), cfg.net_acre_decimals),
        leasehold_status=LeaseholdStatus.UNKNOWN,
        review_flags=[reason],
        net_acres_provisional=acres_estimated or tract_acres is None,
    )
    logger.warning(f"Placeholder report for '{prospect}': {reason}")
    return LeaseCheckReport(
        prospect=prospect,
        total_acres=float(tract_acres) if tract_acres is not None else None,
        owners=[owner],
        wells=[],
        limitations_and_exceptions=limitations_and_exceptions([]),
        flags=all_flags,
        as_of=as_of,
        total_acres_is_estimate=acres_estimated,
    )
