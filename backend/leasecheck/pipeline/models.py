"""Data model for one lease-check computation run.

Every object here is derived from the caller's runsheet rows during a single
run over a single tract.  Nothing is cached between runs; the caller owns
storage of inputs and outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from fractions import Fraction
from typing import Any, Optional


# ═══════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════

class InstrumentType(str, Enum):
    PATENT = "Patent"
    WARRANTY_DEED = "WarrantyDeed"
    QUIT_CLAIM_DEED = "QuitClaimDeed"
    CONTRACT_FOR_DEED = "ContractForDeed"
    PROBATE_DISTRIBUTION = "ProbateDistribution"
    MINERAL_DEED = "MineralDeed"
    LEASE = "Lease"
    LEASE_RELEASE = "LeaseRelease"
    TAX_DEED = "TaxDeed"
    CORRECTION_DEED = "CorrectionDeed"
    OTHER = "Other"


# Instruments that move the grantor's interest to the grantee(s)
DEED_LIKE_TYPES = frozenset({
    InstrumentType.WARRANTY_DEED,
    InstrumentType.QUIT_CLAIM_DEED,
    InstrumentType.TAX_DEED,
    InstrumentType.CORRECTION_DEED,
    InstrumentType.MINERAL_DEED,
})


class InterestSource(str, Enum):
    PATENT = "Patent"
    DEED = "Deed"
    PROBATE = "Probate"
    UNKNOWN = "Unknown"   # placeholder seeded when no patent is of record


class LeaseholdStatus(str, Enum):
    OPEN = "Open"
    CURRENTLY_LEASED = "CurrentlyLeased"
    EXPIRED = "Expired"
    EXPIRED_POTENTIAL_HBP = "ExpiredPotentialHBP"
    UNKNOWN = "Unknown"


class LegalMatch(str, Enum):
    NO_MATCH = "NoMatch"
    EXACT = "ExactMatch"
    SUBSET = "EventCoversSubsetOfTract"
    SUPERSET = "EventCoversSupersetOfTract"
    PARTIAL = "PartialOverlap"

    @property
    def matches(self) -> bool:
        return self is not LegalMatch.NO_MATCH


# Review flag categories (error taxonomy)
FLAG_PARSE = "parse"
FLAG_CHAIN = "chain"
FLAG_AMBIGUITY = "ambiguity"
FLAG_SYSTEMIC = "systemic"
FLAG_EXTRACTION = "extraction"

UNKNOWN_OWNER = "Unknown Owner"
UNKNOWN_OWNER_RESEARCH = "Unknown Owner - Requires Additional Research"
EXPIRATION_UNRESOLVED = "requires production verification"


def format_fraction(value: Optional[Fraction]) -> str:
    if value is None:
        return ""
    return f"{value.numerator}/{value.denominator}"


def display_date(d: Optional[date], year_only: bool = False) -> Optional[str]:
    """ISO date, or just the year for dates recorded as a bare year."""
    if d is None:
        return None
    return str(d.year) if year_only else d.isoformat()


# ═══════════════════════════════════════════════════
# INPUT-SIDE ENTITIES
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class Party:
    """A grantor/grantee name plus the interest token written beside it."""
    name: str
    interest: Optional[Fraction] = None   # exact fraction of the whole estate
    interest_token: str = ""              # raw token as written, e.g. "1/4"
    qualifier: str = ""                   # "Life Estate" | "Remainderman" | ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "interest": format_fraction(self.interest) or None,
            "interest_token": self.interest_token or None,
            "qualifier": self.qualifier or None,
        }


@dataclass(frozen=True)
class LandRecordEvent:
    """One recorded instrument, normalized from a runsheet row."""
    event_id: str
    instrument_type: InstrumentType
    raw_instrument_type: str
    grantors: tuple[Party, ...]
    grantees: tuple[Party, ...]
    dated_date: Optional[date]
    recorded_date: Optional[date]
    sort_date: date
    legal_description: str = ""
    document_reference: str = ""
    comments: str = ""
    term_text: str = ""
    row_index: int = 0
    dated_year_only: bool = False
    recorded_year_only: bool = False

    @property
    def label(self) -> str:
        """Traceability label used on review flags."""
        return self.document_reference or f"row {self.row_index + 1}"

    @property
    def grantor_names(self) -> list[str]:
        return [p.name for p in self.grantors]

    @property
    def grantee_names(self) -> list[str]:
        return [p.name for p in self.grantees]

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "instrument_type": self.instrument_type.value,
            "raw_instrument_type": self.raw_instrument_type,
            "grantors": [p.to_dict() for p in self.grantors],
            "grantees": [p.to_dict() for p in self.grantees],
            "dated": display_date(self.dated_date, self.dated_year_only),
            "recorded": display_date(self.recorded_date, self.recorded_year_only),
            "legal_description": self.legal_description,
            "document_reference": self.document_reference,
            "comments": self.comments,
        }


@dataclass
class ReviewFlag:
    """A surfaced uncertainty: never suppressed, the caller decides what blocks."""
    note: str
    doc: str = ""
    owner: str = ""
    category: str = FLAG_CHAIN

    def to_dict(self) -> dict:
        return {
            "doc": self.doc or None,
            "owner": self.owner or None,
            "note": self.note,
            "category": self.category,
        }


@dataclass(frozen=True)
class LeaseOverride:
    """Reviewer-supplied facts about one lease (never derived by the engine)."""
    production_present: Optional[bool] = None
    top_lease: bool = False
    boundary_pugh: bool = False
    depth_pugh: bool = False
    covered_acres: Optional[float] = None   # lands the lease still holds under a Pugh clause

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaseOverride":
        """Accept both the camelCase wire form and snake_case keys."""
        def pick(*keys, default=None):
            for k in keys:
                if k in data and data[k] is not None:
                    return data[k]
            return default

        covered = pick("covered_acres", "coveredAcres")
        return cls(
            production_present=pick("production_present", "productionPresent"),
            top_lease=bool(pick("top_lease", "topLease", default=False)),
            boundary_pugh=bool(pick("boundary_pugh", "boundaryPugh", default=False)),
            depth_pugh=bool(pick("depth_pugh", "depthPugh", default=False)),
            covered_acres=float(covered) if covered is not None else None,
        )


# ═══════════════════════════════════════════════════
# LEDGER
# ═══════════════════════════════════════════════════

@dataclass
class LedgerEntry:
    name: str
    interest: Fraction
    source: InterestSource
    acquired_on: Optional[date] = None
    active: bool = True
    document_reference: str = ""
    qualifiers: list[str] = field(default_factory=list)
    predecessors: tuple[str, ...] = ()
    notes: list[str] = field(default_factory=list)

    @property
    def is_placeholder(self) -> bool:
        return self.source is InterestSource.UNKNOWN

    def deactivate(self) -> None:
        self.active = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "interest": format_fraction(self.interest),
            "source": self.source.value,
            "acquired_on": self.acquired_on.isoformat() if self.acquired_on else None,
            "active": self.active,
            "document_reference": self.document_reference,
            "qualifiers": list(self.qualifiers),
            "predecessors": list(self.predecessors),
        }


@dataclass
class PendingContract:
    """A contract for deed not yet followed by a deed to the vendee."""
    vendors: tuple[str, ...]
    vendee: str
    document_reference: str = ""
    recorded_on: Optional[date] = None


@dataclass
class OwnershipLedger:
    entries: list[LedgerEntry] = field(default_factory=list)
    flags: list[ReviewFlag] = field(default_factory=list)
    pending_contracts: list[PendingContract] = field(default_factory=list)
    resolved_from_patent: bool = False

    def active_entries(self) -> list[LedgerEntry]:
        return [e for e in self.entries if e.active]

    def total_interest(self) -> Fraction:
        return sum((e.interest for e in self.active_entries()), Fraction(0))

    def is_balanced(self, tolerance: float = 1e-6) -> bool:
        return abs(float(self.total_interest() - 1)) <= tolerance

    def to_dict(self) -> dict:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "flags": [f.to_dict() for f in self.flags],
            "resolved_from_patent": self.resolved_from_patent,
            "total_interest": format_fraction(self.total_interest()),
        }


# ═══════════════════════════════════════════════════
# LEASES AND OUTPUT
# ═══════════════════════════════════════════════════

@dataclass
class LeaseRecord:
    event_id: str
    lessors: tuple[str, ...]
    lessees: tuple[str, ...]
    dated_date: Optional[date]
    recorded_date: Optional[date]
    term_years: Optional[int]
    term_description: str
    computed_expiration: Optional[date]
    document_reference: str = ""
    covered_lands: tuple[str, ...] = ()
    term_is_default: bool = False
    dated_year_only: bool = False
    recorded_year_only: bool = False

    @property
    def expiration_display(self) -> str:
        if self.computed_expiration is None:
            return EXPIRATION_UNRESOLVED
        # Year-only dated leases give an approximate expiration
        return display_date(self.computed_expiration, self.dated_year_only)

    def to_dict(self) -> dict:
        return {
            "lessor": ", ".join(self.lessors),
            "lessee": ", ".join(self.lessees),
            "dated": display_date(self.dated_date, self.dated_year_only),
            "recorded": display_date(self.recorded_date, self.recorded_year_only),
            "term": self.term_description,
            "termYears": self.term_years,
            "expiration": self.expiration_display,
            "documentNumber": self.document_reference,
            "coveredLands": list(self.covered_lands),
        }


@dataclass
class LeaseResolution:
    status: LeaseholdStatus
    last_lease: Optional[LeaseRecord] = None
    flags: list[str] = field(default_factory=list)
    leased_acres: Optional[float] = None   # Pugh apportionment, tract-level acres still leased


@dataclass
class OwnerReport:
    name: str
    interest_percent: str
    net_acres: Optional[float]
    leasehold_status: LeaseholdStatus
    last_lease_of_record: Optional[LeaseRecord] = None
    review_flags: list[str] = field(default_factory=list)
    qualifiers: list[str] = field(default_factory=list)
    leased_net_acres: Optional[float] = None
    open_net_acres: Optional[float] = None
    net_acres_provisional: bool = False

    def to_dict(self) -> dict:
        d = {
            "name": self.name,
            "interestPercent": self.interest_percent,
            "netAcres": self.net_acres,
            "netAcresProvisional": self.net_acres_provisional,
            "leaseholdStatus": self.leasehold_status.value,
            "lastLeaseOfRecord": (
                self.last_lease_of_record.to_dict() if self.last_lease_of_record else None
            ),
            "reviewFlags": list(self.review_flags),
            "qualifiers": list(self.qualifiers),
        }
        if self.leased_net_acres is not None:
            d["leasedNetAcres"] = self.leased_net_acres
            d["openNetAcres"] = self.open_net_acres
        return d


@dataclass
class LeaseCheckReport:
    prospect: str
    total_acres: Optional[float]
    owners: list[OwnerReport]
    wells: list[str]
    limitations_and_exceptions: str
    flags: list[ReviewFlag]
    as_of: date
    total_acres_is_estimate: bool = False

    def to_dict(self) -> dict:
        return {
            "prospect": self.prospect,
            "totalAcres": self.total_acres if self.total_acres is not None else "unresolved",
            "totalAcresIsEstimate": self.total_acres_is_estimate,
            "asOf": self.as_of.isoformat(),
            "owners": [o.to_dict() for o in self.owners],
            "wells": list(self.wells),
            "limitationsAndExceptions": self.limitations_and_exceptions,
            "flags": [f.to_dict() for f in self.flags],
        }
