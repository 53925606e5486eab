"""Ownership ledger — replays conveyances into current fractional ownership.

``replay()`` is a pure function: it builds a fresh ``OwnershipLedger`` from a
sorted, tract-matching event list and returns it.  Nothing is kept between
calls, so re-running on the full accumulated event set is always safe.

Replay rules, in event order:
  Patent                  seeds the patentee(s) at 100%
  Deed-like instruments   move the grantor's interest (or the stated fraction)
  ProbateDistribution     splits the decedent's interest across heirs
  ContractForDeed         recorded as pending; no transfer until a deed follows
  Lease / Release / Other never touch the ledger

Interests are exact ``Fraction`` values end to end.  A ledger that does not
sum to 1 is flagged, never rescaled.
"""

import logging
from fractions import Fraction
from typing import Iterable, Optional

from leasecheck.config import EngineConfig, TRACE_ENABLED
from leasecheck.pipeline.identity import DEFAULT_MATCHER, NameMatcher, joint_members
from leasecheck.pipeline.models import (
    DEED_LIKE_TYPES,
    FLAG_AMBIGUITY,
    FLAG_CHAIN,
    UNKNOWN_OWNER,
    InstrumentType,
    InterestSource,
    LandRecordEvent,
    LedgerEntry,
    OwnershipLedger,
    Party,
    PendingContract,
    ReviewFlag,
    format_fraction,
)
from leasecheck.pipeline.utils import normalize_name

logger = logging.getLogger(__name__)

CHAIN_GAP_NOTE = "ownership source unverified — grantor not found in prior chain"
LEASING_AUTHORITY_NOTE = "present leasing authority requires manual verification"


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


def _percent(value: Fraction) -> str:
    return f"{float(value * 100):.8f}%"


class _Replay:
    """Mutable working state for one replay; discarded when replay() returns."""

    def __init__(self, matcher: NameMatcher, config: EngineConfig):
        self.matcher = matcher
        self.config = config
        self.ledger = OwnershipLedger()
        self.patent_seen = False

    # ── Lookups ──

    def find_active(self, name: str) -> list[LedgerEntry]:
        return [e for e in self.ledger.entries if e.active and self.matcher.same_party(e.name, name)]

    def grantor_entries(self, event: LandRecordEvent) -> list[LedgerEntry]:
        found: list[LedgerEntry] = []
        for party in event.grantors:
            matches = self.find_active(party.name) or self.split_joint_holding(party.name, event)
            for entry in matches:
                if not any(entry is f for f in found):
                    found.append(entry)
        return found

    def placeholder(self) -> Optional[LedgerEntry]:
        for entry in self.ledger.entries:
            if entry.active and entry.is_placeholder:
                return entry
        return None

    def flag(self, note: str, event: Optional[LandRecordEvent] = None, owner: str = "",
             category: str = FLAG_CHAIN):
        self.ledger.flags.append(ReviewFlag(note, doc=event.label if event else "", owner=owner,
                                            category=category))

    # ── Mutations ──

    def split_joint_holding(self, name: str, event: LandRecordEvent) -> list[LedgerEntry]:
        """Break an active joint holding that lists ``name`` into equal member entries."""
        for entry in self.ledger.active_entries():
            members = joint_members(entry.name)
            if not any(self.matcher.same_party(m, name) for m in members):
                continue
            entry.deactivate()
            each = entry.interest / len(members)
            for member in members:
                self.ledger.entries.append(LedgerEntry(
                    name=member,
                    interest=each,
                    source=entry.source,
                    acquired_on=entry.acquired_on,
                    document_reference=entry.document_reference,
                    qualifiers=list(entry.qualifiers),
                    predecessors=entry.predecessors,
                    notes=[f"member of joint holding {entry.name}"],
                ))
            self.flag(
                f"{name} conveys as a member of the joint holding {entry.name}; equal member "
                f"shares assumed, requires manual verification",
                event, owner=entry.name, category=FLAG_AMBIGUITY,
            )
            _trace(f"LEDGER split joint {entry.name} into {members} for {event.label}")
            return self.find_active(name)
        return []

    def credit(self, party: Party, share: Fraction, event: LandRecordEvent,
               source: InterestSource, predecessors: tuple[str, ...]):
        """Create or merge an active entry for a grantee."""
        acquired = event.recorded_date or event.dated_date or event.sort_date
        existing = self.find_active(party.name)
        if existing:
            entry = existing[0]
            if normalize_name(entry.name) != normalize_name(party.name):
                self.flag(
                    f"{party.name} treated as the same owner as {entry.name}; "
                    f"requires manual verification",
                    event, owner=entry.name, category=FLAG_AMBIGUITY,
                )
            entry.interest += share
            entry.predecessors = _merge_names(entry.predecessors, predecessors)
            entry.notes.append(f"added {format_fraction(share)} under {event.label}")
            _trace(f"LEDGER merge {party.name} +{format_fraction(share)} → {format_fraction(entry.interest)}")
        else:
            entry = LedgerEntry(
                name=party.name,
                interest=share,
                source=source,
                acquired_on=acquired,
                document_reference=event.document_reference or event.label,
                predecessors=predecessors,
            )
            self.ledger.entries.append(entry)
            _trace(f"LEDGER new {party.name} {format_fraction(share)} via {event.label}")

        if party.qualifier and party.qualifier not in entry.qualifiers:
            entry.qualifiers.append(party.qualifier)
            self.flag(
                f"{party.qualifier} interest recorded under {event.label}; {LEASING_AUTHORITY_NOTE}",
                event, owner=party.name, category=FLAG_AMBIGUITY,
            )

    def retire(self, entries: list[LedgerEntry], retained: Fraction, event: LandRecordEvent):
        """Deactivate grantor entries; any retained fraction becomes new reduced entries."""
        held = sum((e.interest for e in entries), Fraction(0))
        for entry in entries:
            entry.deactivate()
        if retained <= 0 or held <= 0:
            return
        for entry in entries:
            reduced = entry.interest * retained / held
            if reduced <= 0:
                continue
            self.ledger.entries.append(LedgerEntry(
                name=entry.name,
                interest=reduced,
                source=entry.source,
                acquired_on=entry.acquired_on,
                document_reference=entry.document_reference,
                qualifiers=list(entry.qualifiers),
                predecessors=entry.predecessors,
                notes=[f"retained {format_fraction(reduced)} after {event.label}"],
            ))
            _trace(f"LEDGER retained {entry.name} {format_fraction(reduced)} after {event.label}")

    # ── Event handlers ──

    def apply_patent(self, event: LandRecordEvent):
        if self.patent_seen:
            self.flag("multiple patents of record for this tract; the earliest recorded patent "
                      "was used", event)
            return
        self.patent_seen = True
        self.ledger.resolved_from_patent = True
        for party, share in _allocate(event.grantees, Fraction(1)):
            self.credit(party, share, event, InterestSource.PATENT, ())
        total = sum((p.interest for p in event.grantees if p.interest is not None), Fraction(0))
        if total > 1:
            self.flag(f"patent allocates {_percent(total)} of the estate", event)

    def apply_transfer(self, event: LandRecordEvent):
        if not event.grantees:
            self.flag(f"{event.raw_instrument_type or 'deed'} names no grantee; ledger unchanged",
                      event)
            return

        entries = self.grantor_entries(event)
        stated = _stated_conveyance(event)

        if entries:
            held = sum((e.interest for e in entries), Fraction(0))
            conveyed = held if stated is None else stated
            if conveyed > held:
                self.flag(
                    f"instrument conveys {_percent(conveyed)} but grantor(s) held "
                    f"{_percent(held)}; only the held interest was moved",
                    event, owner=", ".join(event.grantor_names),
                )
                conveyed = held
            predecessors = _merge_names(*[(e.name,) + e.predecessors for e in entries])
            self.retire(entries, held - conveyed, event)
        else:
            self.flag(CHAIN_GAP_NOTE, event, owner=", ".join(event.grantor_names))
            placeholder = self.placeholder()
            if placeholder is not None:
                conveyed = placeholder.interest if stated is None else min(stated, placeholder.interest)
                self.retire([placeholder], placeholder.interest - conveyed, event)
            else:
                conveyed = Fraction(1) if stated is None else stated
            predecessors = tuple(event.grantor_names)

        for party, share in _allocate(event.grantees, conveyed):
            self.credit(party, share, event, InterestSource.DEED, predecessors)
        self.resolve_contracts(event)

    def apply_probate(self, event: LandRecordEvent):
        if not event.grantees:
            self.flag("probate distribution names no distributee; ledger unchanged", event)
            return

        entries = self.grantor_entries(event)
        if entries:
            held = sum((e.interest for e in entries), Fraction(0))
            predecessors = _merge_names(*[(e.name,) + e.predecessors for e in entries])
            self.retire(entries, Fraction(0), event)
        else:
            self.flag(CHAIN_GAP_NOTE, event, owner=", ".join(event.grantor_names))
            placeholder = self.placeholder()
            held = placeholder.interest if placeholder is not None else Fraction(1)
            if placeholder is not None:
                self.retire([placeholder], Fraction(0), event)
            predecessors = tuple(event.grantor_names)

        tokens = [p.interest for p in event.grantees if p.interest is not None]
        token_sum = sum(tokens, Fraction(0))
        untokened = [p for p in event.grantees if p.interest is None]

        if tokens and token_sum == 1 and held < 1:
            # Heir shares written relative to the decedent's interest
            allocation = [(p, p.interest * held) for p in event.grantees if p.interest is not None]
            _trace(f"PROBATE {event.label}: tokens read as shares of {format_fraction(held)}")
        else:
            allocation = [(p, p.interest) for p in event.grantees if p.interest is not None]
        allocated = sum((s for _, s in allocation), Fraction(0))

        if untokened:
            remaining = held - allocated
            if remaining > 0:
                each = remaining / len(untokened)
                allocation.extend((p, each) for p in untokened)
                allocated = held
            else:
                self.flag("probate distribution leaves no interest for distributee(s) without a "
                          "stated share", event, owner=", ".join(p.name for p in untokened))

        if allocated != held:
            self.flag(
                f"probate distribution allocates {_percent(allocated)} but the decedent held "
                f"{_percent(held)}; requires manual verification",
                event, owner=", ".join(event.grantor_names),
            )

        for party, share in allocation:
            if share > 0:
                self.credit(party, share, event, InterestSource.PROBATE, predecessors)
            elif party.qualifier:
                self.flag(f"{party.qualifier} holder {party.name} received no fractional interest; "
                          f"{LEASING_AUTHORITY_NOTE}", event, owner=party.name, category=FLAG_AMBIGUITY)

    def apply_contract(self, event: LandRecordEvent):
        for party in event.grantees:
            self.ledger.pending_contracts.append(PendingContract(
                vendors=tuple(event.grantor_names),
                vendee=party.name,
                document_reference=event.label,
                recorded_on=event.recorded_date or event.dated_date,
            ))
            _trace(f"CFD pending: {event.grantor_names} → {party.name} ({event.label})")

    def resolve_contracts(self, event: LandRecordEvent):
        still_pending = []
        for contract in self.ledger.pending_contracts:
            if any(self.matcher.same_party(contract.vendee, g) for g in event.grantee_names):
                _trace(f"CFD {contract.document_reference} resolved by {event.label}")
                continue
            still_pending.append(contract)
        self.ledger.pending_contracts = still_pending


def _merge_names(*groups: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for group in groups:
        for name in group:
            if name and name not in seen:
                seen.append(name)
    return tuple(seen)


def _stated_conveyance(event: LandRecordEvent) -> Optional[Fraction]:
    """Fraction an instrument says it moves: grantee tokens first, then grantor tokens.

    Mixed grantees ("Bob Roe (1/4)" beside an untokened "Carl Roe") move the
    whole interest: Carl takes what Bob's token leaves.
    """
    grantee_tokens = [p.interest for p in event.grantees if p.interest is not None]
    if grantee_tokens and len(grantee_tokens) == len(event.grantees):
        return sum(grantee_tokens, Fraction(0))
    if grantee_tokens:
        return None
    grantor_tokens = [p.interest for p in event.grantors if p.interest is not None]
    if grantor_tokens:
        return sum(grantor_tokens, Fraction(0))
    return None


def _allocate(parties: Iterable[Party], total: Fraction) -> list[tuple[Party, Fraction]]:
    """Split ``total`` across parties in order: stated tokens first, the rest evenly.

    Tokens that overstate ``total`` are scaled down to it (the caller flags this).
    """
    parties = list(parties)
    stated_sum = sum((p.interest for p in parties if p.interest is not None), Fraction(0))
    unstated = [p for p in parties if p.interest is None]
    scale = total / stated_sum if stated_sum > total else Fraction(1)
    each = (total - stated_sum) / len(unstated) if unstated and stated_sum < total else Fraction(0)

    allocation = []
    for p in parties:
        share = p.interest * scale if p.interest is not None else each
        if share > 0:
            allocation.append((p, share))
    return allocation


# ═══════════════════════════════════════════════════
# REPLAY
# ═══════════════════════════════════════════════════

def replay(events: Iterable[LandRecordEvent], matcher: Optional[NameMatcher] = None,
           config: Optional[EngineConfig] = None) -> OwnershipLedger:
    """Replay sorted, tract-matching events into a fresh ownership ledger.

    Args:
        events: events already filtered to the tract and sorted by the normalizer
        matcher: identity policy; defaults to variant matching
        config: engine parameters (sum tolerance)

    Returns:
        The ledger with every entry ever created (inactive ones included),
        review flags, and contracts for deed still awaiting a deed.
    """
    events = list(events)
    state = _Replay(matcher or DEFAULT_MATCHER, config or EngineConfig())

    if not any(e.instrument_type is InstrumentType.PATENT for e in events):
        state.ledger.entries.append(LedgerEntry(
            name=UNKNOWN_OWNER, interest=Fraction(1), source=InterestSource.UNKNOWN,
        ))
        state.flag("no patent of record for this tract; ownership seeded as an Unknown Owner "
                   "placeholder at 100%")

    for event in events:
        itype = event.instrument_type
        if itype is InstrumentType.PATENT:
            state.apply_patent(event)
        elif itype in DEED_LIKE_TYPES:
            state.apply_transfer(event)
        elif itype is InstrumentType.PROBATE_DISTRIBUTION:
            state.apply_probate(event)
        elif itype is InstrumentType.CONTRACT_FOR_DEED:
            state.apply_contract(event)

    ledger = state.ledger
    for contract in ledger.pending_contracts:
        state.flag(
            f"contract for deed to {contract.vendee} has no subsequent deed; vendee may hold "
            f"leasing authority; requires manual verification",
            owner=contract.vendee, category=FLAG_AMBIGUITY,
        )
        ledger.flags[-1].doc = contract.document_reference

    total = ledger.total_interest()
    if not ledger.is_balanced(state.config.sum_tolerance):
        state.flag(f"active ownership sums to {_percent(total)}, not 100%; "
                   f"requires manual verification")

    logger.info(
        f"Ledger replay: {len(events)} events, {len(ledger.active_entries())} active owners, "
        f"total {format_fraction(total)}, {len(ledger.flags)} flags"
    )
    return ledger

