"""Tests for lease term parsing and leasehold status resolution.

Covers:
  - parse_term_years / describe_term / compute_expiration
  - mentions_production / production_signals (HBP heuristic inputs)
  - evaluate_lease: release precedence, term math, HBP, overrides, Pugh
  - resolve_status: most recent lease, predecessor leases, contract vendees
"""

import pytest
from datetime import date

from leasecheck.config import EngineConfig
from leasecheck.pipeline.lease_status import (
    CONTRACT_NOTE,
    describe_term,
    evaluate_lease,
    mentions_production,
    parse_term_years,
    production_signals,
    resolve_status,
)
from leasecheck.pipeline.legal_description import parse_legal_description
from leasecheck.pipeline.models import (
    InstrumentType,
    LeaseholdStatus,
    LeaseOverride,
    PendingContract,
)
from leasecheck.pipeline.normalizer import normalize_rows

TRACT_LEGAL = "T158N R102W Sec. 18: NE4"


def _events(rows):
    return normalize_rows(rows).events


def _of(events, itype):
    return [e for e in events if e.instrument_type is itype]


def _lease_row(row, **kw):
    defaults = dict(dated="2015-01-01", recorded="2015-01-10", number="2015-0042", term="3 year")
    defaults.update(kw)
    return row("Oil and Gas Lease", "John Roe", "XTO Energy Inc.", **defaults)


# ═══════════════════════════════════════════════════
# 1. Terms
# ═══════════════════════════════════════════════════

class TestTermParsing:

    @pytest.mark.parametrize("text,expected", [
        ("3 year term", 3),
        ("3-year", 3),
        ("Three (3) years, 1/8th royalty", 3),
        ("five-year primary term", 5),
        ("5 yrs", 5),
        ("(10) years", 10),
        ("paid up lease", None),
        ("", None),
    ])
    def test_parse_term_years(self, text, expected):
        assert parse_term_years(text) == expected

    def test_first_text_with_term_wins(self):
        assert parse_term_years("", "paid up", "five years") == 5

    @pytest.mark.parametrize("years,expected", [
        (3, "Three (3) Years"),
        (1, "One (1) Year"),
        (25, "25 Years"),
    ])
    def test_describe_term(self, years, expected):
        assert describe_term(years) == expected


# ═══════════════════════════════════════════════════
# 2. Production signals
# ═══════════════════════════════════════════════════

class TestProductionSignals:

    @pytest.mark.parametrize("text", [
        "Roe 18-1H producing well drilled 2016",
        "well spudded 2012",
        "Division Order on file",
    ])
    def test_mentions_production(self, text):
        assert mentions_production(text)

    @pytest.mark.parametrize("text", [
        "3/16 royalty",
        "surface as well as minerals",
        "paid up lease",
        "",
    ])
    def test_no_production(self, text):
        assert not mentions_production(text)

    def test_signal_from_instrument_type(self, row):
        events = _events([row("Division Order", "Op Co", "John Roe", "2017", "2017", number="DO-1")])
        assert production_signals(events) == ["DO-1"]

    @pytest.mark.parametrize("itype", [
        "Mineral and Royalty Deed", "Royalty Deed", "Assignment of Overriding Royalty",
    ])
    def test_royalty_conveyance_is_not_production(self, row, itype):
        events = _events([row(itype, "John Roe", "Ann Poe", "2017", "2017", number="RD-1")])
        assert production_signals(events) == []

    def test_royalty_statement_is_production(self, row):
        events = _events([row("Royalty Statement", "Op Co", "John Roe", "2019", "2019", number="RS-1")])
        assert production_signals(events) == ["RS-1"]


# ═══════════════════════════════════════════════════
# 3. evaluate_lease
# ═══════════════════════════════════════════════════

class TestEvaluateLease:

    def test_expired(self, row, as_of_2025):
        lease = _events([_lease_row(row)])[0]
        res = evaluate_lease(lease, [], as_of_2025)
        assert res.status is LeaseholdStatus.EXPIRED
        assert res.last_lease.computed_expiration == date(2018, 1, 1)
        assert res.last_lease.term_description == "Three (3) Years"
        assert res.flags == []

    def test_currently_leased(self, row):
        lease = _events([_lease_row(row)])[0]
        assert evaluate_lease(lease, [], date(2017, 6, 1)).status is LeaseholdStatus.CURRENTLY_LEASED

    def test_expires_on_expiration_date(self, row):
        lease = _events([_lease_row(row)])[0]
        assert evaluate_lease(lease, [], date(2018, 1, 1)).status is LeaseholdStatus.EXPIRED

    def test_release_by_lessee_opens(self, row):
        events = _events([
            _lease_row(row),
            row("Release of Oil and Gas Lease", "XTO Energy Inc.", "John Roe",
                "2016-01-01", "2016-02-01", number="2016-9"),
        ])
        lease = _of(events, InstrumentType.LEASE)[0]
        releases = _of(events, InstrumentType.LEASE_RELEASE)
        res = evaluate_lease(lease, releases, date(2016, 6, 1))
        assert res.status is LeaseholdStatus.OPEN
        assert res.flags == ["lease 2015-0042 released by 2016-9"]

    def test_release_citing_lease_number_opens(self, row):
        events = _events([
            _lease_row(row),
            row("Release", "Successor Oil LLC", "John Roe", "2016-01-01", "2016-02-01",
                comments="releases lease 2015-0042"),
        ])
        res = evaluate_lease(_of(events, InstrumentType.LEASE)[0],
                             _of(events, InstrumentType.LEASE_RELEASE), date(2016, 6, 1))
        assert res.status is LeaseholdStatus.OPEN

    def test_release_by_stranger_ignored(self, row):
        events = _events([
            _lease_row(row),
            row("Release", "Other Co", "John Roe", "2016-01-01", "2016-02-01"),
        ])
        res = evaluate_lease(_of(events, InstrumentType.LEASE)[0],
                             _of(events, InstrumentType.LEASE_RELEASE), date(2016, 6, 1))
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED

    def test_earlier_release_ignored(self, row):
        events = _events([
            row("Release", "XTO Energy Inc.", "John Roe", "2010-01-01", "2010-02-01"),
            _lease_row(row),
        ])
        res = evaluate_lease(_of(events, InstrumentType.LEASE)[0],
                             _of(events, InstrumentType.LEASE_RELEASE), date(2016, 6, 1))
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED

    def test_production_signal_marks_potential_hbp(self, row, as_of_2025):
        events = _events([_lease_row(row, comments="Roe 18-1H producing well drilled 2016")])
        res = evaluate_lease(events[0], [], as_of_2025, production_events=events)
        assert res.status is LeaseholdStatus.EXPIRED_POTENTIAL_HBP
        assert any("requires production verification" in f for f in res.flags)

    def test_royalty_deed_does_not_keep_lease_alive(self, row, as_of_2025):
        events = _events([
            _lease_row(row),
            row("Mineral and Royalty Deed", "John Roe", "Ann Poe (1/4)", "2017-03-01", "2017-03-05"),
        ])
        lease = _of(events, InstrumentType.LEASE)[0]
        res = evaluate_lease(lease, [], as_of_2025, production_events=events)
        assert res.status is LeaseholdStatus.EXPIRED

    def test_override_production_present(self, row, as_of_2025):
        events = _events([_lease_row(row)])
        res = evaluate_lease(events[0], [], as_of_2025,
                             override=LeaseOverride(production_present=True))
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED
        assert any("held by production" in f for f in res.flags)

    def test_override_production_absent_beats_signal(self, row, as_of_2025):
        events = _events([_lease_row(row, comments="producing well")])
        res = evaluate_lease(events[0], [], as_of_2025, production_events=events,
                             override=LeaseOverride(production_present=False))
        assert res.status is LeaseholdStatus.EXPIRED

    def test_default_term_flagged(self, row):
        lease = _events([_lease_row(row, term="")])[0]
        res = evaluate_lease(lease, [], date(2016, 1, 1), config=EngineConfig(default_term_years=3))
        assert res.last_lease.term_is_default
        assert res.last_lease.computed_expiration == date(2018, 1, 1)
        assert "default term" in res.flags[0]

    def test_configured_default_term(self, row):
        lease = _events([_lease_row(row, term="")])[0]
        res = evaluate_lease(lease, [], date(2016, 1, 1), config=EngineConfig(default_term_years=5))
        assert res.last_lease.computed_expiration == date(2020, 1, 1)

    def test_recorded_date_fallback(self, row):
        lease = _events([_lease_row(row, dated="")])[0]
        res = evaluate_lease(lease, [], date(2025, 1, 1))
        assert res.last_lease.computed_expiration == date(2018, 1, 10)
        assert any("recorded date" in f for f in res.flags)

    def test_year_only_lease_shown_as_year(self, row):
        lease = _events([_lease_row(row, dated="2015", recorded="2015")])[0]
        res = evaluate_lease(lease, [], date(2025, 1, 1))
        wire = res.last_lease.to_dict()
        assert (wire["dated"], wire["recorded"], wire["expiration"]) == ("2015", "2015", "2018")
        assert any("approximate" in f for f in res.flags)

    def test_boundary_pugh_limits_leased_acres(self, row):
        lease = _events([_lease_row(row)])[0]
        res = evaluate_lease(lease, [], date(2017, 1, 1),
                             override=LeaseOverride(boundary_pugh=True, covered_acres=40))
        assert res.leased_acres == 40.0
        assert any("boundary Pugh" in f for f in res.flags)

    def test_boundary_pugh_without_acres_flagged(self, row):
        lease = _events([_lease_row(row)])[0]
        res = evaluate_lease(lease, [], date(2017, 1, 1), override=LeaseOverride(boundary_pugh=True))
        assert res.leased_acres is None
        assert any("manual verification" in f for f in res.flags)

    def test_top_lease_flagged(self, row):
        lease = _events([_lease_row(row)])[0]
        res = evaluate_lease(lease, [], date(2017, 1, 1), override=LeaseOverride(top_lease=True))
        assert any("top lease" in f for f in res.flags)

    def test_partial_lease_apportioned(self, row):
        lease = _events([_lease_row(row, description="T158N R102W Sec. 18: E2NE4")])[0]
        res = evaluate_lease(lease, [], date(2017, 1, 1),
                             tract=parse_legal_description(TRACT_LEGAL))
        assert res.leased_acres == 80.0
        assert any("covers only part of the tract" in f for f in res.flags)


# ═══════════════════════════════════════════════════
# 4. resolve_status
# ═══════════════════════════════════════════════════

class TestResolveStatus:

    def test_no_lease_is_open(self, as_of_2025):
        res = resolve_status("John Roe", [], [], as_of_2025)
        assert res.status is LeaseholdStatus.OPEN
        assert res.last_lease is None

    def test_most_recent_lease_wins(self, row):
        events = _events([
            _lease_row(row, dated="2010-01-01", recorded="2010-01-05", number="2010-1"),
            _lease_row(row, number="2015-0042"),
        ])
        res = resolve_status("John Roe", events, [], date(2016, 1, 1))
        assert res.last_lease.event_id == "2015-0042"

    def test_lease_by_other_owner_ignored(self, row):
        events = _events([_lease_row(row)])
        assert resolve_status("Bob Roe", events, [], date(2016, 1, 1)).status is LeaseholdStatus.OPEN

    def test_lessor_name_variant(self, row):
        events = _events([_lease_row(row)])
        res = resolve_status("John A. Roe", events, [], date(2016, 1, 1))
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED

    def test_lease_signed_with_middle_initial(self, row):
        events = _events([
            row("Oil and Gas Lease", "John A. Roe, a married man", "XTO Energy Inc.",
                "2023-01-01", "2023-01-10", number="2023-7", term="3 years"),
        ])
        res = resolve_status("John Roe", events, [], date(2024, 1, 1))
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED
        assert res.last_lease.event_id == "2023-7"

    def test_predecessor_lease_in_force_binds(self, row):
        events = _events([_lease_row(row)])
        res = resolve_status("Bob Roe", events, [], date(2016, 1, 1), predecessors=["John Roe"])
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED
        assert "predecessor in title" in res.flags[0]

    def test_expired_predecessor_lease_ignored(self, row, as_of_2025):
        events = _events([_lease_row(row)])
        res = resolve_status("Bob Roe", events, [], as_of_2025, predecessors=["John Roe"])
        assert res.status is LeaseholdStatus.OPEN
        assert res.last_lease is None

    def test_override_keyed_by_document_number(self, row, as_of_2025):
        events = _events([_lease_row(row)])
        res = resolve_status("John Roe", events, [], as_of_2025,
                             overrides={"2015-0042": LeaseOverride(production_present=True)})
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED

    def test_vendee_lease_counts_for_vendor(self, row):
        events = _events([
            row("Oil and Gas Lease", "Vic Vendee", "Continental Resources",
                "2020-06-01", "2020-06-15", number="2020-1", term="5 years"),
        ])
        contract = PendingContract(vendors=("Jane Doe",), vendee="Vic Vendee")
        res = resolve_status("Jane Doe", events, [], date(2021, 1, 1), pending_contracts=[contract])
        assert res.status is LeaseholdStatus.CURRENTLY_LEASED
        assert res.flags[0] == CONTRACT_NOTE
