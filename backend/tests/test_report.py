"""Tests for report assembly helpers: percentages, net acres, wells, limitations."""

import pytest
from datetime import date
from fractions import Fraction

from leasecheck.pipeline.models import (
    FLAG_SYSTEMIC,
    UNKNOWN_OWNER_RESEARCH,
    InterestSource,
    LeaseholdStatus,
    LeaseResolution,
    LedgerEntry,
    OwnershipLedger,
    ReviewFlag,
)
from leasecheck.pipeline.normalizer import normalize_rows
from leasecheck.pipeline.report import (
    STANDARD_LIMITATIONS,
    assemble_report,
    extract_wells,
    format_percentages,
    limitations_and_exceptions,
    net_acres,
    placeholder_report,
)


# ═══════════════════════════════════════════════════
# 1. Numbers
# ═══════════════════════════════════════════════════

class TestFormatPercentages:

    def test_thirds_sum_to_exactly_100(self):
        assert format_percentages([Fraction(1, 3)] * 3) == [
            "33.33333334", "33.33333333", "33.33333333",
        ]

    def test_halves(self):
        assert format_percentages([Fraction(1, 2)] * 2) == ["50.00000000", "50.00000000"]

    def test_largest_remainder_gets_the_unit(self):
        assert format_percentages([Fraction(1, 3), Fraction(2, 3)]) == ["33.33333333", "66.66666667"]

    def test_whole(self):
        assert format_percentages([Fraction(1)]) == ["100.00000000"]

    def test_unbalanced_rounds_each_value(self):
        assert format_percentages([Fraction(1, 2), Fraction(1, 4)]) == ["50.00000000", "25.00000000"]

    def test_other_precision(self):
        assert format_percentages([Fraction(1, 3)] * 3, decimals=2) == ["33.34", "33.33", "33.33"]


class TestNetAcres:

    def test_exact_product(self):
        assert net_acres(Fraction(160), Fraction(1, 2), 8) == 80.0

    def test_rounded(self):
        assert net_acres(Fraction(160), Fraction(1, 3), 8) == 53.33333333

    def test_unresolved(self):
        assert net_acres(None, Fraction(1), 8) is None


# ═══════════════════════════════════════════════════
# 2. Wells and limitations
# ═══════════════════════════════════════════════════

class TestWellsAndLimitations:

    def test_wells_from_comments(self, row):
        events = normalize_rows([
            row("OGL", "John Roe", "XTO", "2015", "2015", comments="Roe 18-1H producing well"),
            row("WD", "Jane Doe", "John Roe", "1950", "1950", comments="surface as well as minerals"),
            row("WD", "John Roe", "Bob Roe", "1960", "1960", comments="Roe 18-1H producing well"),
        ]).events
        assert extract_wells(events) == ["Roe 18-1H producing well"]

    def test_standard_limitations_always_present(self):
        text = limitations_and_exceptions([])
        assert all(item in text for item in STANDARD_LIMITATIONS)
        assert text.endswith(".")

    def test_tax_deed_limitation(self, row):
        events = normalize_rows([row("Tax Deed", "County", "Bob Roe", "1935", "1935")]).events
        assert "tax deed" in limitations_and_exceptions(events)

    def test_reservation_limitation(self, row):
        events = normalize_rows([
            row("WD", "Jane Doe", "John Roe", "1950", "1950", comments="grantor reserved 1/2 minerals"),
        ]).events
        assert "mineral reservations" in limitations_and_exceptions(events)


# ═══════════════════════════════════════════════════
# 3. Assembly
# ═══════════════════════════════════════════════════

class TestAssembleReport:

    def _ledger(self):
        return OwnershipLedger(entries=[
            LedgerEntry("Bob Roe", Fraction(1, 4), InterestSource.DEED),
            LedgerEntry("Alice Roe", Fraction(3, 4), InterestSource.DEED),
        ], resolved_from_patent=True)

    def test_owners_sorted_by_interest(self):
        ledger = self._ledger()
        resolutions = [LeaseResolution(LeaseholdStatus.OPEN), LeaseResolution(LeaseholdStatus.OPEN)]
        report = assemble_report("NE 1/4", Fraction(160), ledger, resolutions, [], date(2025, 1, 1))
        assert [o.name for o in report.owners] == ["Alice Roe", "Bob Roe"]
        assert [o.interest_percent for o in report.owners] == ["75.00000000", "25.00000000"]
        assert [o.net_acres for o in report.owners] == [120.0, 40.0]

    def test_lease_flags_reach_report_flags(self):
        resolutions = [
            LeaseResolution(LeaseholdStatus.EXPIRED, None, ["lease X states no primary term"]),
            LeaseResolution(LeaseholdStatus.OPEN),
        ]
        report = assemble_report("NE 1/4", Fraction(160), self._ledger(), resolutions, [],
                                 date(2025, 1, 1))
        bob = next(o for o in report.owners if o.name == "Bob Roe")
        assert bob.review_flags == ["lease X states no primary term"]
        assert any(f.owner == "Bob Roe" for f in report.flags)

    def test_leased_and_open_split(self):
        resolutions = [
            LeaseResolution(LeaseholdStatus.CURRENTLY_LEASED, None, [], leased_acres=40.0),
            LeaseResolution(LeaseholdStatus.OPEN),
        ]
        report = assemble_report("NE 1/4", Fraction(160), self._ledger(), resolutions, [],
                                 date(2025, 1, 1))
        bob = next(o for o in report.owners if o.name == "Bob Roe")
        assert (bob.leased_net_acres, bob.open_net_acres) == (10.0, 30.0)
        assert bob.to_dict()["leasedNetAcres"] == 10.0

    def test_unresolved_acres_are_provisional(self):
        resolutions = [LeaseResolution(LeaseholdStatus.OPEN), LeaseResolution(LeaseholdStatus.OPEN)]
        report = assemble_report("Lot 3", None, self._ledger(), resolutions, [], date(2025, 1, 1))
        assert report.to_dict()["totalAcres"] == "unresolved"
        assert all(o.net_acres is None and o.net_acres_provisional for o in report.owners)


class TestPlaceholderReport:

    def test_structure(self):
        report = placeholder_report("NE 1/4", Fraction(160), "no land-record events supplied",
                                    date(2025, 1, 1), flags=[ReviewFlag("earlier")])
        [owner] = report.owners
        assert owner.name == UNKNOWN_OWNER_RESEARCH
        assert owner.interest_percent == "100.00000000"
        assert owner.net_acres == 160.0
        assert owner.leasehold_status is LeaseholdStatus.UNKNOWN
        assert report.flags[0].note == "earlier"
        assert report.flags[-1].category == FLAG_SYSTEMIC
