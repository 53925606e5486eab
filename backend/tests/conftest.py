"""Shared fixtures for the lease-check test suite."""

import pytest
from datetime import date


TRACT = "NE 1/4"
TRACT_LEGAL = "T158N R102W Sec. 18: NE4"


def make_row(instrument_type, grantors="", grantees="", dated="", recorded="",
             description=TRACT_LEGAL, comments="", number="", term="", book_page=""):
    """One runsheet row using the column names of a typical county export."""
    row = {
        "Book and Page": book_page,
        "Instrument Number": number,
        "Instrument Type": instrument_type,
        "Dated": dated,
        "Recorded": recorded,
        "Grantor(s)": grantors,
        "Grantee(s)": grantees,
        "Description": description,
        "Comments": comments,
    }
    if term:
        row["Term"] = term
    return row


# ═══════════════════════════════════════════════════
# Runsheet fixtures (raw rows shaped like real exports)
# ═══════════════════════════════════════════════════

@pytest.fixture
def as_of_2025():
    return date(2025, 1, 1)


@pytest.fixture
def scenario_a_rows():
    """Patent → deed → one expired lease, no production anywhere."""
    return [
        make_row("Patent", "United States of America", "Jane Doe", "1900", "1900",
                 number="P-1"),
        make_row("Warranty Deed", "Jane Doe", "John Roe", "1950-03-01", "1950-03-15",
                 number="1950-101"),
        make_row("Oil and Gas Lease", "John Roe", "XTO Energy Inc.", "2015-01-01", "2015-01-10",
                 number="2015-0042", term="3 year"),
    ]


@pytest.fixture
def scenario_b_rows(scenario_a_rows):
    """Scenario A, then probate to two heirs and a lease from one of them."""
    return scenario_a_rows + [
        make_row("Personal Representative's Deed", "John Roe",
                 "Alice Roe (1/2)||NEWLINE||Bob Roe (1/2)", "2016-05-01", "2016-05-20",
                 number="2016-300"),
        make_row("O&G Lease", "Alice Roe", "Continental Resources", "2020-06-01", "2020-06-15",
                 number="2020-0777", term="5 years"),
    ]


@pytest.fixture
def scenario_c_rows():
    """Expired lease with a producing well noted in the comments."""
    return [
        make_row("Patent", "United States of America", "Jane Doe", "1900", "1900",
                 number="P-1"),
        make_row("Warranty Deed", "Jane Doe", "John Roe", "1950-03-01", "1950-03-15",
                 number="1950-101"),
        make_row("Oil and Gas Lease", "John Roe", "XTO Energy Inc.", "2015-01-01", "2015-01-10",
                 number="2015-0042", term="3 year",
                 comments="Roe 18-1H producing well drilled 2016"),
    ]


@pytest.fixture
def scenario_d_rows():
    """No patent of record and a grantor never seen before."""
    return [
        make_row("Warranty Deed", "Sam Stranger", "Tom Buyer (1/2)", "1960-01-01", "1960-02-01",
                 number="1960-7"),
    ]


@pytest.fixture
def row():
    """Row factory for tests that build their own runsheet."""
    return make_row
