"""Tests for report generator — HTML rendering and acreage formatting."""

import pytest

from leasecheck.pipeline.engine import run_lease_check
from leasecheck.reports.generator import _format_acres, render_html_report


def _report_dict(**overrides):
    data = {
        "prospect": "NE 1/4",
        "totalAcres": 160.0,
        "totalAcresIsEstimate": False,
        "asOf": "2025-01-01",
        "owners": [{
            "name": "Jane Doe",
            "interestPercent": "100.00000000",
            "netAcres": 160.0,
            "netAcresProvisional": False,
            "leaseholdStatus": "Open",
            "lastLeaseOfRecord": None,
            "reviewFlags": [],
            "qualifiers": [],
        }],
        "wells": [],
        "limitationsAndExceptions": "Subject to all easements.",
        "flags": [],
    }
    data.update(overrides)
    return data


# ═══════════════════════════════════════════════════════════
# _format_acres
# ═══════════════════════════════════════════════════════════

class TestFormatAcres:
    def test_none(self):
        assert _format_acres(None) == "—"

    def test_whole(self):
        assert _format_acres(160.0) == "160"

    def test_thousands(self):
        assert _format_acres(1280.0) == "1,280"

    def test_fraction(self):
        assert _format_acres(53.33333333) == "53.3333"

    def test_unresolved_string(self):
        assert _format_acres("unresolved") == "unresolved"


# ═══════════════════════════════════════════════════════════
# render_html_report
# ═══════════════════════════════════════════════════════════

class TestRenderHtmlReport:

    def test_scenario_report(self, scenario_a_rows, as_of_2025):
        html = render_html_report(run_lease_check(scenario_a_rows, "NE 1/4", as_of=as_of_2025))
        assert html.startswith("<!DOCTYPE html>")
        assert "Lease Check: NE 1/4" in html
        assert "John Roe" in html
        assert "100.00000000" in html
        assert "Expired (Appears Open)" in html
        assert "XTO Energy Inc." in html
        assert "Expires 2018-01-01" in html

    def test_accepts_wire_dict(self):
        html = render_html_report(_report_dict())
        assert "Appears Open" in html
        assert "None of record" in html
        assert "No review flags." in html

    def test_html_escaped(self):
        owner = {**_report_dict()["owners"][0], "name": "<script>alert(1)</script>"}
        html = render_html_report(_report_dict(owners=[owner]))
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_flags_listed(self):
        flags = [{"doc": "1960-7", "owner": None, "category": "chain",
                  "note": "ownership source unverified"}]
        html = render_html_report(_report_dict(flags=flags))
        assert "Review Flags (1)" in html
        assert "ownership source unverified" in html

    def test_estimate_and_provisional_marks(self):
        owner = {**_report_dict()["owners"][0], "netAcresProvisional": True}
        html = render_html_report(_report_dict(totalAcresIsEstimate=True, owners=[owner]))
        assert "(estimate)" in html
        assert "160*" in html

    def test_leased_open_split(self):
        owner = {**_report_dict()["owners"][0], "leasedNetAcres": 40.0, "openNetAcres": 120.0}
        html = render_html_report(_report_dict(owners=[owner]))
        assert "leased 40 / open 120" in html

    def test_unknown_status_label(self):
        owner = {**_report_dict()["owners"][0], "leaseholdStatus": "Unknown"}
        html = render_html_report(_report_dict(owners=[owner]))
        assert "Unknown - Manual Review Required" in html

    def test_wells_section_only_when_present(self):
        assert "Wells and Production" not in render_html_report(_report_dict())
        html = render_html_report(_report_dict(wells=["Roe 18-1H producing well"]))
        assert "Wells and Production" in html
        assert "Roe 18-1H producing well" in html
