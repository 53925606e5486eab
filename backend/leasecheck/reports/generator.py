"""HTML lease-check report rendering.

Renders the Jinja2 template from the report's wire dict, so a report loaded
back from storage renders exactly like a freshly computed one.
"""

import logging
from datetime import datetime

from jinja2 import ChainableUndefined, Environment, FileSystemLoader

from leasecheck.config import STATUS_LABELS, TEMPLATES_DIR
from leasecheck.pipeline.models import LeaseCheckReport

logger = logging.getLogger(__name__)

# ChainableUndefined allows safe nested access (owner.lastLeaseOfRecord.dated)
# when a lease is absent.
_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=True,
    undefined=ChainableUndefined,
)

_UNKNOWN_LABEL = STATUS_LABELS["Unknown"]


def _format_acres(value) -> str:
    if value is None or value == "":
        return "—"
    if isinstance(value, str):
        return value
    return f"{value:,.4f}".rstrip("0").rstrip(".")


_env.filters["acres"] = _format_acres


def _owner_rows(owners: list[dict]) -> list[dict]:
    rows = []
    for owner in owners:
        band = STATUS_LABELS.get(owner.get("leaseholdStatus", ""), _UNKNOWN_LABEL)
        rows.append({**owner, "status_label": band["label"], "status_color": band["color"]})
    return rows


def render_html_report(report: LeaseCheckReport | dict) -> str:
    """Render a lease-check report as a standalone HTML page.

    Args:
        report: LeaseCheckReport, or its ``to_dict()`` form

    Returns:
        HTML document text
    """
    data = report.to_dict() if isinstance(report, LeaseCheckReport) else dict(report)
    flags = data.get("flags", [])
    context = {
        "generated_at": datetime.now().strftime("%d %B %Y, %I:%M %p"),
        "prospect": data.get("prospect", ""),
        "total_acres": data.get("totalAcres"),
        "total_acres_is_estimate": data.get("totalAcresIsEstimate", False),
        "as_of": data.get("asOf", ""),
        "owners": _owner_rows(data.get("owners", [])),
        "wells": data.get("wells", []),
        "limitations": data.get("limitationsAndExceptions", ""),
        "flags": flags,
        "flag_count": len(flags),
    }
    html = _env.get_template("lease_check_report.html").render(**context)
    logger.info(f"HTML report rendered for '{context['prospect']}' ({len(html):,} chars)")
    return html
