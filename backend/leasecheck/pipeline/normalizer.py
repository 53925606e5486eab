"""Event normalizer — raw runsheet rows to a sorted LandRecordEvent sequence.

Runsheet rows arrive as free-form ``{column: value}`` mappings: column names
vary by export ("Grantor(s)", "grantor", "Lessor"), cells carry escaped line
breaks, dates are ISO, US, long-form or bare years.  This module maps all of
that onto the canonical model and orders events for ledger replay:

  - sort key: recorded date, else dated date, else the previous row's key
  - equal keys keep input order (stable sort)

Rows that cannot take part in the chain are dropped with a review flag; the
normalizer never raises on row content.
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from leasecheck.config import EngineConfig, TRACE_ENABLED
from leasecheck.pipeline.models import (
    FLAG_PARSE,
    InstrumentType,
    LandRecordEvent,
    ReviewFlag,
)
from leasecheck.pipeline.utils import NEWLINE_MARKER, parse_date, parse_parties

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# 1. COLUMN ALIASES
# ═══════════════════════════════════════════════════

# Normalized column key (lower-case, alphanumerics only) → canonical field
_COLUMN_ALIASES = {
    "instrument_type": {
        "instrumenttype", "type", "instrument", "doctype", "documenttype", "kind",
        "instrumentkind", "typeofinstrument",
    },
    "grantors": {"grantor", "grantors", "lessor", "lessors", "releasor", "vendor", "decedent"},
    "grantees": {"grantee", "grantees", "lessee", "lessees", "releasee", "vendee", "heirs"},
    "dated": {"dated", "dateddate", "date", "instrumentdate", "executed", "executiondate",
              "effectivedate"},
    "recorded": {"recorded", "recordeddate", "recordingdate", "recdate", "filed", "filedate",
                 "fileddate"},
    "legal_description": {"description", "legaldescription", "legal", "legaldesc", "lands",
                          "landdescription"},
    "comments": {"comments", "comment", "notes", "remarks", "note"},
    "instrument_number": {"instrumentnumber", "instrumentno", "documentnumber", "docnumber",
                          "docno", "reception", "receptionnumber", "documentreference",
                          "documentid", "id"},
    "book_page": {"bookandpage", "bookpage", "book", "bkpg", "volumepage"},
    "term": {"term", "leaseterm", "primaryterm"},
}

_KEY_INDEX = {alias: canonical for canonical, aliases in _COLUMN_ALIASES.items() for alias in aliases}


def _column_key(name: Any) -> str:
    return re.sub(r'[^a-z0-9]', '', str(name).lower())


def canonicalize_row(row: Mapping[str, Any]) -> dict[str, str]:
    """Map an arbitrary row onto canonical field names; unknown columns are kept as-is."""
    out: dict[str, str] = {}
    for key, value in row.items():
        canonical = _KEY_INDEX.get(_column_key(key), str(key))
        text = "" if value is None else str(value).strip()
        # First non-empty value wins when two columns alias the same field
        if canonical not in out or (not out[canonical] and text):
            out[canonical] = text
    return out


# ═══════════════════════════════════════════════════
# 2. INSTRUMENT TYPES
# ═══════════════════════════════════════════════════

# Recorded instruments that never convey minerals; classified Other without a flag
_NON_CONVEYANCE_RE = re.compile(
    r'\b(MORTGAGE|MTG|SATISFACTION|AFFIDAVIT|AFF|EASEMENT|RIGHT OF WAY|ROW|ASSIGNMENT|ASSGN|'
    r'DIVISION ORDER|RATIFICATION|LIEN|PLAT|NOTICE|POOLING|COMMUNITIZATION|POWER OF ATTORNEY|'
    r'JUDGMENT|SUBORDINATION|DECLARATION|ROYALTY)\b'
)

_RELEASE_RE = re.compile(r'\b(RELEASE|REL|SURRENDER|TERMINATION OF LEASE)\b')

# Ordered: first match wins
_INSTRUMENT_RULES: list[tuple[re.Pattern, InstrumentType]] = [
    (re.compile(r'\b(PATENT|PAT|US PATENT)\b'), InstrumentType.PATENT),
    (re.compile(r'\b(CONTRACT FOR DEED|CFD|LAND CONTRACT)\b'), InstrumentType.CONTRACT_FOR_DEED),
    (re.compile(r'\b(TAX DEED|COUNTY DEED|TD)\b'), InstrumentType.TAX_DEED),
    (re.compile(r'\b(CORRECTION|CORRECTIVE|CORR)\b'), InstrumentType.CORRECTION_DEED),
    (re.compile(r'\b(MINERAL DEED|MINERAL AND ROYALTY DEED|MINERAL & ROYALTY DEED|MIN DEED|MD|MINERAL CONVEYANCE)\b'),
     InstrumentType.MINERAL_DEED),
    (re.compile(r'\b(PRD|PRMD|PROBATE|DECREE|DISTRIBUTION|PERSONAL REPRESENTATIVES?|'
                r'HEIRSHIP|ESTATE DEED|EXECUTOR)\b'), InstrumentType.PROBATE_DISTRIBUTION),
    (re.compile(r'\b(OGL|O&G LEASE|OIL AND GAS LEASE|OIL & GAS LEASE|LEASE|MEMORANDUM OF LEASE|'
                r'MOL)\b'), InstrumentType.LEASE),
    (re.compile(r'\b(QCD|QUIT CLAIM|QUITCLAIM|QUIT)\b'), InstrumentType.QUIT_CLAIM_DEED),
    (re.compile(r'\b(WD|SWD|WARRANTY|WARRANTY DEED|DEED)\b'), InstrumentType.WARRANTY_DEED),
]


def classify_instrument(raw: Any) -> tuple[InstrumentType, bool]:
    """Map a raw instrument-type cell onto the canonical enum.

    Returns ``(type, recognized)``; ``recognized`` is False only for text no
    rule understood, which callers flag.

    Examples:
      "WD"                   → (WarrantyDeed, True)
      "Oil & Gas Lease"      → (Lease, True)
      "Release of Mortgage"  → (Other, True)
      "Misc"                 → (Other, False)
    """
    s = str(raw or "").upper().replace(".", " ").replace("'", "")
    s = re.sub(r'[^A-Z0-9&]+', ' ', s).strip()
    if not s:
        return InstrumentType.OTHER, False
    # Releases of liens or judgments are not lease releases
    if re.search(r'\b(MORTGAGE|MTG|SATISFACTION|LIEN|JUDGMENT)\b', s):
        return InstrumentType.OTHER, True
    if _RELEASE_RE.search(s):
        return InstrumentType.LEASE_RELEASE, True
    if _NON_CONVEYANCE_RE.search(s) and not re.search(r'\bMINERAL\b.*\bDEED\b', s):
        return InstrumentType.OTHER, True
    for pattern, itype in _INSTRUMENT_RULES:
        if pattern.search(s):
            return itype, True
    return InstrumentType.OTHER, False


# ═══════════════════════════════════════════════════
# 3. NORMALIZATION
# ═══════════════════════════════════════════════════

@dataclass
class NormalizationResult:
    events: list[LandRecordEvent] = field(default_factory=list)
    flags: list[ReviewFlag] = field(default_factory=list)
    dropped: int = 0
    remarks: list[LandRecordEvent] = field(default_factory=list)   # dropped rows that carry comments


def _doc_reference(fields: dict[str, str]) -> str:
    parts = [fields.get("instrument_number", ""), fields.get("book_page", "")]
    return " / ".join(p for p in parts if p)


def _clean_text(value: str) -> str:
    return value.replace(NEWLINE_MARKER, "\n").strip()


def normalize_rows(rows: Iterable[Mapping[str, Any]],
                   config: Optional[EngineConfig] = None) -> NormalizationResult:
    """Normalize raw rows into chronologically sorted events.

    Never raises on row content: every dropped row, unknown instrument type and
    unresolvable date becomes a ``parse`` review flag.
    """
    cfg = config or EngineConfig()
    result = NormalizationResult()
    keyed: list[LandRecordEvent] = []
    previous_key: Optional[date] = None

    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            result.flags.append(ReviewFlag(
                f"unparseable event: row {index + 1} is not a column mapping",
                doc=f"row {index + 1}", category=FLAG_PARSE,
            ))
            result.dropped += 1
            continue
        fields = canonicalize_row(row)
        if not any(fields.values()):
            continue  # blank spreadsheet line

        doc_ref = _doc_reference(fields)
        label = doc_ref or f"row {index + 1}"
        raw_type = fields.get("instrument_type", "")
        itype, recognized = classify_instrument(raw_type)
        if not recognized:
            result.flags.append(ReviewFlag(
                f"unrecognized instrument type '{raw_type}' treated as Other "
                f"(does not transfer ownership)",
                doc=label, category=FLAG_PARSE,
            ))

        grantors = tuple(parse_parties(fields.get("grantors", "")))
        grantees = tuple(parse_parties(fields.get("grantees", "")))

        reason = ""
        if itype is InstrumentType.PATENT:
            if not grantees:
                reason = "no patentee"
        elif not grantors:
            reason = "no grantor or grantee" if not grantees else "no grantor"
        if reason:
            result.flags.append(ReviewFlag(
                f"unparseable event: {raw_type or 'instrument'} has {reason}",
                doc=label, category=FLAG_PARSE,
            ))
            result.dropped += 1
            logger.warning(f"Dropped row {index + 1} ({label}): {reason}")
            comments = _clean_text(fields.get("comments", ""))
            if comments:
                # Kept for the wells list and production scan only
                result.remarks.append(LandRecordEvent(
                    event_id=f"row-{index + 1}", instrument_type=InstrumentType.OTHER,
                    raw_instrument_type=raw_type, grantors=(), grantees=(), dated_date=None,
                    recorded_date=None, sort_date=previous_key or date.min,
                    legal_description=_clean_text(fields.get("legal_description", "")),
                    document_reference=doc_ref, comments=comments, row_index=index,
                ))
            continue

        dated, dated_year_only = _parse_cell_date(fields.get("dated", ""), "dated", label, cfg, result)
        recorded, recorded_year_only = _parse_cell_date(
            fields.get("recorded", ""), "recorded", label, cfg, result,
        )

        sort_key = recorded or dated
        if sort_key is None:
            sort_key = previous_key or date.min
            result.flags.append(ReviewFlag(
                "instrument has no usable date; ordered after the preceding runsheet row",
                doc=label, category=FLAG_PARSE,
            ))
        previous_key = sort_key

        event = LandRecordEvent(
            event_id=fields.get("instrument_number") or fields.get("book_page") or f"row-{index + 1}",
            instrument_type=itype,
            raw_instrument_type=raw_type,
            grantors=grantors,
            grantees=grantees,
            dated_date=dated,
            recorded_date=recorded,
            sort_date=sort_key,
            legal_description=_clean_text(fields.get("legal_description", "")),
            document_reference=doc_ref,
            comments=_clean_text(fields.get("comments", "")),
            term_text=_clean_text(fields.get("term", "")),
            row_index=index,
            dated_year_only=dated_year_only,
            recorded_year_only=recorded_year_only,
        )
        keyed.append(event)
        _trace(f"ROW {index + 1}: {itype.value} {event.grantor_names} → {event.grantee_names} "
               f"sort={sort_key}")

    result.events = sorted(keyed, key=lambda e: e.sort_date)
    logger.info(f"Normalized {len(result.events)} events ({result.dropped} dropped)")
    return result


def _parse_cell_date(value: str, column: str, label: str, cfg: EngineConfig,
                     result: NormalizationResult) -> tuple[Optional[date], bool]:
    if not value:
        return None, False
    parsed, year_only = parse_date(value, cfg.bare_year_month, cfg.bare_year_day)
    if parsed is None:
        result.flags.append(ReviewFlag(
            f"unresolvable {column} date '{value}'", doc=label, category=FLAG_PARSE,
        ))
    return parsed, year_only
