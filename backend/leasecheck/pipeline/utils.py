"""Shared utility functions for the lease-check pipeline.

Consolidates logic used by the normalizer, ledger and lease resolver:
  - Date parsing (ISO, US, long-form and bare years)
  - Party block splitting and interest-token parsing
  - Name normalization and similarity
"""

import re
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from difflib import SequenceMatcher
from fractions import Fraction
from typing import Any, Optional

from leasecheck.pipeline.models import Party

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════
# 1. DATES
# ═══════════════════════════════════════════════════

_DATE_FORMATS = [
    "%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%m.%d.%Y",
    "%Y/%m/%d", "%m/%d/%y", "%B %d, %Y", "%b %d, %Y",
    "%B %d %Y", "%b %d %Y", "%d %B %Y", "%d %b %Y",
]

_BARE_YEAR_RE = re.compile(r'^\s*(\d{4})\s*$')
_ANY_YEAR_RE = re.compile(r'\b(1[7-9]\d{2}|2[01]\d{2})\b')
_MIN_YEAR, _MAX_YEAR = 1700, 2199


def parse_date(value: Any, bare_year_month: int = 7, bare_year_day: int = 1) -> tuple[Optional[date], bool]:
    """Parse a runsheet date cell.

    Returns ``(date, year_only)``.  A bare year ("1950") becomes a nominal
    mid-year date used for ordering only; ``year_only`` tells callers not to
    present it as an exact date.

    Examples:
      "2015-01-10"        → (2015-01-10, False)
      "1/10/2015"         → (2015-01-10, False)
      "March 3, 1948"     → (1948-03-03, False)
      "1950"              → (1950-07-01, True)
      "unknown"           → (None, False)
    """
    if value is None:
        return None, False
    if isinstance(value, datetime):
        return value.date(), False
    if isinstance(value, date):
        return value, False
    s = str(value).strip()
    if not s:
        return None, False

    m = _BARE_YEAR_RE.match(s)
    if m:
        year = int(m.group(1))
        if _MIN_YEAR <= year <= _MAX_YEAR:
            return date(year, bare_year_month, bare_year_day), True
        return None, False

    # ISO timestamps ("2015-01-10T00:00:00Z"): keep the date part
    if re.match(r'^\d{4}-\d{2}-\d{2}T', s):
        s = s[:10]
    s = re.sub(r'\s+', ' ', s.replace("Sept.", "Sep").replace(".,", ","))

    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(s, fmt).date()
        except ValueError:
            continue
        if _MIN_YEAR <= parsed.year <= _MAX_YEAR:
            return parsed, False

    # Last resort: a year buried in free text ("circa 1948", "Bk 12 1950")
    m = _ANY_YEAR_RE.search(s)
    if m:
        return date(int(m.group(1)), bare_year_month, bare_year_day), True
    return None, False


def add_years(d: date, years: int) -> date:
    """Add whole years; Feb 29 rolls back to Feb 28 in non-leap years."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


# ═══════════════════════════════════════════════════
# 2. INTEREST TOKENS
# ═══════════════════════════════════════════════════

LIFE_ESTATE = "Life Estate"
REMAINDERMAN = "Remainderman"

_FRACTION_RE = re.compile(r'(\d+)\s*/\s*(\d+)')
_PERCENT_RE = re.compile(r'(\d+(?:\.\d+)?)\s*%')
_DECIMAL_RE = re.compile(r'^\s*(0?\.\d+|1(?:\.0+)?)\s*$')
_WHOLE_RE = re.compile(r'^\s*(all|full|entire|whole)(\s+interest)?\s*$', re.IGNORECASE)
_LIFE_ESTATE_RE = re.compile(r'\blife\s*estate\b', re.IGNORECASE)
_REMAINDER_RE = re.compile(r'\bremainder(?:m[ae]n|\s+interest)?\b', re.IGNORECASE)


def parse_interest_token(token: Any) -> tuple[Optional[Fraction], str]:
    """Parse an interest token into ``(fraction, qualifier)``.

    Fractions are exact rationals of the whole mineral estate; qualitative
    tokens return a qualifier and no fraction.

    Examples:
      "1/4"          → (1/4, "")
      "25%"          → (1/4, "")
      "100%"         → (1, "")
      "Life Estate"  → (None, "Life Estate")
      "Remainderman" → (None, "Remainderman")
    """
    if token is None:
        return None, ""
    s = str(token).strip()
    if not s:
        return None, ""

    qualifier = ""
    if _LIFE_ESTATE_RE.search(s):
        qualifier = LIFE_ESTATE
    elif _REMAINDER_RE.search(s):
        qualifier = REMAINDERMAN

    m = _FRACTION_RE.search(s)
    if m:
        num, den = int(m.group(1)), int(m.group(2))
        if den > 0:
            return Fraction(num, den), qualifier
    m = _PERCENT_RE.search(s)
    if m:
        try:
            return Fraction(Decimal(m.group(1))) / 100, qualifier
        except InvalidOperation:
            pass
    m = _DECIMAL_RE.match(s)
    if m:
        return Fraction(Decimal(m.group(1))), qualifier
    if _WHOLE_RE.match(s):
        return Fraction(1), qualifier
    return None, qualifier


# ═══════════════════════════════════════════════════
# 3. PARTY BLOCKS
# ═══════════════════════════════════════════════════

# Runsheet exports escape embedded cell line breaks as ||NEWLINE||
NEWLINE_MARKER = "||NEWLINE||"

_PAREN_RE = re.compile(r'\(([^)]*)\)')
_TRAILING_SHARE_RE = re.compile(
    r'[\s,\-]+(?:an?\s+)?(?:undivided\s+)?'
    r'(\d+\s*/\s*\d+|\d+(?:\.\d+)?\s*%)(?:\s+(?:interest|int\.?))?\s*$',
    re.IGNORECASE,
)
_TRAILING_QUALIFIER_RE = re.compile(
    r'[\s,\-]+(life\s*estate|remainder(?:m[ae]n)?)\s*$', re.IGNORECASE,
)
_LEADING_MARKS_RE = re.compile(r'^[\s*•\-]+')
_TIC_RE = re.compile(r'\*?\bTIC\b', re.IGNORECASE)


def split_party_lines(raw: Any) -> list[str]:
    """Split a grantor/grantee cell into one string per party line."""
    if raw is None:
        return []
    text = str(raw).replace(NEWLINE_MARKER, "\n").replace("\r", "\n")
    lines = []
    for chunk in re.split(r'[\n;]', text):
        chunk = _LEADING_MARKS_RE.sub("", chunk).strip()
        if chunk:
            lines.append(chunk)
    return lines


def parse_party(line: str) -> Optional[Party]:
    """Parse one party line: name plus optional interest token.

    Examples:
      "Alice Roe (1/2)"          → Party("Alice Roe", 1/2, "1/2")
      "Mary Roe (Life Estate)"   → Party("Mary Roe", None, "Life Estate", "Life Estate")
      "Bob Roe, 1/4 interest"    → Party("Bob Roe", 1/4, "1/4")
      "Carl Roe Remainderman"    → Party("Carl Roe", None, "Remainderman", "Remainderman")
    """
    s = _TIC_RE.sub("", line).strip()
    if not s:
        return None

    tokens: list[str] = []
    if "(" in s:
        tokens = [t.strip() for t in _PAREN_RE.findall(s) if t.strip()]
        name = s[:s.index("(")].strip()
        tail = _PAREN_RE.sub("", s[s.index("("):]).strip(" ,")
        if tail:
            tokens.append(tail)
    else:
        name = s
        m = _TRAILING_SHARE_RE.search(name)
        if m:
            tokens.append(m.group(1))
            name = name[:m.start()].strip()
        m = _TRAILING_QUALIFIER_RE.search(name)
        if m:
            tokens.append(m.group(1))
            name = name[:m.start()].strip()

    name = name.strip(" ,;-")
    if not name:
        return None

    interest: Optional[Fraction] = None
    qualifier = ""
    for tok in tokens:
        frac, qual = parse_interest_token(tok)
        if frac is not None and interest is None:
            interest = frac
        if qual and not qualifier:
            qualifier = qual
    token_text = ", ".join(tokens)
    return Party(name=name, interest=interest, interest_token=token_text, qualifier=qualifier)


def parse_parties(raw: Any) -> list[Party]:
    parties = []
    for line in split_party_lines(raw):
        party = parse_party(line)
        if party:
            parties.append(party)
    return parties


# ═══════════════════════════════════════════════════
# 4. NAMES
# ═══════════════════════════════════════════════════

_NAME_PREFIX_RE = re.compile(r'^(mr|mrs|ms|dr|miss)\.?\s+', re.IGNORECASE)
_NAME_PUNCT_RE = re.compile(r"[^\w\s&']")


def normalize_name(name: Any) -> str:
    """Normalize a person or company name for comparison.

    Lower-cases, strips honorifics and punctuation, collapses whitespace.
    """
    if not name:
        return ""
    s = str(name).strip().lower()
    s = _NAME_PREFIX_RE.sub("", s)
    s = _NAME_PUNCT_RE.sub(" ", s)
    s = re.sub(r'\s+', ' ', s).strip()
    return s


def base_name_similarity(n1: str, n2: str) -> float:
    """Raw similarity between two already-normalized names (0.0 to 1.0).

    Blends token Jaccard with a character sequence ratio; a space-collapsed
    comparison covers OCR space insertion/removal.
    """
    if not n1 or not n2:
        return 0.0
    if n1 == n2:
        return 1.0
    if n1.replace(' ', '') == n2.replace(' ', ''):
        return 1.0

    tokens1 = set(n1.split())
    tokens2 = set(n2.split())
    jaccard = len(tokens1 & tokens2) / len(tokens1 | tokens2) if (tokens1 and tokens2) else 0.0
    seq_ratio = SequenceMatcher(None, n1, n2).ratio()
    token_score = 0.4 * jaccard + 0.6 * seq_ratio
    # Only when token counts differ; otherwise "joan" vs "john" style
    # single-token names would bypass the Jaccard penalty.
    if len(tokens1) != len(tokens2):
        collapsed_ratio = SequenceMatcher(
            None, n1.replace(' ', ''), n2.replace(' ', '')
        ).ratio()
        return max(token_score, collapsed_ratio)
    return token_score
