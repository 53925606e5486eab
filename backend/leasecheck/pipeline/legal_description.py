"""Legal description parsing, tract acreage and tract matching.

Public Land Survey aliquot parts are resolved onto a 16 x 16 grid of
2.5-acre cells per section, so descriptions written in different styles
compare as plain sets:

    "E2NE4", "E/2NE/4", "E 1/2 NE 1/4", "East Half of Northeast Quarter"
        → the same 32 cells (80 acres)

Standard units: section 640, half section 320, quarter 160,
quarter-quarter 40.  Government lots are irregular: their acreage is taken
only from a figure written in the description, never inferred.
"""

import re
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Optional

from leasecheck.config import TRACE_ENABLED
from leasecheck.pipeline.models import LegalMatch

logger = logging.getLogger(__name__)

SECTION_ACRES = Fraction(640)
_GRID = 16
_CELL_ACRES = SECTION_ACRES / (_GRID * _GRID)
_FULL_SECTION = frozenset((r, c) for r in range(_GRID) for c in range(_GRID))


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


# ═══════════════════════════════════════════════════
# 1. NORMALIZATION
# ═══════════════════════════════════════════════════

# Ordered: compound forms before their parts
_WORD_RULES = [
    (re.compile(r'\b(NORTH|SOUTH)\s*-?\s*(EAST|WEST)\s+(?:QUARTER|QTR)\b'),
     lambda m: f"{m.group(1)[0]}{m.group(2)[0]}4"),
    (re.compile(r'\b(NORTH|SOUTH)\s*-?\s*(EAST|WEST)\b'),
     lambda m: f"{m.group(1)[0]}{m.group(2)[0]}"),
    (re.compile(r'\b(NORTH|SOUTH|EAST|WEST)\s+(?:HALF|HLF)\b'),
     lambda m: f"{m.group(1)[0]}2"),
    (re.compile(r'\bONE[\s-]+HALF\b'), "2"),
    (re.compile(r'\bONE[\s-]+QUARTER\b'), "4"),
    (re.compile(r'\bHALF\b'), "2"),
    (re.compile(r'\b(?:QUARTER|QTR)\b'), "4"),
    (re.compile(r'\s*½'), "2"),
    (re.compile(r'\s*¼'), "4"),
    (re.compile(r'\s*\b1\s*/\s*2\b'), "2"),
    (re.compile(r'\s*\b1\s*/\s*4\b'), "4"),
    (re.compile(r'(?<=[NSEW])\s*/\s*([24])'), r"\1"),
    (re.compile(r'\b(?:OF\s+THE|OF|THE|IN)\b'), " "),
]

_TOKEN_RE = re.compile(r'(NE|NW|SE|SW)4?|([NSEW])2')
_PART_SPLIT_RE = re.compile(r'\s*(?:,|;|\bAND\b|&|\+)\s*')
_NOISE_RE = re.compile(r'[^A-Z0-9]')


def normalize_legal_text(text: str) -> str:
    """Upper-case a description and fold word/fraction spellings into aliquot shorthand."""
    if not text:
        return ""
    s = str(text).upper().replace("||NEWLINE||", " ").replace("\n", " ")
    for pattern, repl in _WORD_RULES:
        s = pattern.sub(repl, s)
    return re.sub(r'\s+', ' ', s).strip()


def compact_legal_text(text: str) -> str:
    """Normalized text with every non-alphanumeric character removed."""
    return _NOISE_RE.sub("", normalize_legal_text(text))


# ═══════════════════════════════════════════════════
# 2. PARSING
# ═══════════════════════════════════════════════════

# Township/range/section forms seen on runsheets:
#   "T158N R102W Sec. 18"   "Township 158 North, Range 102 West, Section 18"
#   "158-102 18: E2NE4"     "158N-102W-Sec. 18-E2NE"
_TOWNSHIP_RE = re.compile(r'\bT(?:OWNSHIP|WP|\.)?\s*(\d{1,3})\s*(NORTH|SOUTH|N|S)?\b')
_RANGE_RE = re.compile(r'\bR(?:ANGE|NG|\.)?\s*(\d{1,3})\s*(EAST|WEST|E|W)?\b')
_SECTION_RE = re.compile(r'\bSEC(?:TION|T|S)?\.?\s*(\d{1,2})\b')
_TR_PAIR_RE = re.compile(r'\b(\d{2,3})\s*([NS])?\s*-\s*(\d{2,3})\s*([EW])?\b')
_PAIR_SECTION_RE = re.compile(r'^\s*[-\s]*(?:SEC(?:TION)?\.?\s*)?(\d{1,2})\s*(?::|-|\b)')
_LOTS_RE = re.compile(r'\b(?:GOV(?:ERNMENT|T)?\.?\s+)?LOTS?\s+((?:\d+\s*(?:,|&|AND)?\s*)+)')
_ACRES_RE = re.compile(r'(\d+(?:\.\d+)?)\s*(?:ACRES?|ACS?\b\.?|AC\.)')
_ALL_RE = re.compile(r'\bALL\b')
_EXCEPTION_RE = re.compile(r'\b(?:LESS|EXCEPT|EXCEPTING|EXC)\b')


@dataclass
class ParsedLegal:
    raw: str
    township: str = ""
    range_: str = ""
    section: str = ""
    cells: frozenset = frozenset()
    lots: frozenset = frozenset()
    explicit_acres: list[Fraction] = field(default_factory=list)
    aliquots: list[str] = field(default_factory=list)
    whole_section: bool = False
    has_exceptions: bool = False

    @property
    def area(self) -> frozenset:
        """Comparable area: grid cells plus lot markers."""
        cells = _FULL_SECTION if self.whole_section else self.cells
        return frozenset(cells) | frozenset(("LOT", n) for n in self.lots)

    @property
    def is_empty(self) -> bool:
        return not self.area


def _cut(text: str, match: re.Match) -> str:
    return text[:match.start()] + " " + text[match.end():]


def _aliquot_cells(tokens: list[tuple[str, str]]) -> Optional[frozenset]:
    """Resolve aliquot tokens (innermost first, as written) to grid cells."""
    r0, r1, c0, c1 = 0, _GRID, 0, _GRID
    for quarter, half in reversed(tokens):
        if r1 - r0 < 2 or c1 - c0 < 2:
            return None  # finer than the grid
        rm, cm = (r0 + r1) // 2, (c0 + c1) // 2
        direction = quarter or half
        if "N" in direction:
            r1 = rm
        if "S" in direction:
            r0 = rm
        if "E" in direction:
            c0 = cm
        if "W" in direction:
            c1 = cm
    return frozenset((r, c) for r in range(r0, r1) for c in range(c0, c1))


def _parse_aliquot_part(part: str) -> Optional[tuple[str, frozenset]]:
    compact = _NOISE_RE.sub("", part)
    if not compact:
        return None
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(compact):
        m = _TOKEN_RE.match(compact, pos)
        if not m:
            return None
        tokens.append((m.group(1) or "", m.group(2) or ""))
        pos = m.end()
    cells = _aliquot_cells(tokens)
    if cells is None:
        return None
    canonical = "".join(q + "4" if q else h + "2" for q, h in tokens)
    return canonical, cells


def _aliquot_pieces(part: str) -> list[str]:
    """A part that is not one aliquot chain is retried word by word
    ("MCKENZIE COUNTY E2NE4" → "E2NE4")."""
    if _parse_aliquot_part(part) or " " not in part.strip():
        return [part]
    return part.split()


def parse_legal_description(text: str) -> ParsedLegal:
    """Parse a free-text legal description into TRS, aliquot cells and lots."""
    parsed = ParsedLegal(raw=text or "")
    if not text or not str(text).strip():
        return parsed

    s = str(text).upper().replace("||NEWLINE||", " ").replace("\n", " ")

    # ── Township / range / section ──
    m = _TR_PAIR_RE.search(s)
    if m:
        parsed.township = m.group(1)
        parsed.range_ = m.group(3)
        rest = s[m.end():]
        ms = _PAIR_SECTION_RE.match(rest)
        if ms:
            parsed.section = str(int(ms.group(1)))
            rest = rest[ms.end():]
        s = s[:m.start()] + " " + rest
    m = _TOWNSHIP_RE.search(s)
    if m and not parsed.township:
        parsed.township = m.group(1)
        s = _cut(s, m)
    m = _RANGE_RE.search(s)
    if m and not parsed.range_:
        parsed.range_ = m.group(1)
        s = _cut(s, m)
    m = _SECTION_RE.search(s)
    if m:
        if not parsed.section:
            parsed.section = str(int(m.group(1)))
        s = _cut(s, m)

    # ── Lots and stated acreage ──
    for m in list(_LOTS_RE.finditer(s)):
        parsed.lots = parsed.lots | frozenset(int(n) for n in re.findall(r'\d+', m.group(1)))
    s = _LOTS_RE.sub(" ", s)
    for m in _ACRES_RE.finditer(s):
        try:
            parsed.explicit_acres.append(Fraction(Decimal(m.group(1))))
        except InvalidOperation:
            continue
    s = _ACRES_RE.sub(" ", s)

    m = _EXCEPTION_RE.search(s)
    if m:
        parsed.has_exceptions = True
        s = s[:m.start()]

    # ── Aliquot parts ──
    cells: set = set()
    for part in _PART_SPLIT_RE.split(normalize_legal_text(s)):
        for piece in _aliquot_pieces(part):
            resolved = _parse_aliquot_part(piece)
            if resolved:
                canonical, part_cells = resolved
                parsed.aliquots.append(canonical)
                cells |= part_cells
    parsed.cells = frozenset(cells)

    # "All of Section 18"; "ALL" beside aliquots is just wording
    if _ALL_RE.search(s) and not parsed.cells and not parsed.lots:
        parsed.whole_section = True

    _trace(f"LEGAL '{text}' → T{parsed.township} R{parsed.range_} S{parsed.section} "
           f"aliquots={parsed.aliquots} lots={sorted(parsed.lots)} whole={parsed.whole_section}")
    return parsed


# ═══════════════════════════════════════════════════
# 3. ACREAGE
# ═══════════════════════════════════════════════════

@dataclass
class TractAcreage:
    acres: Optional[Fraction]
    notes: list[str] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return self.acres is not None


def compute_acreage(parsed: ParsedLegal) -> TractAcreage:
    """Gross acreage of a parsed description under standard subdivision rules."""
    notes: list[str] = []
    if parsed.whole_section:
        acres: Optional[Fraction] = SECTION_ACRES
    elif parsed.cells:
        acres = len(parsed.cells) * _CELL_ACRES
    elif parsed.section and not parsed.lots:
        # Section cited with no subdivision: the whole section, as in matching
        acres = SECTION_ACRES
        stated = [a for a in parsed.explicit_acres if a != SECTION_ACRES]
        if stated:
            notes.append(f"Stated figure of {max(stated)} acres differs from the full section; "
                         f"gross acreage requires manual verification")
    else:
        acres = None

    if parsed.lots:
        if not parsed.explicit_acres:
            notes.append(
                f"Lot(s) {', '.join(str(n) for n in sorted(parsed.lots))} carry no stated acreage; "
                f"gross acreage requires manual verification"
            )
            return TractAcreage(None, notes)
        stated = sum(parsed.explicit_acres, Fraction(0))
        if acres is None:
            acres = stated
        elif max(parsed.explicit_acres) > acres:
            # A gross figure for the whole description (lots plus aliquots)
            acres = max(parsed.explicit_acres)
            notes.append("Gross acreage taken from the figure stated in the description")
        else:
            notes.append("Lot acreage could not be separated from aliquot acreage; "
                         "gross acreage requires manual verification")
            return TractAcreage(None, notes)

    if parsed.has_exceptions and acres is not None:
        notes.append("Description contains exceptions (LESS/EXCEPT); gross acreage "
                     "requires manual verification")
    return TractAcreage(acres, notes)


def derive_tract_acreage(text: str) -> TractAcreage:
    acreage = compute_acreage(parse_legal_description(text))
    if acreage.acres is None and not acreage.notes:
        acreage.notes.append("Gross acreage requires manual verification")
    return acreage


# ═══════════════════════════════════════════════════
# 4. MATCHING
# ═══════════════════════════════════════════════════

def _text_match(tract: str, event: str) -> LegalMatch:
    ct, ce = compact_legal_text(tract), compact_legal_text(event)
    if not ct or not ce:
        return LegalMatch.NO_MATCH
    if ct == ce:
        return LegalMatch.EXACT
    if ct in ce:
        return LegalMatch.SUPERSET
    if ce in ct:
        return LegalMatch.SUBSET
    return LegalMatch.NO_MATCH


def _same_or_unknown(a: str, b: str) -> bool:
    return not a or not b or a == b


def match_legal_descriptions(tract: str | ParsedLegal, event: str) -> LegalMatch:
    """Compare an event's legal description against the target tract.

    An event with no description is assumed to belong to the tract's
    runsheet and returns ExactMatch; callers flag that assumption.
    """
    if not event or not str(event).strip():
        return LegalMatch.EXACT
    t = tract if isinstance(tract, ParsedLegal) else parse_legal_description(tract)
    e = parse_legal_description(event)

    if not (_same_or_unknown(t.section, e.section)
            and _same_or_unknown(t.township, e.township)
            and _same_or_unknown(t.range_, e.range_)):
        return LegalMatch.NO_MATCH

    t_area = t.area
    e_area = e.area
    if not e_area and e.section and t.section:
        e_area = _FULL_SECTION  # section cited with no subdivision
    if not t_area and t.section and e.section:
        t_area = _FULL_SECTION

    if not t_area or not e_area:
        return _text_match(t.raw, e.raw)

    if e_area == t_area:
        return LegalMatch.EXACT
    if e_area < t_area:
        return LegalMatch.SUBSET
    if e_area > t_area:
        return LegalMatch.SUPERSET
    if e_area & t_area:
        return LegalMatch.PARTIAL
    return LegalMatch.NO_MATCH


def _section_cells(parsed: ParsedLegal) -> frozenset:
    if parsed.whole_section or (parsed.section and not parsed.cells and not parsed.lots):
        return _FULL_SECTION
    return parsed.cells


def overlap_acres(tract: str | ParsedLegal, event: str) -> Optional[Fraction]:
    """Acreage of the event's lands that fall inside the tract, when resolvable."""
    t = tract if isinstance(tract, ParsedLegal) else parse_legal_description(tract)
    e = parse_legal_description(event)
    t_cells, e_cells = _section_cells(t), _section_cells(e)
    if not t_cells or not e_cells or t.lots or e.lots:
        return None
    return len(t_cells & e_cells) * _CELL_ACRES


# ═══════════════════════════════════════════════════
# 5. DISPLAY
# ═══════════════════════════════════════════════════

_RUNSHEET_LEGAL_RE = re.compile(r'^\s*(\d+)\s*-\s*(\d+)\s+(\d+)\s*:\s*(.+)$')


def format_legal_description(description: str) -> str:
    """Expand the runsheet shorthand "158-102 18: E2NE4" into full TRS wording."""
    if not description:
        return ""
    m = _RUNSHEET_LEGAL_RE.match(description)
    if m:
        township, range_, section, portion = m.groups()
        return f"Township {township} North, Range {range_} West, Section {section}: {portion.strip()}"
    return description.strip()
