"""Name-variation-tolerant party identity.

Scanned runsheets spell the same owner many ways: "John A. Roe",
"John Roe", "Estate of John Roe", "John Roe, Jr.".  Byte-exact matching
misses most real chains, so identity is decided in two explicit steps:

  1. ``generate_name_variants()`` produces the normalized forms a name may
     appear under (middle initials dropped, suffixes dropped, estate forms).
  2. A ``NameMatcher`` decides whether two names denote the same party
     (ledger identity) or whether a free-text party cell names an owner
     (lessor / releasor matching).

The ledger and lease resolver only talk to the ``NameMatcher`` interface, so
a stricter matcher can be swapped in without touching their logic::

    matcher = SimilarityNameMatcher(threshold=0.9)
    ledger = replay(events, matcher=matcher)
"""

from __future__ import annotations

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from leasecheck.config import NAME_SIMILARITY_THRESHOLD, TRACE_ENABLED
from leasecheck.pipeline.utils import base_name_similarity, normalize_name, split_party_lines

logger = logging.getLogger(__name__)

# ── Variant kinds ──
KIND_FULL = "full"
KIND_CORE = "core"              # estate wording removed
KIND_NO_MIDDLE = "no_middle"    # single-letter middle initials removed
KIND_FIRST_LAST = "first_last"  # whole middle names removed (lessor cells only)
KIND_NO_SUFFIX = "no_suffix"    # Jr / Sr / II removed
KIND_ESTATE_OF = "estate_of"
KIND_ESTATE_SUFFIX = "estate_suffix"

# Kinds that identify one person.  Estate wording is already folded into
# KIND_CORE; suffix-stripped forms would merge a father and son, and
# first+last forms would merge "Mary Ann Roe" with "Mary Jo Roe".
_IDENTITY_KINDS = frozenset({KIND_FULL, KIND_CORE, KIND_NO_MIDDLE})

_ESTATE_OF_RE = re.compile(r'^(?:the\s+)?estate\s+of\s+(?:the\s+late\s+)?')
_ESTATE_SUFFIX_RE = re.compile(r'\s+(?:estate|est)$')
_DECEASED_RE = re.compile(r'\s+(?:deceased|decd|dec d)$')
_SUFFIX_RE = re.compile(r'\s+(?:jr|sr|ii|iii|iv|esq)$')
_JOINT_RE = re.compile(r'\s+(?:and|&)\s+', re.IGNORECASE)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


@dataclass(frozen=True)
class NameVariant:
    """One normalized form under which a party name may be recorded."""
    text: str
    kind: str


def generate_name_variants(name: str) -> list[NameVariant]:
    """Generate the normalized variants of an owner name.

    Examples (texts only):
      "John A. Roe"          → john a roe, john roe, estate of john a roe, john a roe estate
      "Estate of Jane Doe"   → estate of jane doe, jane doe, jane doe estate
      "Robert Roe Jr."       → robert roe jr, robert roe, estate of robert roe jr, ...
    """
    full = normalize_name(name)
    if not full:
        return []

    variants: list[NameVariant] = [NameVariant(full, KIND_FULL)]

    core = _ESTATE_OF_RE.sub("", full)
    core = _DECEASED_RE.sub("", core)
    core = _ESTATE_SUFFIX_RE.sub("", core).strip()
    if not core:
        core = full
    variants.append(NameVariant(core, KIND_CORE))

    tokens = core.split()
    without_initials = " ".join(t for t in tokens if len(t) > 1)
    if without_initials and without_initials != core and len(without_initials.split()) >= 2:
        variants.append(NameVariant(without_initials, KIND_NO_MIDDLE))
    if len(tokens) > 2:
        variants.append(NameVariant(f"{tokens[0]} {tokens[-1]}", KIND_FIRST_LAST))

    no_suffix = _SUFFIX_RE.sub("", core).strip()
    if no_suffix and no_suffix != core:
        variants.append(NameVariant(no_suffix, KIND_NO_SUFFIX))
        suffix_tokens = no_suffix.split()
        if len(suffix_tokens) > 2:
            variants.append(NameVariant(f"{suffix_tokens[0]} {suffix_tokens[-1]}", KIND_NO_SUFFIX))

    variants.append(NameVariant(f"estate of {core}", KIND_ESTATE_OF))
    variants.append(NameVariant(f"{core} estate", KIND_ESTATE_SUFFIX))

    seen: set[str] = set()
    unique: list[NameVariant] = []
    for v in variants:
        if v.text and v.text not in seen:
            seen.add(v.text)
            unique.append(v)
    return unique


def _component_names(name: str) -> list[str]:
    """Split a joint holding ("John Roe and Mary Roe") into its members."""
    parts = [p.strip() for p in _JOINT_RE.split(normalize_name(name)) if p.strip()]
    return parts if len(parts) > 1 else [name]


def joint_members(name: str) -> list[str]:
    """Members of a joint holding as written, or ``[]`` for a single party.

      "John Roe and Mary Roe"  → ["John Roe", "Mary Roe"]
      "Jane Doe"               → []
    """
    parts = [p.strip(" ,") for p in _JOINT_RE.split(name or "") if p.strip(" ,")]
    return parts if len(parts) > 1 else []


def _contains_words(haystack: str, needle: str) -> bool:
    """Case-insensitive containment on word boundaries ("ann" is not in "joann")."""
    if not needle:
        return False
    return f" {needle} " in f" {haystack} "


# ═══════════════════════════════════════════════════
# MATCHERS
# ═══════════════════════════════════════════════════

class NameMatcher(ABC):
    """Pluggable identity policy used by the ledger and the lease resolver."""

    @abstractmethod
    def same_party(self, a: str, b: str) -> bool:
        """True when two single-party names denote the same owner."""

    @abstractmethod
    def names_party(self, owner: str, party_text: str) -> bool:
        """True when a free-text party cell (possibly several lines) names the owner."""


class VariantNameMatcher(NameMatcher):
    """Default matcher: variant equality for identity, variant containment for cells."""

    def identity_keys(self, name: str) -> set[str]:
        return {v.text for v in generate_name_variants(name) if v.kind in _IDENTITY_KINDS}

    def _same_single(self, a: str, b: str) -> bool:
        keys_a = self.identity_keys(a)
        keys_b = self.identity_keys(b)
        if not keys_a or not keys_b:
            return False
        return bool(keys_a & keys_b)

    def same_party(self, a: str, b: str) -> bool:
        members_a = _component_names(a)
        members_b = _component_names(b)
        # A joint holding is never the same party as one of its members
        if len(members_a) != len(members_b):
            return False
        if len(members_a) > 1:
            return all(self._same_single(x, y) for x, y in zip(members_a, members_b))
        return self._same_single(a, b)

    def names_party(self, owner: str, party_text: str) -> bool:
        raw_lines = split_party_lines(party_text)
        lines = [normalize_name(line) for line in raw_lines]
        lines = [line for line in lines if line]
        if not lines:
            return False
        for member in _component_names(owner):
            for variant in generate_name_variants(member):
                for line in lines:
                    if _contains_words(line, variant.text):
                        _trace(f"NAME '{owner}' matched '{line}' via {variant.kind} '{variant.text}'")
                        return True
        # Reverse direction: the cell spells the owner more fully ("John A. Roe, a single man")
        for line in raw_lines:
            signer = line.split(",")[0]
            if any(self.same_party(member, signer) for member in _component_names(owner)):
                _trace(f"NAME '{owner}' matched '{signer}' via identity keys")
                return True
        return False


class SimilarityNameMatcher(VariantNameMatcher):
    """Variant matching plus a normalized edit-distance fallback for OCR noise."""

    def __init__(self, threshold: float | None = None):
        self.threshold = NAME_SIMILARITY_THRESHOLD if threshold is None else threshold

    def _similar(self, a: str, b: str) -> bool:
        keys_a = self.identity_keys(a)
        keys_b = self.identity_keys(b)
        best = max(
            (base_name_similarity(x, y) for x in keys_a for y in keys_b),
            default=0.0,
        )
        return best >= self.threshold

    def _same_single(self, a: str, b: str) -> bool:
        return super()._same_single(a, b) or self._similar(a, b)

    def names_party(self, owner: str, party_text: str) -> bool:
        if super().names_party(owner, party_text):
            return True
        return any(self._similar(owner, line) for line in split_party_lines(party_text))


DEFAULT_MATCHER: NameMatcher = VariantNameMatcher()
