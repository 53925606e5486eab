"""Tests for name-variant generation and the pluggable name matchers.

Covers:
  - generate_name_variants: middle initials, estate forms, suffixes
  - VariantNameMatcher.same_party: identity across spellings, father/son kept apart
  - VariantNameMatcher.names_party: multi-line cells, joint holders, word boundaries
  - SimilarityNameMatcher: edit-distance fallback behind a threshold
"""

import pytest

from leasecheck.pipeline.identity import (
    KIND_CORE,
    KIND_FIRST_LAST,
    KIND_FULL,
    KIND_NO_MIDDLE,
    DEFAULT_MATCHER,
    NameVariant,
    SimilarityNameMatcher,
    VariantNameMatcher,
    generate_name_variants,
    joint_members,
)


def _texts(name):
    return [v.text for v in generate_name_variants(name)]


# ═══════════════════════════════════════════════════
# 1. Variants
# ═══════════════════════════════════════════════════

class TestGenerateNameVariants:

    def test_middle_initial_dropped(self):
        texts = _texts("John A. Roe")
        assert texts[0] == "john a roe"
        assert "john roe" in texts

    def test_estate_of_folds_to_core(self):
        variants = generate_name_variants("Estate of Jane Doe")
        assert NameVariant("jane doe", KIND_CORE) in variants

    def test_deceased_suffix_folds_to_core(self):
        assert "jane doe" in _texts("Jane Doe, Deceased")

    def test_generational_suffix_variant(self):
        assert "robert roe" in _texts("Robert Roe Jr.")

    def test_first_variant_is_full(self):
        assert generate_name_variants("Alice Roe")[0].kind == KIND_FULL

    def test_no_duplicates(self):
        texts = _texts("Alice Roe")
        assert len(texts) == len(set(texts))

    def test_empty(self):
        assert generate_name_variants("") == []

    def test_no_middle_kind(self):
        assert NameVariant("john roe", KIND_NO_MIDDLE) in generate_name_variants("John A. Roe")

    def test_whole_middle_name_is_first_last_kind(self):
        assert NameVariant("john roe", KIND_FIRST_LAST) in generate_name_variants("John Allen Roe")

    @pytest.mark.parametrize("name,expected", [
        ("John Roe and Mary Roe", ["John Roe", "Mary Roe"]),
        ("JOHN ROE & MARY ROE", ["JOHN ROE", "MARY ROE"]),
        ("Jane Doe", []),
        ("", []),
    ])
    def test_joint_members(self, name, expected):
        assert joint_members(name) == expected


# ═══════════════════════════════════════════════════
# 2. Variant matcher
# ═══════════════════════════════════════════════════

class TestVariantNameMatcher:

    @pytest.mark.parametrize("a,b", [
        ("John A. Roe", "John Roe"),
        ("Estate of Jane Doe", "Jane Doe"),
        ("JANE DOE", "jane doe"),
        ("Mrs. Mary Roe", "Mary Roe"),
    ])
    def test_same_party(self, a, b):
        assert DEFAULT_MATCHER.same_party(a, b)

    def test_different_people(self):
        assert not DEFAULT_MATCHER.same_party("Alice Roe", "Bob Roe")

    def test_father_and_son_not_merged(self):
        assert not DEFAULT_MATCHER.same_party("Robert Roe Jr.", "Robert Roe")

    def test_different_middle_names_not_merged(self):
        assert not DEFAULT_MATCHER.same_party("Mary Ann Roe", "Mary Jo Roe")

    def test_joint_holding_is_not_its_member(self):
        assert not DEFAULT_MATCHER.same_party("John Roe and Mary Roe", "John Roe")

    def test_joint_holdings_match_member_by_member(self):
        assert DEFAULT_MATCHER.same_party("John A. Roe and Mary Roe", "John Roe & Mary Roe")

    def test_names_party_in_multiline_cell(self):
        assert DEFAULT_MATCHER.names_party("Bob Roe", "Alice Roe\nBob Roe")

    def test_names_party_with_newline_marker(self):
        assert DEFAULT_MATCHER.names_party("Bob Roe", "Alice Roe||NEWLINE||Bob Roe, a single man")

    def test_joint_holder_named(self):
        assert DEFAULT_MATCHER.names_party("John Roe and Mary Roe", "Mary Roe")

    def test_cell_spells_owner_more_fully(self):
        assert DEFAULT_MATCHER.names_party("John Roe", "John A. Roe, a married man")

    def test_cell_with_other_middle_name_not_owner(self):
        assert not DEFAULT_MATCHER.names_party("Mary Ann Roe", "Mary Jo Roe, a single woman")

    def test_word_boundary(self):
        assert not DEFAULT_MATCHER.names_party("Ann Smith", "Joann Smith")

    def test_names_party_empty_cell(self):
        assert not DEFAULT_MATCHER.names_party("Ann Smith", "")


# ═══════════════════════════════════════════════════
# 3. Similarity matcher
# ═══════════════════════════════════════════════════

class TestSimilarityNameMatcher:

    def test_ocr_spelling_below_default_threshold(self):
        assert not VariantNameMatcher().same_party("Jon Roe", "John Roe")

    def test_ocr_spelling_with_lower_threshold(self):
        assert SimilarityNameMatcher(threshold=0.6).same_party("Jon Roe", "John Roe")

    def test_strict_threshold_rejects(self):
        assert not SimilarityNameMatcher(threshold=0.99).same_party("Jon Roe", "John Roe")

    def test_still_accepts_variants(self):
        assert SimilarityNameMatcher(threshold=0.99).same_party("John A. Roe", "John Roe")

    def test_names_party_fallback(self):
        assert SimilarityNameMatcher(threshold=0.6).names_party("Jon Roe", "John Roe")
