"""Tests for area conversion and the shared normalization helpers.

Tests cover:
  - Survey number normalization: prefixes, Gujarati digits, separators
  - Survey list splitting and owner name normalization
  - Date parsing across register formats
  - Unit conversion, acre + guntha pairs and tolerance comparison
  - Free-text area parsing
"""

import pytest
from datetime import date, datetime

from landrecord.chain.areas import (
    acre_guntha_to_square_meters,
    canonical_unit,
    exceeds,
    from_square_meters,
    parse_area_to_sqm,
    square_meters_to_acre_guntha,
    to_square_meters,
)
from landrecord.chain.utils import (
    normalize_gujarati_numerals,
    normalize_owner_name,
    normalize_survey_number,
    parse_date,
    split_survey_numbers,
)


# ═══════════════════════════════════════════════════
# 1. Survey numbers
# ═══════════════════════════════════════════════════

class TestNormalizeSurveyNumber:
    """Survey numbers compare equal after prefix and digit normalization."""

    def test_strips_english_prefix(self):
        assert normalize_survey_number("S.No. 45/1") == "45/1"

    def test_strips_block_prefix(self):
        assert normalize_survey_number("Block No 12") == "12"

    def test_gujarati_prefix_and_digits(self):
        assert normalize_survey_number("સ.નં. ૪૫") == "45"

    def test_removes_inner_whitespace(self):
        assert normalize_survey_number("45 / 1") == "45/1"

    def test_separators_stay_distinct(self):
        assert normalize_survey_number("45-1") != normalize_survey_number("45/1")

    def test_uppercases_suffix(self):
        assert normalize_survey_number("45/a") == "45/A"

    def test_none_is_empty(self):
        assert normalize_survey_number(None) == ""


class TestSplitSurveyNumbers:

    def test_commas_and_semicolons(self):
        assert split_survey_numbers("45/1, 45/2; 46") == ["45/1", "45/2", "46"]

    def test_empty_parts_dropped(self):
        assert split_survey_numbers("45,, ,46") == ["45", "46"]

    def test_non_string(self):
        assert split_survey_numbers(None) == []


class TestNames:

    def test_collapses_whitespace(self):
        assert normalize_owner_name("  Ramesh   Patel ") == "Ramesh Patel"

    def test_case_is_kept(self):
        assert normalize_owner_name("ramesh") != normalize_owner_name("Ramesh")

    def test_gujarati_numerals(self):
        assert normalize_gujarati_numerals("૧૨૩") == "123"


# ═══════════════════════════════════════════════════
# 2. Dates
# ═══════════════════════════════════════════════════

class TestParseDate:

    def test_iso(self):
        assert parse_date("2021-03-04") == date(2021, 3, 4)

    def test_iso_timestamp_truncated(self):
        assert parse_date("2021-03-04T10:00:00Z") == date(2021, 3, 4)

    def test_day_first_slash(self):
        assert parse_date("04/03/2021") == date(2021, 3, 4)

    def test_gujarati_digits(self):
        assert parse_date("૦૪-૦૩-૨૦૨૧") == date(2021, 3, 4)

    def test_datetime_and_date_passthrough(self):
        assert parse_date(datetime(2021, 3, 4, 9, 30)) == date(2021, 3, 4)
        assert parse_date(date(2021, 3, 4)) == date(2021, 3, 4)

    def test_unparseable(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(20210304) is None


# ═══════════════════════════════════════════════════
# 3. Units
# ═══════════════════════════════════════════════════

class TestUnitConversion:

    def test_canonical_unit_aliases(self):
        assert canonical_unit("Acres") == "acre"
        assert canonical_unit("sq.m") == "sq_m"
        assert canonical_unit("unknown") == "sq_m"

    def test_acre_to_sqm(self):
        assert to_square_meters(1, "acre") == pytest.approx(4046.86)

    def test_guntha_to_sqm(self):
        assert to_square_meters(2, "guntha") == pytest.approx(202.34)

    def test_from_sqm(self):
        assert from_square_meters(4046.86, "acre") == pytest.approx(1.0)

    def test_acre_guntha_pair_uses_acre_constant(self):
        assert acre_guntha_to_square_meters(1, 0) == pytest.approx(4046.86)
        assert acre_guntha_to_square_meters(10, 0) == pytest.approx(40468.6)
        assert acre_guntha_to_square_meters(1, 20) == pytest.approx(4046.86 + 20 * 101.17)

    def test_pair_matches_single_unit_and_text(self):
        """The three ways of writing 2 acres 10 gunthas agree."""
        expected = to_square_meters(2, "acre") + to_square_meters(10, "guntha")
        assert acre_guntha_to_square_meters(2, 10) == pytest.approx(expected)
        assert parse_area_to_sqm("2 acres 10 gunthas") == pytest.approx(expected)

    def test_split_to_acre_guntha(self):
        assert square_meters_to_acre_guntha(4046.86) == (1, 0)
        assert square_meters_to_acre_guntha(4046.86 * 2.5) == (2, 20)


class TestExceeds:

    def test_within_tolerance(self):
        assert not exceeds(1000.005, 1000)

    def test_beyond_tolerance(self):
        assert exceeds(1000.02, 1000)

    def test_equal(self):
        assert not exceeds(1000, 1000)


class TestParseArea:

    def test_compound_extent(self):
        assert parse_area_to_sqm("2 acres 10 gunthas") == pytest.approx(2 * 4046.86 + 10 * 101.17)

    def test_square_meters(self):
        assert parse_area_to_sqm("250 m2") == pytest.approx(250)

    def test_bare_number(self):
        assert parse_area_to_sqm("1,250") == pytest.approx(1250)

    def test_garbage(self):
        assert parse_area_to_sqm("abc") is None
        assert parse_area_to_sqm("") is None
