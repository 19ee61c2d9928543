"""
Tests for the scan resolver.
"""

import pytest

from exceptions import EmptyScanError
from models.product import NEW_ITEM_ROW_INDEX
from models.session import MatchTier
from services.scan_service import build_placeholder, resolve, search_products
from tests.factories import ProductRecordFactory


@pytest.fixture
def catalog():
    return ProductRecordFactory.create_catalog("CF280A", "MLT-D101S", "Q2612A", "CE505A")


class TestResolveTiers:
    """Tests for the three matching tiers."""

    def test_exact_match(self, catalog):
        result = resolve("CF280A", catalog)

        assert result.found is True
        assert result.tier == MatchTier.EXACT
        assert result.record is catalog[0]

    def test_exact_match_ignores_case(self, catalog):
        result = resolve("cf280a", catalog)

        assert result.found is True
        assert result.tier == MatchTier.EXACT
        assert result.record.code == "CF280A"

    def test_input_trimmed(self, catalog):
        result = resolve("  Q2612A\n", catalog)

        assert result.record.code == "Q2612A"
        assert result.scanned == "Q2612A"

    def test_prefix_strip(self, catalog):
        # Labels prepend "P" for part number
        result = resolve("PCF280A", catalog)

        assert result.found is True
        assert result.tier == MatchTier.PREFIX_STRIP
        assert result.record.code == "CF280A"

    def test_substring(self, catalog):
        result = resolve("D101", catalog)

        assert result.found is True
        assert result.tier == MatchTier.SUBSTRING
        assert result.record.code == "MLT-D101S"

    def test_exact_beats_substring(self):
        catalog = ProductRecordFactory.create_catalog("XCF280A1", "CF280A")

        result = resolve("CF280A", catalog)

        assert result.tier == MatchTier.EXACT
        assert result.record is catalog[1]

    def test_exact_beats_prefix_strip(self):
        # "F280A" is what stripping the first character of "CF280A" gives
        catalog = ProductRecordFactory.create_catalog("F280A", "CF280A")

        result = resolve("CF280A", catalog)

        assert result.tier == MatchTier.EXACT
        assert result.record is catalog[1]

    def test_prefix_strip_beats_substring(self):
        catalog = ProductRecordFactory.create_catalog("ZPCF280AZ", "CF280A")

        result = resolve("PCF280A", catalog)

        assert result.tier == MatchTier.PREFIX_STRIP
        assert result.record is catalog[1]

    def test_first_record_wins_within_tier(self):
        catalog = ProductRecordFactory.create_catalog("AB505X", "CE505A")

        result = resolve("505", catalog)

        assert result.record is catalog[0]

    def test_two_character_scan_skips_prefix_strip(self):
        catalog = ProductRecordFactory.create_catalog("B", "XAB")

        result = resolve("AB", catalog)

        # "AB" minus first char would equal "B"; only substring applies
        assert result.tier == MatchTier.SUBSTRING
        assert result.record.code == "XAB"


class TestResolveNotFound:
    """Tests for unknown codes."""

    def test_unknown_code_gives_placeholder(self, catalog):
        result = resolve("XYZ12345", catalog, timestamp_ms=1700000000000)

        assert result.found is False
        assert result.tier == MatchTier.NONE
        assert result.record.id == "NEW_1700000000000_XYZ12345"
        assert result.record.code == "XYZ12345"
        assert result.record.is_new is True
        assert result.record.actual_stock == 0
        assert result.record.row_original_index == NEW_ITEM_ROW_INDEX

    def test_placeholder_not_added_to_working_set(self, catalog):
        before = list(catalog)

        resolve("XYZ12345", catalog)

        assert catalog == before

    def test_empty_working_set(self):
        result = resolve("CF280A", [])

        assert result.found is False

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_blank_input_raises(self, catalog, raw):
        with pytest.raises(EmptyScanError):
            resolve(raw, catalog)


class TestBuildPlaceholder:

    def test_placeholder_fields(self):
        record = build_placeholder("ABC123", timestamp_ms=42)

        assert record.id == "NEW_42_ABC123"
        assert record.scriptic_stock == 0
        assert record.original_data == []


class TestSearchProducts:
    """Tests for the list filter."""

    def test_matches_code(self, catalog):
        assert [p.code for p in search_products(catalog, "cf2")] == ["CF280A"]

    def test_matches_description(self):
        catalog = [
            ProductRecordFactory.create(code="CF280A", description="Toner HP"),
            ProductRecordFactory.create(code="Q2612A", description="Cartus"),
        ]

        assert [p.code for p in search_products(catalog, "toner")] == ["CF280A"]

    def test_empty_term_returns_everything(self, catalog):
        assert search_products(catalog, "  ") == catalog
