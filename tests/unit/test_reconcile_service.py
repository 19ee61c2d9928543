"""
Tests for the quantity reconciler.
"""

import pytest

from exceptions import ProductNotFoundError
from models.session import MatchResult, MatchTier
from services.reconcile_service import (
    adjust,
    compute_stats,
    confirm,
    new_item_description,
    parse_quantity,
)
from services.scan_service import build_placeholder, resolve
from tests.factories import ProductRecordFactory


@pytest.fixture
def catalog():
    return [
        ProductRecordFactory.create(code="CF280A", scriptic_stock=5),
        ProductRecordFactory.create(code="Q2612A", scriptic_stock=2),
    ]


class TestParseQuantity:

    @pytest.mark.parametrize("text,expected", [
        ("3", 3),
        ("12 buc", 12),
        ("-2", -2),
        (4, 4),
    ])
    def test_parses(self, text, expected):
        assert parse_quantity(text) == expected

    @pytest.mark.parametrize("text", [None, "", "abc"])
    def test_defaults_to_one(self, text):
        assert parse_quantity(text) == 1


class TestNewItemDescription:

    def test_prefixes_code(self):
        assert new_item_description("XYZ12345", "Cable") == "XYZ12345 - Cable"

    def test_blank_uses_default(self):
        assert new_item_description("XYZ12345", "  ") == "XYZ12345 - Produs Nou"
        assert new_item_description("XYZ12345") == "XYZ12345 - Produs Nou"

    def test_text_starting_with_code_kept(self):
        assert new_item_description("XYZ12345", "XYZ12345 cablu") == "XYZ12345 cablu"


class TestConfirmFound:
    """Tests for confirming catalog records."""

    def test_adds_quantity(self, catalog):
        # Arrange
        match = resolve("CF280A", catalog)

        # Act
        result = confirm(catalog, match, 3)

        # Assert
        assert result[0].actual_stock == 3
        assert result[0].scriptic_stock == 5

    def test_accumulates(self, catalog):
        products = confirm(catalog, resolve("CF280A", catalog), 3)
        products = confirm(products, resolve("CF280A", products), 2)

        assert products[0].actual_stock == 5

    def test_input_not_mutated(self, catalog):
        confirm(catalog, resolve("CF280A", catalog), 3)

        assert catalog[0].actual_stock == 0

    def test_untouched_records_identical(self, catalog):
        result = confirm(catalog, resolve("CF280A", catalog), 3)

        assert result[1] is catalog[1]
        assert len(result) == len(catalog)

    def test_negative_clamped_at_zero(self, catalog):
        products = confirm(catalog, resolve("CF280A", catalog), 2)

        products = confirm(products, resolve("CF280A", products), -5)

        assert products[0].actual_stock == 0

    def test_description_ignored(self, catalog):
        result = confirm(catalog, resolve("CF280A", catalog), 1, description="Altceva")

        assert result[0].description == catalog[0].description

    def test_stale_record_raises(self, catalog):
        match = resolve("CF280A", catalog)
        replaced = [catalog[1]]

        with pytest.raises(ProductNotFoundError):
            confirm(replaced, match, 1)


class TestConfirmNew:
    """Tests for confirming unknown codes."""

    def test_appends_new_item(self, catalog):
        match = resolve("XYZ12345", catalog, timestamp_ms=1)

        result = confirm(catalog, match, 2, description="Cable")

        assert len(result) == 3
        entry = result[-1]
        assert entry.code == "XYZ12345"
        assert entry.description == "XYZ12345 - Cable"
        assert entry.actual_stock == 2
        assert entry.scriptic_stock == 0
        assert entry.is_new is True

    def test_blank_description(self, catalog):
        result = confirm(catalog, resolve("XYZ12345", catalog), 1)

        assert result[-1].description == "XYZ12345 - Produs Nou"

    def test_negative_quantity_clamped(self, catalog):
        result = confirm(catalog, resolve("XYZ12345", catalog), -3)

        assert result[-1].actual_stock == 0

    def test_same_placeholder_twice_not_duplicated(self, catalog):
        match = MatchResult.not_found(build_placeholder("XYZ12345", 7), "XYZ12345")

        products = confirm(catalog, match, 1)
        products = confirm(products, match, 2)

        assert len(products) == 3
        assert products[-1].actual_stock == 3

    def test_rescan_of_new_item_finds_it(self, catalog):
        products = confirm(catalog, resolve("XYZ12345", catalog), 1)

        match = resolve("XYZ12345", products)

        assert match.found is True
        assert match.tier == MatchTier.EXACT
        assert confirm(products, match, 1)[-1].actual_stock == 2


class TestAdjust:
    """Tests for manual +/-."""

    def test_increments(self, catalog):
        result = adjust(catalog, catalog[0].id, 1)

        assert result[0].actual_stock == 1

    def test_decrement_clamped(self, catalog):
        result = adjust(catalog, catalog[0].id, -1)

        assert result[0].actual_stock == 0

    def test_large_decrement_clamped_to_zero(self):
        catalog = [ProductRecordFactory.create(code="CF280A", actual_stock=3)]

        result = adjust(catalog, catalog[0].id, -100)

        assert result[0].actual_stock == 0

    def test_unknown_id_unchanged(self, catalog):
        result = adjust(catalog, "missing", 1)

        assert result == catalog
        assert result[0] is catalog[0]


class TestComputeStats:

    def test_counts(self, catalog):
        products = confirm(catalog, resolve("CF280A", catalog), 5)
        products = confirm(products, resolve("XYZ12345", products), 2)

        stats = compute_stats(products)

        assert stats.total_items == 3
        assert stats.scanned_items == 2
        assert stats.total_actual_stock == 7
        assert stats.new_items == 1
        # Q2612A (0 vs 2) and the new item (2 vs 0); CF280A matches its ledger
        assert stats.discrepancies == 2

    def test_empty(self):
        stats = compute_stats([])

        assert stats.total_items == 0
        assert stats.discrepancies == 0
