"""Tests for part keys, the stock book, and bulk part import/export."""

from __future__ import annotations

from decimal import Decimal

import openpyxl
import pytest

from parts_ledger import inventory
from parts_ledger.errors import ConsistencyWarning
from parts_ledger.records import PartKey, format_price, parse_price


@pytest.mark.parametrize("raw", ["₹10", "10", "₹10.00", "10.001", Decimal("10"), 10, 10.0])
def test_part_key_normalises_price(raw):
    """Equivalent price spellings address the same stock entry."""

    assert PartKey.of(" P100 ", raw) == PartKey("P100", Decimal("10.00"))


def test_parse_price_rejects_text_without_digits():
    """A price must contain a number."""

    with pytest.raises(ValueError):
        parse_price("₹")


@pytest.mark.parametrize(
    "raw, expected",
    [("Rs.10.00", "10.00"), ("Rs. 1,250.5", "1250.50"), ("-₹5", "-5.00"), ("USD-2.25", "-2.25")],
)
def test_parse_price_ignores_symbol_punctuation(raw, expected):
    """Only the number and its sign are read from a formatted price."""

    assert parse_price(raw) == Decimal(expected)


def test_format_price_uses_two_decimals():
    """Formatted prices carry the currency symbol and two decimals."""

    assert format_price("1250.5") == "₹1250.50"
    assert format_price(3, "$") == "$3.00"


def test_find_or_create_appends_placeholder_part(part_factory):
    """An unknown key is appended with the placeholder category."""

    parts = [part_factory("P1", "₹5.00", 2)]
    idx, part = inventory.find_or_create(parts, "P100", "10", part_name="Brake pad")

    assert idx == 1
    assert len(parts) == 2
    assert part.mrp == "₹10.00"
    assert part.category == "Uncategorized"
    assert part.quantity == 0


def test_find_or_create_returns_existing_part(part_factory):
    """A known key resolves without growing the list."""

    parts = [part_factory("P100", "₹10.00", 4)]
    idx, part = inventory.find_or_create(parts, "P100", "₹10")

    assert idx == 0
    assert part.quantity == 4
    assert len(parts) == 1


def test_adjust_floors_decrease_at_zero(part_factory):
    """Ordinary decreases never push stock below zero."""

    parts, warnings = inventory.adjust([part_factory(quantity=1)], "P100", "10.00", -3)

    assert parts[0].quantity == 0
    assert warnings == []


def test_adjust_without_floor_reports_negative_stock(part_factory, caplog):
    """Unfloored decreases may go negative and are reported."""

    parts, warnings = inventory.adjust([part_factory(quantity=1)], "P100", "10.00", -3, floor=False)

    assert parts[0].quantity == -2
    assert len(warnings) == 1
    assert isinstance(warnings[0], ConsistencyWarning)
    assert "negative" in caplog.text


def test_adjust_missing_part_is_skipped_with_warning(part_factory):
    """Adjusting an unknown key changes nothing and yields a warning."""

    original = [part_factory()]
    parts, warnings = inventory.adjust(original, "P404", "10.00", 2)

    assert parts == original
    assert "P404" in str(warnings[0])


def test_adjust_can_create_missing_part():
    """Increases with create_missing synthesise the part with the delta as quantity."""

    parts, warnings = inventory.adjust([], "P100", "₹10", 5, part_name="Filter", create_missing=True)

    assert warnings == []
    assert parts[0].part_name == "Filter"
    assert parts[0].quantity == 5
    assert parts[0].mrp == "₹10.00"


def test_stock_book_remove_reindexes(part_factory):
    """Entries after a removed part stay addressable."""

    book = inventory.StockBook([part_factory("A", "1"), part_factory("B", "2"), part_factory("C", "3")])
    removed = book.remove("A", "1")

    assert removed.part_number == "A"
    assert book.find("C", "3")[0] == 1
    assert book.remove("A", "1") is None


def test_parse_import_rows_counts_skipped_rows():
    """Header and blank rows are ignored; malformed rows are counted."""

    rows = [
        ("part name", "Other Name", "PART NUMBER", "Company", "Qty", "Category", "MRP", "Shelf"),
        ("Brake pad", None, "P100", "Acme", 4, "Brakes", "₹10", "A1"),
        (None, None, None, None, None, None, None, None),
        ("Too short", "x", "P200"),
        ("Bad qty", None, "P300", None, "four", None, "5", None),
        ("No price", None, "P400", None, 1, None, None, None),
        ("Fractional", None, "P500", None, 1.5, None, "5", None),
        ("Float qty", None, "P600", None, 2.0, None, 7, None),
    ]

    parsed, skipped = inventory.parse_import_rows(rows)

    assert [part.part_number for part in parsed] == ["P100", "P600"]
    assert parsed[0].mrp == "₹10.00"
    assert parsed[0].shelf == "A1"
    assert parsed[1].quantity == 2
    assert skipped == 4


def test_merge_imported_parts_adds_quantity_and_overwrites_details(part_factory):
    """A matching key adds stock and refreshes descriptive fields."""

    existing = [part_factory("P100", "₹10.00", 3, company="Old Co")]
    imported = [
        part_factory("P100", "₹10.00", 2, part_name="Renamed", company="New Co"),
        part_factory("P200", "₹4.00", 1),
    ]

    summary = inventory.merge_imported_parts(existing, imported, skipped=1)

    assert (summary.added, summary.updated, summary.skipped) == (1, 1, 1)
    assert summary.parts[0].quantity == 5
    assert summary.parts[0].company == "New Co"
    assert summary.parts[0].part_name == "Renamed"
    assert summary.message == "Import complete. 1 added, 1 updated, 1 skipped."


def test_export_then_import_workbook(tmp_path, part_factory):
    """Exported spreadsheets use the import layout and can be read back."""

    destination = tmp_path / "out" / "inventory.xlsx"
    inventory.write_export_workbook([part_factory("P100", "₹10.00", 3, shelf="B2")], destination)

    sheet = openpyxl.load_workbook(destination).active
    assert sheet.title == "Inventory"
    assert sheet["A1"].font.bold is True

    rows = inventory.read_import_workbook(destination)
    parsed, skipped = inventory.parse_import_rows(rows)
    assert skipped == 0
    assert parsed[0].part_number == "P100"
    assert parsed[0].quantity == 3
    assert parsed[0].shelf == "B2"


def test_read_import_workbook_missing_file(tmp_path):
    """Missing import files raise FileNotFoundError."""

    with pytest.raises(FileNotFoundError):
        inventory.read_import_workbook(tmp_path / "nope.xlsx")
