"""Inventory matcher and bulk part import/export.

Stock entries are addressed by :class:`~parts_ledger.records.PartKey`, the
pair of part number and normalised unit price. :class:`StockBook` keeps the
parts list together with a key index so every lookup during a lifecycle
operation is a single dictionary hit.

Adjustment policy:

* decreases are floored at zero unless the caller opts out (sale restore);
* a decrease, or a non-creating increase, on an unknown key is skipped and
  reported as a :class:`~parts_ledger.errors.ConsistencyWarning`;
* an increase with ``create_missing`` synthesises a new part from the
  transaction line with the placeholder category.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import CURRENCY_SYMBOL, PLACEHOLDER_CATEGORY
from .data_manager import save_workbook
from .errors import ConsistencyWarning
from .records import PartKey, PartRecord, format_price


IMPORT_COLUMNS: Tuple[str, ...] = (
    "Part Name",
    "Other Name",
    "Part Number",
    "Company",
    "Qty",
    "Category",
    "MRP",
    "Shelf",
)
EXPORT_SHEET = "Inventory"


class StockBook:
    """Mutable working copy of the parts collection indexed by ``PartKey``."""

    def __init__(
        self,
        parts: Iterable[PartRecord],
        *,
        currency_symbol: str = CURRENCY_SYMBOL,
        placeholder_category: str = PLACEHOLDER_CATEGORY,
    ) -> None:
        self._parts: List[PartRecord] = list(parts)
        self.currency_symbol = currency_symbol
        self.placeholder_category = placeholder_category
        self._index: Dict[PartKey, int] = {}
        self._reindex()

    def _reindex(self) -> None:
        self._index = {}
        for idx, part in enumerate(self._parts):
            try:
                key = part.key
            except ValueError:
                log.warning("Part '%s' has an unreadable price %r; it cannot be matched", part.part_number, part.mrp)
                continue
            # First entry wins when a hand-edited store holds duplicates.
            self._index.setdefault(key, idx)

    @property
    def parts(self) -> List[PartRecord]:
        return list(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    def find(self, part_number: Any, price: Any) -> Optional[Tuple[int, PartRecord]]:
        idx = self._index.get(PartKey.of(part_number, price))
        if idx is None:
            return None
        return idx, self._parts[idx]

    def append(self, part: PartRecord) -> int:
        self._parts.append(part)
        idx = len(self._parts) - 1
        self._index.setdefault(part.key, idx)
        return idx

    def replace_at(self, idx: int, part: PartRecord) -> None:
        self._parts[idx] = part

    def remove(self, part_number: Any, price: Any) -> Optional[PartRecord]:
        found = self.find(part_number, price)
        if found is None:
            return None
        idx, part = found
        del self._parts[idx]
        self._reindex()
        return part

    def find_or_create(
        self,
        part_number: Any,
        price: Any,
        *,
        part_name: Optional[str] = None,
        quantity: int = 0,
    ) -> Tuple[int, PartRecord]:
        """Return the stock entry for the key, appending a new one if absent."""
        found = self.find(part_number, price)
        if found is not None:
            return found
        key = PartKey.of(part_number, price)
        part = PartRecord(
            part_number=key.part_number,
            part_name=part_name or key.part_number,
            mrp=key.formatted_price(self.currency_symbol),
            quantity=quantity,
            category=self.placeholder_category,
        )
        idx = self.append(part)
        log.info("Created stock entry %s (quantity=%d)", key, quantity)
        return idx, part

    def adjust(
        self,
        part_number: Any,
        price: Any,
        delta: int,
        *,
        part_name: Optional[str] = None,
        floor: bool = True,
        create_missing: bool = False,
    ) -> Optional[ConsistencyWarning]:
        """Apply ``delta`` to the quantity of the matching stock entry.

        Returns:
            ConsistencyWarning | None: A warning when the adjustment was
                skipped for a missing part or left the quantity negative.
        """
        key = PartKey.of(part_number, price)
        found = self.find(part_number, price)
        if found is None:
            if delta > 0 and create_missing:
                self.find_or_create(part_number, price, part_name=part_name, quantity=delta)
                return None
            warning = ConsistencyWarning(
                f"Part {key} not found; stock adjustment of {delta:+d} skipped"
            )
            log.warning("%s", warning)
            return warning

        idx, part = found
        new_quantity = part.quantity + delta
        if floor:
            new_quantity = max(0, new_quantity)
        self._parts[idx] = replace(part, quantity=new_quantity)
        if new_quantity < 0:
            warning = ConsistencyWarning(f"Part {key} quantity is now negative ({new_quantity})")
            log.warning("%s", warning)
            return warning
        return None


def find_or_create(
    parts: List[PartRecord],
    part_number: Any,
    price: Any,
    *,
    part_name: Optional[str] = None,
    placeholder_category: str = PLACEHOLDER_CATEGORY,
) -> Tuple[int, PartRecord]:
    """Resolve ``(part_number, price)`` in ``parts``, appending a new entry if absent."""
    book = StockBook(parts, placeholder_category=placeholder_category)
    idx, part = book.find_or_create(part_number, price, part_name=part_name)
    if idx == len(parts):
        parts.append(part)
    return idx, part


def adjust(
    parts: Sequence[PartRecord],
    part_number: Any,
    price: Any,
    delta: int,
    **options: Any,
) -> Tuple[List[PartRecord], List[ConsistencyWarning]]:
    """Return a copy of ``parts`` with ``delta`` applied to the matching entry."""
    book = StockBook(parts)
    warning = book.adjust(part_number, price, delta, **options)
    return book.parts, [warning] if warning is not None else []


# ---------------------------------------------------------------------------
# Bulk import / export
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of merging a batch of imported rows into the parts list."""

    parts: List[PartRecord]
    added: int
    updated: int
    skipped: int

    @property
    def message(self) -> str:
        return f"Import complete. {self.added} added, {self.updated} updated, {self.skipped} skipped."


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    if isinstance(cell, float) and cell.is_integer():
        return str(int(cell))
    return str(cell).strip()


def _parse_quantity(text: str) -> Optional[int]:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if value != value.to_integral_value():
        return None
    return int(value)


def is_header_row(row: Sequence[Any]) -> bool:
    cells = [_cell_text(cell).lower() for cell in row]
    return len(cells) >= len(IMPORT_COLUMNS) and all(
        cells[idx] == column.lower() for idx, column in enumerate(IMPORT_COLUMNS)
    )


def parse_import_rows(
    rows: Iterable[Sequence[Any]],
    *,
    currency_symbol: str = CURRENCY_SYMBOL,
) -> Tuple[List[PartRecord], int]:
    """Validate raw spreadsheet rows and convert them into part records.

    The first row is treated as a header and ignored when it matches
    ``IMPORT_COLUMNS`` (case-insensitive). Fully blank rows are ignored.
    Rows with too few columns, a non-integer quantity, or a missing part name,
    part number, or price are skipped and counted.

    Args:
        rows (Iterable[Sequence[Any]]): Raw cell values, one sequence per row.
        currency_symbol (str): Symbol used when formatting the MRP column.

    Returns:
        tuple[list[PartRecord], int]: Parsed records and the skipped-row count.
    """

    parsed: List[PartRecord] = []
    skipped = 0
    for position, row in enumerate(rows):
        row = list(row or [])
        if position == 0 and is_header_row(row):
            continue
        if not any(_cell_text(cell) for cell in row):
            continue
        if len(row) < len(IMPORT_COLUMNS):
            skipped += 1
            continue
        name, other, number, company, qty, category, mrp, shelf = (
            _cell_text(cell) for cell in row[: len(IMPORT_COLUMNS)]
        )
        quantity = _parse_quantity(qty)
        if quantity is None or not number or not name or not mrp:
            skipped += 1
            continue
        try:
            formatted = format_price(mrp, currency_symbol)
        except ValueError:
            skipped += 1
            continue
        parsed.append(
            PartRecord(
                part_number=number,
                part_name=name,
                mrp=formatted,
                quantity=quantity,
                other_name=other or None,
                company=company or None,
                category=category or None,
                shelf=shelf or None,
            )
        )
    if skipped:
        log.warning("Skipped %d malformed import rows", skipped)
    return parsed, skipped


def merge_imported_parts(
    parts: Sequence[PartRecord],
    imported: Iterable[PartRecord],
    *,
    skipped: int = 0,
) -> ImportSummary:
    """Fold imported parts into ``parts``.

    A matching key adds the imported quantity and overwrites the descriptive
    fields; an unknown key is appended as a new part.
    """
    book = StockBook(parts)
    added = updated = 0
    for part in imported:
        found = book.find(part.part_number, part.mrp)
        if found is None:
            book.append(part)
            added += 1
            continue
        idx, existing = found
        book.replace_at(
            idx,
            replace(
                existing,
                quantity=existing.quantity + part.quantity,
                part_name=part.part_name,
                other_name=part.other_name,
                company=part.company,
                category=part.category,
                shelf=part.shelf,
            ),
        )
        updated += 1
    return ImportSummary(parts=book.parts, added=added, updated=updated, skipped=skipped)


def read_import_workbook(path: Path) -> List[Tuple[Any, ...]]:
    """Return the raw rows of the first worksheet of an import spreadsheet.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
    """
    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    workbook = openpyxl.load_workbook(path, data_only=True)
    sheet = workbook.worksheets[0]
    return [tuple(row) for row in sheet.iter_rows(values_only=True)]


def write_export_workbook(parts: Iterable[PartRecord], destination: Path) -> Path:
    """Write parts to a spreadsheet using the import column layout."""
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = EXPORT_SHEET
    sheet.append(list(IMPORT_COLUMNS))
    bold_font = Font(bold=True)
    for cell in sheet[1]:
        cell.font = bold_font
    for part in parts:
        sheet.append(
            [
                part.part_name,
                part.other_name or "",
                part.part_number,
                part.company or "",
                part.quantity,
                part.category or "",
                part.mrp,
                part.shelf or "",
            ]
        )
    destination = Path(destination).expanduser().resolve()
    save_workbook(workbook, destination)
    return destination
