"""Data access layer for Parts Ledger.

This module provides low-level helpers that read from and write to the
per-collection workbooks kept in the configured data directory. Business
logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook codec: turning a collection value (a list of records, a mapping,
   or a scalar) into an ``openpyxl`` workbook and back.
3. Record store: loading collections with a default fallback, saving them
   through a staging file, and committing several collections together.
"""


from __future__ import annotations

import configparser
import copy
import json
import os
import threading
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .constants import (
    CURRENCY_SYMBOL,
    LOW_STOCK_THRESHOLD,
    PLACEHOLDER_CATEGORY,
)
from .errors import ConcurrentUpdateError


CONFIG_FILE_NAME = "config.ini"
STORE_SUFFIX = ".xlsx"
META_SHEET = "_meta"
KIND_RECORDS = "records"
KIND_MAPPING = "mapping"
KIND_SCALAR = "scalar"
PARENT_COLUMN = "_row"
TYPES_COLUMN = "_types"
NESTED_TAG = "records"

# Errors raised by openpyxl (or the zip layer underneath) for files that exist
# but cannot be decoded as one of our collection workbooks.
UNREADABLE_STORE_ERRORS: Tuple[type, ...] = (
    zipfile.BadZipFile,
    InvalidFileException,
    KeyError,
    IndexError,
    ValueError,
    TypeError,
    EOFError,
    InvalidOperation,
)


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_dir: Path
    shop_name: str
    schema_version: str
    currency_symbol: str = CURRENCY_SYMBOL
    placeholder_category: str = PLACEHOLDER_CATEGORY
    low_stock_threshold: int = LOW_STOCK_THRESHOLD
    shop_address: str = ""
    shop_gst_number: str = ""
    shop_phone_numbers: Tuple[str, ...] = ()
    low_stock_alerts: bool = True


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    The function expands user home references (``~``), resolves the absolute
    path, and validates that the file exists before parsing it. Validation of
    required entries happens in :func:`parse_settings`.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` entries are mandatory. The ``[Defaults]`` section is
    optional and each of its entries falls back to the package constant.
    The optional ``[Shop]`` section carries the address, GST number, up to
    two phone numbers, and whether low stock alerts are shown.
    A relative ``DataDir`` is anchored at ``base_path`` (normally the folder
    holding ``config.ini``), or the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve a relative
            ``DataDir``.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required ``[System]`` options is missing.
        ValueError: If ``LowStockThreshold`` is not an integer or
            ``LowStockAlerts`` is not a boolean.
    """

    try:
        data_dir_raw = parser.get("System", "DataDir")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    currency_symbol = parser.get("Defaults", "CurrencySymbol", fallback=CURRENCY_SYMBOL)
    placeholder_category = parser.get("Defaults", "PlaceholderCategory", fallback=PLACEHOLDER_CATEGORY)
    low_stock_threshold = parser.getint("Defaults", "LowStockThreshold", fallback=LOW_STOCK_THRESHOLD)

    shop_address = parser.get("Shop", "Address", fallback="").strip()
    shop_gst_number = parser.get("Shop", "GstNumber", fallback="").strip()
    phones = (parser.get("Shop", option, fallback="").strip() for option in ("Phone1", "Phone2"))
    low_stock_alerts = parser.getboolean("Shop", "LowStockAlerts", fallback=True)

    data_dir = Path(data_dir_raw).expanduser()
    if not data_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_dir = (base_path / data_dir).resolve()

    return ConfigSettings(
        data_dir=data_dir,
        shop_name=shop_name,
        schema_version=schema_version,
        currency_symbol=currency_symbol,
        placeholder_category=placeholder_category,
        low_stock_threshold=low_stock_threshold,
        shop_address=shop_address,
        shop_gst_number=shop_gst_number,
        shop_phone_numbers=tuple(phone for phone in phones if phone),
        low_stock_alerts=low_stock_alerts,
    )


# ---------------------------------------------------------------------------
# Workbook codec
# ---------------------------------------------------------------------------


def _set_cell(sheet: Worksheet, row: int, column: int, value: Any) -> None:
    cell = sheet.cell(row=row, column=column, value=value)
    # Text such as "=SUM" must stay text, not become a formula.
    if isinstance(value, str) and value.startswith("="):
        cell.data_type = "s"


def _encode_cell(value: Any) -> Tuple[Any, str]:
    """Return the cell value and type tag used to store ``value``.

    Raises:
        TypeError: If the value has no lossless cell representation.
    """

    if value is None:
        return None, "none"
    if isinstance(value, bool):
        return value, "bool"
    if isinstance(value, int):
        return value, "int"
    if isinstance(value, float):
        return value, "float"
    if isinstance(value, Decimal):
        return str(value), "decimal"
    if isinstance(value, str):
        return (value or None), "str"
    raise TypeError(f"Cannot store a {type(value).__name__} value in a collection workbook")


def _decode_cell(cell: Any, tag: str) -> Any:
    if tag == NESTED_TAG:
        return []
    if tag == "str":
        return "" if cell is None else str(cell)
    if cell is None or tag == "none":
        return None
    if tag == "bool":
        return bool(cell)
    if tag == "int":
        return int(cell)
    if tag == "float":
        return float(cell)
    if tag == "decimal":
        return Decimal(str(cell))
    raise ValueError(f"Unknown cell type '{tag}'")


def _encode_record(record: Mapping[str, Any], headers: Sequence[str], nested: Sequence[str]) -> List[Any]:
    cells: Dict[str, Any] = {}
    types: Dict[str, str] = {}
    for key, value in record.items():
        if not isinstance(key, str) or key in (TYPES_COLUMN, PARENT_COLUMN):
            raise TypeError(f"Unsupported record key {key!r}")
        if key in nested:
            if not isinstance(value, list) or any(not isinstance(child, Mapping) for child in value):
                raise TypeError(f"Field '{key}' must hold a list of mappings in every record")
            types[key] = NESTED_TAG
            continue
        cells[key], types[key] = _encode_cell(value)
    # The types column lists the keys this row has, in order, with their tags.
    return [*(cells.get(key) for key in headers), json.dumps(types)]


def _decode_record(headers: Sequence[str], row: Sequence[Any]) -> Dict[str, Any]:
    cells = {key: row[idx] if idx < len(row) else None for idx, key in enumerate(headers)}
    encoded_types = cells.pop(TYPES_COLUMN, None)
    if encoded_types is None:
        # Sheets edited by hand carry no types: every column, blanks as None.
        return cells
    return {key: _decode_cell(cells.get(key), tag) for key, tag in json.loads(encoded_types).items()}


def _write_table(sheet: Worksheet, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    for col_idx, header in enumerate(headers, start=1):
        _set_cell(sheet, 1, col_idx, header)
    for row_idx, row in enumerate(rows, start=2):
        for col_idx, value in enumerate(row, start=1):
            if value is not None:
                _set_cell(sheet, row_idx, col_idx, value)


def _write_records(
    sheet: Worksheet,
    records: Sequence[Mapping[str, Any]],
    nested: Sequence[str] = (),
    prefix: Optional[Sequence[Any]] = None,
) -> None:
    headers = _collect_headers(records, nested)
    rows = [
        [*([prefix[idx]] if prefix is not None else []), *_encode_record(record, headers, nested)]
        for idx, record in enumerate(records)
    ]
    leading = [PARENT_COLUMN] if prefix is not None else []
    _write_table(sheet, [*leading, *headers, TYPES_COLUMN], rows)


def _read_table(sheet: Worksheet) -> Tuple[List[str], List[Tuple[Any, ...]]]:
    rows = list(sheet.iter_rows(values_only=True))
    if not rows:
        return [], []
    headers = [str(cell) for cell in rows[0] if cell is not None]
    body = [row for row in rows[1:] if any(cell is not None for cell in row)]
    return headers, body


def _collect_headers(records: Sequence[Mapping[str, Any]], nested: Sequence[str]) -> List[str]:
    headers: List[str] = []
    for record in records:
        for key in record:
            if key not in nested and key not in headers:
                headers.append(key)
    return headers


def _nested_fields(records: Sequence[Mapping[str, Any]]) -> List[str]:
    nested: List[str] = []
    for record in records:
        for key, value in record.items():
            if isinstance(value, list) and key not in nested:
                nested.append(key)
    return nested


def _child_sheet_title(name: str, field: str) -> str:
    return f"{name}.{field}"[:31]


def build_collection_workbook(name: str, value: Any) -> Workbook:
    """Serialize a collection value into a fresh workbook.

    Lists of mappings become a table on a sheet named ``name``; any field
    holding a list of mappings (for example sale line items) is written to a
    child sheet ``name.field`` whose ``_row`` column points at the parent row.
    Mappings become a key/value table and anything else is stored in cell
    ``A1``. The ``_meta`` sheet records which of the three shapes was used so
    :func:`parse_collection_workbook` can reverse the process.

    Every table row ends with a ``_types`` cell naming the keys the record
    actually has and the type of each value, so ``""`` stays distinct from
    ``None``, ``Decimal`` values keep their digits, and absent keys stay
    absent after a reload.

    Args:
        name (str): Collection name, reused as the main sheet title.
        value (Any): Collection value to serialize.

    Returns:
        Workbook: Unsaved workbook holding the serialized collection.

    Raises:
        TypeError: If ``value`` holds anything other than mappings, lists of
            mappings, strings, numbers, booleans, ``Decimal`` and ``None``.
    """

    workbook = openpyxl.Workbook()
    main = workbook.active
    main.title = name[:31]
    meta = workbook.create_sheet(META_SHEET)

    if isinstance(value, list):
        if any(not isinstance(item, Mapping) for item in value):
            raise TypeError(f"Collection '{name}' must contain mappings only")
        nested = _nested_fields(value)
        _write_records(main, value, nested)
        for field in nested:
            children = [
                (parent_idx, child)
                for parent_idx, record in enumerate(value)
                for child in record.get(field) or []
            ]
            sheet = workbook.create_sheet(_child_sheet_title(name, field))
            _write_records(
                sheet,
                [child for _, child in children],
                prefix=[parent_idx for parent_idx, _ in children],
            )
        meta.append(["kind", KIND_RECORDS])
        meta.append(["nested", ",".join(nested)])
    elif isinstance(value, Mapping):
        if any(not isinstance(key, str) for key in value):
            raise TypeError(f"Collection '{name}' must use string keys")
        _write_records(main, [{"key": key, "value": item} for key, item in value.items()])
        meta.append(["kind", KIND_MAPPING])
    else:
        cell, tag = _encode_cell(value)
        if cell is not None:
            _set_cell(main, 1, 1, cell)
        meta.append(["kind", KIND_SCALAR])
        meta.append(["type", tag])

    return workbook


def parse_collection_workbook(name: str, workbook: Workbook) -> Any:
    """Reverse :func:`build_collection_workbook`.

    Args:
        name (str): Collection name used when the workbook was built.
        workbook (Workbook): Loaded workbook.

    Returns:
        Any: The collection value, equal to the one that was written.

    Raises:
        KeyError: If the ``_meta`` sheet or an expected sheet is missing.
        ValueError: If the recorded kind or a cell type is unknown.
    """

    meta = {
        str(row[0]): row[1]
        for row in workbook[META_SHEET].iter_rows(values_only=True)
        if row and row[0] is not None
    }
    kind = meta["kind"]
    main = workbook[name[:31]]

    if kind == KIND_SCALAR:
        cell = main.cell(row=1, column=1).value
        return cell if meta.get("type") is None else _decode_cell(cell, str(meta["type"]))

    headers, body = _read_table(main)
    if kind == KIND_MAPPING:
        pairs = [_decode_record(headers, row) for row in body]
        return {str(pair["key"]): pair.get("value") for pair in pairs}
    if kind != KIND_RECORDS:
        raise ValueError(f"Unknown collection kind '{kind}' in '{name}'")

    nested = [field for field in str(meta.get("nested") or "").split(",") if field]
    records = [_decode_record(headers, row) for row in body]

    for field in nested:
        child_headers, child_body = _read_table(workbook[_child_sheet_title(name, field)])
        for row in child_body:
            parent_idx = int(row[0])
            child = _decode_record(child_headers[1:], row[1:])
            records[parent_idx].setdefault(field, []).append(child)

    return records


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------


class RecordStore:
    """Directory of independently loadable and saveable named collections.

    Every collection lives in ``<data_dir>/<name>.xlsx``. Loads never raise
    for missing, empty, or undecodable files: the default is returned and
    written back so the file exists afterwards. Writes always go to a staging
    file first and are swapped in with :func:`os.replace`.
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir).expanduser().resolve()
        self._lock = threading.RLock()

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}{STORE_SUFFIX}"

    def _staging_path(self, name: str) -> Path:
        return self.data_dir / f".{name}.staged{STORE_SUFFIX}"

    def _read(self, name: str) -> Any:
        path = self.path_for(name)
        if not path.exists() or path.stat().st_size == 0:
            raise FileNotFoundError(path)
        workbook = openpyxl.load_workbook(path)
        return parse_collection_workbook(name, workbook)

    def peek(self, name: str, default: Any) -> Any:
        """Read a collection without persisting the default on failure."""
        try:
            return self._read(name)
        except (FileNotFoundError, *UNREADABLE_STORE_ERRORS):
            return copy.deepcopy(default)

    def load(self, name: str, default: Any) -> Any:
        """Load collection ``name`` or fall back to (and persist) ``default``.

        Args:
            name (str): Collection name.
            default (Any): Value returned when the store is absent, empty, or
                cannot be decoded. A deep copy is returned so callers may
                mutate it freely.

        Returns:
            Any: The stored collection value or a copy of ``default``.
        """
        try:
            return self._read(name)
        except FileNotFoundError:
            log.info("Initializing missing collection '%s' with its default", name)
        except UNREADABLE_STORE_ERRORS as exc:
            log.warning("Collection '%s' is unreadable (%s); resetting to default", name, exc)
        except OSError as exc:
            log.error("Failed to read collection '%s': %s", name, exc)
            return copy.deepcopy(default)

        try:
            self.save(name, default)
        except OSError as exc:
            log.error("Failed to initialize collection '%s': %s", name, exc)
        return copy.deepcopy(default)

    def save(self, name: str, value: Any) -> None:
        """Persist a single collection atomically."""
        self.commit({name: value})

    def commit(
        self,
        changes: Mapping[str, Any],
        *,
        expected: Optional[Mapping[str, Tuple[Any, Any]]] = None,
    ) -> None:
        """Write several collections as one staged unit.

        Every changed collection is first serialized to its staging file. Only
        when all staging writes succeeded are the staging files swapped into
        place; a failure while staging removes the staging files and leaves
        every collection untouched.

        Args:
            changes (Mapping[str, Any]): Collection name to new value.
            expected (Mapping[str, tuple[Any, Any]] | None): Optional guards,
                mapping a collection name to ``(default, value_seen)``. The
                commit is refused when the stored value no longer equals the
                value the caller read.

        Raises:
            ConcurrentUpdateError: If a guarded collection changed.
            OSError: If a staging file cannot be written or swapped in.
        """
        with self._lock:
            for name, (default, seen) in (expected or {}).items():
                current = self.peek(name, default)
                if current != seen:
                    log.error("Collection '%s' changed since it was read; refusing commit", name)
                    raise ConcurrentUpdateError(f"Collection '{name}' was modified concurrently")

            staged: List[Tuple[Path, Path]] = []
            try:
                for name, value in changes.items():
                    staging = self._staging_path(name)
                    staged.append((staging, self.path_for(name)))
                    save_workbook(build_collection_workbook(name, value), staging)
            except Exception:
                for staging, _ in staged:
                    staging.unlink(missing_ok=True)
                raise

            for staging, final in staged:
                os.replace(staging, final)
            if staged:
                log.debug("Committed collections: %s", ", ".join(changes))

    def compare_and_swap(self, name: str, expected: Any, new: Any, *, default: Any = None) -> bool:
        """Replace ``name`` with ``new`` only if it currently equals ``expected``."""
        with self._lock:
            if self.peek(name, default) != expected:
                return False
            self.commit({name: new})
            return True

    @contextmanager
    def transaction(self) -> Iterator["StoreTransaction"]:
        """Open a staged unit of work that commits when the block exits cleanly."""
        tx = StoreTransaction(self)
        yield tx
        tx.commit()


class StoreTransaction:
    """Read-through, write-behind view of a :class:`RecordStore`."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self._staged: Dict[str, Any] = {}
        self._guards: Dict[str, Tuple[Any, Any]] = {}

    def load(self, name: str, default: Any, *, guard: bool = False) -> Any:
        if name in self._staged:
            return copy.deepcopy(self._staged[name])
        value = self.store.load(name, default)
        if guard:
            self._guards[name] = (copy.deepcopy(default), copy.deepcopy(value))
        return value

    def stage(self, name: str, value: Any) -> None:
        self._staged[name] = copy.deepcopy(value)

    @property
    def staged_names(self) -> List[str]:
        return list(self._staged)

    def commit(self) -> None:
        if not self._staged:
            return
        self.store.commit(self._staged, expected=self._guards)
        self._staged = {}
        self._guards = {}
