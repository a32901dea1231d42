"""Utility for initializing a Parts Ledger data directory.

The module doubles as a script (``python -m parts_ledger.setup_store``) and as
a library used by the CLI ``init`` command and by tests. It writes
``config.ini`` and creates every collection workbook with its empty default.
"""

from __future__ import annotations

import argparse
import configparser
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

from . import log
from .constants import (
    CURRENCY_SYMBOL,
    EXPECTED_SCHEMA_VERSION,
    LOW_STOCK_THRESHOLD,
    PLACEHOLDER_CATEGORY,
    CollectionName,
)
from .data_manager import CONFIG_FILE_NAME, RecordStore

# Empty value of every collection.
COLLECTION_DEFAULTS: Mapping[str, Any] = {
    CollectionName.PARTS.value: [],
    CollectionName.SALES.value: [],
    CollectionName.PURCHASES.value: [],
    CollectionName.CUSTOMERS.value: [],
    CollectionName.SUPPLIERS.value: [],
    CollectionName.COUNTER.value: 0,
}

DEFAULT_DATA_DIR = "data"
DEFAULT_SHOP_NAME = "Parts Shop"


def write_config(
    config_path: Path,
    *,
    data_dir: str = DEFAULT_DATA_DIR,
    shop_name: str = DEFAULT_SHOP_NAME,
    overwrite: bool = False,
) -> Path:
    """Write a ``config.ini`` pointing at ``data_dir``.

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is ``False``.
    """

    config_path = Path(config_path).expanduser().resolve()
    if config_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str  # keep the CamelCase option names
    parser["System"] = {
        "DataDir": data_dir,
        "ShopName": shop_name,
        "SchemaVersion": EXPECTED_SCHEMA_VERSION,
    }
    parser["Defaults"] = {
        "CurrencySymbol": CURRENCY_SYMBOL,
        "PlaceholderCategory": PLACEHOLDER_CATEGORY,
        "LowStockThreshold": str(LOW_STOCK_THRESHOLD),
    }
    parser["Shop"] = {
        "Address": "",
        "GstNumber": "",
        "Phone1": "",
        "Phone2": "",
        "LowStockAlerts": "true",
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    return config_path


def initialize_store(data_dir: Path, *, overwrite: bool = False) -> RecordStore:
    """Create every collection workbook in ``data_dir`` with its empty default.

    Parameters are overridable to facilitate testing. When ``overwrite`` is
    ``False`` (the default) this function raises ``FileExistsError`` if any
    collection already exists.
    """

    store = RecordStore(data_dir)
    existing = [name for name in COLLECTION_DEFAULTS if store.path_for(name).exists()]
    if existing and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing collections in {store.data_dir}: {', '.join(existing)}"
        )
    store.commit(dict(COLLECTION_DEFAULTS))
    log.info("Initialized record store at '%s'", store.data_dir)
    return store


def run_setup(
    config_path: Path,
    *,
    data_dir: str = DEFAULT_DATA_DIR,
    shop_name: str = DEFAULT_SHOP_NAME,
    overwrite: bool = False,
) -> RecordStore:
    """Write ``config.ini`` and create the data directory it names."""

    config_path = write_config(config_path, data_dir=data_dir, shop_name=shop_name, overwrite=overwrite)
    target = Path(data_dir).expanduser()
    if not target.is_absolute():
        target = config_path.parent / target
    return initialize_store(target, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize a Parts Ledger data directory")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path of the configuration file to write (default: config.ini)",
    )
    parser.add_argument("--data-dir", default=DEFAULT_DATA_DIR, help="Directory holding the collection workbooks.")
    parser.add_argument("--shop-name", default=DEFAULT_SHOP_NAME, help="Shop name recorded in config.ini.")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the configuration and collections if they already exist.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Parts Ledger Setup ---")
    print(f"Writing configuration: {config_path}")

    try:
        store = run_setup(config_path, data_dir=args.data_dir, shop_name=args.shop_name, overwrite=args.force)
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing files if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write data directory: {exc}")
        return 1

    print(f"\n[SUCCESS] Created record store at '{store.data_dir}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
