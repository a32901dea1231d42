"""Shared pytest fixtures and utilities for Parts Ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

for candidate in (SRC_DIR,):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)

from parts_ledger import cli, constants, core_logic, data_manager  # noqa: E402
from parts_ledger.records import PartRecord, serialize_part  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataDir = {data_dir}\n"
    "ShopName = {shop_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "CurrencySymbol = {currency_symbol}\n"
    "PlaceholderCategory = Uncategorized\n"
    "LowStockThreshold = {low_stock_threshold}\n"
)



@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_dir: Path
    schema_version: str
    shop_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/data-directory bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        shop_name: str = "Test Parts",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        low_stock_threshold: int = 1,
        currency_symbol: str = "₹",
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        data_dir = bundle_dir / "data"
        data_dir_entry = "data" if make_relative else str(data_dir)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_dir=data_dir_entry,
                shop_name=shop_name,
                schema_version=schema_version,
                low_stock_threshold=low_stock_threshold,
                currency_symbol=currency_symbol,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_dir=data_dir,
            schema_version=schema_version,
            shop_name=shop_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def store(tmp_path: Path) -> data_manager.RecordStore:
    """Return a record store rooted in a fresh temporary directory."""

    return data_manager.RecordStore(tmp_path / "store")


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_dir=tmp_path / "store",
        shop_name="Test Parts",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings, store: data_manager.RecordStore) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and a temporary store."""

    return core_logic.RuntimeContext(settings=settings, store=store)


@pytest.fixture
def moment() -> datetime:
    """A fixed moment used to make generated ids and dates deterministic."""

    return datetime(2025, 6, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def seed_parts(store: data_manager.RecordStore) -> Callable[..., None]:
    """Write parts straight into the store, bypassing the engine."""

    def _seed(*parts: PartRecord) -> None:
        store.save(constants.CollectionName.PARTS.value, [serialize_part(part) for part in parts])

    return _seed


@pytest.fixture
def part_factory() -> Callable[..., PartRecord]:
    """Build part records with sensible defaults."""

    def _make(part_number: str = "P100", mrp: str = "₹10.00", quantity: int = 0, **extra) -> PartRecord:
        return PartRecord(
            part_number=part_number,
            part_name=extra.pop("part_name", f"Part {part_number}"),
            mrp=mrp,
            quantity=quantity,
            **extra,
        )

    return _make


@pytest.fixture
def quantity_of() -> Callable[..., int | None]:
    """Return a helper reading the stock quantity for a key, ``None`` when absent."""

    def _quantity(context: core_logic.RuntimeContext, part_number: str, price: str | Decimal) -> int | None:
        book = context.stock_book(core_logic.list_parts(context))
        found = book.find(part_number, price)
        return None if found is None else found[1].quantity

    return _quantity


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="parts-cli", description="Parts CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
