"""Business logic layer for Parts Ledger.

This module holds the pieces every reconciliation operation shares: the
runtime context, the operation result returned to front-ends, the boundary
that turns domain exceptions into failure results, collection loading, party
matching, and the administrative operations on parts, customers, and
suppliers. The sale and purchase lifecycles live in
:mod:`parts_ledger.sale_lifecycle` and :mod:`parts_ledger.purchase_lifecycle`.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import (
    Any,
    Callable,
    Collection,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from . import balances, data_manager, inventory, log
from .constants import EXPECTED_SCHEMA_VERSION, CollectionName
from .errors import (
    BusinessRuleViolation,
    ConcurrentUpdateError,
    ConsistencyWarning,
    InvalidStateError,
    NoOpWarning,
    NotApplicableError,
    NotFoundError,
)
from .records import (
    CustomerRecord,
    PartRecord,
    PurchaseRecord,
    SaleRecord,
    SupplierRecord,
    deserialize_customer,
    deserialize_part,
    deserialize_purchase,
    deserialize_sale,
    deserialize_supplier,
    format_price,
    serialize_customer,
    serialize_part,
    serialize_purchase,
    serialize_sale,
    serialize_supplier,
    to_money,
)
from .sequence import SequenceGenerator


R = TypeVar("R")

__all__ = [
    "BusinessRuleViolation",
    "ConcurrentUpdateError",
    "ConsistencyWarning",
    "InvalidStateError",
    "NoOpWarning",
    "NotApplicableError",
    "NotFoundError",
    "RuntimeContext",
    "OperationResult",
]


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and the record store used by the engine."""

    settings: data_manager.ConfigSettings
    store: data_manager.RecordStore

    @property
    def sequence(self) -> SequenceGenerator:
        return SequenceGenerator(self.store)

    def stock_book(self, parts: Iterable[PartRecord]) -> inventory.StockBook:
        return inventory.StockBook(
            parts,
            currency_symbol=self.settings.currency_symbol,
            placeholder_category=self.settings.placeholder_category,
        )


@dataclass(frozen=True)
class OperationResult:
    """Outcome of an engine operation as handed back to the front-end."""

    success: bool
    message: str
    inventory_adjusted: bool = False
    record: Any = None
    warnings: Tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "inventoryAdjusted": self.inventory_adjusted,
        }
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        payload.update(self.details)
        return payload


def succeeded(
    message: str,
    *,
    record: Any = None,
    inventory_adjusted: bool = False,
    warnings: Iterable[ConsistencyWarning] = (),
    **details: Any,
) -> OperationResult:
    return OperationResult(
        success=True,
        message=message,
        inventory_adjusted=inventory_adjusted,
        record=record,
        warnings=tuple(str(warning) for warning in warnings),
        details=details,
    )


def ledger_operation(description: str) -> Callable[[Callable[..., OperationResult]], Callable[..., OperationResult]]:
    """Wrap an engine operation so it always returns an :class:`OperationResult`.

    * :class:`NoOpWarning` becomes a successful result carrying its message.
    * :class:`BusinessRuleViolation` (not found, invalid state, ...) and the
      ``ValueError`` raised by input validation become a failed result
      carrying their message.
    * Any other exception, typically I/O from the record store, is logged with
      its traceback and becomes a generic failed result.

    Because every operation stages its writes on a store transaction, a result
    produced from an exception means nothing was written.
    """

    def decorator(func: Callable[..., OperationResult]) -> Callable[..., OperationResult]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> OperationResult:
            try:
                return func(*args, **kwargs)
            except NoOpWarning as notice:
                log.info("%s: %s", description, notice)
                return OperationResult(success=True, message=str(notice))
            except (BusinessRuleViolation, ValueError) as exc:
                log.warning("Failed to %s: %s", description, exc)
                return OperationResult(success=False, message=str(exc))
            except Exception:
                log.exception("Unexpected error while trying to %s", description)
                return OperationResult(success=False, message=f"Failed to {description}.")

        return wrapper

    return decorator


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def generate_record_id(prefix: str, existing: Collection[str] = (), *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier from a UTC timestamp.

    Args:
        prefix (str): Designator prepended to the identifier (``S``, ``CUST``,
            ``SUP``).
        existing (Collection[str]): Identifiers already in use; the timestamp
            is advanced one microsecond at a time until the id is unique.
        when (datetime | None): Timestamp to derive the id from. Defaults to
            the current UTC time.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """
    moment = resolve_timestamp(when)
    candidate = f"{prefix}{moment.strftime('%Y%m%d%H%M%S%f')}"
    while candidate in existing:
        moment += timedelta(microseconds=1)
        candidate = f"{prefix}{moment.strftime('%Y%m%d%H%M%S%f')}"
    return candidate


def require_positive_quantity(quantity: int) -> None:
    """Validate that a line quantity is strictly positive.

    Raises:
        ValueError: If ``quantity`` is zero or negative.
    """
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValueError("Quantity must be greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and open the record store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context ready for engine operations.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.RecordStore(settings.data_dir)
    log.info("Loaded runtime context for data directory '%s'", settings.data_dir)
    return RuntimeContext(settings=settings, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that ``config.ini`` declares the schema this code understands.

    Raises:
        RuntimeError: If the declared schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Store schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Store schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


# ---------------------------------------------------------------------------
# Collection access
# ---------------------------------------------------------------------------


def _load_records(source: Any, collection: CollectionName, deserialize: Callable[[Mapping[str, Any]], R]) -> List[R]:
    raw = source.load(collection.value, [])
    if not isinstance(raw, list):
        log.warning("Collection '%s' does not hold records; treating it as empty", collection.value)
        return []
    return [deserialize(row) for row in raw]


def load_parts(source: Any) -> List[PartRecord]:
    return _load_records(source, CollectionName.PARTS, deserialize_part)


def load_sales(source: Any) -> List[SaleRecord]:
    return _load_records(source, CollectionName.SALES, deserialize_sale)


def load_purchases(source: Any) -> List[PurchaseRecord]:
    return _load_records(source, CollectionName.PURCHASES, deserialize_purchase)


def load_customers(source: Any) -> List[CustomerRecord]:
    return _load_records(source, CollectionName.CUSTOMERS, deserialize_customer)


def load_suppliers(source: Any) -> List[SupplierRecord]:
    return _load_records(source, CollectionName.SUPPLIERS, deserialize_supplier)


def stage_parts(tx: data_manager.StoreTransaction, parts: Iterable[PartRecord]) -> None:
    tx.stage(CollectionName.PARTS.value, [serialize_part(part) for part in parts])


def stage_sales(tx: data_manager.StoreTransaction, sales: Iterable[SaleRecord]) -> None:
    tx.stage(CollectionName.SALES.value, [serialize_sale(sale) for sale in sales])


def stage_purchases(tx: data_manager.StoreTransaction, purchases: Iterable[PurchaseRecord]) -> None:
    tx.stage(CollectionName.PURCHASES.value, [serialize_purchase(purchase) for purchase in purchases])


def stage_customers(tx: data_manager.StoreTransaction, customers: Iterable[CustomerRecord]) -> None:
    tx.stage(CollectionName.CUSTOMERS.value, [serialize_customer(customer) for customer in customers])


def stage_suppliers(tx: data_manager.StoreTransaction, suppliers: Iterable[SupplierRecord]) -> None:
    tx.stage(CollectionName.SUPPLIERS.value, [serialize_supplier(supplier) for supplier in suppliers])


def locate_sale(sales: Sequence[SaleRecord], sale_id: str) -> int:
    """Return the index of ``sale_id`` in ``sales``.

    Raises:
        NotFoundError: If no sale carries the identifier.
    """
    for idx, sale in enumerate(sales):
        if sale.sale_id == sale_id:
            return idx
    raise NotFoundError(f"Sale {sale_id} not found.")


def locate_purchase(purchases: Sequence[PurchaseRecord], purchase_id: str) -> int:
    """Return the index of ``purchase_id`` in ``purchases``.

    Raises:
        NotFoundError: If no purchase carries the identifier.
    """
    for idx, purchase in enumerate(purchases):
        if purchase.purchase_id == purchase_id:
            return idx
    raise NotFoundError(f"Purchase {purchase_id} not found.")


# ---------------------------------------------------------------------------
# Party matching
# ---------------------------------------------------------------------------


def prefer_new(new_value: Optional[str], old_value: Optional[str]) -> Optional[str]:
    """Merge rule for contact fields: a non-empty new value overrides the old one."""
    if new_value is not None and new_value.strip():
        return new_value
    return old_value


def match_customer(customers: Sequence[CustomerRecord], name: str) -> Optional[int]:
    """Find a customer by case-insensitive name."""
    for idx, customer in enumerate(customers):
        if balances.same_name(customer.name, name):
            return idx
    return None


def match_supplier(suppliers: Sequence[SupplierRecord], supplier_id: Optional[str], name: str) -> Optional[int]:
    """Find a supplier by id first, then by case-insensitive trimmed name."""
    if supplier_id:
        for idx, supplier in enumerate(suppliers):
            if supplier.supplier_id == supplier_id:
                return idx
    if name.strip():
        for idx, supplier in enumerate(suppliers):
            if balances.same_name(supplier.name, name):
                return idx
    return None


def upsert_customer(
    customers: List[CustomerRecord],
    name: str,
    *,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    when: Optional[datetime] = None,
) -> Tuple[int, bool]:
    """Resolve the buyer ``name`` to a customer, creating one with zero balance if absent.

    Non-empty contact details override the stored ones. ``customers`` is
    updated in place.

    Returns:
        tuple[int, bool]: Index of the customer and whether it was created.
    """
    idx = match_customer(customers, name)
    if idx is not None:
        existing = customers[idx]
        customers[idx] = replace(
            existing,
            email=prefer_new(email, existing.email),
            phone=prefer_new(phone, existing.phone),
        )
        return idx, False

    customer = CustomerRecord(
        customer_id=generate_record_id("CUST", {c.customer_id for c in customers}, when=when),
        name=name.strip(),
        email=prefer_new(email, None),
        phone=prefer_new(phone, None),
    )
    customers.append(customer)
    log.info("Created customer %s for buyer '%s'", customer.customer_id, customer.name)
    return len(customers) - 1, True


def upsert_supplier(
    suppliers: List[SupplierRecord],
    supplier_id: Optional[str],
    name: str,
    *,
    contact_person: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    when: Optional[datetime] = None,
) -> Tuple[int, bool]:
    """Resolve a purchase's supplier reference, creating the supplier if absent.

    An existing supplier takes the trimmed form ``name`` and any non-empty
    contact details. ``suppliers`` is updated in place.

    Returns:
        tuple[int, bool]: Index of the supplier and whether it was created.
    """
    trimmed = name.strip()
    idx = match_supplier(suppliers, supplier_id, trimmed)
    if idx is not None:
        existing = suppliers[idx]
        suppliers[idx] = replace(
            existing,
            name=trimmed or existing.name,
            contact_person=prefer_new(contact_person, existing.contact_person),
            email=prefer_new(email, existing.email),
            phone=prefer_new(phone, existing.phone),
        )
        return idx, False

    supplier = SupplierRecord(
        supplier_id=supplier_id or generate_record_id("SUP", {s.supplier_id for s in suppliers}, when=when),
        name=trimmed,
        contact_person=prefer_new(contact_person, None),
        email=prefer_new(email, None),
        phone=prefer_new(phone, None),
    )
    suppliers.append(supplier)
    log.info("Created supplier %s ('%s')", supplier.supplier_id, supplier.name)
    return len(suppliers) - 1, True


def _locate_customer(customers: Sequence[CustomerRecord], customer_id: str) -> int:
    for idx, customer in enumerate(customers):
        if customer.customer_id == customer_id:
            return idx
    raise NotFoundError(f"Customer {customer_id} not found.")


def _locate_supplier(suppliers: Sequence[SupplierRecord], supplier_id: str) -> int:
    for idx, supplier in enumerate(suppliers):
        if supplier.supplier_id == supplier_id:
            return idx
    raise NotFoundError(f"Supplier {supplier_id} not found.")


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


def list_parts(context: RuntimeContext) -> List[PartRecord]:
    """Return all stock entries in store order."""
    return load_parts(context.store)


def list_sales(context: RuntimeContext) -> List[SaleRecord]:
    """Return all sales, newest first."""
    return load_sales(context.store)


def list_purchases(context: RuntimeContext) -> List[PurchaseRecord]:
    """Return all purchase orders, newest first."""
    return load_purchases(context.store)


def get_sale(context: RuntimeContext, sale_id: str) -> SaleRecord:
    """Resolve a sale by id.

    Raises:
        NotFoundError: If the sale does not exist.
    """
    sales = load_sales(context.store)
    return sales[locate_sale(sales, sale_id)]


def get_purchase(context: RuntimeContext, purchase_id: str) -> PurchaseRecord:
    """Resolve a purchase order by id.

    Raises:
        NotFoundError: If the purchase order does not exist.
    """
    purchases = load_purchases(context.store)
    return purchases[locate_purchase(purchases, purchase_id)]


def list_customers(context: RuntimeContext) -> List[CustomerRecord]:
    """Return customers with their live amount due.

    The stored balance field is not trusted here. Each customer's balance is
    recomputed from the non-cancelled credit sales and shifted by the
    customer's manual adjustment.
    """
    sales = load_sales(context.store)
    return [
        replace(customer, balance=balances.live_balance(customer, sales, balances.customer_owes_for))
        for customer in load_customers(context.store)
    ]


def list_suppliers(context: RuntimeContext) -> List[SupplierRecord]:
    """Return suppliers with their live amount owed (see :func:`list_customers`)."""
    purchases = load_purchases(context.store)
    return [
        replace(supplier, balance=balances.live_balance(supplier, purchases, balances.supplier_owed_for))
        for supplier in load_suppliers(context.store)
    ]


def reconcile_balances(context: RuntimeContext) -> Dict[str, List[balances.BalanceDrift]]:
    """List parties whose stored balance differs from the live balance."""
    drifts = {
        "customers": balances.reconcile(
            load_customers(context.store), load_sales(context.store), balances.customer_owes_for
        ),
        "suppliers": balances.reconcile(
            load_suppliers(context.store), load_purchases(context.store), balances.supplier_owed_for
        ),
    }
    for kind, entries in drifts.items():
        for drift in entries:
            log.warning(
                "Balance drift for %s %s (%s): stored=%s live=%s",
                kind,
                drift.party_id,
                drift.name,
                drift.stored,
                drift.live,
            )
    return drifts


# ---------------------------------------------------------------------------
# Parts administration
# ---------------------------------------------------------------------------


@ledger_operation("save part")
def add_or_update_part(context: RuntimeContext, part: PartRecord) -> OperationResult:
    """Insert a part, or overwrite quantity and descriptive fields of the same key."""
    part = replace(part, mrp=format_price(part.mrp, context.settings.currency_symbol))
    with context.store.transaction() as tx:
        book = context.stock_book(load_parts(tx))
        found = book.find(part.part_number, part.mrp)
        if found is None:
            book.append(part)
            message = "Part added successfully."
        else:
            idx, existing = found
            book.replace_at(
                idx,
                replace(
                    existing,
                    part_name=part.part_name,
                    other_name=part.other_name,
                    company=part.company,
                    quantity=part.quantity,
                    category=part.category,
                    shelf=part.shelf,
                ),
            )
            message = "Part updated successfully."
        stage_parts(tx, book.parts)
    log.info("%s (%s)", message, part.key)
    return succeeded(message, record=part, inventory_adjusted=True)


@ledger_operation("delete part")
def delete_part(context: RuntimeContext, part_number: str, price: Any) -> OperationResult:
    with context.store.transaction() as tx:
        book = context.stock_book(load_parts(tx))
        removed = book.remove(part_number, price)
        if removed is None:
            raise NotFoundError("Part not found for deletion.")
        stage_parts(tx, book.parts)
    log.info("Deleted part %s", removed.key)
    return succeeded("Part deleted successfully.", record=removed, inventory_adjusted=True)


@ledger_operation("import parts")
def import_parts(context: RuntimeContext, rows: Iterable[Sequence[Any]]) -> OperationResult:
    """Merge spreadsheet rows into the parts collection.

    Malformed rows are skipped and counted; they never abort the batch.
    """
    imported, skipped = inventory.parse_import_rows(rows, currency_symbol=context.settings.currency_symbol)
    if not imported:
        if skipped:
            return OperationResult(
                success=False,
                message=f"No valid parts found; all {skipped} data rows were skipped.",
                details={"addedCount": 0, "updatedCount": 0, "skippedCount": skipped},
            )
        return OperationResult(
            success=False,
            message="No data rows found.",
            details={"addedCount": 0, "updatedCount": 0, "skippedCount": 0},
        )
    with context.store.transaction() as tx:
        summary = inventory.merge_imported_parts(load_parts(tx), imported, skipped=skipped)
        stage_parts(tx, summary.parts)
    log.info(summary.message)
    return succeeded(
        summary.message,
        inventory_adjusted=summary.added + summary.updated > 0,
        addedCount=summary.added,
        updatedCount=summary.updated,
        skippedCount=summary.skipped,
    )


def import_parts_file(context: RuntimeContext, path: Path) -> OperationResult:
    """Read the first worksheet of ``path`` and merge it via :func:`import_parts`."""
    try:
        rows = inventory.read_import_workbook(path)
    except FileNotFoundError as exc:
        return OperationResult(success=False, message=str(exc))
    except Exception:
        log.exception("Could not parse import spreadsheet '%s'", path)
        return OperationResult(
            success=False,
            message="Error parsing spreadsheet. Columns: " + ", ".join(inventory.IMPORT_COLUMNS) + ".",
        )
    return import_parts(context, rows)


@ledger_operation("export parts")
def export_parts_file(context: RuntimeContext, destination: Path) -> OperationResult:
    parts = load_parts(context.store)
    if not parts:
        return OperationResult(success=False, message="No data to export.")
    written = inventory.write_export_workbook(parts, destination)
    log.info("Exported %d parts to '%s'", len(parts), written)
    return succeeded(f"Exported {len(parts)} parts to {written}.", record=written)


# ---------------------------------------------------------------------------
# Party administration
# ---------------------------------------------------------------------------


@ledger_operation("update customer balance")
def adjust_customer_balance(context: RuntimeContext, customer_id: str, new_balance: Decimal) -> OperationResult:
    """Manually set a customer's amount due.

    The override is stored twice: as the new ``balance`` and as the
    ``manual_adjustment`` relative to the amount derived from credit sales, so
    the live view keeps honouring it as further sales arrive.
    """
    new_balance = to_money(new_balance)
    with context.store.transaction() as tx:
        customers = load_customers(tx)
        idx = _locate_customer(customers, customer_id)
        derived = balances.recompute(customers[idx], load_sales(tx), balances.customer_owes_for)
        customers[idx] = replace(customers[idx], balance=new_balance, manual_adjustment=new_balance - derived)
        stage_customers(tx, customers)
    log.info("Customer %s balance manually set to %s (derived %s)", customer_id, new_balance, derived)
    return succeeded("Customer balance updated successfully.", record=customers[idx])


@ledger_operation("update supplier balance")
def adjust_supplier_balance(context: RuntimeContext, supplier_id: str, new_balance: Decimal) -> OperationResult:
    """Manually set a supplier's amount owed (see :func:`adjust_customer_balance`)."""
    new_balance = to_money(new_balance)
    with context.store.transaction() as tx:
        suppliers = load_suppliers(tx)
        idx = _locate_supplier(suppliers, supplier_id)
        derived = balances.recompute(suppliers[idx], load_purchases(tx), balances.supplier_owed_for)
        suppliers[idx] = replace(suppliers[idx], balance=new_balance, manual_adjustment=new_balance - derived)
        stage_suppliers(tx, suppliers)
    log.info("Supplier %s balance manually set to %s (derived %s)", supplier_id, new_balance, derived)
    return succeeded("Supplier balance updated successfully.", record=suppliers[idx])


@ledger_operation("delete customer")
def delete_customer(context: RuntimeContext, customer_id: str) -> OperationResult:
    with context.store.transaction() as tx:
        customers = load_customers(tx)
        removed = customers.pop(_locate_customer(customers, customer_id))
        stage_customers(tx, customers)
    log.info("Deleted customer %s (%s)", removed.customer_id, removed.name)
    return succeeded("Customer deleted successfully.", record=removed)


@ledger_operation("delete supplier")
def delete_supplier(context: RuntimeContext, supplier_id: str) -> OperationResult:
    with context.store.transaction() as tx:
        suppliers = load_suppliers(tx)
        removed = suppliers.pop(_locate_supplier(suppliers, supplier_id))
        stage_suppliers(tx, suppliers)
    log.info("Deleted supplier %s (%s)", removed.supplier_id, removed.name)
    return succeeded("Supplier deleted successfully.", record=removed)
