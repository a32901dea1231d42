"""Purchase-order lifecycle: create, change status, change settlement.

Order status may move between any two values, but only crossing the
``Received`` boundary touches stock. :data:`STOCK_EFFECTS` is keyed on
``(was_received, is_received)`` so the rule is one lookup. Settlement
(``Due``/``Paid``) applies to on-credit orders only and shifts the supplier
balance as described by :data:`SETTLEMENT_EFFECTS`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from . import balances, log
from .constants import ZERO, PurchasePaymentType, PurchaseStatus, SettlementState
from .core_logic import (
    OperationResult,
    RuntimeContext,
    ledger_operation,
    load_parts,
    load_purchases,
    load_suppliers,
    locate_purchase,
    match_supplier,
    require_nonnegative_money,
    require_positive_quantity,
    resolve_timestamp,
    stage_parts,
    stage_purchases,
    stage_suppliers,
    succeeded,
    upsert_supplier,
)
from .errors import ConsistencyWarning, NoOpWarning, NotApplicableError
from .inventory import StockBook
from .records import PurchaseItem, PurchaseRecord, SupplierRecord, to_money
from .sequence import format_purchase_id


@dataclass(frozen=True)
class PurchaseLine:
    """One requested line of a purchase order."""

    part_number: str
    quantity: int
    unit_cost: Decimal
    part_name: Optional[str] = None


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for recording a purchase order."""

    supplier_name: str
    items: Sequence[PurchaseLine]
    payment_type: PurchasePaymentType = PurchasePaymentType.CASH
    status: PurchaseStatus = PurchaseStatus.PENDING
    supplier_id: Optional[str] = None
    shipping_costs: Decimal = ZERO
    other_charges: Decimal = ZERO
    invoice_number: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class StockEffect:
    sign: int
    create_missing: bool
    message: str


STOCK_EFFECTS: Dict[Tuple[bool, bool], Optional[StockEffect]] = {
    (False, True): StockEffect(sign=1, create_missing=True, message="Inventory updated with received stock."),
    (True, False): StockEffect(sign=-1, create_missing=False, message="Received stock removed from inventory."),
    (False, False): None,
    (True, True): None,
}

SETTLEMENT_EFFECTS: Dict[Tuple[SettlementState, SettlementState], int] = {
    (SettlementState.PAID, SettlementState.DUE): 1,
    (SettlementState.DUE, SettlementState.PAID): -1,
}


def build_purchase_items(lines: Sequence[PurchaseLine]) -> Tuple[PurchaseItem, ...]:
    """Validate requested lines and compute their totals.

    Raises:
        ValueError: If there are no lines or a line is malformed.
    """
    if not lines:
        raise ValueError("A purchase order needs at least one item")
    items = []
    for line in lines:
        part_number = str(line.part_number).strip()
        if not part_number:
            raise ValueError("Part number is required for every item")
        require_positive_quantity(line.quantity)
        unit_cost = to_money(line.unit_cost)
        require_nonnegative_money(unit_cost)
        items.append(
            PurchaseItem(
                part_number=part_number,
                part_name=(line.part_name or "").strip() or part_number,
                quantity_purchased=line.quantity,
                unit_cost=unit_cost,
                item_total=to_money(unit_cost * line.quantity),
            )
        )
    return tuple(items)


def _apply_stock(book: StockBook, items: Sequence[PurchaseItem], effect: StockEffect) -> List[ConsistencyWarning]:
    warnings: List[ConsistencyWarning] = []
    for item in items:
        warning = book.adjust(
            item.part_number,
            item.unit_cost,
            effect.sign * item.quantity_purchased,
            part_name=item.part_name,
            floor=True,
            create_missing=effect.create_missing,
        )
        if warning is not None:
            warnings.append(warning)
    return warnings


@ledger_operation("create purchase order")
def create_purchase(context: RuntimeContext, command: PurchaseCommand) -> OperationResult:
    """Record a purchase order and apply its stock and supplier effects.

    The order id comes from the purchase-order sequence, reserved on the same
    transaction so a failed order does not consume a number. An order created
    as ``Received`` adds its lines to stock, creating parts that do not exist
    yet. The supplier is matched by id, then by name, and created when
    unknown; on-credit orders add their net amount to the supplier balance.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        command (PurchaseCommand): Structured intent describing the order.

    Returns:
        OperationResult: Success result whose ``record`` is the new
        :class:`PurchaseRecord`, or a failure result when validation fails.
    """
    supplier_name = command.supplier_name.strip()
    if not supplier_name and not command.supplier_id:
        raise ValueError("Supplier is required")
    payment_type = PurchasePaymentType(command.payment_type)
    status = PurchaseStatus(command.status)
    items = build_purchase_items(command.items)
    shipping = to_money(command.shipping_costs)
    other = to_money(command.other_charges)
    require_nonnegative_money(shipping)
    require_nonnegative_money(other)
    sub_total = sum((item.item_total for item in items), ZERO)
    timestamp = resolve_timestamp(command.timestamp)

    with context.store.transaction() as tx:
        purchase_id = format_purchase_id(context.sequence.reserve(tx))

        suppliers = load_suppliers(tx)
        idx, _ = upsert_supplier(
            suppliers,
            command.supplier_id,
            supplier_name,
            contact_person=command.contact_person,
            email=command.email,
            phone=command.phone,
            when=timestamp,
        )
        supplier = suppliers[idx]

        purchase = PurchaseRecord(
            purchase_id=purchase_id,
            date=timestamp.isoformat(),
            supplier_id=supplier.supplier_id,
            supplier_name=supplier.name,
            items=items,
            sub_total=sub_total,
            shipping_costs=shipping,
            other_charges=other,
            net_amount=sub_total + shipping + other,
            payment_type=payment_type,
            status=status,
            payment_settled=payment_type is not PurchasePaymentType.ON_CREDIT,
            invoice_number=command.invoice_number or None,
        )

        if purchase.is_on_credit and not purchase.payment_settled:
            suppliers[idx] = replace(supplier, balance=balances.apply_delta(supplier.balance, purchase.net_amount))
        stage_suppliers(tx, suppliers)

        warnings: List[ConsistencyWarning] = []
        received = status is PurchaseStatus.RECEIVED
        if received:
            book = context.stock_book(load_parts(tx))
            warnings = _apply_stock(book, items, STOCK_EFFECTS[(False, True)])
            stage_parts(tx, book.parts)

        purchases = load_purchases(tx)
        purchases.insert(0, purchase)
        stage_purchases(tx, purchases)

    log.info(
        "Recorded purchase %s from '%s' (net=%s, payment=%s, status=%s)",
        purchase.purchase_id,
        purchase.supplier_name,
        purchase.net_amount,
        purchase.payment_type.value,
        purchase.status.value,
    )
    return succeeded(
        f"Purchase order {purchase.purchase_id} recorded.",
        record=purchase,
        inventory_adjusted=received,
        warnings=warnings,
    )


@ledger_operation("change purchase status")
def change_purchase_status(context: RuntimeContext, purchase_id: str, status: PurchaseStatus) -> OperationResult:
    """Move a purchase order to ``status``, adjusting stock across ``Received``.

    Raises (converted to results):
        NotFoundError: If the order does not exist.
        NoOpWarning: If the order already has ``status``.
    """
    status = PurchaseStatus(status)
    with context.store.transaction() as tx:
        purchases = load_purchases(tx)
        idx = locate_purchase(purchases, purchase_id)
        purchase = purchases[idx]
        if purchase.status is status:
            raise NoOpWarning(f"Purchase {purchase_id} is already {status.value}.")

        effect = STOCK_EFFECTS[(purchase.status is PurchaseStatus.RECEIVED, status is PurchaseStatus.RECEIVED)]
        warnings: List[ConsistencyWarning] = []
        if effect is not None:
            book = context.stock_book(load_parts(tx))
            warnings = _apply_stock(book, purchase.items, effect)
            stage_parts(tx, book.parts)

        purchases[idx] = replace(purchase, status=status)
        stage_purchases(tx, purchases)

    impact = effect.message if effect is not None else "No inventory impact."
    log.info("Purchase %s status %s -> %s. %s", purchase_id, purchase.status.value, status.value, impact)
    return succeeded(
        f"Purchase {purchase_id} status changed to {status.value}. {impact}",
        record=purchases[idx],
        inventory_adjusted=effect is not None,
        warnings=warnings,
    )


def _find_supplier(suppliers: Sequence[SupplierRecord], purchase: PurchaseRecord) -> Optional[int]:
    return match_supplier(suppliers, purchase.supplier_id, purchase.supplier_name)


@ledger_operation("change purchase payment status")
def change_purchase_settlement(context: RuntimeContext, purchase_id: str, settled: bool) -> OperationResult:
    """Mark an on-credit purchase order as paid (``settled``) or due again.

    Raises (converted to results):
        NotFoundError: If the order does not exist.
        NotApplicableError: If the order is not on credit.
        NoOpWarning: If the settlement state is unchanged.
    """
    target = SettlementState.from_flag(settled)
    with context.store.transaction() as tx:
        purchases = load_purchases(tx)
        idx = locate_purchase(purchases, purchase_id)
        purchase = purchases[idx]
        if not purchase.is_on_credit:
            raise NotApplicableError(
                f"Purchase {purchase_id} is paid by {purchase.payment_type.value}; settlement applies to on-credit orders only."
            )
        current = SettlementState.from_flag(purchase.payment_settled)
        if current is target:
            raise NoOpWarning(f"Purchase {purchase_id} payment is already {target.value}.")
        sign = SETTLEMENT_EFFECTS[(current, target)]

        warnings: List[ConsistencyWarning] = []
        suppliers = load_suppliers(tx)
        supplier_idx = _find_supplier(suppliers, purchase)
        if supplier_idx is None:
            warning = ConsistencyWarning(
                f"Supplier '{purchase.supplier_name}' not found; balance not updated for purchase {purchase_id}"
            )
            log.warning("%s", warning)
            warnings.append(warning)
        else:
            supplier = suppliers[supplier_idx]
            suppliers[supplier_idx] = replace(
                supplier,
                balance=balances.apply_delta(supplier.balance, sign * purchase.net_amount),
            )
            stage_suppliers(tx, suppliers)

        purchases[idx] = replace(purchase, payment_settled=settled)
        stage_purchases(tx, purchases)

    log.info("Purchase %s payment %s -> %s", purchase_id, current.value, target.value)
    return succeeded(
        f"Purchase {purchase_id} payment marked as {target.value}.",
        record=purchases[idx],
        warnings=warnings,
    )
