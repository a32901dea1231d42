"""Sale lifecycle: create, change payment type, cancel, and restore.

A sale moves between two states, ``Completed`` and ``Cancelled``. The side
effects of each move are declared in :data:`STATUS_TRANSITIONS` and
:data:`PAYMENT_TRANSITIONS`; the operations look the move up and apply it to
the stock book and the customer balance inside one store transaction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from . import balances, log
from .constants import ZERO, SalePaymentType, SaleStatus
from .core_logic import (
    OperationResult,
    RuntimeContext,
    generate_record_id,
    ledger_operation,
    load_customers,
    load_parts,
    load_sales,
    locate_sale,
    match_customer,
    require_nonnegative_money,
    require_positive_quantity,
    resolve_timestamp,
    stage_customers,
    stage_parts,
    stage_sales,
    succeeded,
    upsert_customer,
)
from .errors import ConsistencyWarning, InvalidStateError, NoOpWarning
from .inventory import StockBook
from .records import CustomerRecord, SaleItem, SaleRecord, to_money


SALE_ID_PREFIX = "S"


@dataclass(frozen=True)
class SaleLine:
    """One requested line of a sale."""

    part_number: str
    quantity: int
    unit_price: Decimal
    part_name: Optional[str] = None


@dataclass(frozen=True)
class SaleCommand:
    """User intent for recording a sale."""

    buyer_name: str
    items: Sequence[SaleLine]
    payment_type: SalePaymentType = SalePaymentType.CASH
    discount: Decimal = ZERO
    gst_number: Optional[str] = None
    contact_details: Optional[str] = None
    email_address: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleTransition:
    """Side effects of moving a sale from one status to another.

    ``stock_sign`` multiplies each line's quantity before it is applied to the
    stock book; ``balance_sign`` multiplies the net amount applied to the
    customer balance when the sale is on credit.
    """

    verb: str
    stock_sign: int
    floor_stock: bool
    balance_sign: int
    floor_balance: bool


STATUS_TRANSITIONS: Dict[Tuple[SaleStatus, SaleStatus], SaleTransition] = {
    (SaleStatus.COMPLETED, SaleStatus.CANCELLED): SaleTransition(
        verb="cancelled", stock_sign=1, floor_stock=True, balance_sign=-1, floor_balance=True
    ),
    # Restore re-deducts stock that may have been sold again meanwhile.
    (SaleStatus.CANCELLED, SaleStatus.COMPLETED): SaleTransition(
        verb="restored", stock_sign=-1, floor_stock=False, balance_sign=1, floor_balance=False
    ),
}

# (from, to) -> (sign applied to the net amount, floor at zero)
PAYMENT_TRANSITIONS: Dict[Tuple[SalePaymentType, SalePaymentType], Tuple[int, bool]] = {
    (SalePaymentType.CASH, SalePaymentType.CREDIT): (1, False),
    (SalePaymentType.CREDIT, SalePaymentType.CASH): (-1, True),
}


def build_sale_items(lines: Sequence[SaleLine]) -> Tuple[SaleItem, ...]:
    """Validate requested lines and compute their totals.

    Raises:
        ValueError: If there are no lines, a quantity is not positive, a price
            is negative, or a part number is blank.
    """
    if not lines:
        raise ValueError("A sale needs at least one item")
    items = []
    for line in lines:
        part_number = str(line.part_number).strip()
        if not part_number:
            raise ValueError("Part number is required for every item")
        require_positive_quantity(line.quantity)
        unit_price = to_money(line.unit_price)
        require_nonnegative_money(unit_price)
        items.append(
            SaleItem(
                part_number=part_number,
                part_name=(line.part_name or "").strip() or part_number,
                quantity_sold=line.quantity,
                unit_price=unit_price,
                item_total=to_money(unit_price * line.quantity),
            )
        )
    return tuple(items)


def _apply_stock(
    book: StockBook,
    items: Sequence[SaleItem],
    sign: int,
    *,
    floor: bool,
) -> List[ConsistencyWarning]:
    warnings: List[ConsistencyWarning] = []
    for item in items:
        warning = book.adjust(
            item.part_number,
            item.unit_price,
            sign * item.quantity_sold,
            part_name=item.part_name,
            floor=floor,
        )
        if warning is not None:
            warnings.append(warning)
    return warnings


def _shift_customer_balance(
    customers: List[CustomerRecord],
    sale: SaleRecord,
    sign: int,
    *,
    floor: bool,
) -> Optional[ConsistencyWarning]:
    idx = match_customer(customers, sale.buyer_name)
    if idx is None:
        warning = ConsistencyWarning(
            f"Customer '{sale.buyer_name}' not found; balance not updated for sale {sale.sale_id}"
        )
        log.warning("%s", warning)
        return warning
    customer = customers[idx]
    delta = sign * sale.net_amount
    new_balance = balances.apply_delta(customer.balance, delta, floor=floor)
    # Whatever the floor clipped is carried in the adjustment so the live view matches.
    clipped = new_balance - balances.apply_delta(customer.balance, delta)
    customers[idx] = replace(
        customer,
        balance=new_balance,
        manual_adjustment=customer.manual_adjustment + clipped,
    )
    log.debug("Customer %s balance %s -> %s", customer.customer_id, customer.balance, new_balance)
    return None


@ledger_operation("create sale")
def create_sale(context: RuntimeContext, command: SaleCommand) -> OperationResult:
    """Record a new sale, deduct its stock, and update the buyer's balance.

    Stock decreases are floored at zero and lines whose part is unknown are
    skipped with a warning. The buyer is matched to a customer by name (a new
    customer is created on first sale) and, for credit sales, the net amount
    is added to the customer's balance.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        command (SaleCommand): Structured intent describing the sale.

    Returns:
        OperationResult: Success result whose ``record`` is the new
        :class:`SaleRecord`, or a failure result when validation fails.
    """
    buyer_name = command.buyer_name.strip()
    if not buyer_name:
        raise ValueError("Buyer name is required")
    payment_type = SalePaymentType(command.payment_type)
    items = build_sale_items(command.items)
    sub_total = sum((item.item_total for item in items), ZERO)
    discount = to_money(command.discount)
    require_nonnegative_money(discount)
    if discount > sub_total:
        raise ValueError("Discount cannot exceed the subtotal")
    timestamp = resolve_timestamp(command.timestamp)

    with context.store.transaction() as tx:
        sales = load_sales(tx)
        sale = SaleRecord(
            sale_id=generate_record_id(SALE_ID_PREFIX, {s.sale_id for s in sales}, when=timestamp),
            date=timestamp.isoformat(),
            buyer_name=buyer_name,
            items=items,
            sub_total=sub_total,
            discount=discount,
            net_amount=sub_total - discount,
            payment_type=payment_type,
            status=SaleStatus.COMPLETED,
            gst_number=command.gst_number or None,
            contact_details=command.contact_details or None,
            email_address=command.email_address or None,
        )

        book = context.stock_book(load_parts(tx))
        warnings = _apply_stock(book, sale.items, -1, floor=True)

        customers = load_customers(tx)
        idx, _ = upsert_customer(
            customers,
            buyer_name,
            email=command.email_address,
            phone=command.contact_details,
            when=timestamp,
        )
        if sale.payment_type is SalePaymentType.CREDIT:
            customer = customers[idx]
            customers[idx] = replace(customer, balance=balances.apply_delta(customer.balance, sale.net_amount))

        sales.insert(0, sale)
        stage_sales(tx, sales)
        stage_parts(tx, book.parts)
        stage_customers(tx, customers)

    log.info(
        "Recorded sale %s for '%s' (net=%s, payment=%s, lines=%d)",
        sale.sale_id,
        sale.buyer_name,
        sale.net_amount,
        sale.payment_type.value,
        len(sale.items),
    )
    return succeeded(
        f"Sale {sale.sale_id} recorded.",
        record=sale,
        inventory_adjusted=True,
        warnings=warnings,
    )


@ledger_operation("change sale payment type")
def change_sale_payment_type(
    context: RuntimeContext,
    sale_id: str,
    payment_type: SalePaymentType,
) -> OperationResult:
    """Switch a completed sale between cash and credit.

    Raises (converted to results):
        NotFoundError: If the sale does not exist.
        InvalidStateError: If the sale is cancelled.
        NoOpWarning: If the sale already has ``payment_type``.
    """
    payment_type = SalePaymentType(payment_type)
    with context.store.transaction() as tx:
        sales = load_sales(tx)
        idx = locate_sale(sales, sale_id)
        sale = sales[idx]
        if sale.is_cancelled:
            raise InvalidStateError(f"Sale {sale_id} is cancelled; its payment type cannot change.")
        if sale.payment_type is payment_type:
            raise NoOpWarning(f"Sale {sale_id} is already {payment_type.value}.")
        sign, floor = PAYMENT_TRANSITIONS[(sale.payment_type, payment_type)]

        customers = load_customers(tx)
        warnings: List[ConsistencyWarning] = []
        if sign > 0:
            # The amount due must land somewhere even if the customer was deleted.
            upsert_customer(customers, sale.buyer_name, email=sale.email_address, phone=sale.contact_details)
        warning = _shift_customer_balance(customers, sale, sign, floor=floor)
        if warning is not None:
            warnings.append(warning)

        sales[idx] = replace(sale, payment_type=payment_type)
        stage_sales(tx, sales)
        stage_customers(tx, customers)

    log.info("Sale %s payment type changed %s -> %s", sale_id, sale.payment_type.value, payment_type.value)
    return succeeded(
        f"Sale {sale_id} payment type changed to {payment_type.value}.",
        record=sales[idx],
        warnings=warnings,
    )


def _transition_sale(context: RuntimeContext, sale_id: str, target: SaleStatus) -> OperationResult:
    with context.store.transaction() as tx:
        sales = load_sales(tx)
        idx = locate_sale(sales, sale_id)
        sale = sales[idx]
        rule = STATUS_TRANSITIONS.get((sale.status, target))
        if rule is None:
            raise InvalidStateError(f"Sale {sale_id} is already {sale.status.value}.")

        book = context.stock_book(load_parts(tx))
        warnings = _apply_stock(book, sale.items, rule.stock_sign, floor=rule.floor_stock)

        if sale.payment_type is SalePaymentType.CREDIT:
            customers = load_customers(tx)
            warning = _shift_customer_balance(customers, sale, rule.balance_sign, floor=rule.floor_balance)
            if warning is not None:
                warnings.append(warning)
            stage_customers(tx, customers)

        sales[idx] = replace(sale, status=target)
        stage_sales(tx, sales)
        stage_parts(tx, book.parts)

    log.info("Sale %s %s (%d stock warnings)", sale_id, rule.verb, len(warnings))
    return succeeded(
        f"Sale {sale_id} {rule.verb}.",
        record=sales[idx],
        inventory_adjusted=True,
        warnings=warnings,
    )


@ledger_operation("cancel sale")
def cancel_sale(context: RuntimeContext, sale_id: str) -> OperationResult:
    """Cancel a completed sale, returning its stock and releasing its credit.

    Lines whose part no longer exists are skipped with a warning; parts are
    never recreated on cancellation.
    """
    return _transition_sale(context, sale_id, SaleStatus.CANCELLED)


@ledger_operation("restore sale")
def restore_sale(context: RuntimeContext, sale_id: str) -> OperationResult:
    """Restore a cancelled sale. Stock may go negative; that is reported, not refused."""
    return _transition_sale(context, sale_id, SaleStatus.COMPLETED)
