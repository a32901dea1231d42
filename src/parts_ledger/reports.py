"""Read-only reports over the sales, purchase, and parts collections.

Cancelled sales and cancelled purchase orders never contribute to a figure.
Dates are bucketed by the calendar day stored in each record's ISO-8601
timestamp.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

from . import log
from .constants import ZERO, PurchaseStatus, SalePaymentType
from .core_logic import RuntimeContext, load_parts, load_purchases, load_sales
from .records import PartRecord, PurchaseRecord, SaleRecord


FISCAL_YEAR_START_MONTH = 4
RECENT_SALES_LIMIT = 7
STOCK_MOVEMENT_DAYS = 7


@dataclass(frozen=True)
class TopItem:
    """A part number or supplier that leads a report, with its figure."""

    key: str
    name: str
    amount: Union[int, Decimal]


@dataclass(frozen=True)
class SalesSummary:
    total: Decimal
    cash_total: Decimal
    credit_total: Decimal
    transactions: int
    top_part: Optional[TopItem] = None


@dataclass(frozen=True)
class PurchaseSummary:
    total: Decimal
    orders: int
    top_part: Optional[TopItem] = None
    top_supplier: Optional[TopItem] = None


@dataclass(frozen=True)
class InventoryValuation:
    total_value: Decimal
    unique_parts: int
    total_quantity: int


@dataclass(frozen=True)
class StockMovement:
    day: date
    sold: int
    purchased: int


@dataclass(frozen=True)
class Dashboard:
    fiscal_year_start: date
    revenue: Decimal
    parts_in_stock: int
    active_customers: int
    sales_today: int
    recent_sales: Tuple[SaleRecord, ...]
    low_stock: Tuple[PartRecord, ...]


def record_day(timestamp: str) -> Optional[date]:
    """Return the calendar day of an ISO-8601 timestamp, or ``None`` if unreadable."""
    try:
        return datetime.fromisoformat(timestamp).date()
    except (TypeError, ValueError):
        log.warning("Ignoring record with unreadable date %r", timestamp)
        return None


def _today(today: Optional[date]) -> date:
    return today if today is not None else datetime.now(UTC).date()


def _within(timestamp: str, start: date, end: date) -> bool:
    day = record_day(timestamp)
    return day is not None and start <= day <= end


def _active_sales(sales: Iterable[SaleRecord]) -> List[SaleRecord]:
    return [sale for sale in sales if not sale.is_cancelled]


def _active_purchases(purchases: Iterable[PurchaseRecord]) -> List[PurchaseRecord]:
    return [purchase for purchase in purchases if purchase.status is not PurchaseStatus.CANCELLED]


def _leader(amounts: Dict[str, Union[int, Decimal]], names: Dict[str, str]) -> Optional[TopItem]:
    best: Optional[TopItem] = None
    for key, amount in amounts.items():
        # Ties keep the first key seen.
        if amount > 0 and (best is None or amount > best.amount):
            best = TopItem(key=key, name=names[key], amount=amount)
    return best


def sales_summary(context: RuntimeContext, start: date, end: date) -> SalesSummary:
    """Summarise non-cancelled sales dated between ``start`` and ``end`` inclusive.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        start (date): First day of the range.
        end (date): Last day of the range.

    Returns:
        SalesSummary: Net totals split by payment type, the transaction count,
            and the part number with the most units sold.
    """
    if start > end:
        raise ValueError("Report start date must not be after the end date")
    total = cash_total = credit_total = ZERO
    quantities: Dict[str, int] = Counter()
    names: Dict[str, str] = {}
    selected = [sale for sale in _active_sales(load_sales(context.store)) if _within(sale.date, start, end)]
    for sale in selected:
        total += sale.net_amount
        if sale.payment_type is SalePaymentType.CASH:
            cash_total += sale.net_amount
        else:
            credit_total += sale.net_amount
        for item in sale.items:
            quantities[item.part_number] += item.quantity_sold
            names.setdefault(item.part_number, item.part_name)
    log.debug("Sales summary %s..%s: %d sales, total=%s", start, end, len(selected), total)
    return SalesSummary(
        total=total,
        cash_total=cash_total,
        credit_total=credit_total,
        transactions=len(selected),
        top_part=_leader(quantities, names),
    )


def purchase_summary(context: RuntimeContext, start: date, end: date) -> PurchaseSummary:
    """Summarise purchase orders dated between ``start`` and ``end`` inclusive.

    Suppliers are grouped by id when the order carries one and by lower-cased
    name otherwise.
    """
    if start > end:
        raise ValueError("Report start date must not be after the end date")
    total = ZERO
    part_quantities: Dict[str, int] = Counter()
    part_names: Dict[str, str] = {}
    supplier_values: Dict[str, Decimal] = Counter()
    supplier_names: Dict[str, str] = {}
    selected = [
        purchase
        for purchase in _active_purchases(load_purchases(context.store))
        if _within(purchase.date, start, end)
    ]
    for purchase in selected:
        total += purchase.net_amount
        supplier_key = purchase.supplier_id or purchase.supplier_name.strip().casefold()
        supplier_values[supplier_key] += purchase.net_amount
        supplier_names.setdefault(supplier_key, purchase.supplier_name)
        for item in purchase.items:
            part_quantities[item.part_number] += item.quantity_purchased
            part_names.setdefault(item.part_number, item.part_name)
    return PurchaseSummary(
        total=total,
        orders=len(selected),
        top_part=_leader(part_quantities, part_names),
        top_supplier=_leader(supplier_values, supplier_names),
    )


def inventory_valuation(context: RuntimeContext) -> InventoryValuation:
    total_value = ZERO
    total_quantity = 0
    parts = load_parts(context.store)
    for part in parts:
        total_quantity += part.quantity
        try:
            total_value += part.quantity * part.price
        except ValueError:
            log.warning("Part '%s' has an unreadable price %r; excluded from valuation", part.part_number, part.mrp)
    return InventoryValuation(total_value=total_value, unique_parts=len(parts), total_quantity=total_quantity)


def stock_movement(
    context: RuntimeContext,
    *,
    days: int = STOCK_MOVEMENT_DAYS,
    today: Optional[date] = None,
) -> List[StockMovement]:
    """Units sold and units received per day, oldest day first, ending today.

    Only non-cancelled sales and purchase orders in ``Received`` status count.
    """
    last = _today(today)
    first = last - timedelta(days=days - 1)
    sold: Dict[date, int] = Counter()
    purchased: Dict[date, int] = Counter()
    for sale in _active_sales(load_sales(context.store)):
        day = record_day(sale.date)
        if day is not None and first <= day <= last:
            sold[day] += sum(item.quantity_sold for item in sale.items)
    for purchase in load_purchases(context.store):
        if purchase.status is not PurchaseStatus.RECEIVED:
            continue
        day = record_day(purchase.date)
        if day is not None and first <= day <= last:
            purchased[day] += sum(item.quantity_purchased for item in purchase.items)
    return [
        StockMovement(day=day, sold=sold[day], purchased=purchased[day])
        for day in (first + timedelta(days=offset) for offset in range(days))
    ]


def fiscal_year_start(today: date) -> date:
    """First of April of the fiscal year ``today`` falls in."""
    start = date(today.year, FISCAL_YEAR_START_MONTH, 1)
    if today < start:
        start = date(today.year - 1, FISCAL_YEAR_START_MONTH, 1)
    return start


def dashboard(context: RuntimeContext, *, today: Optional[date] = None) -> Dashboard:
    """Headline figures for the shop front page.

    ``recent_sales`` lists the latest sales including cancelled ones so the
    caller can show their status; every other figure ignores cancelled sales.
    ``low_stock`` stays empty when the shop turned low stock alerts off.
    """
    current = _today(today)
    year_start = fiscal_year_start(current)
    sales = load_sales(context.store)
    active = _active_sales(sales)
    parts = load_parts(context.store)
    threshold = context.settings.low_stock_threshold

    revenue = sum((sale.net_amount for sale in active if _within(sale.date, year_start, current)), ZERO)
    buyers = {sale.buyer_name.strip().casefold() for sale in active}
    sales_today = sum(1 for sale in active if record_day(sale.date) == current)
    recent = sorted(sales, key=lambda sale: sale.date, reverse=True)[:RECENT_SALES_LIMIT]
    low_stock: Tuple[PartRecord, ...] = ()
    if context.settings.low_stock_alerts:
        low_stock = tuple(part for part in parts if part.quantity <= threshold)

    log.debug("Dashboard for %s: revenue=%s active customers=%d", current, revenue, len(buyers))
    return Dashboard(
        fiscal_year_start=year_start,
        revenue=revenue,
        parts_in_stock=sum(part.quantity for part in parts),
        active_customers=len(buyers),
        sales_today=sales_today,
        recent_sales=tuple(recent),
        low_stock=low_stock,
    )
