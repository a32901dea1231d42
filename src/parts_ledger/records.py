"""Typed records stored in the Parts Ledger collections.

Each collection is persisted as a list of plain mappings by
:mod:`parts_ledger.data_manager`. The dataclasses below are the in-memory view
of those rows, and the ``serialize_*``/``deserialize_*`` pairs translate
between the two. Money is kept as :class:`~decimal.Decimal` in memory and as a
two-decimal string on disk so values survive the workbook round-trip exactly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple

from .constants import (
    CENT,
    CURRENCY_SYMBOL,
    ZERO,
    PurchasePaymentType,
    PurchaseStatus,
    SalePaymentType,
    SaleStatus,
)


_AMOUNT = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


def to_money(raw: Any) -> Decimal:
    """Coerce a stored or user supplied amount into a two-decimal ``Decimal``.

    ``None`` and blank strings become ``0.00``. Values are rounded half-up to
    the cent.

    Raises:
        ValueError: If ``raw`` cannot be interpreted as a number.
    """

    if raw is None or raw == "":
        return ZERO
    try:
        return Decimal(str(raw)).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {raw!r}") from exc


def parse_price(raw: Any) -> Decimal:
    """Interpret a price given as a number or a formatted string such as ``₹1,250.5``.

    Raises:
        ValueError: If no number can be extracted from ``raw``.
    """

    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        return to_money(raw)
    text = str(raw if raw is not None else "").strip()
    match = _AMOUNT.search(text)
    if match is None:
        raise ValueError(f"Not a price: {raw!r}")
    number = match.group(0).replace(",", "")
    # Sign written ahead of the symbol, as in "-₹5".
    if text.startswith("-") and not number.startswith("-"):
        number = f"-{number}"
    return to_money(number)


def format_price(amount: Any, symbol: str = CURRENCY_SYMBOL) -> str:
    """Format a price the way part records store it, e.g. ``₹10.00``."""
    return f"{symbol}{parse_price(amount):.2f}"


def _text(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw)
    return text if text.strip() else None


def _quantity(raw: Any) -> int:
    if raw is None or raw == "":
        return 0
    return int(Decimal(str(raw)))


@dataclass(frozen=True)
class PartKey:
    """Composite natural key of a stock entry: part number plus unit price.

    The price is normalised to a two-decimal ``Decimal`` so ``₹10``, ``10``
    and ``₹10.00`` address the same stock entry.
    """

    part_number: str
    price: Decimal

    @classmethod
    def of(cls, part_number: Any, price: Any) -> "PartKey":
        return cls(part_number=str(part_number).strip(), price=parse_price(price))

    def formatted_price(self, symbol: str = CURRENCY_SYMBOL) -> str:
        return format_price(self.price, symbol)

    def __str__(self) -> str:
        return f"{self.part_number} @ {self.price:.2f}"


@dataclass(frozen=True)
class PartRecord:
    """In-memory view of a row from the ``parts`` collection."""

    part_number: str
    part_name: str
    mrp: str
    quantity: int
    other_name: Optional[str] = None
    company: Optional[str] = None
    category: Optional[str] = None
    shelf: Optional[str] = None

    @property
    def key(self) -> PartKey:
        return PartKey.of(self.part_number, self.mrp)

    @property
    def price(self) -> Decimal:
        return parse_price(self.mrp)


@dataclass(frozen=True)
class SaleItem:
    """One line of a sale."""

    part_number: str
    part_name: str
    quantity_sold: int
    unit_price: Decimal
    item_total: Decimal


@dataclass(frozen=True)
class SaleRecord:
    """In-memory view of a row from the ``sales`` collection."""

    sale_id: str
    date: str
    buyer_name: str
    items: Tuple[SaleItem, ...]
    sub_total: Decimal
    discount: Decimal
    net_amount: Decimal
    payment_type: SalePaymentType
    status: SaleStatus = SaleStatus.COMPLETED
    gst_number: Optional[str] = None
    contact_details: Optional[str] = None
    email_address: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status is SaleStatus.CANCELLED


@dataclass(frozen=True)
class PurchaseItem:
    """One line of a purchase order."""

    part_number: str
    part_name: str
    quantity_purchased: int
    unit_cost: Decimal
    item_total: Decimal


@dataclass(frozen=True)
class PurchaseRecord:
    """In-memory view of a row from the ``purchases`` collection."""

    purchase_id: str
    date: str
    supplier_id: Optional[str]
    supplier_name: str
    items: Tuple[PurchaseItem, ...]
    sub_total: Decimal
    shipping_costs: Decimal
    other_charges: Decimal
    net_amount: Decimal
    payment_type: PurchasePaymentType
    status: PurchaseStatus
    payment_settled: bool
    invoice_number: Optional[str] = None

    @property
    def is_on_credit(self) -> bool:
        return self.payment_type is PurchasePaymentType.ON_CREDIT


@dataclass(frozen=True)
class CustomerRecord:
    """In-memory view of a row from the ``customers`` collection.

    ``manual_adjustment`` is the difference an operator introduced when
    overriding the amount due by hand; live balances add it on top of the
    amount derived from credit sales.
    """

    customer_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    balance: Decimal = ZERO
    manual_adjustment: Decimal = ZERO


@dataclass(frozen=True)
class SupplierRecord:
    """In-memory view of a row from the ``suppliers`` collection."""

    supplier_id: str
    name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    balance: Decimal = ZERO
    manual_adjustment: Decimal = ZERO


def serialize_part(record: PartRecord) -> Dict[str, Any]:
    return {
        "partNumber": record.part_number,
        "partName": record.part_name,
        "otherName": record.other_name,
        "company": record.company,
        "quantity": int(record.quantity),
        "category": record.category,
        "mrp": record.mrp,
        "shelf": record.shelf,
    }


def deserialize_part(raw: Mapping[str, Any]) -> PartRecord:
    return PartRecord(
        part_number=str(raw.get("partNumber") or ""),
        part_name=str(raw.get("partName") or ""),
        mrp=str(raw.get("mrp") or format_price(ZERO)),
        quantity=_quantity(raw.get("quantity")),
        other_name=_text(raw.get("otherName")),
        company=_text(raw.get("company")),
        category=_text(raw.get("category")),
        shelf=_text(raw.get("shelf")),
    )


def serialize_sale(record: SaleRecord) -> Dict[str, Any]:
    return {
        "id": record.sale_id,
        "date": record.date,
        "buyerName": record.buyer_name,
        "gstNumber": record.gst_number,
        "contactDetails": record.contact_details,
        "emailAddress": record.email_address,
        "subTotal": str(record.sub_total),
        "discount": str(record.discount),
        "netAmount": str(record.net_amount),
        "paymentType": record.payment_type.value,
        "status": record.status.value,
        "items": [
            {
                "partNumber": item.part_number,
                "partName": item.part_name,
                "quantitySold": int(item.quantity_sold),
                "unitPrice": str(item.unit_price),
                "itemTotal": str(item.item_total),
            }
            for item in record.items
        ],
    }


def deserialize_sale(raw: Mapping[str, Any]) -> SaleRecord:
    items = tuple(
        SaleItem(
            part_number=str(item.get("partNumber") or ""),
            part_name=str(item.get("partName") or ""),
            quantity_sold=_quantity(item.get("quantitySold")),
            unit_price=to_money(item.get("unitPrice")),
            item_total=to_money(item.get("itemTotal")),
        )
        for item in raw.get("items") or []
    )
    return SaleRecord(
        sale_id=str(raw.get("id")),
        date=str(raw.get("date") or ""),
        buyer_name=str(raw.get("buyerName") or ""),
        items=items,
        sub_total=to_money(raw.get("subTotal")),
        discount=to_money(raw.get("discount")),
        net_amount=to_money(raw.get("netAmount")),
        payment_type=SalePaymentType(raw.get("paymentType") or SalePaymentType.CASH.value),
        status=SaleStatus(raw.get("status") or SaleStatus.COMPLETED.value),
        gst_number=_text(raw.get("gstNumber")),
        contact_details=_text(raw.get("contactDetails")),
        email_address=_text(raw.get("emailAddress")),
    )


def serialize_purchase(record: PurchaseRecord) -> Dict[str, Any]:
    return {
        "id": record.purchase_id,
        "date": record.date,
        "supplierId": record.supplier_id,
        "supplierName": record.supplier_name,
        "invoiceNumber": record.invoice_number,
        "subTotal": str(record.sub_total),
        "shippingCosts": str(record.shipping_costs),
        "otherCharges": str(record.other_charges),
        "netAmount": str(record.net_amount),
        "paymentType": record.payment_type.value,
        "status": record.status.value,
        "paymentSettled": bool(record.payment_settled),
        "items": [
            {
                "partNumber": item.part_number,
                "partName": item.part_name,
                "quantityPurchased": int(item.quantity_purchased),
                "unitCost": str(item.unit_cost),
                "itemTotal": str(item.item_total),
            }
            for item in record.items
        ],
    }


def deserialize_purchase(raw: Mapping[str, Any]) -> PurchaseRecord:
    items = tuple(
        PurchaseItem(
            part_number=str(item.get("partNumber") or ""),
            part_name=str(item.get("partName") or ""),
            quantity_purchased=_quantity(item.get("quantityPurchased")),
            unit_cost=to_money(item.get("unitCost")),
            item_total=to_money(item.get("itemTotal")),
        )
        for item in raw.get("items") or []
    )
    payment_type = PurchasePaymentType(raw.get("paymentType") or PurchasePaymentType.CASH.value)
    settled_raw = raw.get("paymentSettled")
    payment_settled = bool(settled_raw) if settled_raw is not None else payment_type is not PurchasePaymentType.ON_CREDIT
    return PurchaseRecord(
        purchase_id=str(raw.get("id")),
        date=str(raw.get("date") or ""),
        supplier_id=_text(raw.get("supplierId")),
        supplier_name=str(raw.get("supplierName") or ""),
        items=items,
        sub_total=to_money(raw.get("subTotal")),
        shipping_costs=to_money(raw.get("shippingCosts")),
        other_charges=to_money(raw.get("otherCharges")),
        net_amount=to_money(raw.get("netAmount")),
        payment_type=payment_type,
        status=PurchaseStatus(raw.get("status") or PurchaseStatus.PENDING.value),
        payment_settled=payment_settled,
        invoice_number=_text(raw.get("invoiceNumber")),
    )


def serialize_customer(record: CustomerRecord) -> Dict[str, Any]:
    return {
        "id": record.customer_id,
        "name": record.name,
        "email": record.email,
        "phone": record.phone,
        "balance": str(record.balance),
        "manualAdjustment": str(record.manual_adjustment),
    }


def deserialize_customer(raw: Mapping[str, Any]) -> CustomerRecord:
    return CustomerRecord(
        customer_id=str(raw.get("id")),
        name=str(raw.get("name") or ""),
        email=_text(raw.get("email")),
        phone=_text(raw.get("phone")),
        balance=to_money(raw.get("balance")),
        manual_adjustment=to_money(raw.get("manualAdjustment")),
    )


def serialize_supplier(record: SupplierRecord) -> Dict[str, Any]:
    return {
        "id": record.supplier_id,
        "name": record.name,
        "contactPerson": record.contact_person,
        "email": record.email,
        "phone": record.phone,
        "balance": str(record.balance),
        "manualAdjustment": str(record.manual_adjustment),
    }


def deserialize_supplier(raw: Mapping[str, Any]) -> SupplierRecord:
    return SupplierRecord(
        supplier_id=str(raw.get("id")),
        name=str(raw.get("name") or ""),
        contact_person=_text(raw.get("contactPerson")),
        email=_text(raw.get("email")),
        phone=_text(raw.get("phone")),
        balance=to_money(raw.get("balance")),
        manual_adjustment=to_money(raw.get("manualAdjustment")),
    )
