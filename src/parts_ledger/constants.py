"""Enumerations shared across Parts Ledger modules.

Centralises domain constants so that the record store, the reconciliation
engine, and the command-line front-end rely on a single source of truth for
status strings, payment types, and collection names.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating config.ini.
EXPECTED_SCHEMA_VERSION = "1.0.0"

CURRENCY_SYMBOL = "₹"
PLACEHOLDER_CATEGORY = "Uncategorized"
LOW_STOCK_THRESHOLD = 1
ZERO = Decimal("0.00")
CENT = Decimal("0.01")


class SalePaymentType(str, Enum):
    """Enumerate supported payment mechanisms for sales."""

    CASH = "cash"
    CREDIT = "credit"


class PurchasePaymentType(str, Enum):
    """Enumerate supported payment mechanisms for purchase orders."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    ON_CREDIT = "on_credit"
    CHEQUE = "cheque"


class SaleStatus(str, Enum):
    """Enumerate the lifecycle states of a sale."""

    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PurchaseStatus(str, Enum):
    """Enumerate the order states of a purchase order."""

    PENDING = "Pending"
    ORDERED = "Ordered"
    PARTIALLY_RECEIVED = "Partially Received"
    RECEIVED = "Received"
    CANCELLED = "Cancelled"


class SettlementState(str, Enum):
    """Enumerate the payment settlement states of an on-credit purchase."""

    DUE = "Due"
    PAID = "Paid"

    @classmethod
    def from_flag(cls, payment_settled: bool) -> "SettlementState":
        return cls.PAID if payment_settled else cls.DUE


class CollectionName(str, Enum):
    """Enumerate the record collections managed by the record store."""

    PARTS = "parts"
    SALES = "sales"
    PURCHASES = "purchases"
    CUSTOMERS = "customers"
    SUPPLIERS = "suppliers"
    COUNTER = "counter"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "CURRENCY_SYMBOL",
    "PLACEHOLDER_CATEGORY",
    "LOW_STOCK_THRESHOLD",
    "ZERO",
    "CENT",
    "SalePaymentType",
    "PurchasePaymentType",
    "SaleStatus",
    "PurchaseStatus",
    "SettlementState",
    "CollectionName",
]
