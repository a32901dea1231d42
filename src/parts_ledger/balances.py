"""Running balances for customers (amount due) and suppliers (amount owed).

Two numbers exist per party. The stored ``balance`` is maintained
incrementally by the lifecycle operations through :func:`apply_delta`. The
live balance is recomputed from the transactions with :func:`recompute` and
then shifted by the party's ``manual_adjustment``, which records the last
operator override relative to the transaction-derived amount. The two agree
unless a floored subtraction or a hand edit made them drift; :func:`reconcile`
reports such drift instead of silently rewriting either side.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, List, Sequence, TypeVar, Union

from .constants import ZERO, SalePaymentType
from .records import (
    CustomerRecord,
    PurchaseRecord,
    SaleRecord,
    SupplierRecord,
    to_money,
)


Party = Union[CustomerRecord, SupplierRecord]
T = TypeVar("T")


def apply_delta(balance: Decimal, delta: Decimal, *, floor: bool = False) -> Decimal:
    """Add ``delta`` to ``balance``; clamp at zero only when ``floor`` is set."""
    result = to_money(balance) + to_money(delta)
    if floor and result < ZERO:
        return ZERO
    return result


def recompute(party: Party, transactions: Iterable[T], predicate: Callable[[Party, T], bool]) -> Decimal:
    """Sum ``net_amount`` over every transaction ``predicate`` attributes to ``party``."""
    total = ZERO
    for transaction in transactions:
        if predicate(party, transaction):
            total += transaction.net_amount  # type: ignore[attr-defined]
    return total


def same_name(left: str, right: str) -> bool:
    return left.strip().casefold() == right.strip().casefold()


def customer_owes_for(customer: CustomerRecord, sale: SaleRecord) -> bool:
    """Non-cancelled credit sales to the customer count towards the amount due."""
    return (
        sale.payment_type is SalePaymentType.CREDIT
        and not sale.is_cancelled
        and same_name(sale.buyer_name, customer.name)
    )


def supplier_owed_for(supplier: SupplierRecord, purchase: PurchaseRecord) -> bool:
    """Unsettled on-credit purchases from the supplier count towards the amount owed."""
    if not purchase.is_on_credit or purchase.payment_settled:
        return False
    if purchase.supplier_id and purchase.supplier_id == supplier.supplier_id:
        return True
    return same_name(purchase.supplier_name, supplier.name)


def live_balance(party: Party, transactions: Sequence[T], predicate: Callable[[Party, T], bool]) -> Decimal:
    return recompute(party, transactions, predicate) + party.manual_adjustment


@dataclass(frozen=True)
class BalanceDrift:
    """A party whose stored balance disagrees with the live balance."""

    party_id: str
    name: str
    stored: Decimal
    live: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored - self.live


def reconcile(parties: Iterable[Party], transactions: Sequence[T], predicate: Callable[[Party, T], bool]) -> List[BalanceDrift]:
    drifts: List[BalanceDrift] = []
    for party in parties:
        live = live_balance(party, transactions, predicate)
        if live != party.balance:
            party_id = party.customer_id if isinstance(party, CustomerRecord) else party.supplier_id
            drifts.append(BalanceDrift(party_id=party_id, name=party.name, stored=party.balance, live=live))
    return drifts
