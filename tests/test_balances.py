"""Tests for running balances, recomputation, and drift detection."""

from __future__ import annotations

from decimal import Decimal

from parts_ledger import balances
from parts_ledger.constants import PurchasePaymentType, PurchaseStatus, SalePaymentType, SaleStatus
from parts_ledger.records import CustomerRecord, PurchaseRecord, SaleRecord, SupplierRecord


def _sale(net: str, *, buyer: str = "Asha", payment=SalePaymentType.CREDIT, status=SaleStatus.COMPLETED) -> SaleRecord:
    amount = Decimal(net)
    return SaleRecord(
        sale_id=f"S{net}",
        date="2025-06-15T10:30:00+00:00",
        buyer_name=buyer,
        items=(),
        sub_total=amount,
        discount=Decimal("0.00"),
        net_amount=amount,
        payment_type=payment,
        status=status,
    )


def _purchase(net: str, *, supplier_id=None, supplier_name="Acme", payment=PurchasePaymentType.ON_CREDIT, settled=False):
    amount = Decimal(net)
    return PurchaseRecord(
        purchase_id=f"PO{net}",
        date="2025-06-15T10:30:00+00:00",
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        items=(),
        sub_total=amount,
        shipping_costs=Decimal("0.00"),
        other_charges=Decimal("0.00"),
        net_amount=amount,
        payment_type=payment,
        status=PurchaseStatus.RECEIVED,
        payment_settled=settled,
    )


def test_apply_delta_floor_is_optional():
    """Only floored subtraction clamps at zero."""

    assert balances.apply_delta(Decimal("5"), Decimal("-8"), floor=True) == Decimal("0.00")
    assert balances.apply_delta(Decimal("5"), Decimal("-8")) == Decimal("-3.00")
    assert balances.apply_delta(Decimal("5"), Decimal("2.5")) == Decimal("7.50")


def test_customer_recompute_counts_active_credit_sales_only():
    """Cash and cancelled sales do not contribute to the amount due."""

    customer = CustomerRecord(customer_id="CUST1", name="asha ")
    sales = [
        _sale("10.00"),
        _sale("4.00", payment=SalePaymentType.CASH),
        _sale("7.00", status=SaleStatus.CANCELLED),
        _sale("3.00", buyer="Ravi"),
        _sale("2.50", buyer="ASHA"),
    ]

    assert balances.recompute(customer, sales, balances.customer_owes_for) == Decimal("12.50")


def test_supplier_recompute_matches_by_id_or_name():
    """Unsettled on-credit purchases match the supplier by id, then by name."""

    supplier = SupplierRecord(supplier_id="SUP1", name="Acme")
    purchases = [
        _purchase("50.00", supplier_id="SUP1", supplier_name="Acme Old Name"),
        _purchase("20.00", supplier_name=" acme "),
        _purchase("30.00", settled=True),
        _purchase("40.00", payment=PurchasePaymentType.CASH, settled=True),
        _purchase("60.00", supplier_id="SUP2", supplier_name="Other"),
    ]

    assert balances.recompute(supplier, purchases, balances.supplier_owed_for) == Decimal("70.00")


def test_live_balance_honours_manual_adjustment():
    """The live balance shifts the derived amount by the manual adjustment."""

    customer = CustomerRecord(customer_id="CUST1", name="Asha", manual_adjustment=Decimal("-4.00"))

    assert balances.live_balance(customer, [_sale("10.00")], balances.customer_owes_for) == Decimal("6.00")


def test_reconcile_reports_only_drifting_parties():
    """Parties whose stored balance equals the live balance are not reported."""

    sales = [_sale("10.00"), _sale("5.00", buyer="Ravi")]
    customers = [
        CustomerRecord(customer_id="CUST1", name="Asha", balance=Decimal("10.00")),
        CustomerRecord(customer_id="CUST2", name="Ravi", balance=Decimal("0.00")),
    ]

    drifts = balances.reconcile(customers, sales, balances.customer_owes_for)

    assert len(drifts) == 1
    assert drifts[0].party_id == "CUST2"
    assert drifts[0].difference == Decimal("-5.00")
