"""Tests for purchase orders: creation, status moves, and settlement."""

from __future__ import annotations

from decimal import Decimal

import pytest

from parts_ledger import core_logic, purchase_lifecycle
from parts_ledger.constants import PurchasePaymentType, PurchaseStatus


def _order(*lines, supplier="Acme Spares", payment=PurchasePaymentType.ON_CREDIT, status=PurchaseStatus.RECEIVED, **extra):
    return purchase_lifecycle.PurchaseCommand(
        supplier_name=supplier,
        items=[
            purchase_lifecycle.PurchaseLine(part_number=n, quantity=q, unit_cost=Decimal(c), part_name=f"Part {n}")
            for n, q, c in lines
        ],
        payment_type=payment,
        status=status,
        **extra,
    )


def _stored_suppliers(context):
    return core_logic.load_suppliers(context.store)


def test_received_on_credit_order_creates_part_and_supplier(context, quantity_of, moment):
    """A received order stocks new parts and books the net amount as owed."""

    result = purchase_lifecycle.create_purchase(
        context,
        _order(("P100", 5, "10"), shipping_costs=Decimal("4"), other_charges=Decimal("1.5"), timestamp=moment),
    )

    assert result.success
    assert result.inventory_adjusted
    assert result.message == "Purchase order PO00001 recorded."
    purchase = result.record
    assert purchase.sub_total == Decimal("50.00")
    assert purchase.net_amount == Decimal("55.50")
    assert purchase.payment_settled is False
    assert quantity_of(context, "P100", "10") == 5

    part = core_logic.list_parts(context)[0]
    assert part.part_name == "Part P100"
    assert part.category == "Uncategorized"

    (supplier,) = _stored_suppliers(context)
    assert supplier.supplier_id == purchase.supplier_id
    assert supplier.supplier_id.startswith("SUP")
    assert supplier.balance == Decimal("55.50")


def test_pending_cash_order_leaves_stock_and_balance_alone(context, quantity_of):
    """Pending orders do not touch stock; non-credit orders are settled at once."""

    result = purchase_lifecycle.create_purchase(
        context,
        _order(("P100", 5, "10"), payment=PurchasePaymentType.CASH, status=PurchaseStatus.PENDING),
    )

    assert result.success
    assert not result.inventory_adjusted
    assert result.record.payment_settled is True
    assert quantity_of(context, "P100", "10") is None
    assert _stored_suppliers(context)[0].balance == Decimal("0.00")


def test_purchase_ids_follow_the_sequence(context):
    """Order ids come from the shared counter, newest order first in the list."""

    first = purchase_lifecycle.create_purchase(context, _order(("P1", 1, "1"))).record
    second = purchase_lifecycle.create_purchase(context, _order(("P1", 1, "1"))).record

    assert (first.purchase_id, second.purchase_id) == ("PO00001", "PO00002")
    assert [p.purchase_id for p in core_logic.list_purchases(context)] == ["PO00002", "PO00001"]
    assert context.sequence.current() == 2


def test_rejected_order_does_not_consume_an_id(context):
    """Validation failures leave the counter untouched."""

    failed = purchase_lifecycle.create_purchase(context, _order(("P1", 0, "1")))
    created = purchase_lifecycle.create_purchase(context, _order(("P1", 1, "1")))

    assert not failed.success
    assert created.record.purchase_id == "PO00001"


@pytest.mark.parametrize(
    "command",
    [
        _order(("P1", 1, "1"), supplier=" "),
        _order(),
        _order(("P1", 1, "-2")),
        _order(("P1", 1, "1"), shipping_costs=Decimal("-1")),
    ],
)
def test_invalid_orders_fail(context, command):
    """Malformed orders are refused and nothing is recorded."""

    result = purchase_lifecycle.create_purchase(context, command)

    assert not result.success
    assert core_logic.list_purchases(context) == []


def test_supplier_matched_by_id_then_name(context):
    """Orders naming a known supplier reuse it and refresh its details."""

    first = purchase_lifecycle.create_purchase(context, _order(("P1", 1, "10"), supplier_id="SUP-ACME")).record
    purchase_lifecycle.create_purchase(context, _order(("P1", 1, "10"), supplier=" acme spares ", phone="999"))
    purchase_lifecycle.create_purchase(
        context, _order(("P1", 1, "10"), supplier="Acme Spares Pvt", supplier_id="SUP-ACME")
    )

    (supplier,) = _stored_suppliers(context)
    assert first.supplier_id == "SUP-ACME"
    assert supplier.supplier_id == "SUP-ACME"
    assert supplier.name == "Acme Spares Pvt"
    assert supplier.phone == "999"
    assert supplier.balance == Decimal("30.00")


def test_status_moves_only_touch_stock_across_received(context, quantity_of):
    """Received to Pending removes stock; Pending to Ordered changes nothing."""

    purchase = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10"))).record

    back = purchase_lifecycle.change_purchase_status(context, purchase.purchase_id, PurchaseStatus.PENDING)
    assert back.success
    assert back.inventory_adjusted
    assert back.message.endswith("Received stock removed from inventory.")
    assert quantity_of(context, "P100", "10") == 0

    sideways = purchase_lifecycle.change_purchase_status(context, purchase.purchase_id, PurchaseStatus.ORDERED)
    assert sideways.message.endswith("No inventory impact.")
    assert not sideways.inventory_adjusted

    again = purchase_lifecycle.change_purchase_status(context, purchase.purchase_id, PurchaseStatus.RECEIVED)
    assert again.message.endswith("Inventory updated with received stock.")
    assert quantity_of(context, "P100", "10") == 5


def test_status_change_to_same_value_is_noop(context):
    """Re-applying the current status succeeds and changes nothing."""

    purchase = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10"))).record

    result = purchase_lifecycle.change_purchase_status(context, purchase.purchase_id, PurchaseStatus.RECEIVED)

    assert result.success
    assert "already Received" in result.message
    assert not result.inventory_adjusted


def test_unreceiving_floors_stock_at_zero(context, part_factory, quantity_of):
    """Removing received stock that was already sold leaves zero, not negative."""

    purchase = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10"))).record
    core_logic.add_or_update_part(context, part_factory("P100", "₹10.00", 2))

    purchase_lifecycle.change_purchase_status(context, purchase.purchase_id, PurchaseStatus.CANCELLED)

    assert quantity_of(context, "P100", "10") == 0


def test_unknown_purchase_is_reported(context):
    """Status changes on an unknown id fail with a not-found message."""

    result = purchase_lifecycle.change_purchase_status(context, "PO99999", PurchaseStatus.RECEIVED)

    assert not result.success
    assert result.message == "Purchase PO99999 not found."


def test_settlement_moves_supplier_balance_once(context):
    """Paying clears the amount owed; repeating it is a no-op; reopening restores it."""

    purchase = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10"))).record

    paid = purchase_lifecycle.change_purchase_settlement(context, purchase.purchase_id, True)
    repeat = purchase_lifecycle.change_purchase_settlement(context, purchase.purchase_id, True)

    assert paid.message == f"Purchase {purchase.purchase_id} payment marked as Paid."
    assert repeat.success
    assert "already Paid" in repeat.message
    assert _stored_suppliers(context)[0].balance == Decimal("0.00")
    assert core_logic.get_purchase(context, purchase.purchase_id).payment_settled is True

    due = purchase_lifecycle.change_purchase_settlement(context, purchase.purchase_id, False)
    assert due.success
    assert _stored_suppliers(context)[0].balance == Decimal("50.00")


def test_settlement_requires_on_credit_order(context):
    """Cash orders have nothing to settle."""

    purchase = purchase_lifecycle.create_purchase(
        context, _order(("P100", 1, "10"), payment=PurchasePaymentType.CHEQUE)
    ).record

    result = purchase_lifecycle.change_purchase_settlement(context, purchase.purchase_id, False)

    assert not result.success
    assert "on-credit" in result.message


def test_settlement_with_deleted_supplier_warns(context):
    """The order is still marked paid when its supplier no longer exists."""

    purchase = purchase_lifecycle.create_purchase(context, _order(("P100", 1, "10"))).record
    core_logic.delete_supplier(context, purchase.supplier_id)

    result = purchase_lifecycle.change_purchase_settlement(context, purchase.purchase_id, True)

    assert result.success
    assert result.warnings
    assert core_logic.get_purchase(context, purchase.purchase_id).payment_settled is True


def test_received_orders_accumulate_with_dotted_currency_symbol(config_factory, quantity_of):
    """A symbol such as ``Rs.`` still formats and matches stock prices."""

    context = core_logic.load_runtime_context(config_factory(currency_symbol="Rs.").config_path)

    first = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10.00")))
    second = purchase_lifecycle.create_purchase(context, _order(("P100", 5, "10.00")))

    assert first.success and second.success
    (part,) = core_logic.list_parts(context)
    assert part.mrp == "Rs.10.00"
    assert quantity_of(context, "P100", "Rs.10") == 10
