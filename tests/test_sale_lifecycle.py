"""Tests for creating, re-typing, cancelling, and restoring sales."""

from __future__ import annotations

from decimal import Decimal

import pytest

from parts_ledger import core_logic, sale_lifecycle
from parts_ledger.constants import SalePaymentType, SaleStatus


def _command(*lines, buyer="Asha", payment=SalePaymentType.CREDIT, discount="0", when=None, **extra):
    return sale_lifecycle.SaleCommand(
        buyer_name=buyer,
        items=[sale_lifecycle.SaleLine(part_number=n, quantity=q, unit_price=Decimal(p)) for n, q, p in lines],
        payment_type=payment,
        discount=Decimal(discount),
        timestamp=when,
        **extra,
    )


def _customer(context, name):
    matches = [customer for customer in core_logic.list_customers(context) if customer.name.lower() == name.lower()]
    assert len(matches) == 1
    return matches[0]


def _stored_customer(context, name):
    customers = core_logic.load_customers(context.store)
    return customers[core_logic.match_customer(customers, name)]


def test_create_sale_computes_totals_and_deducts_stock(context, seed_parts, part_factory, quantity_of, moment):
    """Net equals subtotal minus discount; stock drops by each line."""

    seed_parts(part_factory("P100", "₹10.00", 5), part_factory("P200", "₹2.50", 10))

    result = sale_lifecycle.create_sale(
        context,
        _command(("P100", 2, "10"), ("P200", 4, "2.50"), discount="3", when=moment),
    )

    assert result.success
    assert result.inventory_adjusted
    sale = result.record
    assert sale.sale_id == "S20250615103000000000"
    assert sale.date == "2025-06-15T10:30:00+00:00"
    assert sale.sub_total == Decimal("30.00")
    assert sale.net_amount == Decimal("27.00")
    assert sale.status is SaleStatus.COMPLETED
    assert quantity_of(context, "P100", "10") == 3
    assert quantity_of(context, "P200", "2.5") == 6
    assert core_logic.get_sale(context, sale.sale_id) == sale


def test_credit_sales_accumulate_on_one_customer(context, seed_parts, part_factory):
    """Repeat credit sales to the same buyer reuse one customer record."""

    seed_parts(part_factory("P100", "₹10.00", 10))

    sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), buyer="Asha"))
    sale_lifecycle.create_sale(context, _command(("P100", 2, "10"), buyer=" asha "))

    customers = core_logic.list_customers(context)
    assert len(customers) == 1
    assert customers[0].customer_id.startswith("CUST")
    assert customers[0].balance == Decimal("30.00")
    assert _stored_customer(context, "Asha").balance == Decimal("30.00")


def test_create_sale_accepts_payment_type_by_value(context, seed_parts, part_factory):
    """A plain ``"credit"`` is read as the credit payment type; unknown values fail."""

    seed_parts(part_factory("P100", "₹10.00", 10))

    accepted = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), payment="credit"))
    rejected = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), payment="barter"))

    assert accepted.record.payment_type is SalePaymentType.CREDIT
    assert _stored_customer(context, "Asha").balance == Decimal("10.00")
    assert not rejected.success
    assert len(core_logic.list_sales(context)) == 1


def test_cash_sale_creates_customer_with_zero_balance(context, seed_parts, part_factory):
    """A cash sale still registers the buyer, with nothing due."""

    seed_parts(part_factory("P100", "₹10.00", 10))

    sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), payment=SalePaymentType.CASH))

    assert _customer(context, "Asha").balance == Decimal("0.00")


def test_create_sale_overrides_contact_details_only_when_given(context, seed_parts, part_factory):
    """Non-empty contact details replace stored ones; blanks keep them."""

    seed_parts(part_factory("P100", "₹10.00", 10))
    sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), email_address="a@x.in", contact_details="111"))
    sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), email_address="", contact_details="222"))

    customer = _stored_customer(context, "Asha")
    assert customer.email == "a@x.in"
    assert customer.phone == "222"


def test_sale_of_unknown_part_succeeds_with_warning(context):
    """A line without stock entry is skipped, not refused."""

    result = sale_lifecycle.create_sale(context, _command(("P404", 1, "10")))

    assert result.success
    assert result.warnings
    assert core_logic.list_parts(context) == []


def test_sale_stock_is_floored_at_zero(context, seed_parts, part_factory, quantity_of):
    """Selling more than is on hand leaves zero stock."""

    seed_parts(part_factory("P100", "₹10.00", 1))

    sale_lifecycle.create_sale(context, _command(("P100", 3, "10")))

    assert quantity_of(context, "P100", "10") == 0


@pytest.mark.parametrize(
    "command",
    [
        _command(("P100", 1, "10"), buyer="  "),
        _command(),
        _command(("P100", 0, "10")),
        _command(("P100", 1, "-1")),
        _command(("P100", 1, "10"), discount="11"),
    ],
)
def test_invalid_sales_fail_without_writing(context, command):
    """Validation failures come back as results and write nothing."""

    result = sale_lifecycle.create_sale(context, command)

    assert not result.success
    assert core_logic.list_sales(context) == []
    assert core_logic.list_customers(context) == []


def test_cancel_returns_stock_and_floors_balance(context, seed_parts, part_factory, quantity_of):
    """Cancelling restores stock and subtracts the net amount, floored at zero."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 2, "10"))).record
    core_logic.adjust_customer_balance(context, _customer(context, "Asha").customer_id, Decimal("5.00"))

    result = sale_lifecycle.cancel_sale(context, sale.sale_id)

    assert result.success
    assert result.record.status is SaleStatus.CANCELLED
    assert quantity_of(context, "P100", "10") == 5
    assert _stored_customer(context, "Asha").balance == Decimal("0.00")


def test_cancel_after_override_keeps_live_balance_at_floor(context, seed_parts, part_factory):
    """An overridden balance that the cancellation clips never shows a negative amount due."""

    seed_parts(part_factory("P100", "₹10.00", 20))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 10, "10"))).record
    core_logic.adjust_customer_balance(context, _customer(context, "Asha").customer_id, Decimal("30"))

    sale_lifecycle.cancel_sale(context, sale.sale_id)

    assert _stored_customer(context, "Asha").balance == Decimal("0.00")
    assert _stored_customer(context, "Asha").manual_adjustment == Decimal("0.00")
    assert _customer(context, "Asha").balance == Decimal("0.00")
    assert core_logic.reconcile_balances(context) == {"customers": [], "suppliers": []}


def test_cancel_twice_is_rejected(context, seed_parts, part_factory):
    """A cancelled sale cannot be cancelled again."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 2, "10"))).record
    sale_lifecycle.cancel_sale(context, sale.sale_id)

    result = sale_lifecycle.cancel_sale(context, sale.sale_id)

    assert not result.success
    assert "already Cancelled" in result.message


def test_cancel_does_not_recreate_deleted_parts(context, seed_parts, part_factory):
    """Returning stock for a part that was deleted only warns."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 2, "10"))).record
    core_logic.delete_part(context, "P100", "₹10.00")

    result = sale_lifecycle.cancel_sale(context, sale.sale_id)

    assert result.success
    assert result.warnings
    assert core_logic.list_parts(context) == []


def test_restore_rededucts_stock_without_floor(context, seed_parts, part_factory, quantity_of, caplog):
    """Restoring may push stock negative; the balance is added back in full."""

    seed_parts(part_factory("P100", "₹10.00", 2))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 2, "10"))).record
    sale_lifecycle.cancel_sale(context, sale.sale_id)
    sale_lifecycle.create_sale(context, _command(("P100", 2, "10"), buyer="Ravi", payment=SalePaymentType.CASH))

    result = sale_lifecycle.restore_sale(context, sale.sale_id)

    assert result.success
    assert result.record.status is SaleStatus.COMPLETED
    assert quantity_of(context, "P100", "10") == -2
    assert any("negative" in warning for warning in result.warnings)
    assert _stored_customer(context, "Asha").balance == Decimal("20.00")
    assert "negative" in caplog.text


def test_restore_requires_cancelled_sale(context, seed_parts, part_factory):
    """Only cancelled sales can be restored."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"))).record

    result = sale_lifecycle.restore_sale(context, sale.sale_id)

    assert not result.success


def test_change_payment_type_moves_balance(context, seed_parts, part_factory):
    """cash to credit adds the net amount; credit to cash removes it."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), payment=SalePaymentType.CASH)).record

    to_credit = sale_lifecycle.change_sale_payment_type(context, sale.sale_id, SalePaymentType.CREDIT)
    assert to_credit.success
    assert _stored_customer(context, "Asha").balance == Decimal("10.00")

    to_cash = sale_lifecycle.change_sale_payment_type(context, sale.sale_id, SalePaymentType.CASH)
    assert to_cash.success
    assert _stored_customer(context, "Asha").balance == Decimal("0.00")
    assert core_logic.get_sale(context, sale.sale_id).payment_type is SalePaymentType.CASH


def test_change_payment_type_same_value_is_noop(context, seed_parts, part_factory):
    """Requesting the current payment type succeeds without any change."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"))).record

    result = sale_lifecycle.change_sale_payment_type(context, sale.sale_id, SalePaymentType.CREDIT)

    assert result.success
    assert "already" in result.message
    assert _stored_customer(context, "Asha").balance == Decimal("10.00")


def test_change_payment_type_rejects_cancelled_and_unknown_sales(context, seed_parts, part_factory):
    """Cancelled sales are frozen; unknown ids are reported as not found."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    sale = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"))).record
    sale_lifecycle.cancel_sale(context, sale.sale_id)

    cancelled = sale_lifecycle.change_sale_payment_type(context, sale.sale_id, SalePaymentType.CASH)
    missing = sale_lifecycle.change_sale_payment_type(context, "S0", SalePaymentType.CASH)

    assert not cancelled.success
    assert not missing.success
    assert "not found" in missing.message


def test_sale_ids_are_unique_for_identical_timestamps(context, seed_parts, part_factory, moment):
    """Two sales recorded at the same instant still get distinct ids."""

    seed_parts(part_factory("P100", "₹10.00", 5))
    first = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), when=moment)).record
    second = sale_lifecycle.create_sale(context, _command(("P100", 1, "10"), when=moment)).record

    assert first.sale_id != second.sale_id
    assert [sale.sale_id for sale in core_logic.list_sales(context)] == [second.sale_id, first.sale_id]
