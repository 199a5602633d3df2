"""Domain tests for order lines and their head-is-latest histories."""

import pytest
from protean.exceptions import ValidationError
from settlement.order.order import (
    LineTarget,
    Order,
    PaidStatus,
    PriceEntryType,
    PriceStatus,
)
from settlement.order.references import INHERIT, Container, RecordRef


def _make_order(**overrides):
    defaults = {
        "customer_email": "ada@example.com",
        "reference": RecordRef(container=Container.CASES.value, id="case-001", partition="case-001"),
    }
    defaults.update(overrides)
    return Order.create(**defaults)


class TestAddLine:
    def test_line_opens_with_charge_entry_and_awaiting_status(self):
        order = _make_order()
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000, quantity=2, variant_id="V1")

        head = order.price_log_for(line.id).current()
        assert head.entry_type == PriceEntryType.CHARGE.value
        assert head.status == PriceStatus.AWAITING_CHARGE.value
        assert head.amount == 5000
        assert head.quantity == 2
        assert order.current_paid_status(line.id) == PaidStatus.AWAITING_CHARGE.value

    def test_code_is_generated(self):
        order = _make_order()
        assert order.code.startswith("ORD-")

    def test_unknown_line_is_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.line("missing")


class TestHistories:
    def test_latest_entry_is_at_index_zero(self):
        order = _make_order()
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000)
        order.prepend_paid_status(line.id, PaidStatus.PAID, triggered_by="STRIPE")
        order.prepend_paid_status(line.id, PaidStatus.PARTIAL_REFUND, triggered_by="STRIPE")

        log = order.paid_status_for(line.id)
        assert len(log) == 3
        assert log[0].label == PaidStatus.PARTIAL_REFUND.value
        assert log[-1].label == PaidStatus.AWAITING_CHARGE.value
        assert log.current() is log[0]

    def test_histories_are_kept_per_line(self):
        order = _make_order()
        first = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000)
        second = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 1500)
        order.prepend_paid_status(first.id, PaidStatus.PAID, triggered_by="STRIPE")

        assert order.current_paid_status(first.id) == PaidStatus.PAID.value
        assert order.current_paid_status(second.id) == PaidStatus.AWAITING_CHARGE.value
        assert len(order.price_log_for(second.id)) == 1

    def test_record_price_entry_becomes_current(self):
        order = _make_order()
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000, quantity=2)
        order.record_price_entry(
            line.id,
            PriceEntryType.FULL_REFUND,
            PriceStatus.AWAITING_PAYMENT,
            amount=5000,
            quantity=2,
            gateway_refund_id="re_001",
        )

        head = order.price_log_for(line.id).current()
        assert head.entry_type == PriceEntryType.FULL_REFUND.value
        assert head.gateway_refund_id == "re_001"
        assert head.seq == 2


class TestLinesAwaitingCharge:
    def test_only_the_merchants_awaiting_lines_are_selected(self):
        order = _make_order()
        mine = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000)
        paid = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 2000)
        order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-002", 3000)
        order.prepend_paid_status(paid.id, PaidStatus.PAID, triggered_by="STRIPE")

        selected = order.lines_awaiting_charge("merchant-001")
        assert [str(line.id) for line in selected] == [str(mine.id)]


class TestReferences:
    def test_inherited_reference_resolves_to_order_reference(self):
        order = _make_order()
        line = order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 2000, reference=INHERIT)

        assert line.inherits_reference is True
        assert order.reference_for(line) == RecordRef(container="cases", id="case-001", partition="case-001")

    def test_concrete_reference_is_kept(self):
        order = _make_order()
        booking = RecordRef(container=Container.BOOKINGS.value, id="booking-001")
        line = order.add_line(LineTarget.TOUR_BOOKING, "merchant-001", 9000, reference=booking, ticket_id="T1")

        assert order.reference_for(line) == booking

    def test_inherit_without_order_reference_is_none(self):
        order = Order.create(customer_email="ada@example.com")
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000)

        assert order.reference_for(line) is None


class TestRestorePrice:
    def test_provisional_price_is_replaced(self):
        order = _make_order()
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 100, price_provisional=True)

        assert order.restore_price(line.id, 4200) is True
        assert order.line(line.id).price_amount == 4200
        assert order.line(line.id).price_provisional is False
        assert order.price_log_for(line.id).current().amount == 4200

    def test_confirmed_price_is_left_alone(self):
        order = _make_order()
        line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 100)

        assert order.restore_price(line.id, 4200) is False
        assert order.line(line.id).price_amount == 100
