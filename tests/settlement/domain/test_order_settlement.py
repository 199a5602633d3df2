"""Domain tests for recording payments and credits on an order."""

import json

import pytest
from protean.exceptions import ValidationError
from settlement.order.events import CreditIssued, LinesSettled, OrderFullySettled, OrderLinesVoided
from settlement.order.order import (
    LineTarget,
    Order,
    PaidStatus,
    PriceEntryType,
    PriceStatus,
    classify_refund,
)
from settlement.order.references import Container, RecordRef


def _breakdown(paid=5000, application=775, stripe=225, net=4000):
    return {
        "charge": {"paid": paid},
        "payout": {
            "application_fees": {"total": application},
            "stripe_fees": {"total": stripe},
            "summary": {"receives": net},
        },
    }


def _make_order_with_line(**line_overrides):
    order = Order.create(customer_email="ada@example.com", id="O1")
    defaults = {"quantity": 2, "variant_id": "V1"}
    defaults.update(line_overrides)
    line = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 5000, **defaults)
    return order, line


def _settle(order, line_ids, code="PYMT-AAAAAAAA"):
    return order.settle_lines(
        line_ids,
        code=code,
        amount_paid=5000,
        currency="aud",
        breakdown=_breakdown(),
        merchant_id="merchant-001",
        gateway_charge_id="ch_001",
    )


class TestSettleLines:
    def test_lines_become_paid_and_priced_successfully(self):
        order, line = _make_order_with_line()
        payment = _settle(order, [line.id])

        head = order.price_log_for(line.id).current()
        assert head.status == PriceStatus.SUCCESS.value
        assert head.payment_id == str(payment.id)
        assert order.current_paid_status(line.id) == PaidStatus.PAID.value

    def test_payment_carries_fee_totals(self):
        order, line = _make_order_with_line()
        payment = _settle(order, [line.id])

        assert payment.currency == "AUD"
        assert payment.amount_paid == 5000
        assert payment.application_fee_total == 775
        assert payment.stripe_fee_total == 225
        assert payment.net_payout == 4000
        assert payment.fee_breakdown["charge"]["paid"] == 5000

    def test_newest_payment_heads_history(self):
        order, first = _make_order_with_line()
        second = order.add_line(LineTarget.PRODUCT_PURCHASE, "merchant-001", 1000)
        _settle(order, [first.id], code="PYMT-AAAAAAAA")
        _settle(order, [second.id], code="PYMT-BBBBBBBB")

        assert order.payment_history().current().code == "PYMT-BBBBBBBB"

    def test_settling_a_paid_line_is_rejected(self):
        order, line = _make_order_with_line()
        _settle(order, [line.id])

        with pytest.raises(ValidationError):
            _settle(order, [line.id], code="PYMT-CCCCCCCC")

    def test_settling_nothing_is_rejected(self):
        order, _ = _make_order_with_line()
        with pytest.raises(ValidationError):
            _settle(order, [])

    def test_raises_lines_settled_event(self):
        order, line = _make_order_with_line()
        _settle(order, [line.id])

        events = [e for e in order._events if isinstance(e, LinesSettled)]
        assert len(events) == 1
        assert json.loads(events[0].line_ids) == [str(line.id)]

    def test_fully_paid_only_when_every_line_is_paid(self):
        order, first = _make_order_with_line()
        second = order.add_line(LineTarget.SERVICE_PURCHASE, "merchant-002", 9000)
        _settle(order, [first.id])
        assert order.is_fully_paid() is False

        order.prepend_paid_status(second.id, PaidStatus.PAID, triggered_by="STRIPE")
        assert order.is_fully_paid() is True

        order.mark_fully_settled()
        assert any(isinstance(e, OrderFullySettled) for e in order._events)


class TestClassifyRefund:
    def _entries(self, *types):
        order, line = _make_order_with_line()
        return [
            order.record_price_entry(line.id, t, PriceStatus.AWAITING_PAYMENT, amount=100, gateway_refund_id="re")
            for t in types
        ]

    def test_all_full_refunds_is_full(self):
        entries = self._entries(PriceEntryType.FULL_REFUND, PriceEntryType.FULL_REFUND)
        assert classify_refund(entries) == PaidStatus.FULL_REFUND

    def test_any_partial_refund_is_partial(self):
        entries = self._entries(PriceEntryType.FULL_REFUND, PriceEntryType.PARTIAL_REFUND)
        assert classify_refund(entries) == PaidStatus.PARTIAL_REFUND


class TestApplyRefund:
    def _refundable(self, entry_type=PriceEntryType.FULL_REFUND, tax=455):
        order, line = _make_order_with_line()
        _settle(order, [line.id])
        order.record_price_entry(
            line.id,
            entry_type,
            PriceStatus.AWAITING_PAYMENT,
            amount=5000,
            quantity=-2,
            tax_amount=tax,
            gateway_refund_id="re_001",
        )
        return order, line

    def test_credit_is_net_of_tax(self):
        order, _ = self._refundable()
        credit, matches = order.apply_refund("re_001", code="CR-AAAAAAAA", amount=5000, currency="aud")

        assert credit.amount == 4545
        assert credit.tax == 455
        assert credit.currency == "AUD"
        assert len(matches) == 1

    def test_entry_points_at_credit_instead_of_gateway_refund(self):
        order, line = self._refundable()
        credit, _ = order.apply_refund("re_001", code="CR-AAAAAAAA", amount=5000, currency="aud")

        head = order.price_log_for(line.id).current()
        assert head.status == PriceStatus.SUCCESS.value
        assert head.gateway_refund_id is None
        assert head.credit_id == str(credit.id)
        assert order.current_paid_status(line.id) == PaidStatus.FULL_REFUND.value

    def test_partial_refund_label(self):
        order, line = self._refundable(entry_type=PriceEntryType.PARTIAL_REFUND)
        order.apply_refund("re_001", code="CR-AAAAAAAA", amount=2500, currency="aud")

        assert order.current_paid_status(line.id) == PaidStatus.PARTIAL_REFUND.value

    def test_second_application_is_a_no_op(self):
        order, _ = self._refundable()
        order.apply_refund("re_001", code="CR-AAAAAAAA", amount=5000, currency="aud")
        credit, matches = order.apply_refund("re_001", code="CR-BBBBBBBB", amount=5000, currency="aud")

        assert credit is None
        assert matches == []
        assert len(order.credits) == 1

    def test_raises_credit_issued_event(self):
        order, _ = self._refundable()
        order.apply_refund("re_001", code="CR-AAAAAAAA", amount=5000, currency="aud")

        events = [e for e in order._events if isinstance(e, CreditIssued)]
        assert events[0].classification == PaidStatus.FULL_REFUND.value


class TestVoidUnpaidLines:
    def test_unpaid_invoice_lines_are_voided_with_grace_ttl(self):
        order = Order.create(customer_email="ada@example.com")
        unpaid = order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 2000)
        paid = order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 3000)
        order.prepend_paid_status(paid.id, PaidStatus.PAID, triggered_by="STRIPE")

        voided = order.void_unpaid_lines(LineTarget.CASE_INVOICE_LINE, ttl_seconds=86400)

        assert voided == [str(unpaid.id)]
        assert order.current_paid_status(unpaid.id) == PaidStatus.VOID.value
        assert order.current_paid_status(paid.id) == PaidStatus.PAID.value
        assert order.ttl == 86400
        assert any(isinstance(e, OrderLinesVoided) for e in order._events)

    def test_only_lines_for_the_given_record_are_voided(self):
        case = RecordRef(container=Container.CASES.value, id="case-001")
        order = Order.create(customer_email="ada@example.com", reference=case)
        inherited = order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 2000)
        elsewhere = order.add_line(
            LineTarget.CASE_INVOICE_LINE,
            "merchant-001",
            3000,
            reference=RecordRef(container=Container.CASES.value, id="case-002"),
        )

        voided = order.void_unpaid_lines(LineTarget.CASE_INVOICE_LINE, ttl_seconds=86400, ref_id="case-001")

        assert voided == [str(inherited.id)]
        assert order.current_paid_status(elsewhere.id) == PaidStatus.AWAITING_CHARGE.value

    def test_voiding_twice_does_not_stack_entries(self):
        order = Order.create(customer_email="ada@example.com")
        line = order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 2000)
        order.void_unpaid_lines(LineTarget.CASE_INVOICE_LINE, ttl_seconds=86400)

        assert order.void_unpaid_lines(LineTarget.CASE_INVOICE_LINE, ttl_seconds=86400) == []
        assert len(order.paid_status_for(line.id)) == 2

    def test_clear_ttl(self):
        order = Order.create(customer_email="ada@example.com", ttl=3600)
        order.clear_ttl()
        assert order.ttl is None
