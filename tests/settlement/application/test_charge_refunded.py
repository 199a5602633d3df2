"""Application tests for reconciling refunded charges into credits."""

import json
from unittest.mock import patch

import pytest
from protean import current_domain
from settlement.booking.booking import BookedTicket, Booking, TourSession
from settlement.case.case import Case
from settlement.catalog.listing import Listing, ListingKind, TicketVariant
from settlement.charge.captured import ProcessChargeCaptured
from settlement.charge.refunded import ProcessChargeRefunded
from settlement.exceptions import CustomerNotFound
from settlement.gateway.port import RefundDetails
from settlement.inventory.inventory import VariantInventory
from settlement.notifications.notification import UserNotification
from settlement.notifications.order_events import format_money
from settlement.notifications.templates import EmailTemplate, Topic
from settlement.order.order import LineTarget, PaidStatus, PriceEntryType, PriceStatus
from settlement.order.references import Container, RecordRef


def refund(order_id="O1", charge_id="ch_001", event_id=None):
    return current_domain.process(
        ProcessChargeRefunded(
            order_id=order_id,
            customer_email="ada@example.com",
            charge_id=charge_id,
            event_id=event_id,
        ),
        asynchronous=False,
    )


@pytest.fixture()
def request_refund(load_order, save):
    """Record a refund request against the first line of an order."""

    def _request(
        refund_id="re_001",
        entry_type=PriceEntryType.FULL_REFUND,
        amount=-5000,
        quantity=-2,
        tax_amount=455,
        order_id="O1",
    ):
        order = load_order(order_id)
        line = order.lines[0]
        order.record_price_entry(
            line.id,
            entry_type,
            PriceStatus.AWAITING_PAYMENT,
            amount=amount,
            quantity=quantity,
            currency="AUD",
            tax_amount=tax_amount,
            gateway_refund_id=refund_id,
        )
        save(order)
        return str(line.id)

    return _request


@pytest.fixture()
def gateway_refund(gateway):
    def _refund(refund_id="re_001", amount=5000, status="succeeded", charge_id="ch_001"):
        return gateway.register_refund(
            RefundDetails(
                id=refund_id,
                charge_id=charge_id,
                amount=amount,
                currency="aud",
                status=status,
                destination_details={"type": "card", "card": {"reference": "ARN123"}},
            )
        )

    return _refund


def test_format_money():
    assert format_money(5000, "aud") == "AUD 50.00"
    assert format_money(4545, "AUD") == "AUD 45.45"
    assert format_money(5, None) == "0.05"


class TestProductRefund:
    @pytest.fixture(autouse=True)
    def setup(self, merchant, customer, stock, charge, product_order, request_refund, gateway_refund):
        stock(qty_on_hand=10, qty_committed=2)
        charge()
        product_order()
        current_domain.process(
            ProcessChargeCaptured(
                order_id="O1",
                customer_email="ada@example.com",
                merchant_id="merchant-001",
                charge_id="ch_001",
                tax_amount=455,
            ),
            asynchronous=False,
        )
        self.line_id = request_refund()
        gateway_refund()

    def test_credit_is_issued_net_of_tax(self, load_order):
        outcome = refund()

        order = load_order()
        assert outcome["status"] == "refunded"
        assert len(order.credits) == 1
        credit = order.credits[0]
        assert outcome["credit_ids"] == [str(credit.id)]
        assert credit.code.startswith("CR-")
        assert credit.amount == 4545
        assert credit.tax == 455
        assert credit.currency == "AUD"
        assert credit.gateway_refund_id == "re_001"
        assert credit.gateway_charge_id == "ch_001"
        assert json.loads(credit.destination)["card"]["reference"] == "ARN123"

    def test_refund_entry_is_settled(self, load_order):
        refund()

        order = load_order()
        entry = order.price_log_for(self.line_id).current()
        credit = order.credits[0]
        assert entry.status == PriceStatus.SUCCESS.value
        assert entry.credit_id == str(credit.id)
        assert entry.gateway_refund_id is None
        assert order.current_paid_status(self.line_id) == PaidStatus.FULL_REFUND.value

    def test_inventory_is_restored(self):
        assert current_domain.repository_for(VariantInventory).get("invv:V1").qty_on_hand == 8

        refund()

        assert current_domain.repository_for(VariantInventory).get("invv:V1").qty_on_hand == 10

    def test_customer_group_and_user_are_notified(self, realtime):
        refund()

        orders = realtime.messages_for(Topic.ORDERS.value)
        assert orders[0]["audience"] == "customer-cust-001"
        assert orders[0]["payload"] == {"id": "O1", "customerEmail": "ada@example.com"}

        notices = realtime.messages_for(Topic.NOTIFICATIONS.value)
        by_audience = {m["audience"]: m["payload"]["message"] for m in notices}
        assert by_audience["customer-cust-001"] == (
            "Payment of AUD 50.00 for order ORD-0001 has been refunded successfully."
        )
        assert by_audience["user-001"] == "Refund of AUD 50.00 processed for Amethyst cluster."

        stored = current_domain.repository_for(UserNotification)._dao.query.all().items
        assert len(stored) == 2

    def test_nothing_is_announced_when_the_refund_does_not_commit(self, realtime):
        with patch("settlement.charge.refunded.record_processed", side_effect=RuntimeError("ledger unavailable")):
            with pytest.raises(RuntimeError):
                refund(event_id="evt_re_001")

        assert realtime.messages_for(Topic.ORDERS.value) == []
        assert realtime.messages_for(Topic.NOTIFICATIONS.value) == []

    def test_replay_issues_no_second_credit(self, load_order):
        refund()
        outcome = refund()

        assert outcome["status"] == "nothing_to_reconcile"
        assert len(load_order().credits) == 1
        assert current_domain.repository_for(VariantInventory).get("invv:V1").qty_on_hand == 10

    def test_duplicate_event_id_is_not_reprocessed(self, gateway):
        first = refund(event_id="evt_re_001")
        calls = len(gateway.calls)
        second = refund(event_id="evt_re_001")

        assert second["duplicate"] is True
        assert second["credit_ids"] == first["credit_ids"]
        assert len(gateway.calls) == calls


class TestRefundSelection:
    @pytest.fixture(autouse=True)
    def setup(self, customer, product_order):
        product_order()

    def test_pending_refunds_are_skipped(self, request_refund, gateway_refund, load_order):
        line_id = request_refund()
        gateway_refund(status="pending")

        outcome = refund()

        order = load_order()
        assert outcome["status"] == "nothing_to_reconcile"
        assert len(order.credits) == 0
        assert order.price_log_for(line_id).current().gateway_refund_id == "re_001"

    def test_unknown_refunds_are_ignored(self, gateway_refund):
        gateway_refund(refund_id="re_unrelated")

        assert refund()["status"] == "nothing_to_reconcile"

    def test_partial_refund_classification(self, request_refund, gateway_refund, load_order):
        line_id = request_refund(entry_type=PriceEntryType.PARTIAL_REFUND, amount=-2000, quantity=0, tax_amount=0)
        gateway_refund(amount=2000)

        refund()

        order = load_order()
        assert order.current_paid_status(line_id) == PaidStatus.PARTIAL_REFUND.value
        assert order.credits[0].amount == 2000

    def test_two_refunds_of_one_charge(self, request_refund, gateway_refund, load_order):
        partial = {"entry_type": PriceEntryType.PARTIAL_REFUND, "quantity": 0, "tax_amount": 0}
        request_refund(refund_id="re_001", amount=-1000, **partial)
        request_refund(refund_id="re_002", amount=-1500, **partial)
        gateway_refund(refund_id="re_001", amount=1000)
        gateway_refund(refund_id="re_002", amount=1500)

        outcome = refund()

        order = load_order()
        assert len(outcome["credit_ids"]) == 2
        assert sorted(c.amount for c in order.credits) == [1000, 1500]
        assert len({c.code for c in order.credits}) == 2


def test_unknown_customer(product_order, request_refund, gateway_refund, load_order):
    product_order()
    request_refund()
    gateway_refund()

    with pytest.raises(CustomerNotFound):
        refund()

    assert len(load_order().credits) == 0


def test_case_contact_is_emailed(customer, new_order, save, request_refund, gateway_refund, email):
    current_domain.repository_for(Case).add(
        Case(id="case-001", code="CASE-0001", contact_email="contact@example.com")
    )
    order = new_order(reference=RecordRef(container=Container.CASES.value, id="case-001"))
    order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 5000, descriptor="Reading fee")
    save(order)
    request_refund(quantity=-1, tax_amount=0)
    gateway_refund()

    outcome = refund()

    assert outcome["failed_effects"] == []
    sent = [e for e in email.sent_emails if e["template"] == EmailTemplate.CASE_REFUND_SUCCESS_CUSTOMER.value]
    assert sent[0]["to"] == "contact@example.com"
    assert sent[0]["variables"] == {"case": {"code": "CASE-0001"}, "order": {"code": "ORD-0001"}}


def test_missing_case_does_not_block_the_refund(
    customer, new_order, save, request_refund, gateway_refund, email, load_order
):
    order = new_order(reference=RecordRef(container=Container.CASES.value, id="case-404"))
    order.add_line(LineTarget.CASE_INVOICE_LINE, "merchant-001", 5000)
    save(order)
    request_refund(quantity=-1, tax_amount=0)
    gateway_refund()

    outcome = refund()

    assert outcome["status"] == "refunded"
    assert len(load_order().credits) == 1
    assert EmailTemplate.CASE_REFUND_SUCCESS_CUSTOMER.value not in email.templates_sent()


class TestTourRefund:
    def _tour(self):
        listing = Listing(id="tour-001", vendor_id="merchant-001", kind=ListingKind.TOUR.value)
        listing.add_ticket_variants(TicketVariant(id="TV1", name="Adult", qty_on_hand=5, qty_committed=0))
        current_domain.repository_for(Listing).add(listing)
        current_domain.repository_for(TourSession).add(TourSession(id="S1", listing_id="tour-001"))
        booking = Booking(id="booking-001", session_id="S1")
        booking.add_tickets(BookedTicket(ticket_id="T1", variant_id="TV1", quantity=2))
        current_domain.repository_for(Booking).add(booking)

    def test_ticket_stock_is_restored(self, customer, new_order, save, request_refund, gateway_refund):
        self._tour()
        order = new_order()
        order.add_line(
            LineTarget.TOUR_BOOKING,
            "merchant-001",
            2500,
            quantity=2,
            reference=RecordRef(container=Container.BOOKINGS.value, id="booking-001"),
            ticket_id="T1",
        )
        save(order)
        request_refund(quantity=-1, tax_amount=0, amount=-2500)
        gateway_refund(amount=2500)

        outcome = refund()

        variant = current_domain.repository_for(Listing).get("tour-001").ticket_variant("TV1")
        assert outcome["failed_effects"] == []
        assert variant.qty_on_hand == 6

    def test_tour_line_without_booking_is_skipped(self, customer, new_order, save, request_refund, gateway_refund):
        order = new_order()
        order.add_line(LineTarget.TOUR_BOOKING, "merchant-001", 2500, quantity=1, ticket_id="T1")
        save(order)
        request_refund(quantity=-1, tax_amount=0, amount=-2500)
        gateway_refund(amount=2500)

        outcome = refund()

        assert outcome["status"] == "refunded"
        assert outcome["failed_effects"] == []
