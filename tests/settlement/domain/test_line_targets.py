"""Domain tests for resolving order lines into typed targets."""

import json

from settlement.order.order import LineTarget, Order
from settlement.order.references import Container, RecordRef
from settlement.order.targets import (
    CaseInvoice,
    CaseOfferRelease,
    ListingFee,
    ProductPurchase,
    ServicePurchase,
    TourBooking,
    resolve_line,
)

CASE = RecordRef(container=Container.CASES.value, id="case-001")


def _resolve(target, **line_kwargs):
    order = Order.create(customer_email="ada@example.com", reference=CASE)
    line = order.add_line(target, "merchant-001", line_kwargs.pop("amount", 1000), **line_kwargs)
    return resolve_line(line, order.reference_for(line))


class TestResolveLine:
    def test_product(self):
        kind = _resolve(LineTarget.PRODUCT_PURCHASE, variant_id="V1", quantity=3, listing_id="L1")
        assert kind == ProductPurchase(listing_id="L1", variant_id="V1", quantity=3)

    def test_tour_booking_carries_booking_and_ticket(self):
        booking = RecordRef(container=Container.BOOKINGS.value, id="booking-001")
        kind = _resolve(LineTarget.TOUR_BOOKING, reference=booking, session_id="S1", ticket_id="T1", quantity=2)

        assert isinstance(kind, TourBooking)
        assert kind.booking == booking
        assert kind.ticket_id == "T1"

    def test_inherited_case_reference(self):
        assert _resolve(LineTarget.CASE_INVOICE_LINE) == CaseInvoice(case=CASE)

    def test_offer_release(self):
        offer = RecordRef(container=Container.CASE_OFFERS.value, id="offer-001")
        assert _resolve(LineTarget.CASE_OFFER_RELEASE, reference=offer) == CaseOfferRelease(offer=offer)

    def test_listing_fee(self):
        listing = RecordRef(container=Container.LISTINGS.value, id="L1")
        assert _resolve(LineTarget.LISTING_FEE, reference=listing) == ListingFee(listing=listing)

    def test_service_with_featuring(self):
        kind = _resolve(
            LineTarget.SERVICE_PURCHASE,
            amount=9000,
            listing_id="svc-001",
            featuring_merchant_id="merchant-009",
            featuring_relationship_id="rel-1",
            featuring_share_bps=1500,
            questionnaire=json.dumps({"birth_date": "1990-01-01"}),
        )

        assert isinstance(kind, ServicePurchase)
        assert kind.amount == 9000
        assert kind.questionnaire == {"birth_date": "1990-01-01"}
        assert kind.featuring.merchant_id == "merchant-009"
        assert kind.featuring.share_bps == 1500

    def test_service_without_featuring(self):
        kind = _resolve(LineTarget.SERVICE_PURCHASE, listing_id="svc-001")
        assert kind.featuring is None
