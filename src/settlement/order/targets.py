"""Line targets resolved into typed values.

Each kind carries only what its settlement step needs. ``resolve_line`` is
called once per line after inheritance has been resolved.
"""

import json
from dataclasses import dataclass

from settlement.order.order import LineTarget
from settlement.order.references import RecordRef


@dataclass(frozen=True)
class Featuring:
    merchant_id: str
    relationship_id: str | None
    share_bps: int


@dataclass(frozen=True)
class TourBooking:
    booking: RecordRef
    session_id: str | None
    ticket_id: str | None
    quantity: int


@dataclass(frozen=True)
class CaseCreate:
    case: RecordRef


@dataclass(frozen=True)
class CaseOfferRelease:
    offer: RecordRef


@dataclass(frozen=True)
class CaseOfferClose:
    offer: RecordRef


@dataclass(frozen=True)
class CaseInvoice:
    case: RecordRef


@dataclass(frozen=True)
class ProductPurchase:
    listing_id: str | None
    variant_id: str | None
    quantity: int


@dataclass(frozen=True)
class ServicePurchase:
    listing_id: str | None
    amount: int
    currency: str
    quantity: int
    questionnaire: dict
    featuring: Featuring | None


@dataclass(frozen=True)
class ListingFee:
    listing: RecordRef


def _featuring(line) -> Featuring | None:
    if not line.featuring_merchant_id:
        return None
    return Featuring(
        merchant_id=line.featuring_merchant_id,
        relationship_id=line.featuring_relationship_id,
        share_bps=line.featuring_share_bps or 0,
    )


def resolve_line(line, reference: RecordRef | None):
    """Return the typed value for ``line`` given its concrete reference."""
    target = LineTarget(line.target)

    if target == LineTarget.TOUR_BOOKING:
        return TourBooking(
            booking=reference,
            session_id=line.session_id,
            ticket_id=line.ticket_id,
            quantity=line.quantity or 0,
        )
    if target == LineTarget.CASE_CREATE:
        return CaseCreate(case=reference)
    if target == LineTarget.CASE_OFFER_RELEASE:
        return CaseOfferRelease(offer=reference)
    if target == LineTarget.CASE_OFFER_CLOSE:
        return CaseOfferClose(offer=reference)
    if target == LineTarget.CASE_INVOICE_LINE:
        return CaseInvoice(case=reference)
    if target == LineTarget.PRODUCT_PURCHASE:
        return ProductPurchase(
            listing_id=line.listing_id,
            variant_id=line.variant_id,
            quantity=line.quantity or 0,
        )
    if target == LineTarget.SERVICE_PURCHASE:
        return ServicePurchase(
            listing_id=line.listing_id or (reference.id if reference else None),
            amount=line.price_amount or 0,
            currency=line.price_currency,
            quantity=line.quantity or 1,
            questionnaire=json.loads(line.questionnaire) if line.questionnaire else {},
            featuring=_featuring(line),
        )
    return ListingFee(listing=reference)
