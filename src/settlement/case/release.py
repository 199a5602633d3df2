"""Releasing a case back to the pool, and settling free release offers.

A paid (or free) release offer clears the case's managing merchants. Case
invoices still unpaid on other orders for the same case are voided and the
orders given a short grace ttl so in-flight readers are not broken. The
announcements follow from the CaseReleased event once the release commits.
"""

from dataclasses import dataclass

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from settlement.case.case import Case, CaseOffer, OfferType
from settlement.config import get_settings
from settlement.domain import logger, settlement
from settlement.exceptions import RecordNotFound
from settlement.order.order import LineTarget
from settlement.order.store import OrderStore


@dataclass(frozen=True)
class CaseRelease:
    case_id: str
    previous_merchants: list
    voided_orders: dict


def load_case(case_id) -> Case:
    try:
        return current_domain.repository_for(Case).get(case_id)
    except ObjectNotFoundError as exc:
        raise RecordNotFound(f"Case {case_id} not found", case_id=case_id) from exc


def load_offer(offer_id) -> CaseOffer:
    try:
        return current_domain.repository_for(CaseOffer).get(offer_id)
    except ObjectNotFoundError as exc:
        raise RecordNotFound(f"Case offer {offer_id} not found", offer_id=offer_id) from exc


def void_outstanding_invoices(case_id, exclude_order_id=None) -> dict:
    """Void unpaid case-invoice lines on every order for ``case_id``."""
    store = OrderStore()
    ttl = get_settings().void_grace_ttl_seconds
    voided = {}
    for order in store.orders_for_reference(case_id, target=LineTarget.CASE_INVOICE_LINE):
        if exclude_order_id is not None and str(order.id) == str(exclude_order_id):
            continue
        line_ids = order.void_unpaid_lines(LineTarget.CASE_INVOICE_LINE, ttl, ref_id=case_id)
        if line_ids:
            store.save(order)
            voided[str(order.id)] = line_ids
            logger.info("case_invoice_voided", case_id=str(case_id), order_id=str(order.id), line_ids=line_ids)
    return voided


def release_case(case: Case, offer: CaseOffer, exclude_order_id=None) -> CaseRelease:
    previous = case.release(offer_id=str(offer.id))
    offer.accept()
    offer.mark_paid()
    current_domain.repository_for(Case).add(case)
    current_domain.repository_for(CaseOffer).add(offer)
    voided = void_outstanding_invoices(case.id, exclude_order_id=exclude_order_id)
    return CaseRelease(case_id=str(case.id), previous_merchants=previous, voided_orders=voided)


@settlement.command(part_of="CaseOffer")
class SettleFreeCaseOffer:
    """Release a case through an offer that costs nothing."""

    offer_id = Identifier(required=True)


@settlement.command_handler(part_of=CaseOffer)
class FreeCaseOfferHandler:
    @handle(SettleFreeCaseOffer)
    def settle_free_offer(self, command):
        offer = load_offer(command.offer_id)
        if offer.offer_type != OfferType.RELEASE.value:
            raise ValidationError({"offer_type": ["Only release offers can be settled without payment"]})
        if offer.price_amount:
            raise ValidationError({"price_amount": ["Offer has a price and must be paid through the gateway"]})
        if offer.accepted_on is not None and offer.paid:
            return {"status": "already_settled", "case_id": offer.case_id}

        case = load_case(offer.case_id)
        release = release_case(case, offer)
        logger.info("free_case_offer_settled", offer_id=str(offer.id), case_id=str(case.id))
        return {"status": "released", "case_id": str(case.id), "voided_orders": release.voided_orders}
