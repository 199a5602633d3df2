"""Settlement of a captured charge.

Handles the gateway's "charge captured" event for one merchant's share of an
order: selects that merchant's lines still awaiting the charge, applies the
per-target effects (tickets, cases, listings), records one Payment with the
fee decomposition, adjusts inventory and materialises service bookings.
Notifications follow from the events the settlement raises, once it commits.

Replaying the event is safe: lines no longer awaiting the charge are not
selected again, and a delivery whose event id is already in the processed
ledger returns the recorded outcome without touching anything.
"""

import json
from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from settlement.booking.booking import Booking, ServiceBooking
from settlement.case.case import Case, CaseOffer
from settlement.case.release import load_case, load_offer, release_case
from settlement.catalog.listing import Listing
from settlement.charge.effects import failures, run_effect
from settlement.charge.featuring import submit_featuring_transfer
from settlement.charge.ledger import processed_outcome, record_processed
from settlement.config import get_settings
from settlement.domain import logger, settlement
from settlement.exceptions import MerchantAccountMissing, RecordNotFound
from settlement.fees.decomposition import ShippingCharge, decompose_fees
from settlement.fees.schedule import derive_fees
from settlement.gateway import get_gateway
from settlement.inventory.reconciler import InventoryReconciler
from settlement.order.codes import unique_code
from settlement.order.order import Order
from settlement.order.pricing import restore_prices
from settlement.order.store import OrderStore
from settlement.order.targets import (
    CaseCreate,
    CaseOfferClose,
    CaseOfferRelease,
    ListingFee,
    ProductPurchase,
    ServicePurchase,
    TourBooking,
    resolve_line,
)
from settlement.party.party import Vendor
from settlement.utils.logging import add_context, clear_context

CHARGE_CAPTURED = "charge.captured"


def _required(reference, line):
    if reference is None:
        raise RecordNotFound(f"Line {line.id} has no record reference", line_id=str(line.id), target=line.target)
    return reference


@settlement.command(part_of="Order")
class ProcessChargeCaptured:
    """Settle a merchant's lines on an order against a captured charge."""

    event_id = String(max_length=255)
    order_id = Identifier(required=True)
    customer_email = String(required=True, max_length=254)
    merchant_id = String(required=True, max_length=100)
    charge_id = String(required=True, max_length=255)
    payment_intent_id = String(max_length=255)
    account = String(max_length=255)
    tax_amount = Integer(default=0)
    shipping_subtotal = Integer(default=0)
    shipping_tax = Integer(default=0)
    shipping_fee = Integer(default=0)
    shipping_currency = String(max_length=3)


class SettlementProcessor:
    def __init__(self) -> None:
        self.store = OrderStore()
        self.reconciler = InventoryReconciler()
        self.settings = get_settings()
        self._effects = []

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def process(self, command) -> dict:
        previous = processed_outcome(command.event_id)
        if previous is not None:
            logger.info("gateway_event_already_processed", event_id=command.event_id)
            return {**previous, "duplicate": True}

        add_context(event_id=command.event_id, order_id=command.order_id, merchant_id=command.merchant_id)
        try:
            outcome = self._settle(command)
            record_processed(command.event_id, CHARGE_CAPTURED, command.order_id, outcome)
            return outcome
        finally:
            clear_context()

    def _settle(self, command) -> dict:
        order = self.store.load(command.order_id)
        lines = order.lines_awaiting_charge(command.merchant_id)
        if not lines:
            logger.info("no_lines_awaiting_charge", order_id=str(order.id))
            return {"status": "nothing_to_settle", "order_id": str(order.id)}

        account = self._merchant_account(command.merchant_id)
        charge = get_gateway().retrieve_charge(command.charge_id, account)

        restore_prices(order, lines)
        kinds = [(line, resolve_line(line, order.reference_for(line))) for line in lines]

        for line, kind in kinds:
            self._apply_target(order, line, kind, command, account)

        payment = self._record_payment(order, lines, charge, command, account)
        order.clear_ttl()

        for line, kind in kinds:
            self._apply_line_effects(order, line, kind, command)

        fully_settled = order.is_fully_paid()
        if fully_settled:
            order.mark_fully_settled()
            order.summarize_shipments()

        self.store.save(order)
        logger.info(
            "order_lines_settled",
            order_id=str(order.id),
            payment_code=payment.code,
            line_count=len(lines),
            fully_settled=fully_settled,
        )

        return {
            "status": "settled",
            "order_id": str(order.id),
            "payment_id": str(payment.id),
            "payment_code": payment.code,
            "line_ids": [str(line.id) for line in lines],
            "fully_settled": fully_settled,
            "failed_effects": failures(self._effects),
        }

    def _merchant_account(self, merchant_id) -> str | None:
        """Connected account of the merchant; the platform settles on its own account."""
        if merchant_id == self.settings.platform_merchant_id:
            return None
        try:
            vendor = current_domain.repository_for(Vendor).get(merchant_id)
        except ObjectNotFoundError as exc:
            raise MerchantAccountMissing(f"Merchant {merchant_id} not found", merchant_id=merchant_id) from exc
        if not vendor.stripe_account_id:
            raise MerchantAccountMissing(
                f"Merchant {merchant_id} has no connected payment account", merchant_id=merchant_id
            )
        return vendor.stripe_account_id

    # -------------------------------------------------------------------
    # Per-target effects on the paid-for records
    # -------------------------------------------------------------------
    def _apply_target(self, order, line, kind, command, account):
        if isinstance(kind, TourBooking):
            self._effects.append(
                run_effect(
                    "mark_ticket_paid",
                    lambda: self._mark_ticket_paid(kind, command, account),
                    line_id=str(line.id),
                    ticket_id=kind.ticket_id,
                )
            )
        elif isinstance(kind, CaseOfferRelease):
            offer = load_offer(_required(kind.offer, line).id)
            case = load_case(offer.case_id)
            release_case(case, offer, exclude_order_id=order.id)
        elif isinstance(kind, CaseOfferClose):
            offer = load_offer(_required(kind.offer, line).id)
            case = load_case(offer.case_id)
            case.close(offer)
            offer.mark_paid()
            current_domain.repository_for(Case).add(case)
            current_domain.repository_for(CaseOffer).add(offer)
        elif isinstance(kind, CaseCreate):
            case = load_case(_required(kind.case, line).id)
            case.open_after_payment()
            current_domain.repository_for(Case).add(case)
        elif isinstance(kind, ListingFee):
            _required(kind.listing, line)
            self._clear_listing_fee(kind)

    def _mark_ticket_paid(self, kind, command, account):
        if kind.booking is None:
            raise RecordNotFound("Tour line has no booking reference")
        repo = current_domain.repository_for(Booking)
        try:
            booking = repo.get(kind.booking.id)
        except ObjectNotFoundError as exc:
            raise RecordNotFound(f"Booking {kind.booking.id} not found", booking_id=kind.booking.id) from exc
        if booking.ticket(kind.ticket_id) is None:
            raise RecordNotFound(f"Ticket {kind.ticket_id} not found", booking_id=kind.booking.id)
        if booking.mark_ticket_paid(kind.ticket_id, command.charge_id, command.payment_intent_id, account):
            repo.add(booking)

    def _clear_listing_fee(self, kind):
        repo = current_domain.repository_for(Listing)
        try:
            listing = repo.get(kind.listing.id)
        except ObjectNotFoundError as exc:
            raise RecordNotFound(f"Listing {kind.listing.id} not found", listing_id=kind.listing.id) from exc
        if listing.clear_listing_fee_hold():
            repo.add(listing)

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def _record_payment(self, order, lines, charge, command, account):
        shipping = None
        if command.shipping_subtotal:
            shipping = ShippingCharge(
                subtotal=command.shipping_subtotal,
                tax=command.shipping_tax or 0,
                gateway_fee=command.shipping_fee or 0,
                currency=(command.shipping_currency or charge.currency).upper(),
            )

        breakdown = decompose_fees(
            amount=charge.amount,
            currency=charge.currency,
            balance_net=charge.balance_net,
            fee_details=charge.fee_details,
            platform_fees=derive_fees(command.merchant_id, lines),
            tax_amount=int(command.tax_amount or 0),
            shipping=shipping,
        )
        code = unique_code(
            "PYMT",
            [p.code for p in order.payments],
            attempts=self.settings.payment_code_attempts,
        )
        return order.settle_lines(
            [line.id for line in lines],
            code=code,
            amount_paid=charge.amount,
            currency=charge.currency,
            breakdown=breakdown,
            merchant_id=command.merchant_id,
            gateway_charge_id=charge.id,
            payment_intent_id=command.payment_intent_id or charge.payment_intent_id,
            account=account,
            card_brand=charge.card_brand,
            card_last4=charge.card_last4,
            method_description=charge.method_description,
        )

    # -------------------------------------------------------------------
    # Inventory, service bookings and featuring transfers
    # -------------------------------------------------------------------
    def _apply_line_effects(self, order, line, kind, command):
        order_id = str(order.id)
        if isinstance(kind, ProductPurchase) and kind.variant_id:
            self._effects.append(
                run_effect(
                    "decrement_inventory",
                    lambda: self.reconciler.decrement(kind.variant_id, kind.quantity, source_order_id=order_id),
                    line_id=str(line.id),
                    variant_id=kind.variant_id,
                )
            )
        elif isinstance(kind, TourBooking) and kind.booking is not None:
            self._effects.append(
                run_effect(
                    "decrement_ticket_inventory",
                    lambda: self.reconciler.decrement_ticket(
                        kind.booking.id, kind.ticket_id, kind.quantity, source_order_id=order_id
                    ),
                    line_id=str(line.id),
                    ticket_id=kind.ticket_id,
                )
            )
        elif isinstance(kind, ServicePurchase):
            self._book_service(order, line, kind, command)

    def _book_service(self, order, line, kind, command):
        repo = current_domain.repository_for(ServiceBooking)
        booking_id = ServiceBooking.identity_for(order.id, line.id)
        try:
            repo.get(booking_id)
            logger.info("service_booking_exists", service_booking_id=booking_id)
            return
        except ObjectNotFoundError:
            pass

        booking = ServiceBooking(
            id=booking_id,
            order_id=str(order.id),
            line_id=str(line.id),
            customer_email=order.customer_email,
            vendor_id=line.merchant_id,
            listing_id=kind.listing_id,
            price_amount=kind.amount,
            currency=kind.currency,
            quantity=kind.quantity,
            payment_intent_id=command.payment_intent_id,
            questionnaire=json.dumps(kind.questionnaire),
            created_at=datetime.now(UTC),
        )

        if kind.featuring is not None:
            result = run_effect(
                "featuring_transfer",
                lambda: submit_featuring_transfer(order.id, booking_id, kind, line.merchant_id),
                line_id=str(line.id),
                featuring_merchant_id=kind.featuring.merchant_id,
            )
            self._effects.append(result)
            if result.ok and result.value:
                booking.featuring_transfer_id = result.value

        repo.add(booking)


@settlement.command_handler(part_of=Order)
class ChargeCapturedHandler:
    @handle(ProcessChargeCaptured)
    def process_charge_captured(self, command):
        return SettlementProcessor().process(command)
