"""Order event handler: notifications that follow committed settlements and refunds.

Listens for LinesSettled (payment confirmation, purchase, case invoice and
service emails) and RefundsReconciled (refund notices and the case contact
email). Every send is best effort: a failed delivery is logged and the
remaining ones still go out.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal

from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.booking.booking import ServiceBooking
from settlement.case.case import Case
from settlement.charge.effects import run_effect
from settlement.domain import logger, settlement
from settlement.exceptions import RecordNotFound
from settlement.notifications.channel.realtime_port import AudienceScope
from settlement.notifications.fanout import NotificationFanout
from settlement.notifications.templates import EmailTemplate, Topic
from settlement.order.events import LinesSettled, RefundsReconciled
from settlement.order.order import Order
from settlement.order.targets import CaseInvoice, ProductPurchase, ServicePurchase, TourBooking, resolve_line
from settlement.party.party import Customer, Vendor

SUMMARY_WIDTH = 20


def format_money(amount: int, currency: str | None) -> str:
    value = (Decimal(amount) / 100).quantize(Decimal("0.01"))
    return f"{(currency or '').upper()} {value}".strip()


def _truncate(text: str | None, width: int = SUMMARY_WIDTH) -> str:
    text = text or ""
    return text if len(text) <= width else text[: width - 3] + "..."


@settlement.event_handler(part_of=Order)
class OrderNotificationsHandler:
    """Tells customers and merchants about settled and refunded orders."""

    @handle(LinesSettled)
    def on_lines_settled(self, event: LinesSettled) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        settled = set(json.loads(event.line_ids))
        kinds = [
            (line, resolve_line(line, order.reference_for(line)))
            for line in order.lines
            if str(line.id) in settled
        ]
        fanout = NotificationFanout()

        for line, kind in kinds:
            if isinstance(kind, CaseInvoice):
                self._case_invoice_paid(fanout, order, kind)
            elif isinstance(kind, ServicePurchase):
                self._service_purchased(fanout, order, line)

        fanout.publish(
            Topic.PAYMENT_CONFIRMED,
            {"orderId": str(order.id), "targets": sorted({line.target for line, _ in kinds})},
            audience=str(order.customer_id or order.customer_email),
            scope=AudienceScope.USER,
        )

        if order.is_fully_paid() and any(isinstance(kind, (ProductPurchase, TourBooking)) for _, kind in kinds):
            fanout.send_email(
                EmailTemplate.PRODUCT_PURCHASE_SUCCESS_CUSTOMER,
                order.customer_email,
                {
                    "order": {
                        "code": order.code,
                        "date": datetime.now(UTC).date().isoformat(),
                        "total": order.total_paid(),
                    }
                },
            )

    @handle(RefundsReconciled)
    def on_refunds_reconciled(self, event: RefundsReconciled) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        customer = self._customer(event.customer_id, order)
        fanout = NotificationFanout()

        for credit_id in json.loads(event.credit_ids):
            credit = order.credit(credit_id)
            if credit is None:
                logger.warning("credit_missing_for_notice", order_id=str(order.id), credit_id=credit_id)
                continue
            if customer is not None:
                self._refunded(fanout, order, customer, credit, order.lines_for_credit(credit_id))

        if order.reference is not None and order.reference.is_case:
            run_effect(
                "case_refund_email",
                lambda: self._email_case_contact(fanout, order),
                case_id=order.reference.id,
            )

    # -------------------------------------------------------------------
    # Settlement notices
    # -------------------------------------------------------------------
    def _case_invoice_paid(self, fanout, order, kind):
        case_code = None
        if kind.case is not None:
            try:
                case_code = current_domain.repository_for(Case).get(kind.case.id).code
            except ObjectNotFoundError:
                logger.warning("case_for_invoice_missing", order_id=str(order.id), case_id=kind.case.id)
        fanout.send_email(
            EmailTemplate.CASE_ORDER_FEE_PAYMENT_SUCCESS_CUSTOMER,
            order.customer_email,
            {"order": {"code": order.code}, "case": {"code": case_code}},
        )

    def _service_purchased(self, fanout, order, line):
        booking_id = ServiceBooking.identity_for(order.id, line.id)
        try:
            booking = current_domain.repository_for(ServiceBooking).get(booking_id)
        except ObjectNotFoundError:
            logger.warning("service_booking_missing", order_id=str(order.id), service_booking_id=booking_id)
            return

        variables = {
            "order": {"code": order.code},
            "service": {"bookingId": str(booking.id), "descriptor": line.descriptor},
            "customer": {"email": order.customer_email},
        }
        try:
            vendor = current_domain.repository_for(Vendor).get(line.merchant_id)
        except ObjectNotFoundError:
            vendor = None
        if vendor is not None and vendor.email:
            fanout.send_email(EmailTemplate.SERVICE_PURCHASED_PRACTITIONER, vendor.email, variables)
        fanout.send_email(EmailTemplate.SERVICE_PURCHASED_CUSTOMER, order.customer_email, variables)

    # -------------------------------------------------------------------
    # Refund notices
    # -------------------------------------------------------------------
    def _customer(self, customer_id, order) -> Customer | None:
        if not customer_id:
            return None
        try:
            return current_domain.repository_for(Customer).get(customer_id)
        except ObjectNotFoundError:
            logger.warning("customer_missing_for_refund_notice", order_id=str(order.id), customer_id=customer_id)
            return None

    def _refunded(self, fanout, order, customer, credit, lines):
        group = f"customer-{customer.id}"
        amount = format_money(credit.amount + (credit.tax or 0), credit.currency)

        fanout.publish(
            Topic.ORDERS,
            {"id": str(order.id), "customerEmail": order.customer_email},
            audience=group,
        )
        fanout.notify(
            group,
            f"Payment of {amount} for order {order.code} has been refunded successfully.",
            order_id=str(order.id),
        )

        items = ", ".join(sorted({_truncate(line.descriptor) for line in lines}))
        fanout.notify(
            str(customer.user_id or customer.id),
            f"Refund of {amount} processed for {items}.",
            scope=AudienceScope.USER,
            order_id=str(order.id),
        )

    def _email_case_contact(self, fanout, order):
        try:
            case = current_domain.repository_for(Case).get(order.reference.id)
        except ObjectNotFoundError as exc:
            raise RecordNotFound(f"Case {order.reference.id} not found", case_id=order.reference.id) from exc
        if not case.contact_email:
            return None
        result = fanout.send_email(
            EmailTemplate.CASE_REFUND_SUCCESS_CUSTOMER,
            case.contact_email,
            {"case": {"code": case.code}, "order": {"code": order.code}},
        )
        return result.ok
