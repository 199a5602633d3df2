"""Reconciliation of refunded charges.

The "charge refunded" event only names the charge; the refunds themselves
are listed from the gateway. Each succeeded refund whose id is still carried
by a price entry becomes a Credit, the matched entries are marked SUCCESS
and point at it, and the refunded quantities go back into inventory. The
customer is told once the credits are committed, from RefundsReconciled.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from settlement.charge.effects import failures, run_effect
from settlement.charge.ledger import processed_outcome, record_processed
from settlement.config import get_settings
from settlement.domain import logger, settlement
from settlement.exceptions import CustomerNotFound
from settlement.gateway import get_gateway
from settlement.inventory.reconciler import InventoryReconciler
from settlement.order.codes import unique_code
from settlement.order.order import LineTarget, Order
from settlement.order.store import OrderStore
from settlement.party.party import Customer
from settlement.utils.logging import add_context, clear_context

CHARGE_REFUNDED = "charge.refunded"


@settlement.command(part_of="Order")
class ProcessChargeRefunded:
    """Reconcile the refunds of a charge into credits on the order."""

    event_id = String(max_length=255)
    order_id = Identifier(required=True)
    customer_email = String(max_length=254)
    charge_id = String(required=True, max_length=255)
    account = String(max_length=255)


class RefundProcessor:
    def __init__(self) -> None:
        self.store = OrderStore()
        self.reconciler = InventoryReconciler()
        self.settings = get_settings()
        self._effects = []

    def process(self, command) -> dict:
        previous = processed_outcome(command.event_id)
        if previous is not None:
            logger.info("gateway_event_already_processed", event_id=command.event_id)
            return {**previous, "duplicate": True}

        add_context(event_id=command.event_id, order_id=command.order_id, charge_id=command.charge_id)
        try:
            outcome = self._reconcile(command)
            record_processed(command.event_id, CHARGE_REFUNDED, command.order_id, outcome)
            return outcome
        finally:
            clear_context()

    def _reconcile(self, command) -> dict:
        order = self.store.load(command.order_id)
        refunds = get_gateway().list_refunds(command.charge_id, command.account)

        applied = []
        for refund in refunds:
            if not refund.succeeded:
                logger.info("refund_not_succeeded", refund_id=refund.id, status=refund.status)
                continue
            code = unique_code(
                "CR",
                [c.code for c in order.credits],
                attempts=self.settings.payment_code_attempts,
            )
            credit, matches = order.apply_refund(
                refund.id,
                code=code,
                amount=refund.amount,
                currency=refund.currency,
                gateway_charge_id=command.charge_id,
                destination=refund.destination_details,
            )
            if credit is None:
                logger.info("refund_already_reconciled", refund_id=refund.id)
                continue
            applied.append((credit, matches))

        if not applied:
            return {"status": "nothing_to_reconcile", "order_id": str(order.id)}

        customer = self._customer(order.customer_email or command.customer_email)
        order.close_refund_batch(
            [credit for credit, _ in applied], customer_id=str(customer.id), gateway_charge_id=command.charge_id
        )
        self.store.save(order)
        logger.info("order_refunds_reconciled", order_id=str(order.id), credits=[c.code for c, _ in applied])

        for _, matches in applied:
            for line, entry in matches:
                self._restore_inventory(order, line, abs(entry.quantity or 0))

        return {
            "status": "refunded",
            "order_id": str(order.id),
            "credit_ids": [str(credit.id) for credit, _ in applied],
            "failed_effects": failures(self._effects),
        }

    def _customer(self, email) -> Customer:
        customers = current_domain.repository_for(Customer)._dao.query.filter(email=email).all().items
        if not customers:
            raise CustomerNotFound(f"Customer {email} not found", email=email)
        return customers[0]

    def _restore_inventory(self, order, line, qty):
        if not qty:
            return
        order_id = str(order.id)
        if line.target == LineTarget.TOUR_BOOKING.value:
            booking = order.reference_for(line)
            if booking is None:
                logger.warning("tour_line_without_booking", order_id=order_id, line_id=str(line.id))
                return
            self._effects.append(
                run_effect(
                    "restore_ticket_inventory",
                    lambda: self.reconciler.restore_ticket(
                        booking.id, line.ticket_id, qty, source_order_id=order_id
                    ),
                    line_id=str(line.id),
                    ticket_id=line.ticket_id,
                )
            )
        elif line.variant_id:
            self._effects.append(
                run_effect(
                    "restore_inventory",
                    lambda: self.reconciler.restore(line.variant_id, qty, source_order_id=order_id),
                    line_id=str(line.id),
                    variant_id=line.variant_id,
                )
            )


@settlement.command_handler(part_of=Order)
class ChargeRefundedHandler:
    @handle(ProcessChargeRefunded)
    def process_charge_refunded(self, command):
        return RefundProcessor().process(command)
