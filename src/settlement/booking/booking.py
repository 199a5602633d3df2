"""Tour bookings and service bookings.

A tour Booking holds the tickets a customer reserved on one TourSession. The
session belongs to a tour Listing, whose ticket variants carry the stock.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Integer, String, Text

from settlement.domain import settlement


class TicketStatus(Enum):
    RESERVED = "RESERVED"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class ServiceOrderStatus(Enum):
    PAID = "PAID"


@settlement.aggregate
class TourSession:
    listing_id = String(required=True, max_length=100)
    starts_at = DateTime()
    capacity = Integer(default=0)


@settlement.entity(part_of="Booking")
class BookedTicket:
    ticket_id = String(required=True, max_length=100)
    variant_id = String(required=True, max_length=100)
    quantity = Integer(default=1, min_value=1)
    payment_intent_id = String(max_length=255)
    payment_intent_account = String(max_length=255)
    charge_id = String(max_length=255)
    charge_account = String(max_length=255)


@settlement.entity(part_of="Booking")
class TicketStatusEntry:
    ticket_id = String(required=True, max_length=100)
    seq = Integer(required=True)
    label = String(required=True, max_length=20, choices=TicketStatus)
    triggered_by = String(max_length=50)
    recorded_at = DateTime()


@settlement.aggregate
class Booking:
    customer_email = String(max_length=254)
    session_id = String(required=True, max_length=100)
    tickets = HasMany(BookedTicket)
    ticket_statuses = HasMany(TicketStatusEntry)
    updated_at = DateTime()

    def ticket(self, ticket_id):
        return next((t for t in self.tickets if t.ticket_id == ticket_id), None)

    def current_ticket_status(self, ticket_id) -> str | None:
        entries = [e for e in self.ticket_statuses if e.ticket_id == ticket_id]
        if not entries:
            return None
        return max(entries, key=lambda e: e.seq).label

    def mark_ticket_paid(self, ticket_id, charge_id, payment_intent_id, account, triggered_by="STRIPE") -> bool:
        """Attach gateway identifiers to a ticket and prepend a PAID status.

        Returns False when the ticket is already PAID.
        """
        ticket = self.ticket(ticket_id)
        if ticket is None:
            raise ValidationError({"ticket_id": [f"Ticket {ticket_id} not found on booking"]})
        if self.current_ticket_status(ticket_id) == TicketStatus.PAID.value:
            return False

        ticket.payment_intent_id = payment_intent_id
        ticket.payment_intent_account = account
        ticket.charge_id = charge_id
        ticket.charge_account = account

        now = datetime.now(UTC)
        seqs = [e.seq for e in self.ticket_statuses if e.ticket_id == ticket_id]
        self.add_ticket_statuses(
            TicketStatusEntry(
                ticket_id=ticket_id,
                seq=max(seqs, default=0) + 1,
                label=TicketStatus.PAID.value,
                triggered_by=triggered_by,
                recorded_at=now,
            )
        )
        self.updated_at = now
        return True


@settlement.aggregate
class ServiceBooking:
    """A paid service order. Its id is ``{order_id}:{line_id}``."""

    order_id = String(required=True, max_length=100)
    line_id = String(required=True, max_length=100)
    customer_email = String(max_length=254)
    vendor_id = String(required=True, max_length=100)
    listing_id = String(max_length=100)
    price_amount = Integer(default=0)
    currency = String(max_length=3)
    quantity = Integer(default=1)
    payment_intent_id = String(max_length=255)
    order_status = String(max_length=20, choices=ServiceOrderStatus, default=ServiceOrderStatus.PAID.value)
    questionnaire = Text()  # JSON
    featuring_transfer_id = String(max_length=255)
    created_at = DateTime()

    @staticmethod
    def identity_for(order_id, line_id) -> str:
        return f"{order_id}:{line_id}"
