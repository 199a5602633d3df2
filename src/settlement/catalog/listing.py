"""Listing aggregate: products, services and tours offered by merchants.

Only the parts settlement touches are modelled: the authoritative price used
to correct provisional order lines, the listing-fee hold cleared when the fee
is paid, and the ticket variants of tours whose stock is tracked on the
listing itself.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Integer, String

from settlement.domain import settlement
from settlement.order.order import LineTarget


class ListingKind(Enum):
    PRODUCT = "PRODUCT"
    SERVICE = "SERVICE"
    TOUR = "TOUR"


_TARGET_FOR_KIND = {
    ListingKind.PRODUCT: LineTarget.PRODUCT_PURCHASE,
    ListingKind.SERVICE: LineTarget.SERVICE_PURCHASE,
    ListingKind.TOUR: LineTarget.TOUR_BOOKING,
}


@settlement.entity(part_of="Listing")
class TicketVariant:
    name = String(required=True, max_length=100)
    price_amount = Integer(default=0, min_value=0)
    qty_on_hand = Integer(default=0)
    qty_committed = Integer(default=0)
    track_inventory = Boolean(default=True)


@settlement.entity(part_of="Listing")
class TicketTransaction:
    """Append-only stock movement on a ticket variant."""

    variant_id = String(required=True, max_length=100)
    delta = Integer(required=True)
    qty_before = Integer(required=True)
    qty_after = Integer(required=True)
    reason = String(required=True, max_length=20)
    reference_id = String(max_length=100)
    created_by = String(max_length=50, default="system")
    created_at = DateTime()


@settlement.aggregate
class Listing:
    vendor_id = String(required=True, max_length=100)
    kind = String(required=True, max_length=20, choices=ListingKind)
    name = String(max_length=255)
    price_amount = Integer(default=0, min_value=0)
    currency = String(max_length=3, default="AUD")
    setup_intent_secret = String(max_length=255)
    listing_fee_due = Integer()
    ttl = Integer()
    ticket_variants = HasMany(TicketVariant)
    ticket_transactions = HasMany(TicketTransaction)
    updated_at = DateTime()

    @invariant.post
    def ticket_stock_is_never_negative(self):
        for variant in self.ticket_variants:
            if (variant.qty_on_hand or 0) < 0 or (variant.qty_committed or 0) < 0:
                raise ValidationError({"ticket_variants": [f"Negative stock on ticket variant {variant.id}"]})

    @property
    def line_target(self) -> LineTarget:
        return _TARGET_FOR_KIND[ListingKind(self.kind)]

    def authoritative_price(self, variant_id=None) -> int:
        if variant_id:
            variant = self.ticket_variant(variant_id)
            if variant is not None:
                return variant.price_amount or 0
        return self.price_amount or 0

    def ticket_variant(self, variant_id):
        return next((v for v in self.ticket_variants if str(v.id) == str(variant_id)), None)

    def clear_listing_fee_hold(self) -> bool:
        """Drop the setup intent secret, fee hold and expiry once the fee is paid."""
        if self.setup_intent_secret is None and self.listing_fee_due is None and self.ttl is None:
            return False
        self.setup_intent_secret = None
        self.listing_fee_due = None
        self.ttl = None
        self.updated_at = datetime.now(UTC)
        return True

    def adjust_ticket_stock(self, variant_id, delta, reason, reference_id=None, release_committed=False):
        """Apply ``delta`` to a ticket variant's on-hand stock, clamped at zero.

        Returns ``(transaction, unclamped_qty)``, or ``(None, None)`` for an
        unknown variant.
        """
        variant = self.ticket_variant(variant_id)
        if variant is None:
            return None, None

        qty_before = variant.qty_on_hand or 0
        unclamped = qty_before + delta
        variant.qty_on_hand = max(0, unclamped)
        if release_committed:
            variant.qty_committed = max(0, (variant.qty_committed or 0) - abs(delta))

        now = datetime.now(UTC)
        transaction = TicketTransaction(
            variant_id=str(variant.id),
            delta=delta,
            qty_before=qty_before,
            qty_after=variant.qty_on_hand,
            reason=reason,
            reference_id=reference_id,
            created_at=now,
        )
        self.add_ticket_transactions(transaction)
        self.updated_at = now
        return transaction, unclamped
