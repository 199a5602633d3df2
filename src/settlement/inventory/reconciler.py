"""Applies settlement and refund quantity changes to inventory.

Product variants live in VariantInventory records. Tour tickets are resolved
Booking -> TourSession -> BookedTicket -> ticket variant and written through
to the tour Listing. Quantities are clamped at zero; a clamp is a
data-quality warning, never an error.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.booking.booking import Booking, TourSession
from settlement.catalog.listing import Listing
from settlement.config import get_settings
from settlement.domain import logger
from settlement.exceptions import RecordNotFound
from settlement.inventory.inventory import (
    AlertType,
    InventoryTransaction,
    StockAlert,
    TransactionReason,
    VariantInventory,
    alert_id,
    inventory_id,
)


@dataclass(frozen=True)
class Adjustment:
    variant_id: str
    delta: int
    qty_before: int
    qty_after: int
    clamped: bool
    transaction_id: str | None = None
    alert_ids: tuple = ()


class InventoryReconciler:
    def __init__(self, today=None) -> None:
        self._today = today
        # Records already loaded while handling the current event
        self._records = {}
        self._listings = {}

    def _day(self):
        return self._today or datetime.now(UTC).date()

    # -------------------------------------------------------------------
    # Product variants
    # -------------------------------------------------------------------
    def decrement(self, variant_id, qty, reason=TransactionReason.SALE, source_order_id=None):
        return self._adjust(variant_id, -abs(qty), reason, source_order_id, release_committed=True)

    def restore(self, variant_id, qty, reason=TransactionReason.REFUND, source_order_id=None):
        return self._adjust(variant_id, abs(qty), reason, source_order_id, release_committed=False)

    def _adjust(self, variant_id, delta, reason, source_order_id, release_committed):
        repo = current_domain.repository_for(VariantInventory)
        identifier = inventory_id(variant_id)
        record = self._records.get(identifier)
        if record is None:
            try:
                record = repo.get(identifier)
            except ObjectNotFoundError:
                logger.info("inventory_record_missing", variant_id=variant_id, order_id=source_order_id)
                return None
            self._records[identifier] = record

        if not record.track_inventory:
            return None

        qty_before = record.qty_on_hand or 0
        unclamped = qty_before + delta
        clamped = unclamped < 0
        if clamped:
            logger.warning(
                "inventory_clamped",
                variant_id=variant_id,
                qty_before=qty_before,
                delta=delta,
                qty_after=unclamped,
                order_id=source_order_id,
            )

        record.qty_on_hand = max(0, unclamped)
        if release_committed:
            record.qty_committed = max(0, (record.qty_committed or 0) - abs(delta))
        record.updated_at = datetime.now(UTC)
        repo.add(record)

        transaction = InventoryTransaction.record(
            variant_id=variant_id,
            delta=delta,
            qty_before=qty_before,
            qty_after=record.qty_on_hand,
            reason=reason,
            reference_id=source_order_id,
        )
        current_domain.repository_for(InventoryTransaction).add(transaction)

        alerts = self._raise_alerts(record, qty_before)

        return Adjustment(
            variant_id=variant_id,
            delta=delta,
            qty_before=qty_before,
            qty_after=record.qty_on_hand,
            clamped=clamped,
            transaction_id=str(transaction.id),
            alert_ids=tuple(alerts),
        )

    # -------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------
    def _raise_alerts(self, record, qty_before) -> list[str]:
        available = record.available
        # an unset or zero threshold falls back to the configured default
        threshold = record.low_stock_threshold or get_settings().low_stock_threshold

        if available <= 0:
            if record.one_of_a_kind:
                logger.info("one_of_a_kind_sold_out", variant_id=record.variant_id, listing_id=record.listing_id)
            return self._open_alert(record, AlertType.OUT_OF_STOCK, available, threshold)
        if available <= threshold < qty_before:
            return self._open_alert(record, AlertType.LOW_STOCK, available, threshold)
        return []

    def _open_alert(self, record, alert_type, available, threshold) -> list[str]:
        day = self._day()
        identifier = alert_id(record.variant_id, alert_type, day)
        repo = current_domain.repository_for(StockAlert)
        try:
            repo.get(identifier)
            return [identifier]
        except ObjectNotFoundError:
            pass

        try:
            repo.add(
                StockAlert(
                    id=identifier,
                    variant_id=record.variant_id,
                    merchant_id=record.merchant_id,
                    alert_type=alert_type.value,
                    qty_available=available,
                    threshold=threshold,
                    alert_date=day,
                    created_at=datetime.now(UTC),
                )
            )
        except Exception as exc:  # concurrent creation of the same alert
            logger.warning("stock_alert_create_failed", alert_id=identifier, error=str(exc))
            return []
        logger.info("stock_alert_opened", alert_id=identifier, available=available, threshold=threshold)
        return [identifier]

    # -------------------------------------------------------------------
    # Tour tickets
    # -------------------------------------------------------------------
    def _resolve_ticket(self, booking_id, ticket_id):
        try:
            booking = current_domain.repository_for(Booking).get(booking_id)
        except ObjectNotFoundError as exc:
            raise RecordNotFound(f"Booking {booking_id} not found", booking_id=booking_id) from exc

        ticket = booking.ticket(ticket_id)
        if ticket is None:
            raise RecordNotFound(
                f"Ticket {ticket_id} not found on booking {booking_id}", booking_id=booking_id, ticket_id=ticket_id
            )

        try:
            session = current_domain.repository_for(TourSession).get(booking.session_id)
            listing = self._listings.get(session.listing_id)
            if listing is None:
                listing = current_domain.repository_for(Listing).get(session.listing_id)
                self._listings[session.listing_id] = listing
        except ObjectNotFoundError as exc:
            raise RecordNotFound(
                f"Tour for booking {booking_id} not found", booking_id=booking_id, session_id=booking.session_id
            ) from exc
        return listing, ticket

    def decrement_ticket(self, booking_id, ticket_id, qty, source_order_id=None):
        return self._adjust_ticket(booking_id, ticket_id, -abs(qty), TransactionReason.SALE, source_order_id)

    def restore_ticket(self, booking_id, ticket_id, qty, source_order_id=None):
        return self._adjust_ticket(booking_id, ticket_id, abs(qty), TransactionReason.REFUND, source_order_id)

    def _adjust_ticket(self, booking_id, ticket_id, delta, reason, source_order_id):
        listing, ticket = self._resolve_ticket(booking_id, ticket_id)
        variant = listing.ticket_variant(ticket.variant_id)
        if variant is None or not variant.track_inventory:
            logger.info("ticket_variant_untracked", listing_id=str(listing.id), variant_id=ticket.variant_id)
            return None

        transaction, unclamped = listing.adjust_ticket_stock(
            ticket.variant_id,
            delta,
            reason.value,
            reference_id=source_order_id,
            release_committed=delta < 0,
        )
        if unclamped < 0:
            logger.warning(
                "ticket_inventory_clamped",
                listing_id=str(listing.id),
                variant_id=ticket.variant_id,
                qty_after=unclamped,
                order_id=source_order_id,
            )
        current_domain.repository_for(Listing).add(listing)

        return Adjustment(
            variant_id=ticket.variant_id,
            delta=delta,
            qty_before=transaction.qty_before,
            qty_after=transaction.qty_after,
            clamped=unclamped < 0,
            transaction_id=str(transaction.id),
        )
