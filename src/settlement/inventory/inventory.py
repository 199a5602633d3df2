"""Product variant inventory, its transaction ledger and stock alerts.

Ids are deterministic so that repeated triggers address the same records:

    VariantInventory      invv:{variant_id}
    InventoryTransaction  invt:{variant_id}:{reason}:{order_id}:{uuid}
    StockAlert            inva:{variant_id}:{alert_type}:{YYYY-MM-DD}
"""

from datetime import UTC, date, datetime
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Date, DateTime, Integer, String

from settlement.domain import settlement


class TransactionReason(Enum):
    SALE = "SALE"
    REFUND = "REFUND"


class TransactionSource(Enum):
    ORDER = "ORDER"


class AlertType(Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"


class AlertStatus(Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


def inventory_id(variant_id) -> str:
    return f"invv:{variant_id}"


def alert_id(variant_id, alert_type: AlertType, day: date) -> str:
    return f"inva:{variant_id}:{alert_type.value}:{day.isoformat()}"


@settlement.aggregate
class VariantInventory:
    variant_id = String(required=True, max_length=100)
    merchant_id = String(max_length=100)
    listing_id = String(max_length=100)
    qty_on_hand = Integer(default=0)
    qty_committed = Integer(default=0)
    track_inventory = Boolean(default=True)
    low_stock_threshold = Integer(min_value=0)
    one_of_a_kind = Boolean(default=False)
    updated_at = DateTime()

    @invariant.post
    def quantities_are_never_negative(self):
        if (self.qty_on_hand or 0) < 0:
            raise ValidationError({"qty_on_hand": ["Quantity on hand cannot be negative"]})
        if (self.qty_committed or 0) < 0:
            raise ValidationError({"qty_committed": ["Committed quantity cannot be negative"]})

    @classmethod
    def create(cls, variant_id, qty_on_hand=0, qty_committed=0, **kwargs):
        return cls(
            id=inventory_id(variant_id),
            variant_id=variant_id,
            qty_on_hand=qty_on_hand,
            qty_committed=qty_committed,
            updated_at=datetime.now(UTC),
            **kwargs,
        )

    @property
    def available(self) -> int:
        return (self.qty_on_hand or 0) - (self.qty_committed or 0)


@settlement.aggregate
class InventoryTransaction:
    """One row per adjustment. Never updated."""

    variant_id = String(required=True, max_length=100)
    delta = Integer(required=True)
    qty_before = Integer(required=True)
    qty_after = Integer(required=True)
    reason = String(required=True, max_length=20, choices=TransactionReason)
    source = String(max_length=20, choices=TransactionSource, default=TransactionSource.ORDER.value)
    reference_id = String(max_length=100)
    created_by = String(max_length=50, default="system")
    created_at = DateTime()

    @classmethod
    def record(cls, variant_id, delta, qty_before, qty_after, reason: TransactionReason, reference_id):
        return cls(
            id=f"invt:{variant_id}:{reason.value}:{reference_id}:{uuid4().hex[:12]}",
            variant_id=variant_id,
            delta=delta,
            qty_before=qty_before,
            qty_after=qty_after,
            reason=reason.value,
            reference_id=reference_id,
            created_at=datetime.now(UTC),
        )


@settlement.aggregate
class StockAlert:
    variant_id = String(required=True, max_length=100)
    merchant_id = String(max_length=100)
    alert_type = String(required=True, max_length=20, choices=AlertType)
    status = String(max_length=20, choices=AlertStatus, default=AlertStatus.OPEN.value)
    qty_available = Integer(default=0)
    threshold = Integer()
    alert_date = Date()
    created_at = DateTime()
