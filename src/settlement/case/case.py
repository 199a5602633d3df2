"""Case and CaseOffer aggregates.

A Case is opened by a customer payment (CASE-CREATE). Merchants make offers
on it; paying a release offer hands the case back to the pool, paying a
close offer closes it.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Integer, String, Text

from settlement.case.events import CaseClosed, CaseOpened, CaseReleased
from settlement.domain import settlement


class CaseStatus(Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    NEW = "NEW"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class OfferType(Enum):
    RELEASE = "RELEASE"
    CLOSE = "CLOSE"


RELEASED = "RELEASED"


@settlement.aggregate
class Case:
    code = String(required=True, max_length=50)
    tracking_code = String(max_length=50)
    status = String(max_length=30, choices=CaseStatus, default=CaseStatus.AWAITING_PAYMENT.value)
    release_status = String(max_length=30)
    contact_name = String(max_length=255)
    contact_email = String(max_length=254)
    managed_by = Text()  # JSON array of merchant ids
    merchant_ids = Text()  # JSON array
    payment_intent_secret = String(max_length=255)
    updated_at = DateTime()

    def managing_merchants(self) -> list[str]:
        return json.loads(self.managed_by) if self.managed_by else []

    def open_after_payment(self) -> bool:
        """Move a freshly paid case to NEW."""
        if self.status == CaseStatus.NEW.value and self.payment_intent_secret is None:
            return False
        self.status = CaseStatus.NEW.value
        self.payment_intent_secret = None
        self.updated_at = datetime.now(UTC)
        self.raise_(CaseOpened(case_id=str(self.id), opened_at=self.updated_at))
        return True

    def release(self, offer_id=None) -> list[str]:
        """Hand the case back: NEW, unmanaged. Returns the merchants that were managing it."""
        if self.status == CaseStatus.CLOSED.value:
            raise ValidationError({"status": ["A closed case cannot be released"]})
        previous = self.managing_merchants()
        self.status = CaseStatus.NEW.value
        self.managed_by = json.dumps([])
        self.merchant_ids = json.dumps([])
        self.release_status = RELEASED
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CaseReleased(
                case_id=str(self.id),
                previous_merchants=json.dumps(previous),
                offer_id=offer_id,
                released_at=self.updated_at,
            )
        )
        return previous

    def close(self, offer=None) -> bool:
        if self.status == CaseStatus.CLOSED.value:
            return False
        self.status = CaseStatus.CLOSED.value
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CaseClosed(
                case_id=str(self.id),
                offer_id=str(offer.id) if offer is not None else None,
                offer_code=offer.code if offer is not None else None,
                closed_at=self.updated_at,
            )
        )
        return True


@settlement.aggregate
class CaseOffer:
    case_id = String(required=True, max_length=100)
    code = String(required=True, max_length=50)
    offer_type = String(required=True, max_length=20, choices=OfferType)
    merchant_id = String(max_length=100)
    price_amount = Integer(default=0, min_value=0)
    currency = String(max_length=3, default="AUD")
    payment_intent_secret = String(max_length=255)
    paid = Boolean(default=False)
    accepted_on = DateTime()

    def mark_paid(self) -> bool:
        if self.paid and self.payment_intent_secret is None:
            return False
        self.payment_intent_secret = None
        self.paid = True
        return True

    def accept(self):
        if self.accepted_on is None:
            self.accepted_on = datetime.now(UTC)
