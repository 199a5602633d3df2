"""Order aggregate: line items, their price and settlement histories, payments and credits.

Orders are created by checkout flows outside this context and are mutated
here only by the settlement and refund processors. Lines are addressed by
their stable id, never by position.

Each line keeps two histories, stored as child entities with a per-line
``seq``:

    price_log        pricing events (CHARGE, FULL_REFUND, PARTIAL_REFUND)
    paid_status_log  settlement outcomes (AWAITING_CHARGE, PAID, VOID, ...)

Both are read through ``OrderedLog`` so that index 0 is the latest entry.

``revision`` is bumped on every write made by the engine and checked by
``OrderStore.save`` to reject racing writers.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Identifier, Integer, String, Text

from settlement.domain import settlement
from settlement.order.codes import friendly_code
from settlement.order.events import (
    CreditIssued,
    LinesSettled,
    OrderFullySettled,
    OrderLinesVoided,
    RefundsReconciled,
)
from settlement.order.logs import OrderedLog
from settlement.order.references import INHERIT, Inherit, RecordRef, resolve
from settlement.order.shipments import compress_shipment


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class LineTarget(Enum):
    TOUR_BOOKING = "TOUR-BOOKING"
    CASE_CREATE = "CASE-CREATE"
    CASE_OFFER_RELEASE = "CASE-OFFER-RELEASE"
    CASE_OFFER_CLOSE = "CASE-OFFER-CLOSE"
    CASE_INVOICE_LINE = "CASE-INVOICE-LINE"
    PRODUCT_PURCHASE = "PRODUCT-PURCHASE"
    SERVICE_PURCHASE = "SERVICE-PURCHASE"
    LISTING_FEE = "PRODUCT-LISTING-FEE"


class PriceEntryType(Enum):
    CHARGE = "CHARGE"
    FULL_REFUND = "FULL_REFUND"
    PARTIAL_REFUND = "PARTIAL_REFUND"


class PriceStatus(Enum):
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    AWAITING_CHARGE = "AWAITING_CHARGE"
    SUCCESS = "SUCCESS"


class PaidStatus(Enum):
    AWAITING_CHARGE = "AWAITING_CHARGE"
    PAID = "PAID"
    VOID = "VOID"
    FULL_REFUND = "FULL_REFUND"
    PARTIAL_REFUND = "PARTIAL_REFUND"


GATEWAY_ACTOR = "STRIPE"
SYSTEM_ACTOR = "SYSTEM"


def classify_refund(entries) -> PaidStatus:
    """FULL_REFUND only when every matched entry is a full refund."""
    if entries and all(e.entry_type == PriceEntryType.FULL_REFUND.value for e in entries):
        return PaidStatus.FULL_REFUND
    return PaidStatus.PARTIAL_REFUND


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@settlement.entity(part_of="Order")
class OrderLine:
    target = String(required=True, max_length=50, choices=LineTarget)
    merchant_id = String(required=True, max_length=100)
    descriptor = String(max_length=255)
    listing_id = String(max_length=100)
    variant_id = String(max_length=100)
    quantity = Integer(default=1, min_value=0)
    price_amount = Integer(default=0, min_value=0)  # minor units, per unit
    price_currency = String(max_length=3, default="AUD")
    price_provisional = Boolean(default=False)
    inherits_reference = Boolean(default=False)
    ref_container = String(max_length=50)
    ref_id = String(max_length=100)
    ref_partition = String(max_length=100)
    session_id = String(max_length=100)
    ticket_id = String(max_length=100)
    featuring_merchant_id = String(max_length=100)
    featuring_relationship_id = String(max_length=100)
    featuring_share_bps = Integer(min_value=0)
    questionnaire = Text()  # JSON object of service questionnaire responses

    @property
    def reference(self):
        if self.inherits_reference or not self.ref_id:
            return INHERIT
        return RecordRef(container=self.ref_container, id=self.ref_id, partition=self.ref_partition)


@settlement.entity(part_of="Order")
class PriceLogEntry:
    line_id = String(required=True, max_length=100)
    seq = Integer(required=True)
    entry_type = String(required=True, max_length=20, choices=PriceEntryType)
    status = String(required=True, max_length=20, choices=PriceStatus)
    amount = Integer(default=0)
    quantity = Integer(default=1)
    currency = String(max_length=3)
    tax_amount = Integer(default=0)
    gateway_refund_id = String(max_length=255)
    credit_id = String(max_length=100)
    payment_id = String(max_length=100)
    recorded_at = DateTime()


@settlement.entity(part_of="Order")
class PaidStatusEntry:
    line_id = String(required=True, max_length=100)
    seq = Integer(required=True)
    label = String(required=True, max_length=20, choices=PaidStatus)
    triggered_by = String(max_length=50)
    recorded_at = DateTime()


@settlement.entity(part_of="Order")
class Payment:
    """One captured charge and its fee decomposition. Never modified after creation."""

    code = String(required=True, max_length=50)
    seq = Integer(required=True)
    merchant_id = String(max_length=100)
    gateway_charge_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    account = String(max_length=255)
    currency = String(max_length=3)
    amount_paid = Integer(default=0)
    application_fee_total = Integer(default=0)
    stripe_fee_total = Integer(default=0)
    net_payout = Integer(default=0)
    card_brand = String(max_length=50)
    card_last4 = String(max_length=4)
    method_description = String(max_length=255)
    breakdown = Text()  # JSON, see settlement.fees.decomposition
    paid_at = DateTime()

    @property
    def fee_breakdown(self) -> dict:
        return json.loads(self.breakdown) if self.breakdown else {}


@settlement.entity(part_of="Order")
class Credit:
    """Durable record of a reconciled refund."""

    code = String(required=True, max_length=50)
    seq = Integer(required=True)
    gateway_refund_id = String(max_length=255)
    gateway_charge_id = String(max_length=255)
    amount = Integer(default=0)  # net of tax
    tax = Integer(default=0)
    currency = String(max_length=3)
    destination = Text()  # JSON
    issued_at = DateTime()


@settlement.entity(part_of="Order")
class Shipment:
    merchant_id = String(max_length=100)
    subtotal = Integer(default=0)
    tax = Integer(default=0)
    carrier_options = Text()  # JSON array of rate quotes
    carrier_summary = Text()  # JSON object


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------
@settlement.aggregate
class Order:
    code = String(max_length=50)
    customer_email = String(required=True, max_length=254)
    customer_id = Identifier()
    ref_container = String(max_length=50)
    ref_id = String(max_length=100)
    ref_partition = String(max_length=100)
    target = String(max_length=50)
    ttl = Integer()  # seconds; unpaid orders expire
    revision = Integer(default=0)
    lines = HasMany(OrderLine)
    price_log = HasMany(PriceLogEntry)
    paid_status_log = HasMany(PaidStatusEntry)
    payments = HasMany(Payment)
    credits = HasMany(Credit)
    shipments = HasMany(Shipment)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_email, reference=None, target=None, code=None, ttl=None, customer_id=None, **kwargs):
        now = datetime.now(UTC)
        return cls(
            customer_email=customer_email,
            customer_id=customer_id,
            code=code or friendly_code("ORD"),
            ref_container=reference.container if reference else None,
            ref_id=reference.id if reference else None,
            ref_partition=reference.partition if reference else None,
            target=target.value if isinstance(target, LineTarget) else target,
            ttl=ttl,
            created_at=now,
            updated_at=now,
            **kwargs,
        )

    @property
    def reference(self) -> RecordRef | None:
        if not self.ref_id:
            return None
        return RecordRef(container=self.ref_container, id=self.ref_id, partition=self.ref_partition)

    # -------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------
    def add_line(
        self,
        target,
        merchant_id,
        amount,
        quantity=1,
        currency="AUD",
        reference=INHERIT,
        status=PriceStatus.AWAITING_CHARGE,
        tax_amount=0,
        **details,
    ):
        """Add a payable line with its opening CHARGE entry and AWAITING_CHARGE status."""
        target = target if isinstance(target, LineTarget) else LineTarget(target)
        line = OrderLine(
            target=target.value,
            merchant_id=merchant_id,
            price_amount=amount,
            price_currency=currency,
            quantity=quantity,
            inherits_reference=isinstance(reference, Inherit),
            ref_container=None if isinstance(reference, Inherit) else reference.container,
            ref_id=None if isinstance(reference, Inherit) else reference.id,
            ref_partition=None if isinstance(reference, Inherit) else reference.partition,
            **details,
        )
        self.add_lines(line)
        line_id = str(line.id)
        self.record_price_entry(
            line_id,
            PriceEntryType.CHARGE,
            status,
            amount=amount,
            quantity=quantity,
            currency=currency,
            tax_amount=tax_amount,
        )
        self.prepend_paid_status(line_id, PaidStatus.AWAITING_CHARGE, triggered_by="ORDER")
        return line

    def line(self, line_id):
        line = next((ln for ln in self.lines if str(ln.id) == str(line_id)), None)
        if line is None:
            raise ValidationError({"line_id": [f"Line {line_id} not found on order"]})
        return line

    def reference_for(self, line) -> RecordRef | None:
        """Concrete reference of a line, resolving inheritance from the order."""
        return resolve(line.reference, self.reference)

    def line_points_at(self, line, ref_id) -> bool:
        reference = self.reference_for(line)
        return reference is not None and str(reference.id) == str(ref_id)

    def restore_price(self, line_id, amount, target=None) -> bool:
        """Replace a provisional price with the authoritative one."""
        line = self.line(line_id)
        if not line.price_provisional:
            return False
        line.price_amount = amount
        if target is not None:
            line.target = target.value if isinstance(target, LineTarget) else target
        line.price_provisional = False
        head = self.price_log_for(line_id).current()
        if head is not None and head.entry_type == PriceEntryType.CHARGE.value:
            head.amount = amount
        self.updated_at = datetime.now(UTC)
        return True

    # -------------------------------------------------------------------
    # Histories
    # -------------------------------------------------------------------
    def price_log_for(self, line_id) -> OrderedLog:
        return OrderedLog(e for e in self.price_log if e.line_id == str(line_id))

    def paid_status_for(self, line_id) -> OrderedLog:
        return OrderedLog(e for e in self.paid_status_log if e.line_id == str(line_id))

    def current_paid_status(self, line_id) -> str | None:
        head = self.paid_status_for(line_id).current()
        return head.label if head else None

    def lines_awaiting_charge(self, merchant_id):
        return [
            line
            for line in self.lines
            if line.merchant_id == merchant_id
            and self.current_paid_status(line.id) == PaidStatus.AWAITING_CHARGE.value
        ]

    def record_price_entry(
        self,
        line_id,
        entry_type,
        status,
        amount,
        quantity=1,
        currency=None,
        tax_amount=0,
        gateway_refund_id=None,
    ):
        line_id = str(line_id)
        log = self.price_log_for(line_id)
        entry = PriceLogEntry(
            line_id=line_id,
            seq=log.current().seq + 1 if log else 1,
            entry_type=entry_type.value if isinstance(entry_type, Enum) else entry_type,
            status=status.value if isinstance(status, Enum) else status,
            amount=amount,
            quantity=quantity,
            currency=currency,
            tax_amount=tax_amount,
            gateway_refund_id=gateway_refund_id,
            recorded_at=datetime.now(UTC),
        )
        self.add_price_log(entry)
        return entry

    def prepend_paid_status(self, line_id, label, triggered_by):
        line_id = str(line_id)
        log = self.paid_status_for(line_id)
        entry = PaidStatusEntry(
            line_id=line_id,
            seq=log.current().seq + 1 if log else 1,
            label=label.value if isinstance(label, Enum) else label,
            triggered_by=triggered_by,
            recorded_at=datetime.now(UTC),
        )
        self.add_paid_status_log(entry)
        return entry

    def payment_history(self) -> OrderedLog:
        return OrderedLog(self.payments)

    def credit_history(self) -> OrderedLog:
        return OrderedLog(self.credits)

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def settle_lines(
        self,
        line_ids,
        code,
        amount_paid,
        currency,
        breakdown,
        merchant_id=None,
        gateway_charge_id=None,
        payment_intent_id=None,
        account=None,
        card_brand=None,
        card_last4=None,
        method_description=None,
    ):
        """Record one Payment and mark the given lines PAID against it."""
        if not line_ids:
            raise ValidationError({"lines": ["At least one line is required to record a payment"]})
        for line_id in line_ids:
            if self.current_paid_status(line_id) != PaidStatus.AWAITING_CHARGE.value:
                raise ValidationError({"lines": [f"Line {line_id} is not awaiting a charge"]})

        now = datetime.now(UTC)
        history = self.payment_history()
        payment = Payment(
            code=code,
            seq=history.current().seq + 1 if history else 1,
            merchant_id=merchant_id,
            gateway_charge_id=gateway_charge_id,
            payment_intent_id=payment_intent_id,
            account=account,
            currency=currency.upper() if currency else None,
            amount_paid=amount_paid,
            application_fee_total=breakdown["payout"]["application_fees"]["total"],
            stripe_fee_total=breakdown["payout"]["stripe_fees"]["total"],
            net_payout=breakdown["payout"]["summary"]["receives"],
            card_brand=card_brand,
            card_last4=card_last4,
            method_description=method_description,
            breakdown=json.dumps(breakdown),
            paid_at=now,
        )
        self.add_payments(payment)

        for line_id in line_ids:
            head = self.price_log_for(line_id).current()
            head.status = PriceStatus.SUCCESS.value
            head.payment_id = str(payment.id)
            self.prepend_paid_status(line_id, PaidStatus.PAID, triggered_by=GATEWAY_ACTOR)

        self.updated_at = now
        self.raise_(
            LinesSettled(
                order_id=str(self.id),
                payment_id=str(payment.id),
                payment_code=code,
                gateway_charge_id=gateway_charge_id,
                merchant_id=merchant_id,
                line_ids=json.dumps([str(i) for i in line_ids]),
                amount_paid=amount_paid,
                currency=payment.currency,
                settled_at=now,
            )
        )
        return payment

    def is_fully_paid(self) -> bool:
        return bool(self.lines) and all(
            self.current_paid_status(line.id) == PaidStatus.PAID.value for line in self.lines
        )

    def total_paid(self) -> int:
        return sum(p.amount_paid or 0 for p in self.payments)

    def mark_fully_settled(self):
        self.raise_(
            OrderFullySettled(
                order_id=str(self.id),
                order_code=self.code,
                customer_email=self.customer_email,
                total_paid=self.total_paid(),
                settled_at=datetime.now(UTC),
            )
        )

    def summarize_shipments(self) -> int:
        """Compress carrier rate data on every shipment; returns the number changed."""
        changed = sum(1 for shipment in self.shipments if compress_shipment(shipment))
        if changed:
            self.updated_at = datetime.now(UTC)
        return changed

    def clear_ttl(self):
        if self.ttl is not None:
            self.ttl = None
            self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def refund_matches(self, gateway_refund_id):
        """(line, entry) pairs whose price entry awaits this gateway refund."""
        matches = []
        for line in self.lines:
            for entry in self.price_log_for(line.id):
                if entry.gateway_refund_id and entry.gateway_refund_id == gateway_refund_id:
                    matches.append((line, entry))
        return matches

    def apply_refund(self, gateway_refund_id, code, amount, currency, gateway_charge_id=None, destination=None):
        """Reconcile a succeeded gateway refund into a Credit.

        Returns ``(credit, matches)`` or ``(None, [])`` when no price entry
        carries the refund id, which is the case once it has been applied.
        """
        matches = self.refund_matches(gateway_refund_id)
        if not matches:
            return None, []

        classification = classify_refund([entry for _, entry in matches])
        tax = sum(entry.tax_amount or 0 for _, entry in matches)
        now = datetime.now(UTC)
        history = self.credit_history()
        credit = Credit(
            code=code,
            seq=history.current().seq + 1 if history else 1,
            gateway_refund_id=gateway_refund_id,
            gateway_charge_id=gateway_charge_id,
            amount=amount - tax,
            tax=tax,
            currency=currency.upper() if currency else None,
            destination=json.dumps(destination) if destination is not None else None,
            issued_at=now,
        )
        self.add_credits(credit)

        for line, entry in matches:
            entry.status = PriceStatus.SUCCESS.value
            entry.gateway_refund_id = None
            entry.credit_id = str(credit.id)
            self.prepend_paid_status(line.id, classification, triggered_by=GATEWAY_ACTOR)

        self.updated_at = now
        self.raise_(
            CreditIssued(
                order_id=str(self.id),
                credit_id=str(credit.id),
                credit_code=code,
                gateway_refund_id=gateway_refund_id,
                classification=classification.value,
                amount=credit.amount,
                tax=tax,
                currency=credit.currency,
                line_ids=json.dumps(sorted({str(line.id) for line, _ in matches})),
                issued_at=now,
            )
        )
        return credit, matches

    def close_refund_batch(self, credits, customer_id=None, gateway_charge_id=None):
        """Mark the end of one refund delivery that issued ``credits``."""
        self.raise_(
            RefundsReconciled(
                order_id=str(self.id),
                customer_id=customer_id,
                gateway_charge_id=gateway_charge_id,
                credit_ids=json.dumps([str(credit.id) for credit in credits]),
                reconciled_at=datetime.now(UTC),
            )
        )

    def credit(self, credit_id):
        return next((c for c in self.credits if str(c.id) == str(credit_id)), None)

    def lines_for_credit(self, credit_id) -> list:
        """Lines with a price entry settled by ``credit_id``."""
        return [
            line
            for line in self.lines
            if any(entry.credit_id == str(credit_id) for entry in self.price_log_for(line.id))
        ]

    # -------------------------------------------------------------------
    # Voiding
    # -------------------------------------------------------------------
    def void_unpaid_lines(self, target, ttl_seconds, triggered_by=SYSTEM_ACTOR, ref_id=None):
        """Void lines of ``target`` that were never paid and give the order a grace ttl.

        With ``ref_id``, only lines whose resolved reference points at that record are voided.
        """
        target = target if isinstance(target, LineTarget) else LineTarget(target)
        voided = []
        for line in self.lines:
            if line.target != target.value:
                continue
            if ref_id is not None and not self.line_points_at(line, ref_id):
                continue
            labels = {entry.label for entry in self.paid_status_for(line.id)}
            if PaidStatus.PAID.value in labels or self.current_paid_status(line.id) == PaidStatus.VOID.value:
                continue
            self.prepend_paid_status(line.id, PaidStatus.VOID, triggered_by=triggered_by)
            voided.append(str(line.id))

        if voided:
            now = datetime.now(UTC)
            self.ttl = ttl_seconds
            self.updated_at = now
            self.raise_(
                OrderLinesVoided(
                    order_id=str(self.id),
                    line_ids=json.dumps(voided),
                    ttl=ttl_seconds,
                    voided_at=now,
                )
            )
        return voided

    def bump_revision(self):
        self.revision = (self.revision or 0) + 1
        self.updated_at = datetime.now(UTC)
