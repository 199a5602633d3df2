"""Domain events raised by the Order aggregate during settlement."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from settlement.domain import settlement


@settlement.event(part_of="Order")
class LinesSettled:
    """A captured charge was recorded against one merchant's lines."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    payment_code = String(required=True, max_length=50)
    gateway_charge_id = String(max_length=255)
    merchant_id = String(max_length=100)
    line_ids = Text(required=True)  # JSON array
    amount_paid = Integer(required=True)
    currency = String(max_length=3)
    settled_at = DateTime(required=True)


@settlement.event(part_of="Order")
class CreditIssued:
    """A gateway refund was reconciled into a Credit."""

    __version__ = 1

    order_id = Identifier(required=True)
    credit_id = Identifier(required=True)
    credit_code = String(required=True, max_length=50)
    gateway_refund_id = String(required=True, max_length=255)
    classification = String(required=True, max_length=50)
    amount = Integer(required=True)
    tax = Integer(default=0)
    currency = String(max_length=3)
    line_ids = Text(required=True)  # JSON array
    issued_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderFullySettled:
    """Every line on the order is paid."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_code = String(max_length=50)
    customer_email = String(max_length=254)
    total_paid = Integer(required=True)
    settled_at = DateTime(required=True)


@settlement.event(part_of="Order")
class OrderLinesVoided:
    """Unpaid lines were voided and the order given a grace ttl."""

    __version__ = 1

    order_id = Identifier(required=True)
    line_ids = Text(required=True)  # JSON array
    ttl = Integer()
    voided_at = DateTime(required=True)


@settlement.event(part_of="Order")
class RefundsReconciled:
    """One refund delivery from the gateway produced new credits on the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier()
    gateway_charge_id = String(max_length=255)
    credit_ids = Text(required=True)  # JSON array
    reconciled_at = DateTime(required=True)
