"""FastAPI routes for the Settlement domain: gateway webhooks and order settlement state."""

from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain
from pydantic import ValidationError as SchemaError

from settlement.api.schemas import (
    CreditSummary,
    FreeOfferResponse,
    GatewayEvent,
    LineSummary,
    OrderSettlementResponse,
    PaymentSummary,
    WebhookResponse,
)
from settlement.case.release import SettleFreeCaseOffer
from settlement.charge.captured import ProcessChargeCaptured
from settlement.charge.refunded import ProcessChargeRefunded
from settlement.domain import logger
from settlement.exceptions import (
    ConcurrentOrderUpdate,
    CustomerNotFound,
    GatewayError,
    MerchantAccountMissing,
    OrderNotFound,
    RecordNotFound,
    SettlementError,
)
from settlement.gateway import get_gateway
from settlement.order.store import OrderStore

CAPTURE_EVENTS = {"charge.succeeded", "charge.captured"}
REFUND_EVENTS = {"charge.refunded"}

_STATUS_FOR_ERROR = [
    ((OrderNotFound, CustomerNotFound, RecordNotFound, MerchantAccountMissing), 404),
    ((ConcurrentOrderUpdate,), 409),
    ((GatewayError,), 502),
]


def _process(command):
    try:
        return current_domain.process(command, asynchronous=False)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.messages) from exc
    except SettlementError as exc:
        status_code = next((code for types, code in _STATUS_FOR_ERROR if isinstance(exc, types)), 500)
        logger.error("settlement_failed", error=exc.message, error_type=type(exc).__name__, **exc.context)
        raise HTTPException(status_code=status_code, detail=exc.message) from exc


def _int(metadata, key) -> int:
    try:
        return int(metadata.get(key) or 0)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"metadata.{key} must be an integer") from exc


router = APIRouter(prefix="/settlement", tags=["settlement"])


@router.post("/webhooks/gateway", response_model=WebhookResponse)
async def gateway_webhook(request: Request, x_gateway_signature: str = Header(default="")) -> WebhookResponse:
    """Consume a payment gateway event."""
    payload = (await request.body()).decode("utf-8")
    if not get_gateway().verify_webhook_signature(payload, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    try:
        event = GatewayEvent.model_validate_json(payload)
    except SchemaError as exc:
        raise HTTPException(status_code=422, detail=exc.errors()) from exc

    charge = event.data.object
    metadata = charge.metadata
    if event.type not in CAPTURE_EVENTS | REFUND_EVENTS:
        return WebhookResponse(status="ignored")
    if not metadata.get("orderId"):
        raise HTTPException(status_code=422, detail="metadata.orderId is required")

    if event.type in CAPTURE_EVENTS:
        if not metadata.get("merchantId") or not metadata.get("customerEmail"):
            raise HTTPException(status_code=422, detail="metadata.merchantId and metadata.customerEmail are required")
        command = ProcessChargeCaptured(
            event_id=event.id,
            order_id=metadata["orderId"],
            customer_email=metadata["customerEmail"],
            merchant_id=metadata["merchantId"],
            charge_id=charge.id,
            payment_intent_id=charge.payment_intent,
            account=event.account,
            tax_amount=_int(metadata, "taxAmount"),
            shipping_subtotal=_int(metadata, "shippingSubtotal"),
            shipping_tax=_int(metadata, "shippingTax"),
            shipping_fee=_int(metadata, "shippingFee"),
            shipping_currency=metadata.get("shippingCurrency"),
        )
    else:
        command = ProcessChargeRefunded(
            event_id=event.id,
            order_id=metadata["orderId"],
            customer_email=metadata.get("customerEmail"),
            charge_id=charge.id,
            account=event.account,
        )

    outcome = _process(command)
    return WebhookResponse(status="processed", outcome=outcome or {})


@router.post("/case-offers/{offer_id}/settle-free", response_model=FreeOfferResponse)
async def settle_free_offer(offer_id: str) -> FreeOfferResponse:
    """Release a case through a zero-priced offer."""
    outcome = _process(SettleFreeCaseOffer(offer_id=offer_id))
    return FreeOfferResponse(**outcome)


@router.get("/orders/{order_id}", response_model=OrderSettlementResponse)
async def order_settlement(order_id: str) -> OrderSettlementResponse:
    """Current settlement state of an order."""
    try:
        order = OrderStore().load(order_id)
    except OrderNotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    lines = []
    for line in order.lines:
        price_head = order.price_log_for(line.id).current()
        lines.append(
            LineSummary(
                line_id=str(line.id),
                target=line.target,
                merchant_id=line.merchant_id,
                paid_status=order.current_paid_status(line.id),
                price_status=price_head.status if price_head else None,
            )
        )

    return OrderSettlementResponse(
        order_id=str(order.id),
        code=order.code,
        fully_paid=order.is_fully_paid(),
        revision=order.revision or 0,
        ttl=order.ttl,
        lines=lines,
        payments=[
            PaymentSummary(
                code=p.code,
                amount_paid=p.amount_paid,
                currency=p.currency,
                application_fee_total=p.application_fee_total,
                stripe_fee_total=p.stripe_fee_total,
                net_payout=p.net_payout,
            )
            for p in order.payment_history()
        ],
        credits=[
            CreditSummary(code=c.code, amount=c.amount, tax=c.tax, currency=c.currency) for c in order.credit_history()
        ],
    )
