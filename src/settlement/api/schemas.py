"""Pydantic request/response schemas for the Settlement API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Gateway webhook
# ---------------------------------------------------------------------------
class GatewayEventObject(BaseModel):
    id: str
    payment_intent: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class GatewayEventData(BaseModel):
    object: GatewayEventObject


class GatewayEvent(BaseModel):
    id: str
    type: str
    account: str | None = None
    data: GatewayEventData

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "evt_001",
                    "type": "charge.succeeded",
                    "account": "acct_merchant_001",
                    "data": {
                        "object": {
                            "id": "ch_001",
                            "payment_intent": "pi_001",
                            "metadata": {
                                "orderId": "ord-001",
                                "customerEmail": "ada@example.com",
                                "merchantId": "merchant-001",
                                "taxAmount": "455",
                            },
                        }
                    },
                }
            ]
        }
    }


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class WebhookResponse(BaseModel):
    status: str
    outcome: dict = Field(default_factory=dict)


class LineSummary(BaseModel):
    line_id: str
    target: str
    merchant_id: str
    paid_status: str | None = None
    price_status: str | None = None


class PaymentSummary(BaseModel):
    code: str
    amount_paid: int
    currency: str | None = None
    application_fee_total: int
    stripe_fee_total: int
    net_payout: int


class CreditSummary(BaseModel):
    code: str
    amount: int
    tax: int
    currency: str | None = None


class OrderSettlementResponse(BaseModel):
    order_id: str
    code: str | None = None
    fully_paid: bool
    revision: int
    ttl: int | None = None
    lines: list[LineSummary]
    payments: list[PaymentSummary]
    credits: list[CreditSummary]


class FreeOfferResponse(BaseModel):
    status: str
    case_id: str
    voided_orders: dict[str, list[str]] = Field(default_factory=dict)
