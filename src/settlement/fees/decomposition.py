"""Decomposition of a captured charge into the Payment fee breakdown.

Inputs are the captured amount, the gateway balance transaction (its net and
typed fee details), the platform fee split and optional shipping figures.
The gateway's ``application_fee`` detail duplicates the platform fee and is
dropped; ``stripe_fee`` and ``tax`` details merge into one ``stripe`` object.

With ``application_fee_total`` the customer and merchant platform fees plus
the merchant fee tax::

    paid == application_fee_total + stripe_fees.total + net

holds exactly. ``summary.remaining`` is what is left of the net payout once
the sale price including tax is accounted for.
"""

from dataclasses import dataclass

from settlement.fees.schedule import PlatformFees


@dataclass(frozen=True)
class ShippingCharge:
    subtotal: int = 0
    tax: int = 0
    gateway_fee: int = 0
    currency: str | None = None

    @property
    def estimate(self) -> int:
        return self.subtotal + self.tax + self.gateway_fee


def fee_detail_totals(fee_details) -> dict[str, int]:
    """Sum gateway fee details by type, without the application fee."""
    totals: dict[str, int] = {}
    for detail in fee_details or []:
        totals[detail["type"]] = totals.get(detail["type"], 0) + int(detail["amount"])
    totals.pop("application_fee", None)
    return totals


def decompose_fees(
    amount: int,
    currency: str,
    balance_net: int,
    fee_details,
    platform_fees: PlatformFees,
    tax_amount: int = 0,
    shipping: ShippingCharge | None = None,
) -> dict:
    if any(not isinstance(v, int) for v in (amount, balance_net, tax_amount)):
        raise TypeError("Fee decomposition works in integer minor units only")

    gateway = fee_detail_totals(fee_details)
    stripe = {"amount": gateway.get("stripe_fee", 0), "tax": gateway.get("tax", 0)}

    customer = platform_fees.customer
    merchant = platform_fees.merchant

    deductions_tax = merchant.tax
    merchant_components = {"sale": merchant.sale, "listing": merchant.listing}
    merchant_total = sum(merchant_components.values())
    customer_components = {"processing": customer.processing}
    customer_total = sum(customer_components.values())
    application_fee_total = merchant_total + customer_total + deductions_tax

    shipping_block = None
    if shipping is not None and shipping.subtotal > 0:
        shipping_block = {
            "components": {
                "subtotal": shipping.subtotal,
                "tax": shipping.tax,
                "stripe": shipping.gateway_fee,
                "currency": shipping.currency or currency.upper(),
            },
            "estimate": shipping.estimate,
        }

    sale_price_inc_tax = customer.item_total + tax_amount
    stripe_fees_total = amount - application_fee_total - balance_net

    return {
        "charge": {
            "subtotal": customer.item_total,
            "application": {
                "components": customer_components,
                "actual": customer.processing,
            },
            "stripe": {"estimate": customer.stripe},
            "shipping": shipping_block,
            "tax": tax_amount,
            "paid": amount,
        },
        "payout": {
            "customer_paid": amount,
            "application_fees": {
                "components": {
                    "customer": {"components": customer_components, "total": customer_total},
                    "merchant": {"components": merchant_components, "total": merchant_total},
                    "tax": deductions_tax,
                },
                "total": application_fee_total,
            },
            "stripe_fees": {"components": stripe, "total": stripe_fees_total},
            "summary": {
                "sale_price_inc_tax": sale_price_inc_tax,
                "receives": balance_net,
                "remaining": balance_net - sale_price_inc_tax,
            },
        },
    }
