"""Platform fee schedule and the customer/merchant fee split for a merchant's lines.

All amounts are integer minor units. Rounding is half-up per line.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from settlement.config import get_settings
from settlement.order.order import LineTarget


def round_cents(value) -> int:
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class FeeSchedule:
    product_rate: Decimal = Decimal("0.05")
    percent_rate: Decimal = Decimal("0.05")
    fixed_fee: int = 30
    listing_fee: int = 100
    processing_divisor: int = 100
    gateway_rate: Decimal = Decimal("0.035")
    gateway_fixed: int = 30
    gst_divisor: int = 10


@dataclass(frozen=True)
class CustomerFees:
    item_total: int = 0
    stripe: int = 0
    processing: int = 0

    @property
    def fees(self) -> int:
        return self.processing

    @property
    def charge(self) -> int:
        return self.item_total + self.processing


@dataclass(frozen=True)
class MerchantFees:
    sale: int = 0
    listing: int = 0
    tax: int = 0

    @property
    def charge(self) -> int:
        return self.sale + self.listing + self.tax


@dataclass(frozen=True)
class PlatformFees:
    customer: CustomerFees = field(default_factory=CustomerFees)
    merchant: MerchantFees = field(default_factory=MerchantFees)


_schedule: FeeSchedule | None = None


def get_fee_schedule() -> FeeSchedule:
    global _schedule
    if _schedule is None:
        _schedule = FeeSchedule()
    return _schedule


def set_fee_schedule(schedule: FeeSchedule) -> None:
    global _schedule
    _schedule = schedule


def reset_fee_schedule() -> None:
    global _schedule
    _schedule = None


def gateway_fee_estimate(amount: int, schedule: FeeSchedule | None = None) -> int:
    schedule = schedule or get_fee_schedule()
    return round_cents(Decimal(amount) * schedule.gateway_rate + schedule.gateway_fixed)


def _sale_fee(line, schedule: FeeSchedule) -> int:
    line_total = (line.price_amount or 0) * (line.quantity or 0)
    if line.target == LineTarget.PRODUCT_PURCHASE.value:
        return round_cents(Decimal(line_total) * schedule.product_rate)
    return round_cents(Decimal(line_total) * schedule.percent_rate + schedule.fixed_fee)


def derive_fees(merchant_id, lines, schedule: FeeSchedule | None = None) -> PlatformFees:
    """Split platform fees between customer and merchant for ``lines``."""
    schedule = schedule or get_fee_schedule()
    if merchant_id == get_settings().platform_merchant_id or not lines:
        return PlatformFees()

    item_total = sum((line.price_amount or 0) * (line.quantity or 0) for line in lines)
    sale = sum(_sale_fee(line, schedule) for line in lines)
    processing = round_cents(Decimal(item_total) / schedule.processing_divisor)
    stripe = gateway_fee_estimate(item_total + processing, schedule)
    listing = schedule.listing_fee
    gst = round_cents(Decimal(sale + listing + processing) / schedule.gst_divisor)

    return PlatformFees(
        customer=CustomerFees(item_total=item_total, stripe=stripe, processing=processing),
        merchant=MerchantFees(sale=sale, listing=listing, tax=gst),
    )
