"""Featuring referral fees on service sales.

When a service is sold through another merchant's storefront, that merchant
is owed ``share_bps`` basis points of the sale, paid as a separate transfer.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.domain import logger
from settlement.gateway import get_gateway
from settlement.party.party import Vendor

FEATURING_REFERRAL_FEE = "FEATURING_REFERRAL_FEE"


class TransferFailed(Exception):
    pass


def featuring_share(amount: int, quantity: int, share_bps: int) -> int:
    return (amount * quantity * share_bps) // 10000


def transfer_group(order_id, service_booking_id) -> str:
    return f"order_{order_id}_service_{service_booking_id}"


def submit_featuring_transfer(order_id, service_booking_id, service, vendor_id):
    """Pay the referring merchant its share. Returns the transfer id, or None when nothing is owed."""
    featuring = service.featuring
    share = featuring_share(service.amount, service.quantity, featuring.share_bps)
    if share <= 0:
        return None

    try:
        referrer = current_domain.repository_for(Vendor).get(featuring.merchant_id)
    except ObjectNotFoundError:
        referrer = None
    if referrer is None or not referrer.stripe_account_id:
        logger.warning(
            "featuring_referrer_without_account",
            order_id=str(order_id),
            featuring_merchant_id=featuring.merchant_id,
        )
        return None

    result = get_gateway().create_transfer(
        amount=share,
        currency=(service.currency or "AUD").lower(),
        destination=referrer.stripe_account_id,
        transfer_group=transfer_group(order_id, service_booking_id),
        metadata={
            "type": FEATURING_REFERRAL_FEE,
            "order_id": str(order_id),
            "service_booking_id": service_booking_id,
            "featuring_merchant_id": featuring.merchant_id,
            "featuring_relationship_id": featuring.relationship_id or "",
            "practitioner_id": vendor_id,
            "share_bps": str(featuring.share_bps),
        },
        idempotency_key=f"featuring:{service_booking_id}",
    )
    if not result.success:
        raise TransferFailed(result.failure_reason or "transfer failed")

    logger.info("featuring_transfer_created", order_id=str(order_id), transfer_id=result.transfer_id, amount=share)
    return result.transfer_id
