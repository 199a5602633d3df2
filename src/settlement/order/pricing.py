"""Restores authoritative prices on lines priced provisionally at checkout."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from settlement.catalog.listing import Listing
from settlement.domain import logger


def restore_prices(order, lines) -> list[str]:
    """Correct price and target of provisional lines from their listing.

    Returns the ids of lines that changed. A line whose listing cannot be
    found keeps its provisional price.
    """
    repo = current_domain.repository_for(Listing)
    restored = []
    for line in lines:
        if not line.price_provisional or not line.listing_id:
            continue
        try:
            listing = repo.get(line.listing_id)
        except ObjectNotFoundError:
            logger.warning("price_restore_listing_missing", order_id=str(order.id), line_id=str(line.id), listing_id=line.listing_id)
            continue

        amount = listing.authoritative_price(line.variant_id)
        if order.restore_price(line.id, amount, target=listing.line_target):
            restored.append(str(line.id))
            logger.info("line_price_restored", order_id=str(order.id), line_id=str(line.id), amount=amount)
    return restored
