"""References from order lines to the records they pay for.

A line either names its own record or inherits the order's reference. The
inherit case is a distinct value, resolved once when the line is read.
"""

from dataclasses import dataclass
from enum import Enum


class Container(Enum):
    ORDERS = "orders"
    LISTINGS = "listings"
    BOOKINGS = "bookings"
    SERVICE_BOOKINGS = "service_bookings"
    CASES = "cases"
    CASE_OFFERS = "case_offers"


@dataclass(frozen=True)
class RecordRef:
    """Points at one record in a container."""

    container: str
    id: str
    partition: str | None = None

    @property
    def is_case(self) -> bool:
        return self.container == Container.CASES.value


class Inherit:
    """Marks a line whose reference is the order's own reference."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "INHERIT"


INHERIT = Inherit()


def resolve(reference, order_reference: RecordRef | None) -> RecordRef | None:
    """Return the concrete reference for a line."""
    if isinstance(reference, Inherit):
        return order_reference
    return reference
