"""Domain events raised by the Case aggregate when a payment changes its state."""

from protean.fields import DateTime, Identifier, String, Text

from settlement.domain import settlement


@settlement.event(part_of="Case")
class CaseOpened:
    """The customer's payment for a new case went through."""

    __version__ = 1

    case_id = Identifier(required=True)
    opened_at = DateTime(required=True)


@settlement.event(part_of="Case")
class CaseReleased:
    """The case was handed back to the pool."""

    __version__ = 1

    case_id = Identifier(required=True)
    previous_merchants = Text()  # JSON array
    offer_id = Identifier()
    released_at = DateTime(required=True)


@settlement.event(part_of="Case")
class CaseClosed:
    """A close offer was paid."""

    __version__ = 1

    case_id = Identifier(required=True)
    offer_id = Identifier()
    offer_code = String(max_length=50)
    closed_at = DateTime(required=True)
