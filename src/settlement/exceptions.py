"""Structural failures of the settlement engine.

These abort the gateway event being processed and surface to the caller so
that the delivery can be retried or dead-lettered. Data-quality problems and
best-effort side effects never raise; they are logged instead.
"""


class SettlementError(Exception):
    """Base class for settlement failures."""

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class OrderNotFound(SettlementError):
    pass


class CustomerNotFound(SettlementError):
    pass


class MerchantAccountMissing(SettlementError):
    """The merchant has no connected gateway account to settle against."""


class RecordNotFound(SettlementError):
    """A collaborator record required by a line (booking, ticket, case) is missing."""


class ConcurrentOrderUpdate(SettlementError):
    """Another writer changed the order after it was loaded."""


class GatewayError(SettlementError):
    pass
