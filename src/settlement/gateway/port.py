"""Payment gateway port (abstract interface).

Settlement only reads from the gateway (charges with their balance
transaction, refunds of a charge) and creates connected-account transfers
for featuring referral fees.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ChargeDetails:
    """A captured charge with its expanded balance transaction."""

    id: str
    amount: int
    currency: str
    payment_intent_id: str | None = None
    card_brand: str | None = None
    card_last4: str | None = None
    balance_net: int = 0
    fee_details: list[dict] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def method_description(self) -> str | None:
        if not self.card_brand:
            return None
        return f"{self.card_brand} ending in {self.card_last4}"


@dataclass(frozen=True)
class RefundDetails:
    id: str
    charge_id: str
    amount: int
    currency: str
    status: str
    destination_details: dict | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class TransferResult:
    success: bool
    transfer_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def retrieve_charge(self, charge_id: str, account: str | None = None) -> ChargeDetails:
        """Fetch a charge with its balance transaction expanded."""
        ...

    @abstractmethod
    def list_refunds(self, charge_id: str, account: str | None = None) -> list[RefundDetails]:
        """All refunds of a charge, in any status."""
        ...

    @abstractmethod
    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: str,
        metadata: dict,
        idempotency_key: str,
    ) -> TransferResult:
        """Move funds to a connected account."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
