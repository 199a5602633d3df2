"""In-memory payment gateway for development and testing.

Charges and refunds are registered up front and served back by the read
methods. Every call is recorded in ``calls``. ``configure`` makes reads or
transfers fail.
"""

from uuid import uuid4

from settlement.exceptions import GatewayError
from settlement.gateway.port import ChargeDetails, PaymentGateway, RefundDetails, TransferResult


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.charges: dict[str, ChargeDetails] = {}
        self.refunds: dict[str, list[RefundDetails]] = {}
        self.transfers: list[dict] = []
        self.calls: list[dict] = []
        self.reads_fail = False
        self.transfers_fail = False
        self.failure_reason = "Gateway unavailable"

    def configure(self, reads_fail: bool = False, transfers_fail: bool = False, failure_reason: str = "Gateway unavailable") -> None:
        self.reads_fail = reads_fail
        self.transfers_fail = transfers_fail
        self.failure_reason = failure_reason

    def register_charge(self, charge: ChargeDetails) -> ChargeDetails:
        self.charges[charge.id] = charge
        return charge

    def register_refund(self, refund: RefundDetails) -> RefundDetails:
        self.refunds.setdefault(refund.charge_id, []).append(refund)
        return refund

    def retrieve_charge(self, charge_id: str, account: str | None = None) -> ChargeDetails:
        self.calls.append({"method": "retrieve_charge", "charge_id": charge_id, "account": account})
        if self.reads_fail:
            raise GatewayError(self.failure_reason, charge_id=charge_id)
        if charge_id not in self.charges:
            raise GatewayError(f"No such charge: {charge_id}", charge_id=charge_id)
        return self.charges[charge_id]

    def list_refunds(self, charge_id: str, account: str | None = None) -> list[RefundDetails]:
        self.calls.append({"method": "list_refunds", "charge_id": charge_id, "account": account})
        if self.reads_fail:
            raise GatewayError(self.failure_reason, charge_id=charge_id)
        return list(self.refunds.get(charge_id, []))

    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: str,
        metadata: dict,
        idempotency_key: str,
    ) -> TransferResult:
        call = {
            "method": "create_transfer",
            "amount": amount,
            "currency": currency,
            "destination": destination,
            "transfer_group": transfer_group,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        }
        self.calls.append(call)
        if self.transfers_fail:
            return TransferResult(success=False, failure_reason=self.failure_reason)
        self.transfers.append(call)
        return TransferResult(success=True, transfer_id=f"fake_tr_{uuid4().hex[:12]}")

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
