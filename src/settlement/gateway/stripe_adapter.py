"""Stripe adapter using the stripe-python SDK.

Charges and refunds are read on the merchant's connected account when one is
given. Transfers are created on the platform account.
"""

import stripe

from settlement.exceptions import GatewayError
from settlement.gateway.port import ChargeDetails, PaymentGateway, RefundDetails, TransferResult


def _account_kwargs(account):
    return {"stripe_account": account} if account else {}


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, webhook_secret: str) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def retrieve_charge(self, charge_id: str, account: str | None = None) -> ChargeDetails:
        try:
            charge = stripe.Charge.retrieve(
                charge_id,
                expand=["balance_transaction"],
                api_key=self.api_key,
                **_account_kwargs(account),
            )
        except stripe.StripeError as exc:
            raise GatewayError(str(exc), charge_id=charge_id, account=account) from exc

        balance = charge.balance_transaction
        card = (charge.payment_method_details or {}).get("card") or {}
        return ChargeDetails(
            id=charge.id,
            amount=charge.amount,
            currency=charge.currency,
            payment_intent_id=charge.payment_intent,
            card_brand=card.get("brand"),
            card_last4=card.get("last4"),
            balance_net=balance.net if balance else 0,
            fee_details=[{"type": d.type, "amount": d.amount} for d in (balance.fee_details if balance else [])],
            metadata=dict(charge.metadata or {}),
        )

    def list_refunds(self, charge_id: str, account: str | None = None) -> list[RefundDetails]:
        try:
            refunds = stripe.Refund.list(charge=charge_id, api_key=self.api_key, **_account_kwargs(account))
        except stripe.StripeError as exc:
            raise GatewayError(str(exc), charge_id=charge_id, account=account) from exc

        return [
            RefundDetails(
                id=refund.id,
                charge_id=charge_id,
                amount=refund.amount,
                currency=refund.currency,
                status=refund.status,
                destination_details=refund.get("destination_details"),
            )
            for refund in refunds.auto_paging_iter()
        ]

    def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: str,
        metadata: dict,
        idempotency_key: str,
    ) -> TransferResult:
        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=destination,
                transfer_group=transfer_group,
                metadata=metadata,
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            return TransferResult(success=False, failure_reason=str(exc))
        return TransferResult(success=True, transfer_id=transfer.id)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            return False
        return True
