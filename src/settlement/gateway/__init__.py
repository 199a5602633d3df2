"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- FakeGateway for development and testing (PAYMENT_GATEWAY=fake, default)
- StripeGateway for production (PAYMENT_GATEWAY=stripe)
"""

from settlement.config import get_settings
from settlement.gateway.fake_adapter import FakeGateway
from settlement.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    settings = get_settings()
    if settings.payment_gateway == "stripe":
        from settlement.gateway.stripe_adapter import StripeGateway

        return StripeGateway(api_key=settings.stripe_api_key, webhook_secret=settings.stripe_webhook_secret)
    return FakeGateway()


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
