"""Runtime settings for the settlement engine, read from the environment."""

import os
from dataclasses import dataclass

_GATEWAYS = ("fake", "stripe")
_NOTIFICATION_ADAPTERS = ("fake",)


@dataclass(frozen=True)
class SettlementSettings:
    environment: str = "development"
    payment_gateway: str = "fake"
    stripe_api_key: str | None = None
    stripe_webhook_secret: str | None = None
    notification_adapter: str = "fake"
    platform_merchant_id: str = "SPIRIVERSE"
    void_grace_ttl_seconds: int = 86400
    low_stock_threshold: int = 5
    payment_code_attempts: int = 10


def load_settings() -> SettlementSettings:
    """Build settings from environment variables."""
    environment = (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()

    gateway = os.environ.get("PAYMENT_GATEWAY", "fake").lower()
    if gateway not in _GATEWAYS:
        raise ValueError(f"Unknown PAYMENT_GATEWAY: {gateway!r}. Use one of: {', '.join(_GATEWAYS)}")

    notification_adapter = os.environ.get("NOTIFICATION_ADAPTER", "fake").lower()
    if notification_adapter not in _NOTIFICATION_ADAPTERS:
        raise ValueError(f"Unknown NOTIFICATION_ADAPTER: {notification_adapter!r}. Use 'fake'.")

    api_key = os.environ.get("STRIPE_API_KEY")
    webhook_secret = os.environ.get("STRIPE_WEBHOOK_SECRET")
    if gateway == "stripe" and not (api_key and webhook_secret):
        raise ValueError("PAYMENT_GATEWAY=stripe requires STRIPE_API_KEY and STRIPE_WEBHOOK_SECRET")

    return SettlementSettings(
        environment=environment,
        payment_gateway=gateway,
        stripe_api_key=api_key,
        stripe_webhook_secret=webhook_secret,
        notification_adapter=notification_adapter,
        platform_merchant_id=os.environ.get("PLATFORM_MERCHANT_ID", "SPIRIVERSE"),
        void_grace_ttl_seconds=int(os.environ.get("VOID_GRACE_TTL_SECONDS", "86400")),
        low_stock_threshold=int(os.environ.get("LOW_STOCK_THRESHOLD", "5")),
        payment_code_attempts=int(os.environ.get("PAYMENT_CODE_ATTEMPTS", "10")),
    )


_settings: SettlementSettings | None = None


def get_settings() -> SettlementSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
