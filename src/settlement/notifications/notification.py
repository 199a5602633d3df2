"""Persisted in-app notifications addressed to a group channel or a user."""

from datetime import UTC, datetime

from protean.fields import DateTime, String, Text

from settlement.domain import settlement
from settlement.notifications.channel.realtime_port import AudienceScope


@settlement.aggregate
class UserNotification:
    scope = String(required=True, max_length=10, choices=AudienceScope)
    audience = String(required=True, max_length=255)
    message = Text(required=True)
    order_id = String(max_length=100)
    created_at = DateTime(default=lambda: datetime.now(UTC))
