"""Channel adapter registry: realtime and email delivery.

Provides singleton access to channel adapters. NOTIFICATION_ADAPTER selects
the implementation; only the in-memory fakes ship with this package.
"""

from settlement.config import get_settings

REALTIME = "realtime"
EMAIL = "email"

_channel_instances: dict[str, object] = {}


def get_channel(channel_type: str):
    """Return the configured channel adapter (singleton per channel type).

    Args:
        channel_type: "realtime" or "email"
    """
    if channel_type not in _channel_instances:
        adapter = get_settings().notification_adapter
        if adapter != "fake":
            raise ValueError(f"Unknown notification adapter: {adapter}")

        if channel_type == REALTIME:
            from settlement.notifications.channel.fake_realtime import FakeRealtimeAdapter

            _channel_instances[channel_type] = FakeRealtimeAdapter()
        elif channel_type == EMAIL:
            from settlement.notifications.channel.fake_email import FakeEmailAdapter

            _channel_instances[channel_type] = FakeEmailAdapter()
        else:
            raise ValueError(f"Unknown channel type: {channel_type}")

    return _channel_instances[channel_type]


def reset_channels():
    """Reset all channel singletons (useful for testing)."""
    _channel_instances.clear()
