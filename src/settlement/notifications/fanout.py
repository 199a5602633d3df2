"""Best-effort notification fan-out.

Every send returns an EffectResult. Delivery failures are logged with their
context and never raised to the processors.
"""

from protean.utils.globals import current_domain

from settlement.charge.effects import run_effect
from settlement.notifications.channel import EMAIL, REALTIME, get_channel
from settlement.notifications.channel.realtime_port import AudienceScope, PublishAction
from settlement.notifications.notification import UserNotification
from settlement.notifications.templates import Topic


class DeliveryFailed(Exception):
    pass


def _check(result: dict) -> dict:
    if result.get("status") != "sent":
        raise DeliveryFailed(result.get("error") or "delivery failed")
    return result


class NotificationFanout:
    def publish(self, topic, payload, audience, scope=AudienceScope.GROUP, action=PublishAction.UPSERT):
        topic = topic.value if isinstance(topic, Topic) else topic
        return run_effect(
            "publish",
            lambda: _check(get_channel(REALTIME).publish(topic, payload, action.value, scope.value, audience)),
            topic=topic,
            audience=audience,
        )

    def send_email(self, template, recipient, variables):
        template = getattr(template, "value", template)
        return run_effect(
            "send_email",
            lambda: _check(get_channel(EMAIL).send_templated(template, recipient, variables)),
            template=template,
            recipient=recipient,
        )

    def notify(self, audience, message, scope=AudienceScope.GROUP, order_id=None):
        """Store a notification for ``audience`` and push it over realtime."""

        def _deliver():
            notification = UserNotification(scope=scope.value, audience=audience, message=message, order_id=order_id)
            current_domain.repository_for(UserNotification).add(notification)
            return _check(
                get_channel(REALTIME).publish(
                    Topic.NOTIFICATIONS.value,
                    {"id": str(notification.id), "message": message, "order_id": order_id},
                    PublishAction.UPSERT.value,
                    scope.value,
                    audience,
                )
            )

        return run_effect("notify", _deliver, audience=audience, scope=scope.value)
