"""Fake realtime adapter: records published messages for testing."""

from uuid import uuid4

from settlement.notifications.channel.realtime_port import RealtimePort


class FakeRealtimeAdapter(RealtimePort):
    def __init__(self):
        self.published: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Publish failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Publish failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def publish(self, topic: str, payload: dict, action: str, scope: str, audience: str) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"rt-{uuid4().hex[:12]}"
        self.published.append(
            {
                "message_id": message_id,
                "topic": topic,
                "payload": payload,
                "action": action,
                "scope": scope,
                "audience": audience,
            }
        )
        return {"message_id": message_id, "status": "sent", "error": None}

    def messages_for(self, topic: str) -> list[dict]:
        return [m for m in self.published if m["topic"] == topic]
