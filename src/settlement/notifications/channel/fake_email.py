"""Fake email adapter: records sent emails for testing."""

from uuid import uuid4

from settlement.notifications.channel.email_port import EmailPort


class FakeEmailAdapter(EmailPort):
    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send_templated(self, template: str, recipient: str, variables: dict) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append(
            {
                "message_id": message_id,
                "template": template,
                "to": recipient,
                "variables": variables,
            }
        )
        return {"message_id": message_id, "status": "sent", "error": None}

    def templates_sent(self) -> list[str]:
        return [e["template"] for e in self.sent_emails]
