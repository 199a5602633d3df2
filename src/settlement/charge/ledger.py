"""Ledger of processed gateway events, keyed by the gateway's event id."""

import json
from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, String, Text
from protean.utils.globals import current_domain

from settlement.domain import settlement


@settlement.aggregate
class ProcessedGatewayEvent:
    event_type = String(required=True, max_length=100)
    order_id = String(max_length=100)
    outcome = Text()  # JSON
    processed_at = DateTime()


def processed_outcome(event_id) -> dict | None:
    """Outcome recorded for ``event_id``, or None if it was never processed."""
    if not event_id:
        return None
    try:
        entry = current_domain.repository_for(ProcessedGatewayEvent).get(event_id)
    except ObjectNotFoundError:
        return None
    return json.loads(entry.outcome) if entry.outcome else {}


def record_processed(event_id, event_type, order_id, outcome: dict) -> None:
    if not event_id:
        return
    current_domain.repository_for(ProcessedGatewayEvent).add(
        ProcessedGatewayEvent(
            id=event_id,
            event_type=event_type,
            order_id=str(order_id),
            outcome=json.dumps(outcome),
            processed_at=datetime.now(UTC),
        )
    )
