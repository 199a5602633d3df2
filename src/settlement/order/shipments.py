"""Compression of carrier rate-shopping data on shipments.

Rate shopping leaves one quote per carrier service on the shipment. Once the
order is paid only the cheapest and fastest quotes are worth keeping.
"""

import json


def summarize_carrier_options(options: list[dict]) -> dict | None:
    if not options:
        return None

    priced = [o for o in options if o.get("amount") is not None]
    timed = [o for o in options if o.get("days") is not None]

    summary = {"carrier_count": len({o.get("carrier") for o in options})}
    if priced:
        cheapest = min(priced, key=lambda o: o["amount"])
        summary["cheapest"] = {
            "carrier": cheapest.get("carrier"),
            "service": cheapest.get("service"),
            "amount": cheapest["amount"],
            "currency": cheapest.get("currency"),
        }
    if timed:
        fastest = min(timed, key=lambda o: o["days"])
        summary["fastest"] = {
            "carrier": fastest.get("carrier"),
            "service": fastest.get("service"),
            "days": fastest["days"],
        }
    return summary


def compress_shipment(shipment) -> bool:
    """Replace raw carrier options with a summary. Returns True if anything changed."""
    options = json.loads(shipment.carrier_options) if shipment.carrier_options else []
    if not options:
        return False
    shipment.carrier_summary = json.dumps(summarize_carrier_options(options))
    shipment.carrier_options = None
    return True
