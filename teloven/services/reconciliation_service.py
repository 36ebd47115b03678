from __future__ import annotations

import json
from datetime import datetime

from teloven.errors import GatewayError
from teloven.models import Order, WebhookEvent
from teloven.services.order_lifecycle import LifecycleEngine, WebhookOutcome, extract_payment_id, extract_topic


def _payment_id_from_payload(raw: str | None) -> str:
    try:
        parsed = json.loads(raw or "{}")
    except ValueError:
        return ""
    if not isinstance(parsed, dict):
        return ""
    if isinstance(parsed.get("body"), dict) or isinstance(parsed.get("query"), dict):
        body = parsed.get("body") if isinstance(parsed.get("body"), dict) else {}
        query = parsed.get("query") if isinstance(parsed.get("query"), dict) else {}
    else:
        # Rows recorded as a bare notification body.
        body, query = parsed, {}
    topic = extract_topic(body, query)
    if topic and topic != "payment":
        return ""
    return extract_payment_id(body, query)


def reconcile_recorded_events(engine: LifecycleEngine, *, since: datetime | None = None, limit: int = 500) -> dict:
    """Replay recorded payment events whose effect may never have been applied.

    Covers a crash between the ledger insert and the order transition.
    Payments already attached to an order are skipped.
    """
    q = WebhookEvent.query.filter_by(provider=engine.provider)
    if since is not None:
        q = q.filter(WebhookEvent.created_at >= since)
    events = q.order_by(WebhookEvent.created_at.asc()).limit(int(limit)).all()

    items = []
    seen = set()
    for event in events:
        payment_id = _payment_id_from_payload(event.payload)
        if not payment_id or payment_id in seen:
            continue
        seen.add(payment_id)
        if Order.query.filter_by(provider_payment_id=payment_id).first() is not None:
            continue
        try:
            ack = engine.reconcile_payment(payment_id)
        except GatewayError as e:
            items.append({"payment_id": payment_id, "outcome": WebhookOutcome.GATEWAY_ERROR, "error": str(e)})
            continue
        items.append({"payment_id": payment_id, "outcome": ack.outcome, "order_id": ack.order_id})

    applied = [item for item in items if item["outcome"] == WebhookOutcome.PAID_IN_CUSTODY]
    return {
        "ok": True,
        "scope": "webhook_ledger",
        "since": since.isoformat() if since else "",
        "event_count": len(events),
        "checked_count": len(items),
        "applied_count": len(applied),
        "items": items,
        "generated_at": datetime.utcnow().isoformat(),
    }
