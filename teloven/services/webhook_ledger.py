from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from teloven.extensions import db
from teloven.models import WebhookEvent

logger = logging.getLogger(__name__)


def find_event(provider: str, event_id: str) -> WebhookEvent | None:
    return WebhookEvent.query.filter_by(provider=provider, provider_event_id=event_id).first()


def insert_event(provider: str, event_id: str, payload: str | None) -> WebhookEvent | None:
    """Insert the ledger row; ``None`` means another delivery already owns it.

    The unique constraint on (provider, provider_event_id) decides races
    between concurrent identical deliveries.
    """
    row = WebhookEvent(provider=provider, provider_event_id=event_id, payload=payload)
    try:
        db.session.add(row)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info("webhook_event_insert_lost_race provider=%s event_id=%s", provider, event_id)
        return None
    return row


def claim_event(provider: str, event_id: str, payload: str | None) -> WebhookEvent | None:
    if find_event(provider, event_id) is not None:
        return None
    return insert_event(provider, event_id, payload)
