from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from teloven.extensions import db
from teloven.models import AuditEntry
from teloven.utils.observability import get_request_id

logger = logging.getLogger(__name__)


def _safe_value(value: Any):
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_safe_value(v) for v in value]
    try:
        return str(value)
    except Exception:
        return "<unserializable>"


def _safe_json(data: Any) -> str:
    normalized = _safe_value(data if isinstance(data, dict) else {"value": data})
    try:
        return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)
    except Exception:
        return "{}"


class AuditChannel:
    """Best-effort side channel for audit entries.

    ``emit`` never raises. In ``celery`` mode entries are handed to a worker
    task; if the broker refuses them they are written inline instead. Inline
    writes happen after the caller committed its own work.
    """

    MODES = ("inline", "celery")

    def __init__(self, mode: str = "inline"):
        mode = (mode or "inline").strip().lower()
        self.mode = mode if mode in self.MODES else "inline"
        self._lock = threading.Lock()
        self.failures = 0
        self.enqueue_failures = 0

    def stats(self) -> dict:
        return {
            "mode": self.mode,
            "failures": int(self.failures),
            "enqueue_failures": int(self.enqueue_failures),
        }

    def emit(
        self,
        action: str,
        *,
        entity_type: str,
        entity_id: str | None,
        actor_user_id: str | None = None,
        metadata: dict | None = None,
    ) -> AuditEntry | None:
        entry = {
            "action": (action or "unknown").strip()[:80],
            "actor_user_id": str(actor_user_id)[:64] if actor_user_id is not None else None,
            "entity_type": (entity_type or "").strip()[:40],
            "entity_id": str(entity_id)[:128] if entity_id is not None else None,
            "request_id": (get_request_id() or "")[:80] or None,
            "metadata_json": _safe_json(metadata or {}),
        }
        if self.mode == "celery":
            try:
                from teloven.tasks.webhook_tasks import write_audit_entry_task

                write_audit_entry_task.delay(entry=entry)
                return None
            except Exception:
                with self._lock:
                    self.enqueue_failures += 1
                logger.warning("audit_enqueue_failed action=%s", entry["action"], exc_info=True)
        return self.write(entry)

    def write(self, entry: dict) -> AuditEntry | None:
        try:
            row = AuditEntry(
                action=entry.get("action") or "unknown",
                actor_user_id=entry.get("actor_user_id"),
                entity_type=entry.get("entity_type") or "",
                entity_id=entry.get("entity_id"),
                request_id=entry.get("request_id"),
                metadata_json=entry.get("metadata_json") or "{}",
                created_at=datetime.utcnow(),
            )
            db.session.add(row)
            db.session.commit()
            return row
        except Exception:
            with self._lock:
                self.failures += 1
            try:
                db.session.rollback()
            except Exception:
                pass
            logger.exception(
                "audit_write_failed action=%s entity=%s:%s",
                entry.get("action"),
                entry.get("entity_type"),
                entry.get("entity_id"),
            )
            return None
