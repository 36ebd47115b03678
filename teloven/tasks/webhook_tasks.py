from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


@shared_task(name="teloven.tasks.webhook_tasks.process_webhook")
def process_webhook_task(*, payload: dict, query: dict | None = None, trace_id: str = ""):
    started = time.perf_counter()
    engine = current_app.extensions["lifecycle_engine"]
    ack = engine.handle_webhook(payload, query=query or {})
    _task_log(
        "process_webhook",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        outcome=ack.outcome,
        event_id=ack.event_id,
    )
    return ack.to_dict()


@shared_task(
    bind=True,
    name="teloven.tasks.webhook_tasks.write_audit_entry",
    max_retries=3,
    default_retry_delay=5,
)
def write_audit_entry_task(self, *, entry: dict):
    started = time.perf_counter()
    channel = current_app.extensions["lifecycle_engine"].audit
    row = channel.write(entry)
    if row is None and int(self.request.retries or 0) < int(self.max_retries or 0):
        raise self.retry(exc=RuntimeError("audit_write_failed"))
    _task_log(
        "write_audit_entry",
        status="ok" if row is not None else "dropped",
        started_at=started,
        action=entry.get("action"),
    )
    return {"ok": row is not None}
