from __future__ import annotations

import json
import unittest
from decimal import Decimal
from unittest.mock import patch

from teloven.services.audit_service import AuditChannel, _safe_json
from teloven.tasks.webhook_tasks import write_audit_entry_task
from tests.helpers import EngineTestCase


class AuditChannelTestCase(EngineTestCase):
    def test_inline_emit_writes_entry(self):
        channel = AuditChannel("inline")
        row = channel.emit("order.created", entity_type="order", entity_id="o-1", actor_user_id="u-1", metadata={"total": 1060})
        self.assertIsNotNone(row)
        stored = self.audit_actions("order.created")[0]
        self.assertEqual(stored.entity_id, "o-1")
        self.assertEqual(stored.metadata_dict(), {"total": 1060})

    def test_unknown_mode_falls_back_to_inline(self):
        self.assertEqual(AuditChannel("kafka").mode, "inline")

    def test_celery_mode_enqueues(self):
        channel = AuditChannel("celery")
        with patch("teloven.tasks.webhook_tasks.write_audit_entry_task.delay") as delay:
            result = channel.emit("order.cancelled", entity_type="order", entity_id="o-1")
        self.assertIsNone(result)
        entry = delay.call_args.kwargs["entry"]
        self.assertEqual(entry["action"], "order.cancelled")
        self.assertEqual(self.audit_actions(), [])

    def test_celery_enqueue_failure_writes_inline(self):
        channel = AuditChannel("celery")
        with patch("teloven.tasks.webhook_tasks.write_audit_entry_task.delay", side_effect=ConnectionError("broker down")):
            row = channel.emit("order.cancelled", entity_type="order", entity_id="o-1")
        self.assertIsNotNone(row)
        self.assertEqual(channel.enqueue_failures, 1)
        self.assertEqual(len(self.audit_actions("order.cancelled")), 1)

    def test_write_task_persists_entry(self):
        entry = {"action": "order.paid_out", "entity_type": "order", "entity_id": "o-9", "metadata_json": "{}"}
        result = write_audit_entry_task(entry=entry)
        self.assertEqual(result, {"ok": True})
        self.assertEqual(len(self.audit_actions("order.paid_out")), 1)

    def test_stats_exposed_in_health(self):
        self.engine.audit.failures = 3
        body = self.client.get("/api/health").get_json()
        self.assertEqual(body["audit"]["failures"], 3)


class SafeJsonTestCase(unittest.TestCase):
    def test_normalizes_values(self):
        out = json.loads(_safe_json({"amount": Decimal("10.50"), "ids": ("a", "b"), "obj": object}))
        self.assertEqual(out["amount"], "10.50")
        self.assertEqual(out["ids"], ["a", "b"])
        self.assertIsInstance(out["obj"], str)

    def test_non_dict_is_wrapped(self):
        self.assertEqual(json.loads(_safe_json(5)), {"value": 5})


if __name__ == "__main__":
    unittest.main()
