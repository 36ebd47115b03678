from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from teloven.extensions import db
from teloven.segments.segment_orders_api import get_engine
from teloven.utils.observability import get_request_id
from teloven.utils.webhook_signature import verify_signature

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")


def _data_id(payload: dict, query: dict) -> str:
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    return str(query.get("data.id") or data.get("id") or "").strip()


@webhooks_bp.post("/mercadopago")
def mercadopago_webhook():
    # Every branch answers 200; the provider redelivers anything else.
    try:
        engine = get_engine()
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}
        query = request.args.to_dict()

        secret = engine.config.webhook_secret
        if secret and not verify_signature(
            secret,
            request.headers.get("x-signature"),
            request_id=request.headers.get("x-request-id"),
            data_id=_data_id(payload, query),
        ):
            current_app.logger.warning("mercadopago_webhook_invalid_signature trace_id=%s", get_request_id())
            return jsonify({"ok": True, "outcome": "invalid_signature"}), 200

        if engine.config.webhook_queue:
            try:
                from teloven.tasks.webhook_tasks import process_webhook_task

                process_webhook_task.delay(
                    payload=payload,
                    query=query,
                    trace_id=get_request_id(),
                )
                return jsonify({"ok": True, "queued": True, "trace_id": get_request_id()}), 200
            except Exception:
                current_app.logger.warning("mercadopago_webhook_enqueue_failed", exc_info=True)

        ack = engine.handle_webhook(payload, query=query)
        return jsonify(ack.to_dict()), 200
    except Exception:
        try:
            db.session.rollback()
        except Exception:
            pass
        current_app.logger.exception("mercadopago_webhook_route_failed")
        return jsonify({"ok": True, "outcome": "failed"}), 200
