from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from pydantic import ValidationError

from teloven.errors import Forbidden, RequestValidationError, Unauthorized
from teloven.schemas import CompletePayoutRequest, CreateOrderRequest, EmptyRequest, OpenDisputeRequest
from teloven.services.order_lifecycle import LifecycleEngine
from teloven.utils.jwt_utils import user_id_from_header

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api/orders")
admin_orders_bp = Blueprint("admin_orders_bp", __name__, url_prefix="/api/admin/orders")


def get_engine() -> LifecycleEngine:
    return current_app.extensions["lifecycle_engine"]


def _current_user_id() -> str:
    uid = user_id_from_header(request.headers.get("Authorization", ""))
    g.auth_user_id = uid
    if not uid:
        raise Unauthorized("missing or invalid bearer token")
    return uid


def _parse(model):
    raw = request.get_data(cache=True)
    payload = request.get_json(silent=True) if raw else {}
    if not isinstance(payload, dict):
        raise RequestValidationError("request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in e.errors()
        ]
        raise RequestValidationError("invalid request body", errors=errors)


@orders_bp.post("")
def create_order():
    uid = _current_user_id()
    body = _parse(CreateOrderRequest)
    order = get_engine().create_order(body.listing_id, uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 201


@orders_bp.get("/<order_id>")
def get_order(order_id: str):
    uid = _current_user_id()
    order = get_engine().get_order(order_id, uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<order_id>/checkout")
def checkout(order_id: str):
    uid = _current_user_id()
    _parse(EmptyRequest)
    session = get_engine().initiate_checkout(order_id, uid)
    return jsonify({"ok": True, **session.to_dict()}), 200


@orders_bp.post("/<order_id>/deliver")
def mark_delivered(order_id: str):
    uid = _current_user_id()
    _parse(EmptyRequest)
    order = get_engine().mark_delivered(order_id, uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<order_id>/confirm")
def confirm(order_id: str):
    uid = _current_user_id()
    _parse(EmptyRequest)
    order = get_engine().confirm_by_buyer(order_id, uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<order_id>/dispute")
def open_dispute(order_id: str):
    uid = _current_user_id()
    body = _parse(OpenDisputeRequest)
    order = get_engine().open_dispute(order_id, uid, reason=body.reason)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/<order_id>/cancel")
def cancel(order_id: str):
    uid = _current_user_id()
    _parse(EmptyRequest)
    order = get_engine().cancel(order_id, uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


def _require_admin() -> str:
    uid = _current_user_id()
    if not get_engine().is_admin(uid):
        raise Forbidden("admin only")
    return uid


@admin_orders_bp.post("/<order_id>/payout")
def initiate_payout(order_id: str):
    uid = _require_admin()
    _parse(EmptyRequest)
    order = get_engine().initiate_payout(order_id, actor_user_id=uid)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@admin_orders_bp.post("/<order_id>/payout/complete")
def complete_payout(order_id: str):
    uid = _require_admin()
    body = _parse(CompletePayoutRequest)
    order = get_engine().complete_payout(order_id, actor_user_id=uid, payout_reference=body.payout_reference)
    return jsonify({"ok": True, "order": order.to_dict()}), 200
