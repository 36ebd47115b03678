from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from teloven.config import EngineConfig
from teloven.errors import (
    AmountMismatch,
    Forbidden,
    GatewayError,
    InvalidState,
    ListingNotFound,
    OrderNotFound,
)
from teloven.extensions import db
from teloven.integrations.listings import ListingDirectory
from teloven.integrations.payments.base import CheckoutSession, PaymentsGateway, ResolvedPayment
from teloven.models import Order, OrderStatus, PaymentRecord
from teloven.services.audit_service import AuditChannel
from teloven.services.webhook_ledger import claim_event
from teloven.utils.fees import compute_order_amounts

logger = logging.getLogger(__name__)


class WebhookOutcome:
    IGNORED_NO_EVENT_ID = "ignored_no_event_id"
    DUPLICATE = "duplicate"
    IGNORED_TOPIC = "ignored_topic"
    NO_PAYMENT_ID = "no_payment_id"
    GATEWAY_UNAVAILABLE = "gateway_unavailable"
    GATEWAY_ERROR = "gateway_error"
    ORPHAN = "orphan"
    AMOUNT_MISMATCH = "amount_mismatch"
    NOT_APPROVED = "not_approved"
    ALREADY_PROCESSED = "already_processed"
    PAID_IN_CUSTODY = "paid_in_custody"
    FAILED = "failed"


@dataclass
class WebhookAck:
    outcome: str
    event_id: str = ""
    order_id: str | None = None
    ok: bool = True

    def to_dict(self) -> dict:
        payload = {"ok": True, "outcome": self.outcome}
        if self.event_id:
            payload["event_id"] = self.event_id
        if self.order_id:
            payload["order_id"] = self.order_id
        return payload


MAX_ID_LENGTH = 128


def _now() -> datetime:
    return datetime.utcnow()


def _raw_id(value) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value).strip()


def _clean_id(value) -> str:
    """Stripped id, or ``""`` when missing or longer than the id columns."""
    text = _raw_id(value)
    if len(text) > MAX_ID_LENGTH:
        return ""
    return text


def _ledger_key(raw: str) -> str:
    # Over-long keys are hashed so distinct ids never collide in the ledger.
    if len(raw) <= MAX_ID_LENGTH:
        return raw
    return "sha256:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _extract_event_id(body: dict, query: dict) -> str:
    if _is_legacy_ipn(body, query):
        return ""
    raw = _raw_id(body.get("id")) or _raw_id(query.get("id"))
    return _ledger_key(raw) if raw else ""


def extract_topic(body: dict, query: dict) -> str:
    topic = body.get("type") or body.get("topic") or query.get("type") or query.get("topic") or ""
    return str(topic).strip().lower()


def _is_legacy_ipn(body: dict, query: dict) -> bool:
    # IPN: ?topic=payment&id=<payment id>, no notification id of its own.
    return (
        not _raw_id(body.get("id"))
        and str(query.get("topic") or "").strip().lower() == "payment"
        and bool(_raw_id(query.get("id")))
    )


def extract_payment_id(body: dict, query: dict) -> str:
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    payment_id = _clean_id(data.get("id")) or _clean_id(query.get("data.id"))
    if not payment_id and _is_legacy_ipn(body, query):
        payment_id = _clean_id(query.get("id"))
    return payment_id


def _canonical_payload(body) -> str:
    try:
        return json.dumps(body, sort_keys=True, separators=(",", ":"), default=str)
    except Exception:
        return str(body)


def _ledger_payload(body: dict, query: dict) -> str:
    return _canonical_payload({"body": body, "query": query})


def verify_amount(order: Order, payment: ResolvedPayment) -> None:
    received_currency = (payment.currency or "").strip().upper()
    expected_currency = (order.currency or "").strip().upper()
    currency_differs = bool(received_currency and expected_currency) and received_currency != expected_currency
    if currency_differs or int(payment.amount) != int(order.total):
        raise AmountMismatch(
            expected=int(order.total),
            received=int(payment.amount),
            payment_id=payment.payment_id,
            expected_currency=expected_currency,
            received_currency=received_currency,
        )


class LifecycleEngine:
    """Owns every order state change.

    Status updates are conditional ``UPDATE ... WHERE status IN (...)``
    statements checked by row count, so concurrent callers racing on the same
    order can never both apply an edge. No row lock is held while the remote
    gateway is being called.
    """

    def __init__(
        self,
        *,
        config: EngineConfig,
        gateway: PaymentsGateway | None,
        listings: ListingDirectory,
        audit: AuditChannel | None = None,
    ):
        self.config = config
        self.gateway = gateway
        self.listings = listings
        self.audit = audit or AuditChannel(config.audit_channel)

    @property
    def provider(self) -> str:
        return (self.config.provider or "unknown").strip().lower()

    # ----------------------------------------------------------------- reads

    def _load(self, order_id: str) -> Order:
        oid = _clean_id(order_id)
        order = db.session.get(Order, oid) if oid else None
        if order is None:
            raise OrderNotFound(f"order {oid or '?'} not found")
        return order

    def _current_status(self, order_id: str) -> str:
        db.session.expire_all()
        order = db.session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(f"order {order_id} not found")
        return order.status

    def is_admin(self, user_id: str | None) -> bool:
        return user_id is not None and str(user_id) in set(self.config.admin_user_ids)

    def get_order(self, order_id: str, requesting_user_id: str) -> Order:
        order = self._load(order_id)
        uid = str(requesting_user_id)
        if uid not in (order.buyer_id, order.seller_id) and not self.is_admin(uid):
            raise Forbidden("not a party to this order")
        return order

    # -------------------------------------------------------------- creation

    def create_order(self, listing_id: str, buyer_id: str) -> Order:
        listing = self.listings.get_active_listing(listing_id)
        if listing is None:
            raise ListingNotFound(f"listing {listing_id} not found or inactive")

        amounts = compute_order_amounts(listing.price, self.config.fee_bps)
        order = Order(
            id=uuid.uuid4().hex,
            listing_id=listing.listing_id,
            buyer_id=str(buyer_id),
            seller_id=str(listing.seller_id),
            price=amounts["price"],
            platform_fee=amounts["platform_fee"],
            total=amounts["total"],
            currency=(listing.currency or self.config.default_currency).upper(),
            status=OrderStatus.CREATED,
            created_at=_now(),
            updated_at=_now(),
        )
        db.session.add(order)
        db.session.commit()
        logger.info("order_created order_id=%s listing_id=%s total=%s", order.id, order.listing_id, order.total)
        self.audit.emit(
            "order.created",
            actor_user_id=str(buyer_id),
            entity_type="order",
            entity_id=order.id,
            metadata=amounts,
        )
        return order

    # -------------------------------------------------------------- checkout

    def initiate_checkout(self, order_id: str, requesting_user_id: str) -> CheckoutSession:
        order = self._load(order_id)
        if order.buyer_id != str(requesting_user_id):
            raise Forbidden("only the buyer can pay for this order")
        if order.status != OrderStatus.CREATED:
            raise InvalidState(order.status)
        if self.gateway is None:
            raise GatewayError("payments gateway unavailable")

        oid = order.id
        amount = int(order.total)
        currency = order.currency or self.config.default_currency
        # Close the read transaction before the remote call.
        db.session.commit()

        session = self.gateway.create_session(
            amount=amount,
            currency=currency,
            correlation_token=oid,
            return_urls=self.config.return_urls,
            title=f"Order {oid}",
        )

        updated = Order.query.filter(
            Order.id == oid,
            Order.status == OrderStatus.CREATED,
        ).update(
            {"provider_session_id": session.session_id[:128], "updated_at": _now()},
            synchronize_session=False,
        )
        if not updated:
            db.session.rollback()
            raise InvalidState(self._current_status(oid))
        db.session.commit()
        logger.info("checkout_initiated order_id=%s session_id=%s", oid, session.session_id)
        self.audit.emit(
            "order.checkout_initiated",
            actor_user_id=str(requesting_user_id),
            entity_type="order",
            entity_id=oid,
            metadata={"session_id": session.session_id, "amount": amount, "currency": currency},
        )
        return session

    # ----------------------------------------------------------- transitions

    def _advance(
        self,
        order: Order,
        to_status: str,
        *,
        action: str,
        actor_user_id: str | None = None,
        metadata: dict | None = None,
    ) -> Order:
        sources = OrderStatus.sources_for(to_status)
        from_status = order.status
        oid = order.id
        if from_status not in sources:
            raise InvalidState(from_status)

        updated = Order.query.filter(
            Order.id == oid,
            Order.status.in_(sorted(sources)),
        ).update({"status": to_status, "updated_at": _now()}, synchronize_session=False)
        if not updated:
            db.session.rollback()
            raise InvalidState(self._current_status(oid))
        db.session.commit()
        logger.info("order_transition order_id=%s from=%s to=%s", oid, from_status, to_status)

        details = {"from": from_status, "to": to_status}
        details.update(metadata or {})
        self.audit.emit(
            action,
            actor_user_id=actor_user_id,
            entity_type="order",
            entity_id=oid,
            metadata=details,
        )
        return self._load(oid)

    def _require_party(self, order: Order, actor_user_id: str, *, buyer: bool = False, seller: bool = False) -> None:
        uid = str(actor_user_id)
        if buyer and uid == order.buyer_id:
            return
        if seller and uid == order.seller_id:
            return
        raise Forbidden("actor is not allowed to perform this transition")

    def mark_delivered(self, order_id: str, actor_user_id: str) -> Order:
        order = self._load(order_id)
        self._require_party(order, actor_user_id, seller=True)
        return self._advance(
            order,
            OrderStatus.DELIVERED_MARKED,
            action="order.delivered_marked",
            actor_user_id=str(actor_user_id),
        )

    def confirm_by_buyer(self, order_id: str, actor_user_id: str) -> Order:
        order = self._load(order_id)
        self._require_party(order, actor_user_id, buyer=True)
        return self._advance(
            order,
            OrderStatus.CONFIRMED_BY_BUYER,
            action="order.confirmed_by_buyer",
            actor_user_id=str(actor_user_id),
        )

    def initiate_payout(self, order_id: str, actor_user_id: str | None = None) -> Order:
        order = self._load(order_id)
        return self._advance(
            order,
            OrderStatus.PAYOUT_INITIATED,
            action="order.payout_initiated",
            actor_user_id=actor_user_id,
            metadata={"seller_id": order.seller_id, "amount": int(order.price)},
        )

    def complete_payout(self, order_id: str, actor_user_id: str | None = None, payout_reference: str = "") -> Order:
        order = self._load(order_id)
        return self._advance(
            order,
            OrderStatus.PAID_OUT,
            action="order.paid_out",
            actor_user_id=actor_user_id,
            metadata={"payout_reference": (payout_reference or "")[:128]},
        )

    def open_dispute(self, order_id: str, actor_user_id: str, reason: str = "") -> Order:
        order = self._load(order_id)
        self._require_party(order, actor_user_id, buyer=True, seller=True)
        return self._advance(
            order,
            OrderStatus.DISPUTE_OPENED,
            action="order.dispute_opened",
            actor_user_id=str(actor_user_id),
            metadata={"reason": (reason or "")[:500]},
        )

    def cancel(self, order_id: str, actor_user_id: str) -> Order:
        order = self._load(order_id)
        self._require_party(order, actor_user_id, buyer=True, seller=True)
        return self._advance(
            order,
            OrderStatus.CANCELLED,
            action="order.cancelled",
            actor_user_id=str(actor_user_id),
        )

    # --------------------------------------------------------------- webhook

    def handle_webhook(self, payload, *, query: dict | None = None) -> WebhookAck:
        """Process one provider notification; always acknowledges.

        The provider redelivers anything that is not acknowledged, so every
        internal outcome (duplicates, orphans, mismatches, failures) maps to a
        successful ack.
        """
        try:
            return self._handle_webhook(payload, query=query or {})
        except Exception:
            try:
                db.session.rollback()
            except Exception:
                pass
            logger.exception("webhook_processing_failed provider=%s", self.provider)
            return WebhookAck(outcome=WebhookOutcome.FAILED)

    def _handle_webhook(self, payload, *, query: dict) -> WebhookAck:
        body = payload if isinstance(payload, dict) else {}
        if _is_legacy_ipn(body, query):
            return self._handle_legacy_ipn(body, query)

        event_id = _extract_event_id(body, query)
        if not event_id:
            logger.info("webhook_ignored_no_event_id provider=%s", self.provider)
            return WebhookAck(outcome=WebhookOutcome.IGNORED_NO_EVENT_ID)

        # The ledger row is written before any order mutation.
        recorded = claim_event(self.provider, event_id, _ledger_payload(body, query))
        if recorded is None:
            logger.info("webhook_duplicate provider=%s event_id=%s", self.provider, event_id)
            return WebhookAck(outcome=WebhookOutcome.DUPLICATE, event_id=event_id)

        topic = extract_topic(body, query)
        payment_id = extract_payment_id(body, query)
        self._audit_received(event_id, topic=topic, payment_id=payment_id, action=str(body.get("action") or ""))

        if topic and topic != "payment":
            return WebhookAck(outcome=WebhookOutcome.IGNORED_TOPIC, event_id=event_id)
        if not payment_id:
            return WebhookAck(outcome=WebhookOutcome.NO_PAYMENT_ID, event_id=event_id)

        resolved = self._resolve_for_webhook(payment_id, event_id=event_id)
        if isinstance(resolved, WebhookAck):
            return resolved
        return self._apply_resolved_payment(resolved, event_id=event_id)

    def _handle_legacy_ipn(self, body: dict, query: dict) -> WebhookAck:
        """IPN notifications carry only the payment id.

        The provider sends one per payment status change, so the ledger key
        is the payment id plus the resolved status.
        """
        payment_id = extract_payment_id(body, query)
        if not payment_id:
            return WebhookAck(outcome=WebhookOutcome.NO_PAYMENT_ID)

        resolved = self._resolve_for_webhook(payment_id, event_id="")
        if isinstance(resolved, WebhookAck):
            return resolved

        event_id = _ledger_key(f"ipn:{resolved.payment_id}:{resolved.status or 'unknown'}")
        recorded = claim_event(self.provider, event_id, _ledger_payload(body, query))
        if recorded is None:
            logger.info("webhook_duplicate provider=%s event_id=%s", self.provider, event_id)
            return WebhookAck(outcome=WebhookOutcome.DUPLICATE, event_id=event_id)

        self._audit_received(event_id, topic="payment", payment_id=payment_id, action="ipn")
        return self._apply_resolved_payment(resolved, event_id=event_id)

    def _audit_received(self, event_id: str, *, topic: str, payment_id: str, action: str) -> None:
        self.audit.emit(
            "webhook.received",
            entity_type="webhook_event",
            entity_id=f"{self.provider}:{event_id}",
            metadata={"topic": topic, "payment_id": payment_id, "action": action},
        )

    def _resolve_for_webhook(self, payment_id: str, *, event_id: str) -> ResolvedPayment | WebhookAck:
        if self.gateway is None:
            logger.warning("webhook_gateway_unavailable provider=%s event_id=%s", self.provider, event_id)
            return WebhookAck(outcome=WebhookOutcome.GATEWAY_UNAVAILABLE, event_id=event_id)
        try:
            return self.gateway.resolve_payment(payment_id)
        except GatewayError as e:
            logger.warning(
                "webhook_payment_resolution_failed event_id=%s payment_id=%s err=%s",
                event_id,
                payment_id,
                e,
            )
            return WebhookAck(outcome=WebhookOutcome.GATEWAY_ERROR, event_id=event_id)

    def _apply_resolved_payment(self, resolved: ResolvedPayment, *, event_id: str) -> WebhookAck:
        reference = _clean_id(resolved.external_reference)
        order = db.session.get(Order, reference) if reference else None
        if order is None:
            logger.info("webhook_orphan_payment payment_id=%s reference=%s", resolved.payment_id, reference)
            return WebhookAck(outcome=WebhookOutcome.ORPHAN, event_id=event_id)
        oid = order.id

        try:
            verify_amount(order, resolved)
        except AmountMismatch as e:
            logger.warning(
                "payment_amount_mismatch order_id=%s payment_id=%s expected=%s %s received=%s %s",
                oid,
                e.payment_id,
                e.expected,
                e.expected_currency,
                e.received,
                e.received_currency,
            )
            self.audit.emit(
                "payment.amount_mismatch",
                entity_type="order",
                entity_id=oid,
                metadata={
                    "expected": e.expected,
                    "received": e.received,
                    "payment_id": e.payment_id,
                    "expected_currency": e.expected_currency,
                    "received_currency": e.received_currency,
                    "event_id": event_id,
                },
            )
            return WebhookAck(outcome=WebhookOutcome.AMOUNT_MISMATCH, event_id=event_id, order_id=oid)

        self._record_payment(oid, resolved, event_id=event_id)

        if not resolved.approved:
            logger.info("payment_not_approved order_id=%s payment_id=%s status=%s", oid, resolved.payment_id, resolved.status)
            return WebhookAck(outcome=WebhookOutcome.NOT_APPROVED, event_id=event_id, order_id=oid)

        paid_at = _now()
        updated = Order.query.filter(
            Order.id == oid,
            Order.status == OrderStatus.CREATED,
        ).update(
            {
                "status": OrderStatus.PAID_IN_CUSTODY,
                "paid_at": paid_at,
                "provider_payment_id": resolved.payment_id[:128],
                "updated_at": paid_at,
            },
            synchronize_session=False,
        )
        if not updated:
            db.session.rollback()
            logger.info("payment_already_applied order_id=%s payment_id=%s", oid, resolved.payment_id)
            return WebhookAck(outcome=WebhookOutcome.ALREADY_PROCESSED, event_id=event_id, order_id=oid)
        db.session.commit()
        logger.info("order_paid_in_custody order_id=%s payment_id=%s", oid, resolved.payment_id)
        self.audit.emit(
            "order.paid_in_custody",
            entity_type="order",
            entity_id=oid,
            metadata={
                "from": OrderStatus.CREATED,
                "to": OrderStatus.PAID_IN_CUSTODY,
                "payment_id": resolved.payment_id,
                "amount": int(resolved.amount),
                "event_id": event_id,
            },
        )
        return WebhookAck(outcome=WebhookOutcome.PAID_IN_CUSTODY, event_id=event_id, order_id=oid)

    def _record_payment(self, order_id: str, resolved: ResolvedPayment, *, event_id: str) -> PaymentRecord | None:
        exists = PaymentRecord.query.filter_by(
            order_id=order_id,
            provider_payment_id=resolved.payment_id,
        ).first()
        if exists is not None:
            return None
        row = PaymentRecord(
            order_id=order_id,
            provider=self.provider,
            provider_payment_id=resolved.payment_id[:128],
            provider_event_id=event_id or None,
            status=(resolved.status or "")[:32],
            amount=int(resolved.amount),
            currency=(resolved.currency or "")[:3] or None,
            raw_event=_canonical_payload(resolved.raw or {}),
            created_at=_now(),
        )
        try:
            db.session.add(row)
            db.session.commit()
            return row
        except Exception:
            # Secondary record; never blocks the transition.
            db.session.rollback()
            logger.exception("payment_record_write_failed order_id=%s payment_id=%s", order_id, resolved.payment_id)
            return None

    # -------------------------------------------------------- reconciliation

    def reconcile_payment(self, payment_id: str, actor_user_id: str | None = None) -> WebhookAck:
        """Re-resolve a payment and apply it without the ledger gate.

        Used for orders left in CREATED after a crash between recording a
        webhook and acting on it. The conditional transition keeps this safe
        to run any number of times.
        """
        if self.gateway is None:
            raise GatewayError("payments gateway unavailable")
        resolved = self.gateway.resolve_payment(_clean_id(payment_id))
        ack = self._apply_resolved_payment(resolved, event_id="")
        self.audit.emit(
            "payment.reconciled",
            actor_user_id=actor_user_id,
            entity_type="payment",
            entity_id=resolved.payment_id,
            metadata={"outcome": ack.outcome, "order_id": ack.order_id},
        )
        return ack
