from datetime import datetime
import uuid

from teloven.extensions import db


class OrderStatus:
    CREATED = "CREATED"
    PAID_IN_CUSTODY = "PAID_IN_CUSTODY"
    DELIVERED_MARKED = "DELIVERED_MARKED"
    CONFIRMED_BY_BUYER = "CONFIRMED_BY_BUYER"
    PAYOUT_INITIATED = "PAYOUT_INITIATED"
    PAID_OUT = "PAID_OUT"
    DISPUTE_OPENED = "DISPUTE_OPENED"
    CANCELLED = "CANCELLED"

    TERMINAL = {PAID_OUT, CANCELLED, DISPUTE_OPENED}
    ALLOWED = {
        CREATED: {PAID_IN_CUSTODY, CANCELLED},
        PAID_IN_CUSTODY: {DELIVERED_MARKED, DISPUTE_OPENED},
        DELIVERED_MARKED: {CONFIRMED_BY_BUYER, DISPUTE_OPENED},
        CONFIRMED_BY_BUYER: {PAYOUT_INITIATED},
        PAYOUT_INITIATED: {PAID_OUT},
        PAID_OUT: set(),
        DISPUTE_OPENED: set(),
        CANCELLED: set(),
    }

    @classmethod
    def sources_for(cls, target: str) -> set[str]:
        return {src for src, targets in cls.ALLOWED.items() if target in targets}


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(36), primary_key=True, default=lambda: uuid.uuid4().hex)

    listing_id = db.Column(db.String(36), nullable=False, index=True)
    buyer_id = db.Column(db.String(64), nullable=False, index=True)
    seller_id = db.Column(db.String(64), nullable=False, index=True)

    # Minor currency units; total = price + platform_fee
    price = db.Column(db.Integer, nullable=False)
    platform_fee = db.Column(db.Integer, nullable=False)
    total = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="CLP")

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.CREATED, index=True)

    provider_session_id = db.Column(db.String(128), nullable=True)
    provider_payment_id = db.Column(db.String(128), nullable=True, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "price": int(self.price or 0),
            "platform_fee": int(self.platform_fee or 0),
            "total": int(self.total or 0),
            "currency": self.currency or "",
            "status": self.status or "",
            "provider_session_id": self.provider_session_id or None,
            "provider_payment_id": self.provider_payment_id or None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
