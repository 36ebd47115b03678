from datetime import datetime

from teloven.extensions import db


class PaymentRecord(db.Model):
    __tablename__ = "payment_records"
    __table_args__ = (
        db.UniqueConstraint("order_id", "provider_payment_id", name="uq_payment_record_order_payment"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(36), nullable=False, index=True)
    provider = db.Column(db.String(32), nullable=False, default="mercadopago")
    provider_payment_id = db.Column(db.String(128), nullable=False)
    provider_event_id = db.Column(db.String(128), nullable=True)

    # Provider-reported values, stored as received
    status = db.Column(db.String(32), nullable=False, default="")
    amount = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=True)
    raw_event = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": self.order_id,
            "provider": self.provider,
            "provider_payment_id": self.provider_payment_id,
            "provider_event_id": self.provider_event_id or "",
            "status": self.status or "",
            "amount": int(self.amount or 0),
            "currency": self.currency or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
