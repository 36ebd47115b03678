from datetime import datetime

from teloven.extensions import db


class WebhookEvent(db.Model):
    __tablename__ = "webhook_events"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_event_id", name="uq_webhook_event_provider_event"),
    )

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(32), nullable=False, default="mercadopago")
    provider_event_id = db.Column(db.String(128), nullable=False)
    payload = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "provider": self.provider,
            "provider_event_id": self.provider_event_id,
            "payload": self.payload or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
