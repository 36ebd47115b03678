from datetime import datetime
import uuid

import sqlalchemy as sa

from teloven.extensions import db


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.String(36), primary_key=True, default=lambda: uuid.uuid4().hex)

    # Seller user id (issued by the auth service)
    seller_id = db.Column(db.String(64), nullable=False, index=True)

    # "product" or "service"
    type = db.Column(db.String(16), nullable=False, default="product", server_default="product")
    title = db.Column(db.String(160), nullable=False, default="")

    # Minor currency units
    price = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="CLP", server_default="CLP")

    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"), index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "type": self.type or "product",
            "title": self.title or "",
            "price": int(self.price or 0),
            "currency": self.currency or "CLP",
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
