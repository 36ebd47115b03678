from __future__ import annotations

import unittest

from teloven import create_app
from teloven.config import EngineConfig
from teloven.extensions import db
from teloven.integrations.payments.mock_provider import MockPaymentsGateway
from teloven.models import AuditEntry, Listing, Order
from teloven.utils.jwt_utils import create_access_token

BUYER_ID = "buyer-1"
SELLER_ID = "seller-1"
ADMIN_ID = "admin-1"


class EngineTestCase(unittest.TestCase):
    """Fresh in-memory database and mock gateway per test."""

    def make_engine_config(self) -> EngineConfig:
        return EngineConfig(provider="mock", fee_bps=600, admin_user_ids=[ADMIN_ID])

    def setUp(self):
        self.gateway = MockPaymentsGateway()
        self.app = create_app(
            {"TESTING": True, "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:"},
            engine_config=self.make_engine_config(),
            gateway=self.gateway,
        )
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.engine = self.app.extensions["lifecycle_engine"]
        self.client = self.app.test_client()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def seed_listing(self, *, price: int = 1000, seller_id: str = SELLER_ID, currency: str = "CLP", is_active: bool = True) -> str:
        row = Listing(seller_id=seller_id, price=price, currency=currency, title="Bicicleta", is_active=is_active)
        db.session.add(row)
        db.session.commit()
        return row.id

    def seed_order(self, *, price: int = 1000, buyer_id: str = BUYER_ID) -> str:
        order = self.engine.create_order(self.seed_listing(price=price), buyer_id)
        return order.id

    def order(self, order_id: str) -> Order:
        db.session.expire_all()
        return db.session.get(Order, order_id)

    def audit_actions(self, action: str | None = None) -> list[AuditEntry]:
        q = AuditEntry.query
        if action:
            q = q.filter_by(action=action)
        return q.order_by(AuditEntry.id.asc()).all()

    def payment_event(self, event_id: str, payment_id: str) -> dict:
        return {
            "id": event_id,
            "type": "payment",
            "action": "payment.updated",
            "data": {"id": payment_id},
        }

    def auth(self, user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
