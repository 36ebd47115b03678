from __future__ import annotations

import unittest

from teloven.models import OrderStatus
from tests.helpers import ADMIN_ID, BUYER_ID, SELLER_ID, EngineTestCase


class OrdersApiTestCase(EngineTestCase):
    def _create(self, listing_id: str, user_id: str = BUYER_ID):
        return self.client.post("/api/orders", json={"listing_id": listing_id}, headers=self.auth(user_id))

    def test_create_order(self):
        listing_id = self.seed_listing(price=1000)
        res = self._create(listing_id)
        self.assertEqual(res.status_code, 201)
        order = res.get_json()["order"]
        self.assertEqual(order["status"], OrderStatus.CREATED)
        self.assertEqual(order["price"], 1000)
        self.assertEqual(order["platform_fee"], 60)
        self.assertEqual(order["total"], 1060)
        self.assertEqual(order["buyer_id"], BUYER_ID)

    def test_requires_bearer_token(self):
        listing_id = self.seed_listing()
        res = self.client.post("/api/orders", json={"listing_id": listing_id})
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.get_json()["error"], "UNAUTHORIZED")
        self.assertTrue(res.get_json()["trace_id"])
        res = self.client.post("/api/orders", json={"listing_id": listing_id}, headers={"Authorization": "Bearer junk"})
        self.assertEqual(res.status_code, 401)

    def test_rejects_unknown_fields(self):
        listing_id = self.seed_listing()
        res = self.client.post(
            "/api/orders",
            json={"listing_id": listing_id, "price": 1},
            headers=self.auth(BUYER_ID),
        )
        self.assertEqual(res.status_code, 400)
        body = res.get_json()
        self.assertEqual(body["error"], "INVALID_REQUEST")
        self.assertTrue(body["errors"])

    def test_missing_listing(self):
        res = self._create("nope")
        self.assertEqual(res.status_code, 404)
        body = res.get_json()
        self.assertEqual(body["error"], "LISTING_NOT_FOUND")
        self.assertTrue(body["trace_id"])

    def test_checkout_and_conflict(self):
        order_id = self._create(self.seed_listing()).get_json()["order"]["id"]

        res = self.client.post(f"/api/orders/{order_id}/checkout", headers=self.auth(BUYER_ID))
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.get_json()["redirect_url"])

        self.client.post(f"/api/orders/{order_id}/cancel", headers=self.auth(SELLER_ID))
        res = self.client.post(f"/api/orders/{order_id}/checkout", headers=self.auth(BUYER_ID))
        self.assertEqual(res.status_code, 409)
        body = res.get_json()
        self.assertEqual(body["error"], "INVALID_STATE")
        self.assertEqual(body["current_status"], OrderStatus.CANCELLED)

    def test_gateway_failure_is_502_with_generic_message(self):
        order_id = self._create(self.seed_listing()).get_json()["order"]["id"]
        self.engine.gateway = None
        res = self.client.post(f"/api/orders/{order_id}/checkout", headers=self.auth(BUYER_ID))
        self.assertEqual(res.status_code, 502)
        self.assertEqual(res.get_json()["message"], "Payment provider unavailable")

    def test_only_parties_can_read(self):
        order_id = self._create(self.seed_listing()).get_json()["order"]["id"]
        self.assertEqual(self.client.get(f"/api/orders/{order_id}", headers=self.auth(SELLER_ID)).status_code, 200)
        self.assertEqual(self.client.get(f"/api/orders/{order_id}", headers=self.auth("other")).status_code, 403)
        self.assertEqual(self.client.get("/api/orders/missing", headers=self.auth(BUYER_ID)).status_code, 404)

    def test_full_flow_over_http(self):
        order_id = self._create(self.seed_listing()).get_json()["order"]["id"]
        self.gateway.register_payment("pay-1", external_reference=order_id, amount=1060)
        self.client.post("/api/webhooks/mercadopago", json=self.payment_event("evt-1", "pay-1"))

        res = self.client.post(f"/api/orders/{order_id}/deliver", headers=self.auth(SELLER_ID))
        self.assertEqual(res.get_json()["order"]["status"], OrderStatus.DELIVERED_MARKED)
        res = self.client.post(f"/api/orders/{order_id}/confirm", headers=self.auth(BUYER_ID))
        self.assertEqual(res.get_json()["order"]["status"], OrderStatus.CONFIRMED_BY_BUYER)

        res = self.client.post(f"/api/admin/orders/{order_id}/payout", headers=self.auth(SELLER_ID))
        self.assertEqual(res.status_code, 403)
        res = self.client.post(f"/api/admin/orders/{order_id}/payout", headers=self.auth(ADMIN_ID))
        self.assertEqual(res.get_json()["order"]["status"], OrderStatus.PAYOUT_INITIATED)
        res = self.client.post(
            f"/api/admin/orders/{order_id}/payout/complete",
            json={"payout_reference": "tr-1"},
            headers=self.auth(ADMIN_ID),
        )
        self.assertEqual(res.get_json()["order"]["status"], OrderStatus.PAID_OUT)

    def test_dispute_reason_is_validated(self):
        order_id = self._create(self.seed_listing()).get_json()["order"]["id"]
        res = self.client.post(
            f"/api/orders/{order_id}/dispute",
            json={"reason": "x" * 501},
            headers=self.auth(BUYER_ID),
        )
        self.assertEqual(res.status_code, 400)

    def test_health(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        body = res.get_json()
        self.assertEqual(body["db"], "ok")
        self.assertEqual(body["payments"]["provider"], "mock")
        self.assertEqual(body["audit"]["failures"], 0)
        self.assertTrue(res.headers.get("X-Request-Id"))


if __name__ == "__main__":
    unittest.main()
