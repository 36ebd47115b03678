from __future__ import annotations

import unittest
from unittest.mock import MagicMock

import requests

from teloven.config import EngineConfig
from teloven.errors import GatewayError
from teloven.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from teloven.integrations.payments.factory import build_payments_gateway, payment_health
from teloven.integrations.payments.mercadopago_provider import MercadoPagoGateway
from teloven.integrations.payments.mock_provider import MockPaymentsGateway
from teloven.utils.webhook_signature import build_manifest, parse_signature_header, verify_signature


def _response(status_code: int, body) -> MagicMock:
    res = MagicMock()
    res.status_code = status_code
    res.content = b"{}" if body is not None else b""
    res.json.return_value = body
    return res


class MercadoPagoGatewayTestCase(unittest.TestCase):
    def setUp(self):
        self.http = MagicMock()
        self.gateway = MercadoPagoGateway(
            "TEST-token",
            timeout=7,
            notification_url="https://api.teloven.cl/api/webhooks/mercadopago",
            session=self.http,
        )

    def test_create_session_maps_preference(self):
        self.http.request.return_value = _response(201, {"id": "pref-1", "init_point": "https://mp/checkout/pref-1"})

        session = self.gateway.create_session(
            amount=1060,
            currency="CLP",
            correlation_token="order-1",
            return_urls={"success": "https://teloven.cl/ok"},
        )

        self.assertEqual(session.session_id, "pref-1")
        self.assertEqual(session.redirect_url, "https://mp/checkout/pref-1")
        method, url = self.http.request.call_args.args
        kwargs = self.http.request.call_args.kwargs
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/checkout/preferences"))
        self.assertEqual(kwargs["timeout"], 7)
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer TEST-token")
        body = kwargs["json"]
        self.assertEqual(body["external_reference"], "order-1")
        self.assertEqual(body["items"][0]["unit_price"], 1060.0)
        self.assertEqual(body["notification_url"], "https://api.teloven.cl/api/webhooks/mercadopago")

    def test_create_session_converts_two_decimal_currency(self):
        self.http.request.return_value = _response(201, {"id": "pref-1", "init_point": "https://mp/x"})
        self.gateway.create_session(amount=1999, currency="USD", correlation_token="o", return_urls={})
        self.assertEqual(self.http.request.call_args.kwargs["json"]["items"][0]["unit_price"], 19.99)

    def test_resolve_payment_maps_fields(self):
        self.http.request.return_value = _response(
            200,
            {
                "id": 12345,
                "status": "approved",
                "external_reference": "order-1",
                "transaction_amount": 1060,
                "currency_id": "CLP",
            },
        )
        payment = self.gateway.resolve_payment("12345")
        self.assertEqual(payment.payment_id, "12345")
        self.assertTrue(payment.approved)
        self.assertEqual(payment.external_reference, "order-1")
        self.assertEqual(payment.amount, 1060)
        self.assertTrue(self.http.request.call_args.args[1].endswith("/v1/payments/12345"))

    def test_resolve_payment_converts_major_units(self):
        self.http.request.return_value = _response(
            200,
            {"id": 1, "status": "approved", "external_reference": "o", "transaction_amount": 10.6, "currency_id": "USD"},
        )
        self.assertEqual(self.gateway.resolve_payment("1").amount, 1060)

    def test_timeout_raises_gateway_error(self):
        self.http.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(GatewayError):
            self.gateway.resolve_payment("1")

    def test_connection_error_raises_gateway_error(self):
        self.http.request.side_effect = requests.ConnectionError("down")
        with self.assertRaises(GatewayError):
            self.gateway.create_session(amount=1, currency="CLP", correlation_token="o", return_urls={})

    def test_non_2xx_raises_gateway_error(self):
        self.http.request.return_value = _response(401, {"message": "invalid access token"})
        with self.assertRaises(GatewayError) as caught:
            self.gateway.resolve_payment("1")
        self.assertIn("invalid access token", caught.exception.message)

    def test_malformed_preference(self):
        self.http.request.return_value = _response(201, {"id": "pref-1"})
        with self.assertRaises(GatewayError):
            self.gateway.create_session(amount=1, currency="CLP", correlation_token="o", return_urls={})

    def test_missing_amount(self):
        self.http.request.return_value = _response(200, {"id": 1, "status": "approved"})
        with self.assertRaises(GatewayError):
            self.gateway.resolve_payment("1")


class GatewayFactoryTestCase(unittest.TestCase):
    def test_mock(self):
        self.assertIsInstance(build_payments_gateway(EngineConfig(provider="mock")), MockPaymentsGateway)

    def test_mercadopago_requires_token(self):
        with self.assertRaises(IntegrationMisconfiguredError):
            build_payments_gateway(EngineConfig(provider="mercadopago"))
        gateway = build_payments_gateway(EngineConfig(provider="mercadopago", access_token="t", gateway_timeout_seconds=4))
        self.assertIsInstance(gateway, MercadoPagoGateway)
        self.assertEqual(gateway.timeout, 4)
        # Plain http callback urls are not sent to the provider.
        self.assertEqual(gateway.notification_url, "")

    def test_disabled_and_unknown(self):
        with self.assertRaises(IntegrationDisabledError):
            build_payments_gateway(EngineConfig(provider="disabled"))
        with self.assertRaises(IntegrationMisconfiguredError):
            build_payments_gateway(EngineConfig(provider="stripe"))

    def test_health(self):
        health = payment_health(EngineConfig(provider="mercadopago"))
        self.assertEqual(health["status"], "misconfigured")
        self.assertEqual(health["missing"], ["MERCADOPAGO_ACCESS_TOKEN"])
        self.assertEqual(payment_health(EngineConfig(provider="mock"))["status"], "configured")


class WebhookSignatureTestCase(unittest.TestCase):
    def test_parse_header(self):
        self.assertEqual(parse_signature_header("ts=1704908010,v1=abc"), ("1704908010", "abc"))
        self.assertEqual(parse_signature_header(None), ("", ""))

    def test_manifest_lowercases_alphanumeric_ids(self):
        self.assertEqual(
            build_manifest(data_id="ABC123", request_id="req-1", ts="1"),
            "id:abc123;request-id:req-1;ts:1;",
        )
        self.assertEqual(build_manifest(data_id="", request_id=None, ts="1"), "ts:1;")

    def test_verify_rejects_missing_parts(self):
        self.assertFalse(verify_signature("s", None, request_id="r", data_id="1"))
        self.assertFalse(verify_signature("", "ts=1,v1=aa", request_id="r", data_id="1"))
        self.assertFalse(verify_signature("s", "ts=1,v1=aa", request_id="r", data_id="1"))


if __name__ == "__main__":
    unittest.main()
