from __future__ import annotations

import requests

from teloven.errors import GatewayError
from teloven.integrations.payments.base import CheckoutSession, PaymentsGateway, ResolvedPayment
from teloven.utils.fees import money_major_to_minor, money_minor_to_major

API_BASE = "https://api.mercadopago.com"


class MercadoPagoGateway(PaymentsGateway):
    name = "mercadopago"

    def __init__(self, access_token: str, *, timeout: int = 10, notification_url: str = "", session=None):
        self.access_token = access_token
        self.timeout = timeout
        self.notification_url = notification_url
        self.http = session or requests.Session()

    def _headers(self, idempotency_key: str | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            r = self.http.request(method, f"{API_BASE}{path}", timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise GatewayError(f"MERCADOPAGO_TIMEOUT:{path}") from e
        except requests.RequestException as e:
            raise GatewayError(f"MERCADOPAGO_UNREACHABLE:{type(e).__name__}") from e
        try:
            j = r.json() if r.content else {}
        except ValueError:
            j = {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = (str((j or {}).get("message") or "") or f"HTTP {r.status_code}").strip()
            raise GatewayError(f"MERCADOPAGO_HTTP_ERROR:{msg}")
        if not isinstance(j, dict):
            raise GatewayError("MERCADOPAGO_MALFORMED_RESPONSE")
        return j

    def create_session(self, *, amount: int, currency: str, correlation_token: str, return_urls: dict, title: str = "") -> CheckoutSession:
        payload = {
            "items": [
                {
                    "id": correlation_token,
                    "title": title or f"Order {correlation_token}",
                    "quantity": 1,
                    "currency_id": currency,
                    "unit_price": float(money_minor_to_major(amount, currency)),
                }
            ],
            "external_reference": correlation_token,
            "back_urls": dict(return_urls or {}),
            "auto_return": "approved",
        }
        if self.notification_url:
            payload["notification_url"] = self.notification_url
        j = self._request("POST", "/checkout/preferences", headers=self._headers(), json=payload)
        session_id = str(j.get("id") or "").strip()
        redirect_url = str(j.get("init_point") or "").strip()
        if not session_id or not redirect_url:
            raise GatewayError("MERCADOPAGO_MALFORMED_RESPONSE:preference")
        return CheckoutSession(session_id=session_id, redirect_url=redirect_url, provider=self.name, raw=j)

    def resolve_payment(self, payment_id: str) -> ResolvedPayment:
        pid = (str(payment_id or "")).strip()
        if not pid:
            raise GatewayError("MERCADOPAGO_PAYMENT_ID_REQUIRED")
        j = self._request("GET", f"/v1/payments/{pid}", headers=self._headers())
        currency = str(j.get("currency_id") or "").strip().upper()
        amount_raw = j.get("transaction_amount")
        if amount_raw is None:
            raise GatewayError("MERCADOPAGO_MALFORMED_RESPONSE:transaction_amount")
        return ResolvedPayment(
            payment_id=str(j.get("id") or pid),
            status=str(j.get("status") or "").strip().lower(),
            external_reference=str(j.get("external_reference") or "").strip(),
            amount=money_major_to_minor(amount_raw, currency),
            currency=currency,
            raw=j,
        )
