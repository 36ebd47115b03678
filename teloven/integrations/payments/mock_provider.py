from __future__ import annotations

import uuid

from teloven.errors import GatewayError
from teloven.integrations.payments.base import CheckoutSession, PaymentsGateway, ResolvedPayment


class MockPaymentsGateway(PaymentsGateway):
    name = "mock"

    def __init__(self):
        self.payments: dict[str, ResolvedPayment] = {}
        self.sessions: list[dict] = []
        self.resolve_calls: list[str] = []

    def register_payment(
        self,
        payment_id: str,
        *,
        external_reference: str,
        amount: int,
        status: str = "approved",
        currency: str = "CLP",
    ) -> ResolvedPayment:
        payment = ResolvedPayment(
            payment_id=str(payment_id),
            status=status,
            external_reference=external_reference,
            amount=int(amount),
            currency=currency,
            raw={"id": str(payment_id), "provider": self.name},
        )
        self.payments[str(payment_id)] = payment
        return payment

    def create_session(self, *, amount: int, currency: str, correlation_token: str, return_urls: dict, title: str = "") -> CheckoutSession:
        session_id = f"mock-pref-{uuid.uuid4().hex[:12]}"
        self.sessions.append(
            {
                "session_id": session_id,
                "amount": int(amount),
                "currency": currency,
                "correlation_token": correlation_token,
                "return_urls": dict(return_urls or {}),
            }
        )
        return CheckoutSession(
            session_id=session_id,
            redirect_url=f"https://example.com/mock/checkout?pref_id={session_id}",
            provider=self.name,
            raw={"external_reference": correlation_token, "amount": int(amount)},
        )

    def resolve_payment(self, payment_id: str) -> ResolvedPayment:
        self.resolve_calls.append(str(payment_id))
        payment = self.payments.get(str(payment_id))
        if payment is None:
            raise GatewayError(f"MOCK_PAYMENT_NOT_FOUND:{payment_id}")
        return payment
