from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CheckoutSession:
    session_id: str
    redirect_url: str
    provider: str
    raw: dict | None = None

    def to_dict(self) -> dict:
        return {"session_id": self.session_id, "redirect_url": self.redirect_url}


@dataclass
class ResolvedPayment:
    payment_id: str
    status: str
    external_reference: str
    amount: int
    currency: str
    raw: dict | None = None

    @property
    def approved(self) -> bool:
        return (self.status or "").strip().lower() == "approved"


class PaymentsGateway:
    """Remote payment processor as seen by the lifecycle engine.

    Implementations must apply a bounded timeout to every remote call and
    raise ``GatewayError`` when the provider is unreachable or answers with
    something unusable. Amounts cross this boundary in minor units.
    """

    name = "unknown"

    def create_session(self, *, amount: int, currency: str, correlation_token: str, return_urls: dict, title: str = "") -> CheckoutSession:
        raise NotImplementedError

    def resolve_payment(self, payment_id: str) -> ResolvedPayment:
        raise NotImplementedError
