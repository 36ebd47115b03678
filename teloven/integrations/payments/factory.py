from __future__ import annotations

from teloven.config import EngineConfig
from teloven.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from teloven.integrations.payments.base import PaymentsGateway
from teloven.integrations.payments.mercadopago_provider import MercadoPagoGateway
from teloven.integrations.payments.mock_provider import MockPaymentsGateway


def build_payments_gateway(config: EngineConfig) -> PaymentsGateway:
    provider = (config.provider or "disabled").strip().lower()

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        return MockPaymentsGateway()

    if provider != "mercadopago":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    if not config.access_token:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing MERCADOPAGO_ACCESS_TOKEN")

    return MercadoPagoGateway(
        access_token=config.access_token,
        timeout=int(config.gateway_timeout_seconds),
        notification_url=config.notification_url,
    )


def payment_health(config: EngineConfig) -> dict:
    provider = (config.provider or "disabled").strip().lower()
    missing = []
    if provider == "mercadopago" and not config.access_token:
        missing.append("MERCADOPAGO_ACCESS_TOKEN")
    if provider == "disabled":
        status = "disabled"
    elif missing or provider not in ("mock", "mercadopago"):
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "provider": provider,
        "missing": missing,
        "signature_check": bool(config.webhook_secret),
    }
