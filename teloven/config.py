from __future__ import annotations

import os
from dataclasses import dataclass, field

from teloven.utils.fees import DEFAULT_PLATFORM_FEE_BPS


def env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except Exception:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in ("1", "true", "yes", "on")


def env_list(name: str) -> list[str]:
    raw = (os.getenv(name) or "").strip()
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class EngineConfig:
    """Settings handed to the lifecycle engine and its collaborators."""

    provider: str = "mock"
    fee_bps: int = DEFAULT_PLATFORM_FEE_BPS
    default_currency: str = "CLP"
    gateway_timeout_seconds: int = 10
    access_token: str = ""
    webhook_secret: str = ""
    web_base_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:4000"
    audit_channel: str = "inline"
    webhook_queue: bool = False
    admin_user_ids: list[str] = field(default_factory=list)

    @property
    def return_urls(self) -> dict:
        base = self.web_base_url.rstrip("/")
        return {
            "success": f"{base}/checkout/success",
            "failure": f"{base}/checkout/failure",
            "pending": f"{base}/checkout/pending",
        }

    @property
    def notification_url(self) -> str:
        base = self.api_base_url.rstrip("/")
        if not base.startswith("https://"):
            # Provider rejects non-public callback urls
            return ""
        return f"{base}/api/webhooks/{self.provider}"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        port = env_int("PORT", 4000, minimum=1, maximum=65535)
        return cls(
            provider=(os.getenv("PAYMENTS_PROVIDER") or "mock").strip().lower(),
            fee_bps=env_int("PLATFORM_FEE_BPS", DEFAULT_PLATFORM_FEE_BPS, minimum=0, maximum=10000),
            default_currency=(os.getenv("DEFAULT_CURRENCY") or "CLP").strip().upper(),
            gateway_timeout_seconds=env_int("GATEWAY_TIMEOUT_SECONDS", 10, minimum=1, maximum=120),
            access_token=(os.getenv("MERCADOPAGO_ACCESS_TOKEN") or "").strip(),
            webhook_secret=(os.getenv("MERCADOPAGO_WEBHOOK_SECRET") or "").strip(),
            web_base_url=(os.getenv("WEB_BASE_URL") or "http://localhost:3000").strip(),
            api_base_url=(os.getenv("API_BASE_URL") or f"http://localhost:{port}").strip(),
            audit_channel=(os.getenv("AUDIT_CHANNEL") or "inline").strip().lower(),
            webhook_queue=env_bool("WEBHOOK_QUEUE", False),
            admin_user_ids=env_list("ADMIN_USER_IDS"),
        )
