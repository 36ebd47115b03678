from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

DEFAULT_PLATFORM_FEE_BPS = 600

# ISO 4217 exponents that differ from the usual two decimals
_CURRENCY_EXPONENTS = {
    "CLP": 0,
    "PYG": 0,
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
}


def _clamp_minor(value: int | float | Decimal | None) -> int:
    try:
        parsed = int(value or 0)
    except Exception:
        parsed = 0
    return parsed if parsed > 0 else 0


def currency_exponent(currency: str | None) -> int:
    return _CURRENCY_EXPONENTS.get((currency or "").strip().upper(), 2)


def money_major_to_minor(amount: float | Decimal | int | str | None, currency: str | None) -> int:
    try:
        parsed = Decimal(str(amount or 0))
    except Exception:
        parsed = Decimal("0")
    scale = Decimal(10) ** currency_exponent(currency)
    minor = (parsed * scale).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return _clamp_minor(int(minor))


def money_minor_to_major(minor: int | None, currency: str | None) -> Decimal:
    exponent = currency_exponent(currency)
    try:
        parsed = Decimal(int(minor or 0))
    except Exception:
        parsed = Decimal("0")
    quantum = Decimal(1).scaleb(-exponent)
    return (parsed / (Decimal(10) ** exponent)).quantize(quantum, rounding=ROUND_HALF_UP)


def platform_fee_minor(price_minor: int, bps: int = DEFAULT_PLATFORM_FEE_BPS) -> int:
    amt = Decimal(_clamp_minor(price_minor))
    rate = Decimal(int(max(0, bps)))
    raw = (amt * rate) / Decimal("10000")
    return _clamp_minor(int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def compute_order_amounts(price_minor: int, bps: int = DEFAULT_PLATFORM_FEE_BPS) -> dict:
    price = _clamp_minor(price_minor)
    fee = platform_fee_minor(price, bps)
    return {
        "price": int(price),
        "platform_fee": int(fee),
        "total": int(price + fee),
        "fee_bps": int(max(0, bps)),
    }
