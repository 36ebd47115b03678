from __future__ import annotations


class LifecycleError(Exception):
    code = "LIFECYCLE_ERROR"
    http_status = 400

    def __init__(self, message: str = "", **details):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict:
        payload = {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.http_status),
        }
        payload.update(self.details)
        return payload


class ListingNotFound(LifecycleError):
    code = "LISTING_NOT_FOUND"
    http_status = 404


class OrderNotFound(LifecycleError):
    code = "ORDER_NOT_FOUND"
    http_status = 404


class Forbidden(LifecycleError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidState(LifecycleError):
    """Transition attempted from the wrong source state."""

    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, current_status: str, message: str = "", **details):
        self.current_status = current_status
        super().__init__(
            message or f"order is {current_status}",
            current_status=current_status,
            **details,
        )


class GatewayError(LifecycleError):
    code = "GATEWAY_ERROR"
    http_status = 502


class AmountMismatch(LifecycleError):
    """Resolved payment amount or currency disagrees with the order.

    Never surfaced to a caller; the webhook path audits it and skips the
    transition.
    """

    code = "AMOUNT_MISMATCH"
    http_status = 200

    def __init__(
        self,
        *,
        expected: int,
        received: int,
        payment_id: str,
        expected_currency: str = "",
        received_currency: str = "",
    ):
        self.expected = int(expected)
        self.received = int(received)
        self.payment_id = payment_id
        self.expected_currency = expected_currency
        self.received_currency = received_currency
        super().__init__(
            f"expected {expected} got {received}",
            expected=self.expected,
            received=self.received,
            payment_id=payment_id,
            expected_currency=expected_currency,
            received_currency=received_currency,
        )


class RequestValidationError(LifecycleError):
    code = "INVALID_REQUEST"
    http_status = 400


class Unauthorized(LifecycleError):
    code = "UNAUTHORIZED"
    http_status = 401
