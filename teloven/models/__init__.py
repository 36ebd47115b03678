from teloven.models.audit_entry import AuditEntry
from teloven.models.listing import Listing
from teloven.models.order import Order, OrderStatus
from teloven.models.payment_record import PaymentRecord
from teloven.models.webhook_event import WebhookEvent

__all__ = [
    "AuditEntry",
    "Listing",
    "Order",
    "OrderStatus",
    "PaymentRecord",
    "WebhookEvent",
]
