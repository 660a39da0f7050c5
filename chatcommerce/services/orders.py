from __future__ import annotations

import logging
import re
import secrets
import string
import time
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from chatcommerce.core.errors import InvalidStatusTransitionError, OrderNotFoundError
from chatcommerce.models.order import Order
from chatcommerce.services.order_events import emit_order_status_changed
from chatcommerce.services.phone_numbers import phone_variants

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})
_FORWARD = {
    "pending": "confirmed",
    "confirmed": "processing",
    "processing": "shipped",
    "shipped": "delivered",
}

ORDER_ID_PATTERN = re.compile(r"\bORD-[A-Z0-9]{6,12}-[A-Z0-9]{3}\b", re.IGNORECASE)
_ALPHABET = string.digits + string.ascii_uppercase
HISTORY_LIMIT = 10

STATUS_LABELS = {
    "pending": "⏳ Pending",
    "confirmed": "✅ Confirmed",
    "processing": "🔄 Processing",
    "shipped": "🚚 Shipped",
    "delivered": "📦 Delivered",
    "cancelled": "❌ Cancelled",
}


def _base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits)) or "0"


def generate_order_id(now_ms: int | None = None) -> str:
    """Time-ordered and short enough to read out over the phone: ORD-<ms base36>-<3 random>."""
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(3))
    return f"ORD-{_base36(millis)}-{suffix}"


def extract_order_id(text: str) -> str | None:
    match = ORDER_ID_PATTERN.search(text or "")
    return match.group(0).upper() if match else None


def allowed_transitions(status: str) -> set[str]:
    if status in TERMINAL_STATUSES:
        return set()
    allowed = {"cancelled"}
    if status in _FORWARD:
        allowed.add(_FORWARD[status])
    return allowed


def find_orders(
    db: Session,
    *,
    tenant_id: int,
    phone: str,
    order_id: str | None = None,
    limit: int = HISTORY_LIMIT,
) -> list[Order]:
    """Orders for a customer, newest first, trying each stored phone format in turn."""
    for variant in phone_variants(phone):
        query = db.query(Order).filter(Order.tenant_id == tenant_id, Order.customer_phone == variant)
        if order_id:
            query = query.filter(Order.order_id == order_id.upper())
        orders = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
        if orders:
            return orders
    return []


def get_order(db: Session, *, tenant_id: int, order_id: str) -> Order:
    order = (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.order_id == order_id.upper())
        .first()
    )
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


def update_order_status(db: Session, *, tenant_id: int, order_id: str, new_status: str) -> Order:
    """Move an order along its lifecycle; only status fields are ever written."""
    order = get_order(db, tenant_id=tenant_id, order_id=order_id)
    new_status = (new_status or "").strip().lower()
    previous = order.status
    if new_status == previous:
        return order
    if new_status not in ORDER_STATUSES or new_status not in allowed_transitions(previous):
        raise InvalidStatusTransitionError(previous, new_status)

    order.status = new_status
    if new_status == "delivered" and order.payment_method == "COD":
        order.payment_status = "paid"
    elif new_status == "cancelled" and order.payment_status == "pending":
        order.payment_status = "cancelled"
    order.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(order)
    logger.info(
        "Order status %s -> %s",
        previous,
        new_status,
        extra={"event": "order_status_changed", "order_id": order.order_id},
    )
    emit_order_status_changed(order, previous)
    return order


def status_label(status: str | None) -> str:
    return STATUS_LABELS.get((status or "").lower(), (status or "unknown").upper())
