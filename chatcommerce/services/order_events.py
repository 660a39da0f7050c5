from __future__ import annotations

from chatcommerce.models.order import Order
from chatcommerce.services.event_bus import event_bus

ORDER_STATUS_CHANGED = "order.status.changed"


def build_order_payload(order: Order, previous_status: str | None = None) -> dict:
    return {
        "order_id": order.order_id,
        "tenant_id": order.tenant_id,
        "status": (order.status or "").lower(),
        "previous_status": (previous_status or "").lower() or None,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "total": float(order.total or 0),
        "item_count": int(order.item_count or 0),
        "source": order.source,
    }


def emit_order_status_changed(order: Order, previous_status: str | None) -> None:
    if previous_status and previous_status.lower() == (order.status or "").lower():
        return
    event_bus.emit(ORDER_STATUS_CHANGED, build_order_payload(order, previous_status=previous_status))
