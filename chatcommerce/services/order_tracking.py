from __future__ import annotations

import logging

from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.states import SessionState
from chatcommerce.models.order import Order
from chatcommerce.services.cart import format_money
from chatcommerce.services.menus import send_welcome
from chatcommerce.services.orders import extract_order_id, find_orders, status_label
from chatcommerce.services.payments import payment_label
from chatcommerce.whatsapp.interactive import ListRow, ListSection

logger = logging.getLogger(__name__)

ESCAPE_WORDS = {"menu", "main menu", "exit", "cancel"}
ORDER_ROW_PREFIX = "order_"


def show_order_history(conv: Conversation) -> None:
    orders = find_orders(conv.db, tenant_id=conv.tenant_id, phone=conv.customer_phone)
    if not orders:
        conv.send_buttons(
            "📦 You haven't placed any orders yet.",
            [("browse_products", "🛍️ Browse Products")],
        )
        return

    rows = [
        ListRow(
            id=f"{ORDER_ROW_PREFIX}{order.order_id}",
            title=order.order_id,
            description=f"{status_label(order.status)} · {format_money(order.total)}",
        )
        for order in orders
    ]
    conv.set_state(SessionState.VIEWING_ORDERS)
    conv.save()
    conv.send_list(
        f"📦 Your recent orders ({len(orders)}). Tap one to see its status.",
        "View Orders",
        [ListSection(title="Recent Orders", rows=rows)],
    )


def order_status_text(order: Order) -> str:
    lines = [
        f"📦 *Order {order.order_id}*",
        "",
        f"Status: {status_label(order.status)}",
        f"Items: {order.item_count}",
        f"Total: {format_money(order.total)}",
        f"Payment: {payment_label(order.payment_method, order.credit_days)}",
    ]
    if order.created_at:
        lines.append(f"Placed: {order.created_at:%d %b %Y}")
    return "\n".join(lines)


def show_order_status(conv: Conversation, order_id: str) -> bool:
    orders = find_orders(conv.db, tenant_id=conv.tenant_id, phone=conv.customer_phone, order_id=order_id, limit=1)
    if not orders:
        conv.send_text(f"😕 We couldn't find order *{order_id}*. Please check the id and try again.")
        return False
    conv.set_state(SessionState.IDLE)
    conv.save()
    conv.send_buttons(
        order_status_text(orders[0]),
        [("view_orders", "📦 My Orders"), ("browse_products", "🛍️ Shop More")],
    )
    return True


def start_tracking(conv: Conversation) -> None:
    conv.set_state(SessionState.TRACKING)
    conv.save()
    body = "🚚 Please send your order id (for example *ORD-M2K4Z9QX-7F2*).\n\nType *menu* to go back."
    last_order_id = conv.session.last_order_id
    if last_order_id:
        conv.send_buttons(body, [(f"{ORDER_ROW_PREFIX}{last_order_id}", "📦 Last Order")])
    else:
        conv.send_text(body)


def handle_tracking_text(conv: Conversation, text: str) -> None:
    if text.strip().lower() in ESCAPE_WORDS:
        conv.set_state(SessionState.IDLE)
        conv.save()
        send_welcome(conv)
        return

    order_id = extract_order_id(text)
    if order_id is None:
        conv.send_text("That doesn't look like an order id. It should look like *ORD-M2K4Z9QX-7F2*, or type *menu*.")
        return
    show_order_status(conv, order_id)
