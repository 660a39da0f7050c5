"""Checkout sub-dialogue: customer details, payment choice, summary and commit."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from chatcommerce.core.errors import EmptyCartError
from chatcommerce.core.metrics import engine_counters
from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.states import SessionState
from chatcommerce.models.customer import Customer
from chatcommerce.models.order import Order
from chatcommerce.services.cart import empty_cart, format_cart_lines, format_money, item_count, load_cart
from chatcommerce.services.orders import generate_order_id
from chatcommerce.services.payments import (
    PaymentMethod,
    enabled_methods,
    payment_buttons,
    payment_label,
    resolve_payment,
)
from chatcommerce.services.templates import render_template

logger = logging.getLogger(__name__)

YES_WORDS = {"yes", "y", "yeah", "yep", "sure", "ok", "okay", "add", "add details"}
NO_WORDS = {"no", "n", "nope", "skip", "no thanks", "not now"}
UPDATE_WORDS = {"update", "change", "edit"}
SKIP_WORD = "skip"
MIN_NAME_LENGTH = 2
MIN_ADDRESS_LENGTH = 10


def _browse_button() -> list[tuple[str, str]]:
    return [("browse_products", "🛍️ Browse Products")]


def _send_cart_empty(conv: Conversation) -> None:
    conv.send_buttons(render_template(conv.settings.messages.cart_empty), _browse_button())


def start_checkout(conv: Conversation) -> None:
    lines = load_cart(conv.session)
    if not lines:
        _send_cart_empty(conv)
        return

    minimum = conv.settings.order_settings.min_order_value
    if minimum and float(conv.session.cart_total or 0) < minimum:
        conv.send_buttons(
            f"⚠️ The minimum order value is {format_money(minimum)}. "
            f"Your cart total is {format_money(conv.session.cart_total)}.",
            [("continue_shopping", "🛍️ Add More"), ("view_cart", "🛒 View Cart")],
        )
        return

    customer = conv.customer_record()
    if customer is not None and customer.name and customer.address:
        conv.set_state(SessionState.REVIEWING_CUSTOMER_INFO)
        conv.save()
        conv.send_buttons(
            f"📍 We have these details on file:\n\nName: {customer.name}\nAddress: {customer.address}\n\n"
            "Deliver to this address?",
            [("use_saved_info", "✅ Use Saved"), ("update_info", "✏️ Update"), ("skip_info", "⏭️ Skip")],
        )
        return

    conv.set_state(SessionState.COLLECTING_CUSTOMER_INFO)
    conv.save()
    _prompt_customer_info(conv)


def _prompt_customer_info(conv: Conversation) -> None:
    conv.send_buttons(
        "📝 Would you like to add your name and delivery address to this order?\n\nReply *yes* or *no*.",
        [("add_info", "✍️ Add Details"), ("skip_info", "⏭️ Skip")],
    )


def begin_info_collection(conv: Conversation) -> None:
    conv.session.temp_customer_info = {}
    conv.set_state(SessionState.COLLECTING_NAME)
    conv.save()
    conv.send_text("👤 Please enter your name (or type *skip*).")


def skip_info(conv: Conversation) -> None:
    conv.session.temp_customer_info = None
    conv.set_state(SessionState.CONFIRMING)
    conv.save()
    proceed_to_summary(conv)


def use_saved_info(conv: Conversation) -> None:
    customer = conv.customer_record()
    if customer is None or not (customer.name and customer.address):
        conv.set_state(SessionState.COLLECTING_CUSTOMER_INFO)
        conv.save()
        _prompt_customer_info(conv)
        return
    conv.session.temp_customer_info = {"name": customer.name, "address": customer.address}
    conv.set_state(SessionState.CONFIRMING)
    conv.save()
    proceed_to_summary(conv)


def handle_customer_info_reply(conv: Conversation, text: str) -> None:
    answer = text.strip().lower()
    if answer in YES_WORDS:
        begin_info_collection(conv)
    elif answer in NO_WORDS:
        skip_info(conv)
    else:
        _prompt_customer_info(conv)


def handle_saved_info_reply(conv: Conversation, text: str) -> None:
    answer = text.strip().lower()
    if answer in YES_WORDS:
        use_saved_info(conv)
    elif answer in UPDATE_WORDS:
        begin_info_collection(conv)
    elif answer in NO_WORDS:
        skip_info(conv)
    else:
        conv.send_buttons(
            "Please choose one of the options below.",
            [("use_saved_info", "✅ Use Saved"), ("update_info", "✏️ Update"), ("skip_info", "⏭️ Skip")],
        )


def handle_name(conv: Conversation, text: str) -> None:
    value = text.strip()
    info = dict(conv.session.temp_customer_info or {})
    if value.lower() == SKIP_WORD:
        info.pop("name", None)
    elif len(value) >= MIN_NAME_LENGTH:
        info["name"] = value
    else:
        conv.send_text(f"Please enter a valid name (at least {MIN_NAME_LENGTH} characters) or type *skip*.")
        return
    conv.session.temp_customer_info = info
    conv.set_state(SessionState.COLLECTING_ADDRESS)
    conv.save()
    conv.send_text("🏠 Please enter your full delivery address (or type *skip*).")


def handle_address(conv: Conversation, text: str) -> None:
    value = text.strip()
    info = dict(conv.session.temp_customer_info or {})
    if value.lower() == SKIP_WORD:
        info.pop("address", None)
    elif len(value) >= MIN_ADDRESS_LENGTH:
        info["address"] = value
    else:
        conv.send_text(
            f"Please enter a complete address (at least {MIN_ADDRESS_LENGTH} characters) or type *skip*."
        )
        return
    conv.session.temp_customer_info = info or None
    conv.set_state(SessionState.CONFIRMING)
    conv.save()
    proceed_to_summary(conv)


def ensure_payment_selected(conv: Conversation) -> bool:
    """True when a payment method is settled; otherwise the customer was told why or asked to pick."""
    settings = conv.settings.payment_settings
    resolution = resolve_payment(settings, current=conv.session.payment_method, credit_days=conv.session.credit_days)

    if resolution.status == "unavailable":
        conv.set_state(SessionState.CART)
        conv.save()
        conv.send_text("😔 Sorry, no payment method is available right now. Please contact us to complete your order.")
        return False

    if resolution.status == "selected":
        conv.session.payment_method = resolution.method.value
        conv.session.credit_days = resolution.credit_days
        return True

    conv.set_state(SessionState.SELECTING_PAYMENT)
    conv.save()
    conv.send_buttons(
        f"💳 How would you like to pay?\n\nTotal: {format_money(conv.session.cart_total)}",
        payment_buttons(resolution.options),
    )
    return False


def select_payment(conv: Conversation, method: PaymentMethod) -> None:
    settings = conv.settings.payment_settings
    if method not in enabled_methods(settings):
        conv.session.payment_method = None
        ensure_payment_selected(conv)
        return
    conv.session.payment_method = method.value
    conv.session.credit_days = settings.credit_days if method is PaymentMethod.CREDIT else None
    send_order_summary(conv)


def change_payment(conv: Conversation) -> None:
    conv.session.payment_method = None
    conv.session.credit_days = None
    proceed_to_summary(conv)


def proceed_to_summary(conv: Conversation) -> None:
    if ensure_payment_selected(conv):
        send_order_summary(conv)


def _delivery_block(conv: Conversation, info: dict) -> str:
    name = info.get("name")
    address = info.get("address")
    if name and address:
        return f"📍 *Delivery Details*\nName: {name}\nAddress: {address}\nPhone: +{conv.customer_phone}"
    return f"📍 Deliver to: +{conv.customer_phone}"


def send_order_summary(conv: Conversation) -> None:
    lines = load_cart(conv.session)
    if not lines:
        conv.set_state(SessionState.IDLE)
        conv.save()
        _send_cart_empty(conv)
        return

    info = conv.session.temp_customer_info or {}
    body = (
        f"📋 *Order Summary*\n\n{format_cart_lines(lines)}\n\n"
        f"*Total: {format_money(conv.session.cart_total)}*\n\n"
        f"{_delivery_block(conv, info)}\n\n"
        f"💳 Payment: {payment_label(conv.session.payment_method, conv.session.credit_days)}\n\n"
        f"🏪 {conv.business_name}"
    )
    buttons = [("confirm_order", "✅ Confirm Order"), ("cancel_order", "❌ Cancel")]
    if len(enabled_methods(conv.settings.payment_settings)) > 1:
        buttons.append(("change_payment", "💳 Change Payment"))

    conv.set_state(SessionState.CONFIRMING)
    conv.save()
    conv.send_buttons(body, buttons)


def _upsert_customer(conv: Conversation, info: dict) -> None:
    name = info.get("name")
    address = info.get("address")
    if not name and not address:
        return
    customer = conv.customer_record()
    if customer is None:
        customer = Customer(tenant_id=conv.tenant_id, phone=conv.customer_phone)
        conv.db.add(customer)
    if name:
        customer.name = name
    if address:
        customer.address = address


def build_order(conv: Conversation) -> Order:
    """Snapshot the session cart and staged customer details into a new, unsaved order."""
    lines = load_cart(conv.session)
    if not lines:
        raise EmptyCartError("cannot create an order from an empty cart")
    info = conv.session.temp_customer_info or {}
    return Order(
        tenant_id=conv.tenant_id,
        order_id=generate_order_id(),
        customer_phone=conv.customer_phone,
        customer_name=info.get("name"),
        delivery_address=info.get("address"),
        items_json=[line.to_dict() for line in lines],
        item_count=item_count(lines),
        total=conv.session.cart_total,
        status="pending",
        payment_status="pending",
        source="whatsapp_bot",
    )


def confirm_order(conv: Conversation) -> Order | None:
    """Create the order and clear the cart in one commit.

    Either both happen or neither does. The confirmation message goes out only
    after the commit succeeded.
    """
    try:
        order = build_order(conv)
    except EmptyCartError:
        _send_cart_empty(conv)
        return None
    if not ensure_payment_selected(conv):
        return None

    session = conv.session
    info = dict(session.temp_customer_info or {})
    order.payment_method = session.payment_method
    order.credit_days = session.credit_days
    conv.db.add(order)
    _upsert_customer(conv, info)

    empty_cart(session)
    session.temp_customer_info = None
    session.current_flow = None
    session.current_step = None
    session.last_order_id = order.order_id
    session.state = SessionState.IDLE.value
    session.last_activity = datetime.now(timezone.utc)

    try:
        conv.db.commit()
    except StaleDataError:
        conv.db.rollback()
        raise
    except SQLAlchemyError:
        conv.db.rollback()
        logger.exception("Order commit failed", extra={"event": "order_commit_failed"})
        conv.send_buttons(
            "😔 Sorry, we couldn't place your order right now. Your cart is saved, please try again.",
            [("confirm_order", "🔁 Try Again"), ("view_cart", "🛒 View Cart")],
        )
        return None

    engine_counters.increment("orders_created", conv.tenant_id)
    logger.info("Order created", extra={"event": "order_created", "order_id": order.order_id})

    order_settings = conv.settings.order_settings
    if order_settings.send_order_confirmation:
        headline = render_template(
            conv.settings.messages.order_confirmed,
            order_id=order.order_id,
            total=format_money(order.total),
            items_count=order.item_count,
            customer_name=order.customer_name or conv.customer_name(),
        )
    else:
        headline = f"✅ Order {order.order_id} placed."
    conv.send_buttons(
        f"{headline}\n\n{_delivery_block(conv, info)}\n"
        f"💳 Payment: {payment_label(order.payment_method, order.credit_days)}",
        [("view_orders", "📦 My Orders"), ("browse_products", "🛍️ Shop More")],
    )
    return order


def cancel_order(conv: Conversation) -> None:
    empty_cart(conv.session)
    conv.session.temp_customer_info = None
    conv.set_state(SessionState.IDLE)
    conv.save()
    conv.send_buttons("❌ Your order has been cancelled and your cart cleared.", _browse_button())
