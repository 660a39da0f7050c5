"""Turn routing: free text and structured replies to their handlers."""
from __future__ import annotations

import logging
import re
from typing import Callable

from chatcommerce.core.errors import FlowExecutionError
from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.states import CONTINUATION_STATES, SessionState
from chatcommerce.services import catalog, checkout, order_tracking, support
from chatcommerce.services.flows import FlowInterpreter, active_flows, match_flow
from chatcommerce.services.menus import send_help, send_welcome
from chatcommerce.services.payments import PAYMENT_ACTIONS

logger = logging.getLogger(__name__)

QUICK_COMMANDS = {
    "my cart": "view_cart",
    "cart": "view_cart",
    "my orders": "view_orders",
    "orders": "view_orders",
    "browse": "browse_products",
    "products": "browse_products",
    "shop": "browse_products",
    "checkout": "checkout",
    "help": "contact_support",
    "support": "contact_support",
    "track": "track_order",
    "main menu": "main_menu",
    "menu": "main_menu",
}

GREETINGS = (
    "good morning",
    "good afternoon",
    "good evening",
    "hello",
    "hiii",
    "hii",
    "hi",
    "hey",
    "hola",
    "namaste",
    "start",
)

PRODUCT_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{11,}$")


def _leading_match(text: str, phrase: str) -> bool:
    return re.match(rf"{re.escape(phrase)}\b", text) is not None


def match_quick_command(text: str) -> str | None:
    normalized = text.strip().lower()
    for phrase in sorted(QUICK_COMMANDS, key=len, reverse=True):
        if _leading_match(normalized, phrase):
            return QUICK_COMMANDS[phrase]
    return None


def is_greeting(text: str) -> bool:
    normalized = text.strip().lower()
    return any(_leading_match(normalized, greeting) for greeting in GREETINGS)


def is_product_id(value: str) -> bool:
    return PRODUCT_ID_PATTERN.match(value) is not None


def _main_menu(conv: Conversation) -> None:
    conv.set_state(SessionState.IDLE)
    conv.save()
    send_welcome(conv)


ACTIONS: dict[str, Callable[[Conversation], object]] = {
    "browse_products": catalog.render_catalog,
    "continue_shopping": catalog.render_catalog,
    "view_cart": catalog.show_cart,
    "clear_cart": catalog.clear_cart,
    "checkout": checkout.start_checkout,
    "add_info": checkout.begin_info_collection,
    "update_info": checkout.begin_info_collection,
    "skip_info": checkout.skip_info,
    "use_saved_info": checkout.use_saved_info,
    "change_payment": checkout.change_payment,
    "confirm_order": checkout.confirm_order,
    "cancel_order": checkout.cancel_order,
    "view_orders": order_tracking.show_order_history,
    "track_order": order_tracking.start_tracking,
    "contact_support": lambda conv: support.start_support(conv, "general"),
    "order_support": lambda conv: support.start_support(conv, "order"),
    "payment_support": lambda conv: support.start_support(conv, "payment"),
    "main_menu": _main_menu,
}

_STATE_HANDLERS: dict[SessionState, Callable[[Conversation, str], None]] = {
    SessionState.COLLECTING_CUSTOMER_INFO: checkout.handle_customer_info_reply,
    SessionState.REVIEWING_CUSTOMER_INFO: checkout.handle_saved_info_reply,
    SessionState.COLLECTING_NAME: checkout.handle_name,
    SessionState.COLLECTING_ADDRESS: checkout.handle_address,
    SessionState.SUPPORT: support.handle_support_text,
    SessionState.TRACKING: order_tracking.handle_tracking_text,
}


def dispatch_action(conv: Conversation, action_id: str) -> str:
    """Handle a structured reply id regardless of the current state. Returns how it was handled."""
    action_id = (action_id or "").strip()
    conv.session.current_step = action_id[:80] or None

    handler = ACTIONS.get(action_id)
    if handler is not None:
        handler(conv)
        return action_id
    if action_id in PAYMENT_ACTIONS:
        checkout.select_payment(conv, PAYMENT_ACTIONS[action_id])
        return action_id
    if action_id.startswith(order_tracking.ORDER_ROW_PREFIX):
        order_tracking.show_order_status(conv, action_id[len(order_tracking.ORDER_ROW_PREFIX):])
        return "order_status"
    if is_product_id(action_id):
        catalog.add_product_to_cart(conv, action_id)
        return "add_to_cart"

    logger.info("Unknown action id", extra={"event": "action_unknown", "action": action_id})
    send_help(conv)
    return "help"


def route_text(conv: Conversation, text: str) -> str:
    """Route free text; first match wins. Returns the route taken."""
    state = conv.state
    if state in CONTINUATION_STATES:
        _STATE_HANDLERS[state](conv, text)
        return f"state:{state.value}"

    action = match_quick_command(text)
    if action is not None:
        dispatch_action(conv, action)
        return f"command:{action}"

    if is_greeting(text):
        send_welcome(conv)
        return "greeting"

    flows = active_flows(conv)
    flow = match_flow(flows, text)
    if flow is not None:
        try:
            FlowInterpreter(conv).run(flow)
            return f"flow:{flow.name}"
        except FlowExecutionError as exc:
            logger.warning(str(exc), extra={"event": "flow_failed", "flow": flow.name})
            send_welcome(conv)
            return "flow_fallback"

    return fallback(conv, has_flows=bool(flows))


def fallback(conv: Conversation, *, has_flows: bool) -> str:
    if conv.bot_enabled or has_flows:
        send_help(conv)
        return "help"
    logger.info("No route for message and bot disabled", extra={"event": "message_unrouted"})
    return "ignored"
