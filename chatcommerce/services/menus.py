from __future__ import annotations

import logging

from chatcommerce.fsm.context import Conversation
from chatcommerce.services.templates import render_template
from chatcommerce.whatsapp.interactive import ListRow, ListSection

logger = logging.getLogger(__name__)

HELP_BUTTONS = [
    ("browse_products", "🛍️ Browse"),
    ("view_cart", "🛒 View Cart"),
    ("contact_support", "💬 Support"),
]


def welcome_text(conv: Conversation) -> str:
    return render_template(
        conv.settings.welcome_message,
        business_name=conv.business_name,
        customer_name=conv.customer_name(),
        customer_phone=conv.customer_phone,
    )


def send_welcome(conv: Conversation) -> bool:
    if not conv.bot_enabled:
        return conv.send_text(
            f"👋 Hi! Thanks for messaging {conv.business_name}. We'll get back to you shortly."
        )

    options = conv.settings.menu_options
    rows = []
    if options.browse_products.enabled:
        rows.append(ListRow(id="browse_products", title=options.browse_products.label, description="See our catalog"))
    if options.view_orders.enabled:
        rows.append(ListRow(id="view_orders", title=options.view_orders.label, description="Your recent orders"))
    if options.track_order.enabled:
        rows.append(ListRow(id="track_order", title=options.track_order.label, description="Check an order's status"))
    if options.support.enabled:
        rows.append(ListRow(id="contact_support", title=options.support.label, description="Talk to us"))

    if not rows:
        return conv.send_text(welcome_text(conv))
    return conv.send_list(
        welcome_text(conv),
        "Menu",
        [ListSection(title="Main Menu", rows=rows)],
        footer=conv.business_name,
    )


def send_help(conv: Conversation) -> bool:
    return conv.send_buttons(
        "🤔 Sorry, I didn't understand that.\n\nYou can browse our products, check your cart, or talk to support. "
        "Type *menu* at any time to see all options.",
        HELP_BUTTONS,
    )
