from __future__ import annotations

import logging
from collections import OrderedDict

from chatcommerce.core.config import CATALOG_PRODUCT_LIMIT
from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.states import SessionState
from chatcommerce.models.product import Product
from chatcommerce.services.cart import add_to_cart, empty_cart, format_cart_lines, format_money, item_count, load_cart
from chatcommerce.services.templates import render_template
from chatcommerce.whatsapp.interactive import MAX_ROWS_PER_SECTION, MAX_SECTIONS, ListRow, ListSection

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Other"


def is_in_stock(product: Product) -> bool:
    if product.stock is not None:
        return product.stock > 0
    if product.quantity is not None:
        return product.quantity > 0
    return True


def list_products(conv: Conversation, limit: int = CATALOG_PRODUCT_LIMIT) -> list[Product]:
    return (
        conv.db.query(Product)
        .filter(Product.tenant_id == conv.tenant_id, Product.active.is_(True))
        .order_by(Product.category.asc(), Product.name.asc())
        .limit(limit)
        .all()
    )


def get_product(conv: Conversation, product_id: str) -> Product | None:
    return (
        conv.db.query(Product)
        .filter(Product.tenant_id == conv.tenant_id, Product.id == product_id, Product.active.is_(True))
        .first()
    )


def group_by_category(products: list[Product]) -> "OrderedDict[str, list[Product]]":
    grouped: OrderedDict[str, list[Product]] = OrderedDict()
    for product in products:
        category = (product.category or "").strip() or UNCATEGORIZED
        if category not in grouped and len(grouped) >= MAX_SECTIONS:
            continue
        rows = grouped.setdefault(category, [])
        if len(rows) < MAX_ROWS_PER_SECTION:
            rows.append(product)
    return grouped


def _row_description(product: Product) -> str:
    price = format_money(product.price)
    if product.description:
        return f"{price} · {product.description}"
    return price


def render_catalog(conv: Conversation, *, title: str | None = None) -> bool:
    products = list_products(conv)
    if not products:
        return conv.send_text(f"😔 {conv.business_name} hasn't added any products yet. Please check back soon!")

    in_stock = [product for product in products if is_in_stock(product)]
    if not in_stock:
        return conv.send_text("😔 All our products are currently out of stock. Please check back later!")

    sections = [
        ListSection(
            title=category,
            rows=[
                ListRow(
                    id=product.id,
                    title=product.name,
                    description=_row_description(product),
                )
                for product in rows
            ],
        )
        for category, rows in group_by_category(in_stock).items()
    ]
    conv.set_state(SessionState.BROWSING)
    conv.save()
    return conv.send_list(
        title or "🛍️ Here's what we have today. Tap a product to add it to your cart.",
        "View Products",
        sections,
        header=conv.business_name,
    )


def _cart_buttons() -> list[tuple[str, str]]:
    return [("checkout", "✅ Checkout"), ("continue_shopping", "🛍️ Add More"), ("view_cart", "🛒 View Cart")]


def add_product_to_cart(conv: Conversation, product_id: str, quantity: int = 1) -> bool:
    product = get_product(conv, product_id)
    if product is None:
        logger.info("Product not found for cart add", extra={"event": "product_missing", "action": product_id})
        conv.send_buttons(
            "😕 Sorry, that product is no longer available.",
            [("browse_products", "🛍️ Browse Products")],
        )
        return False

    if not is_in_stock(product):
        conv.send_text(render_template(conv.settings.messages.out_of_stock, product_name=product.name))
        return False

    max_items = conv.settings.order_settings.max_items_per_order
    if item_count(load_cart(conv.session)) + quantity > max_items:
        conv.send_buttons(
            f"⚠️ You can order at most {max_items} items per order.",
            [("checkout", "✅ Checkout"), ("view_cart", "🛒 View Cart")],
        )
        return False

    lines = add_to_cart(
        conv.session, product_id=product.id, name=product.name, unit_price=product.price, quantity=quantity
    )
    conv.set_state(SessionState.CART)
    conv.save()

    conv.send_buttons(
        f"✅ Added *{product.name}* to your cart.\n\n{format_cart_lines(lines)}\n\n"
        f"*Total: {format_money(conv.session.cart_total)}*",
        _cart_buttons(),
    )
    return True


def show_cart(conv: Conversation) -> bool:
    lines = load_cart(conv.session)
    if not lines:
        conv.send_buttons(
            render_template(conv.settings.messages.cart_empty),
            [("browse_products", "🛍️ Browse Products")],
        )
        return False
    conv.set_state(SessionState.CART)
    conv.save()
    return conv.send_buttons(
        f"🛒 *Your Cart*\n\n{format_cart_lines(lines)}\n\n*Total: {format_money(conv.session.cart_total)}*",
        [("checkout", "✅ Checkout"), ("continue_shopping", "🛍️ Add More"), ("clear_cart", "🗑️ Clear Cart")],
    )


def clear_cart(conv: Conversation) -> bool:
    empty_cart(conv.session)
    conv.set_state(SessionState.IDLE)
    conv.save()
    return conv.send_buttons("🗑️ Your cart has been cleared.", [("browse_products", "🛍️ Browse Products")])
