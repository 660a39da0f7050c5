from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from chatcommerce.models.order_bot_config import OrderBotConfig

logger = logging.getLogger(__name__)

DEFAULT_WELCOME_MESSAGE = "👋 Welcome to {business_name}! How can I help you today?"


class _CamelModel(BaseModel):
    # Dashboard documents are camelCase; accept snake_case too.
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MenuOption(_CamelModel):
    enabled: bool = True
    label: str


class MenuOptions(_CamelModel):
    browse_products: MenuOption = Field(
        default_factory=lambda: MenuOption(label="🛍️ Browse Products"), alias="browseProducts"
    )
    view_orders: MenuOption = Field(default_factory=lambda: MenuOption(label="📦 My Orders"), alias="viewOrders")
    track_order: MenuOption = Field(default_factory=lambda: MenuOption(label="🚚 Track Order"), alias="trackOrder")
    support: MenuOption = Field(default_factory=lambda: MenuOption(label="💬 Contact Support"))


class PaymentSettings(_CamelModel):
    accept_cod: bool = Field(True, alias="acceptCOD")
    accept_online: bool = Field(False, alias="acceptOnline")
    accept_credit: bool = Field(False, alias="acceptCredit")
    credit_limit: float = Field(0, ge=0, alias="creditLimit")
    credit_days: int = Field(7, ge=1, alias="creditDays")


class OrderSettings(_CamelModel):
    min_order_value: float = Field(0, ge=0, alias="minOrderValue")
    max_items_per_order: int = Field(50, ge=1, alias="maxItemsPerOrder")
    send_order_confirmation: bool = Field(True, alias="sendOrderConfirmation")
    send_status_updates: bool = Field(True, alias="sendStatusUpdates")


class BotMessages(_CamelModel):
    order_confirmed: str = Field(
        "✅ Order Confirmed!\n\nOrder ID: {order_id}\nTotal: {total}\n\nThank you for your order!",
        alias="orderConfirmed",
    )
    order_shipped: str = Field(
        "🚚 Your order {order_id} has been shipped! It will reach you soon.", alias="orderShipped"
    )
    order_delivered: str = Field(
        "📦 Your order {order_id} has been delivered. Thank you for shopping with us!", alias="orderDelivered"
    )
    out_of_stock: str = Field("😔 Sorry, {product_name} is currently out of stock.", alias="outOfStock")
    cart_empty: str = Field(
        "🛒 Your cart is empty. Reply *browse* to see our products.", alias="cartEmpty"
    )


class BotSettings(_CamelModel):
    enabled: bool = False
    welcome_message: str = Field(DEFAULT_WELCOME_MESSAGE, alias="welcomeMessage")
    menu_options: MenuOptions = Field(default_factory=MenuOptions, alias="menuOptions")
    payment_settings: PaymentSettings = Field(default_factory=PaymentSettings, alias="paymentSettings")
    order_settings: OrderSettings = Field(default_factory=OrderSettings, alias="orderSettings")
    messages: BotMessages = Field(default_factory=BotMessages)


def _field_name(model: BaseModel, key: str) -> str:
    for name, field in type(model).model_fields.items():
        if key == name or key == field.alias:
            return name
    return key


def _merged(defaults: BaseModel, stored: Any) -> dict[str, Any]:
    """Stored document over the defaults, key by key; nested sections merge too.

    Keys are folded onto field names first, so a stored ``accept_cod`` and a
    stored ``acceptCOD`` both replace the same default.
    """
    merged = defaults.model_dump()
    if not isinstance(stored, dict):
        return merged
    for key, value in stored.items():
        if value is None:
            continue
        name = _field_name(defaults, str(key))
        if isinstance(value, dict) and isinstance(merged.get(name), dict):
            merged[name] = {**merged[name], **value}
        else:
            merged[name] = value
    return merged


def settings_from_row(row: OrderBotConfig) -> BotSettings:
    data: dict[str, Any] = {"enabled": bool(row.enabled)}
    if row.welcome_message:
        data["welcome_message"] = row.welcome_message
    data["menu_options"] = _merged(MenuOptions(), row.menu_options)
    data["payment_settings"] = _merged(PaymentSettings(), row.payment_settings)
    data["order_settings"] = _merged(OrderSettings(), row.order_settings)
    data["messages"] = _merged(BotMessages(), row.messages)
    return BotSettings.model_validate(data)


def load_bot_settings(db: Session, tenant_id: int) -> BotSettings | None:
    row = db.query(OrderBotConfig).filter(OrderBotConfig.tenant_id == tenant_id).first()
    if row is None:
        return None
    try:
        return settings_from_row(row)
    except ValidationError:
        logger.exception("Invalid order bot config, treating bot as disabled", extra={"event": "bot_config_invalid"})
        return None
