from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from chatcommerce.core.database import SessionLocal
from chatcommerce.services.bot_config import BotSettings, load_bot_settings
from chatcommerce.services.cart import format_money
from chatcommerce.services.event_bus import event_bus
from chatcommerce.services.order_events import ORDER_STATUS_CHANGED
from chatcommerce.services.templates import render_template
from chatcommerce.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)

# Rebound by the app lifespan to the request dependencies; tests may swap them directly.
session_factory: Callable[[], Session] = SessionLocal
outbound = WhatsAppService()

GENERIC_STATUS_TEXT = "📦 Order Update\n\nOrder #{order_id}\nStatus: {status}\n\nReply *orders* to view your orders."


def _with_session(handler):
    def wrapper(payload: dict) -> None:
        db: Session = session_factory()
        try:
            handler(db, payload)
        finally:
            db.close()

    wrapper.__name__ = handler.__name__
    return wrapper


def status_message(settings: BotSettings, payload: dict) -> str:
    status = payload.get("status")
    template = {
        "confirmed": settings.messages.order_confirmed,
        "shipped": settings.messages.order_shipped,
        "delivered": settings.messages.order_delivered,
    }.get(status, GENERIC_STATUS_TEXT)
    return render_template(
        template,
        order_id=payload.get("order_id"),
        status=(status or "").upper(),
        total=format_money(payload.get("total")),
        items_count=payload.get("item_count"),
        customer_name=payload.get("customer_name") or "there",
    )


def notify_order_status_changed(db: Session, payload: dict, gateway: WhatsAppService) -> bool:
    if payload.get("source") != "whatsapp_bot" or not payload.get("customer_phone"):
        return False
    settings = load_bot_settings(db, payload["tenant_id"])
    if settings is None or not settings.enabled or not settings.order_settings.send_status_updates:
        logger.info(
            "Status notification disabled for tenant",
            extra={"event": "status_notification_skipped", "order_id": payload.get("order_id")},
        )
        return False
    log_entry = gateway.send_text(
        db,
        tenant_id=payload["tenant_id"],
        to_phone=payload["customer_phone"],
        text=status_message(settings, payload),
    )
    return log_entry.status != "failed"


@_with_session
def handle_order_status_changed(db: Session, payload: dict) -> None:
    notify_order_status_changed(db, payload, outbound)


event_bus.subscribe(ORDER_STATUS_CHANGED, handle_order_status_changed)
