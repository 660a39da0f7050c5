from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from chatcommerce.core.database import SessionLocal
from chatcommerce.core.metrics import engine_counters
from chatcommerce.core.request_context import clear_turn_context, set_request_context
from chatcommerce.fsm.engine import process_inbound_message
from chatcommerce.services.tenant_resolver import resolve_tenant
from chatcommerce.whatsapp.normalizer import MessageEvent, StatusEvent, parse_webhook
from chatcommerce.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)


def process_webhook_payload(
    payload: dict[str, Any],
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    outbound: WhatsAppService | None = None,
) -> dict[str, int]:
    """Run every event of one delivery; one failing event never stops the rest."""
    outbound = outbound or WhatsAppService()
    summary = {"events": 0, "messages": 0, "statuses": 0, "duplicates": 0, "dropped": 0, "errors": 0}

    for event in parse_webhook(payload):
        summary["events"] += 1
        db = session_factory()
        try:
            tenant = resolve_tenant(
                db,
                phone_number_id=event.channel.phone_number_id,
                account_id=event.channel.account_id,
            )
            if tenant is None:
                engine_counters.increment("tenant_not_found")
                summary["dropped"] += 1
                continue
            set_request_context(tenant_id=str(tenant.id))

            if isinstance(event, StatusEvent):
                if outbound.apply_status(db, tenant_id=tenant.id, event=event):
                    engine_counters.increment("status_applied", tenant.id)
                summary["statuses"] += 1
            elif isinstance(event, MessageEvent):
                result = process_inbound_message(db, tenant=tenant, event=event, outbound=outbound)
                if result["status"] == "duplicate":
                    summary["duplicates"] += 1
                else:
                    summary["messages"] += 1
        except Exception:
            db.rollback()
            engine_counters.increment("event_errors")
            summary["errors"] += 1
            logger.exception(
                "Webhook event failed",
                extra={"event": "webhook_event_failed", "message_id": getattr(event, "message_id", None)},
            )
        finally:
            db.close()
            clear_turn_context()
    return summary
