from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from chatcommerce.core.metrics import engine_counters
from chatcommerce.core.request_context import set_request_context
from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.router import dispatch_action, fallback, route_text
from chatcommerce.models.processed_message import ProcessedMessage
from chatcommerce.models.tenant import Tenant
from chatcommerce.services.flows import active_flows
from chatcommerce.services.phone_numbers import normalize_phone
from chatcommerce.services.session_store import SESSION_LOCKS, load_session
from chatcommerce.whatsapp.normalizer import MessageEvent
from chatcommerce.whatsapp.service import WhatsAppService

logger = logging.getLogger(__name__)

MAX_TURN_ATTEMPTS = 2


def claim_message(db: Session, *, tenant_id: int, message_id: str) -> bool:
    """Insert the dedupe marker; False when this message id was already taken."""
    if db.query(ProcessedMessage).filter_by(message_id=message_id).first():
        return False
    db.add(ProcessedMessage(message_id=message_id, tenant_id=tenant_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def _open_conversation(
    db: Session, *, tenant: Tenant, event: MessageEvent, customer_phone: str, outbound: WhatsAppService
) -> tuple[Conversation, bool]:
    session, created = load_session(db, tenant_id=tenant.id, customer_phone=customer_phone)
    conv = Conversation(
        db=db, tenant=tenant, session=session, outbound=outbound, contact_name=event.contact_name
    )
    return conv, created


def _run_turn(conv: Conversation, *, event: MessageEvent, created: bool) -> str:
    if event.reply_id:
        route = f"action:{dispatch_action(conv, event.reply_id)}"
    elif event.message_type == "text" and event.text:
        route = route_text(conv, event.text)
    else:
        route = fallback(conv, has_flows=bool(active_flows(conv)))

    conv.save()
    logger.info(
        "Turn handled via %s",
        route,
        extra={"event": "turn_handled", "message_id": event.message_id, "state": conv.session.state},
    )
    if created:
        engine_counters.increment("sessions_created", conv.tenant_id)
    return route


def process_inbound_message(
    db: Session, *, tenant: Tenant, event: MessageEvent, outbound: WhatsAppService
) -> dict:
    customer_phone = normalize_phone(event.from_phone)
    set_request_context(tenant_id=str(tenant.id), customer=customer_phone)

    if not claim_message(db, tenant_id=tenant.id, message_id=event.message_id):
        engine_counters.increment("inbound_duplicate", tenant.id)
        logger.info("Duplicate inbound message skipped", extra={"event": "inbound_duplicate", "message_id": event.message_id})
        return {"status": "duplicate", "message_id": event.message_id}

    outbound.log_inbound(
        db,
        tenant_id=tenant.id,
        from_phone=customer_phone,
        to_phone=event.channel.phone_number_id,
        message_type=event.message_type,
        payload={
            "text": event.text,
            "reply_id": event.reply_id,
            "reply_title": event.reply_title,
            "contact_name": event.contact_name,
            "timestamp": event.timestamp,
        },
        provider_message_id=event.message_id,
    )
    engine_counters.increment("inbound_processed", tenant.id)

    with SESSION_LOCKS.hold((tenant.id, customer_phone)):
        for attempt in range(1, MAX_TURN_ATTEMPTS + 1):
            conv = None
            try:
                conv, created = _open_conversation(
                    db, tenant=tenant, event=event, customer_phone=customer_phone, outbound=outbound
                )
                route = _run_turn(conv, event=event, created=created)
                break
            except StaleDataError:
                db.rollback()
                engine_counters.increment("session_conflicts", tenant.id)
                if conv is not None and conv.sent:
                    # Replies already went out; a re-run would send them twice.
                    logger.warning(
                        "Session changed concurrently after %d sends, not re-running turn",
                        conv.sent,
                        extra={"event": "session_conflict_after_send", "message_id": event.message_id},
                    )
                    raise
                if attempt >= MAX_TURN_ATTEMPTS:
                    raise
                logger.warning(
                    "Session changed concurrently, re-running turn",
                    extra={"event": "session_conflict", "message_id": event.message_id},
                )
    return {"status": "processed", "message_id": event.message_id, "route": route}
