from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from chatcommerce.fsm.context import Conversation
from chatcommerce.fsm.states import SessionState
from chatcommerce.models.support_ticket import SupportTicket
from chatcommerce.services.menus import send_welcome

logger = logging.getLogger(__name__)

ESCAPE_WORDS = {"menu", "main menu", "exit"}

TOPIC_PROMPTS = {
    "general": "💬 You're now chatting with our support team. Send your question and we'll reply as soon as possible.",
    "order": "📦 Please describe the issue with your order (include the order id if you have it).",
    "payment": "💳 Please describe your payment issue and we'll look into it.",
}


def append_to_ticket(conv: Conversation, text: str, *, topic: str | None = None) -> bool:
    """Best-effort write to the customer's open ticket; failures are logged, not raised."""
    db = conv.db
    try:
        ticket = (
            db.query(SupportTicket)
            .filter(
                SupportTicket.tenant_id == conv.tenant_id,
                SupportTicket.customer_phone == conv.customer_phone,
                SupportTicket.status == "open",
            )
            .order_by(SupportTicket.id.desc())
            .first()
        )
        if ticket is None:
            ticket = SupportTicket(
                tenant_id=conv.tenant_id, customer_phone=conv.customer_phone, topic=topic, status="open", transcript=[]
            )
            db.add(ticket)
        elif topic and not ticket.topic:
            ticket.topic = topic
        if text:
            entry = {"at": datetime.now(timezone.utc).isoformat(), "from": "customer", "text": text}
            # Reassign so the JSON column is flagged dirty.
            ticket.transcript = [*(ticket.transcript or []), entry]
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Support ticket write failed", extra={"event": "support_ticket_failed"})
        return False


def close_ticket(conv: Conversation) -> None:
    db = conv.db
    try:
        (
            db.query(SupportTicket)
            .filter(
                SupportTicket.tenant_id == conv.tenant_id,
                SupportTicket.customer_phone == conv.customer_phone,
                SupportTicket.status == "open",
            )
            .update({SupportTicket.status: "closed"}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Support ticket close failed", extra={"event": "support_ticket_failed"})


def start_support(conv: Conversation, topic: str = "general") -> None:
    conv.set_state(SessionState.SUPPORT)
    conv.save()
    append_to_ticket(conv, "", topic=topic)
    conv.send_text(f"{TOPIC_PROMPTS.get(topic, TOPIC_PROMPTS['general'])}\n\nType *menu* to return to the main menu.")


def handle_support_text(conv: Conversation, text: str) -> None:
    if text.strip().lower() in ESCAPE_WORDS:
        conv.set_state(SessionState.IDLE)
        conv.save()
        close_ticket(conv)
        send_welcome(conv)
        return

    conv.save()
    append_to_ticket(conv, text)
    conv.send_text("✅ Thanks, we've received your message. Our team will get back to you soon.")
