from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelRef:
    phone_number_id: str | None
    display_phone_number: str | None
    account_id: str | None


@dataclass(frozen=True)
class StatusEvent:
    channel: ChannelRef
    message_id: str
    status: str
    recipient_id: str | None = None
    timestamp: str | None = None
    errors: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class MessageEvent:
    channel: ChannelRef
    message_id: str
    from_phone: str
    message_type: str
    text: str = ""
    reply_id: str | None = None
    reply_title: str | None = None
    contact_name: str | None = None
    timestamp: str | None = None

    @property
    def is_structured_reply(self) -> bool:
        return bool(self.reply_id)


WebhookEvent = Union[StatusEvent, MessageEvent]


def _contact_names(value: dict[str, Any]) -> dict[str, str]:
    names: dict[str, str] = {}
    for contact in value.get("contacts") or []:
        wa_id = contact.get("wa_id")
        name = (contact.get("profile") or {}).get("name")
        if wa_id and name:
            names[str(wa_id)] = name
    return names


def _parse_status(channel: ChannelRef, raw: dict[str, Any]) -> StatusEvent | None:
    message_id = raw.get("id")
    status = raw.get("status")
    if not message_id or not status:
        return None
    return StatusEvent(
        channel=channel,
        message_id=str(message_id),
        status=str(status),
        recipient_id=raw.get("recipient_id"),
        timestamp=raw.get("timestamp"),
        errors=tuple(raw.get("errors") or ()),
    )


def _parse_message(channel: ChannelRef, raw: dict[str, Any], names: dict[str, str]) -> MessageEvent | None:
    message_id = raw.get("id")
    from_phone = raw.get("from")
    if not message_id or not from_phone:
        return None

    message_type = raw.get("type") or "text"
    text = ""
    reply_id = None
    reply_title = None

    if message_type == "text":
        text = (raw.get("text") or {}).get("body") or ""
    elif message_type == "interactive":
        interactive = raw["interactive"]
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        reply_id = reply.get("id")
        reply_title = reply.get("title")
    elif message_type == "button":
        # Quick-reply button on a template message.
        button = raw.get("button") or {}
        reply_id = button.get("payload")
        reply_title = button.get("text")
    else:
        media = raw.get(message_type)
        if isinstance(media, dict):
            text = media.get("caption") or ""

    return MessageEvent(
        channel=channel,
        message_id=str(message_id),
        from_phone=str(from_phone),
        message_type=message_type,
        text=text.strip(),
        reply_id=reply_id or None,
        reply_title=reply_title,
        contact_name=names.get(str(from_phone)),
        timestamp=raw.get("timestamp"),
    )


def parse_webhook(payload: dict[str, Any]) -> list[WebhookEvent]:
    """Flatten a Cloud API webhook body into typed events.

    Statuses of a change come before its messages. A malformed item is logged
    and skipped; its siblings are still returned.
    """
    events: list[WebhookEvent] = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            logger.warning("Skipping malformed webhook entry", extra={"event": "webhook_entry_malformed"})
            continue
        account_id = entry.get("id")
        for change in entry.get("changes") or []:
            try:
                value = change.get("value") or {}
                metadata = value.get("metadata") or {}
                channel = ChannelRef(
                    phone_number_id=metadata.get("phone_number_id"),
                    display_phone_number=metadata.get("display_phone_number"),
                    account_id=str(account_id) if account_id is not None else None,
                )
                names = _contact_names(value)
                statuses = value.get("statuses") or []
                messages = value.get("messages") or []
            except Exception:
                logger.exception("Skipping malformed webhook change", extra={"event": "webhook_change_malformed"})
                continue

            for raw_status in statuses:
                try:
                    event = _parse_status(channel, raw_status)
                except Exception:
                    logger.exception("Skipping malformed status item", extra={"event": "webhook_item_malformed"})
                    continue
                if event is not None:
                    events.append(event)

            for raw_message in messages:
                try:
                    event = _parse_message(channel, raw_message, names)
                except Exception:
                    logger.exception("Skipping malformed message item", extra={"event": "webhook_item_malformed"})
                    continue
                if event is None:
                    logger.warning("Message without id or sender", extra={"event": "webhook_item_malformed"})
                    continue
                events.append(event)
    return events
