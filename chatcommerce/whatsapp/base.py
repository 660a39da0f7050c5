from __future__ import annotations

import json
from typing import Any, Protocol

from sqlalchemy.orm import Session

from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog


class WhatsAppProvider(Protocol):
    def send_text(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        text: str,
    ) -> WhatsAppMessageLog:
        ...

    def send_interactive(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        interactive: dict[str, Any],
    ) -> WhatsAppMessageLog:
        ...


SENSITIVE_KEYS = {"access_token", "verify_token", "authorization", "token", "pin"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: _sanitize_value(key, inner) for key, inner in value.items()}
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    def _sanitize_value(key: str, value: Any) -> Any:
        if str(key).lower() in SENSITIVE_KEYS:
            return _mask_value(value)
        return _sanitize(value)

    return _sanitize(payload)


def safe_json(payload: dict[str, Any]) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return "{}"


def record_outbound(
    db: Session,
    *,
    tenant_id: int,
    to_phone: str | None,
    from_phone: str | None,
    message_type: str,
    payload: dict[str, Any],
    status: str,
    provider_message_id: str | None = None,
    error: str | None = None,
    response_payload: dict[str, Any] | None = None,
) -> WhatsAppMessageLog:
    """Append an outbound row to the message log and commit it."""
    sanitized = sanitize_payload(payload)
    if response_payload:
        sanitized["response"] = sanitize_payload(response_payload)
    log_entry = WhatsAppMessageLog(
        tenant_id=tenant_id,
        direction="out",
        to_phone=to_phone,
        from_phone=from_phone,
        message_type=message_type,
        payload_json=safe_json(sanitized),
        status=status,
        error=error,
        provider_message_id=provider_message_id,
    )
    db.add(log_entry)
    db.commit()
    return log_entry
