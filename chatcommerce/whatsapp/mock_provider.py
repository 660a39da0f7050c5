from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.orm import Session

from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.whatsapp.base import WhatsAppProvider, record_outbound


class MockWhatsAppProvider(WhatsAppProvider):
    """Logs outbound messages as sent without touching the network."""

    def send_text(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        text: str,
    ) -> WhatsAppMessageLog:
        payload = {"type": "text", "to": to_phone, "text": {"body": text}}
        return self._record(db, tenant_id=tenant_id, config=config, to_phone=to_phone, message_type="text", payload=payload)

    def send_interactive(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        interactive: dict[str, Any],
    ) -> WhatsAppMessageLog:
        payload = {"type": "interactive", "to": to_phone, "interactive": interactive}
        return self._record(
            db, tenant_id=tenant_id, config=config, to_phone=to_phone, message_type="interactive", payload=payload
        )

    def _record(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        message_type: str,
        payload: dict[str, Any],
    ) -> WhatsAppMessageLog:
        return record_outbound(
            db,
            tenant_id=tenant_id,
            to_phone=to_phone,
            from_phone=(config.phone_number_id if config else None),
            message_type=message_type,
            payload=payload,
            status="sent",
            provider_message_id=f"mock-{uuid.uuid4().hex[:10]}",
        )
