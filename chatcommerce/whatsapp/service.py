from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcommerce.core.config import IS_DEV
from chatcommerce.core.metrics import engine_counters
from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.whatsapp.base import WhatsAppProvider, record_outbound, safe_json, sanitize_payload
from chatcommerce.whatsapp.cloud_provider import CloudWhatsAppProvider
from chatcommerce.whatsapp.interactive import ListSection, build_button_payload, build_list_payload
from chatcommerce.whatsapp.mock_provider import MockWhatsAppProvider
from chatcommerce.whatsapp.normalizer import StatusEvent

logger = logging.getLogger(__name__)

# Delivery receipts can arrive out of order; never move a message backwards.
_STATUS_RANK = {"sent": 1, "delivered": 2, "read": 3, "failed": 4}


class WhatsAppService:
    """Outbound gateway: fire-and-log.

    Every send produces exactly one outbound log row whose `status` says whether
    it reached the provider. Transport failures never raise to the caller.
    """

    def __init__(
        self,
        *,
        mock_provider: WhatsAppProvider | None = None,
        cloud_provider: WhatsAppProvider | None = None,
        fallback_to_mock: bool | None = None,
    ) -> None:
        self._mock_provider = mock_provider or MockWhatsAppProvider()
        self._cloud_provider = cloud_provider or CloudWhatsAppProvider()
        self._fallback_to_mock = IS_DEV if fallback_to_mock is None else fallback_to_mock

    def get_config(self, db: Session, tenant_id: int) -> WhatsAppConfig | None:
        return db.query(WhatsAppConfig).filter(WhatsAppConfig.tenant_id == tenant_id).first()

    def _select_provider(self, config: WhatsAppConfig | None) -> WhatsAppProvider:
        if not config or not config.is_enabled:
            return self._mock_provider
        if config.provider == "cloud":
            return self._cloud_provider
        return self._mock_provider

    def _dispatch(self, db: Session, *, tenant_id: int, to_phone: str, method: str, **kwargs: Any) -> WhatsAppMessageLog:
        config = self.get_config(db, tenant_id)
        provider = self._select_provider(config)
        try:
            log_entry = getattr(provider, method)(db, tenant_id=tenant_id, config=config, to_phone=to_phone, **kwargs)
        except SQLAlchemyError:
            raise
        except Exception as exc:
            logger.exception("Outbound provider raised", extra={"event": "outbound_error"})
            log_entry = record_outbound(
                db,
                tenant_id=tenant_id,
                to_phone=to_phone,
                from_phone=config.phone_number_id if config else None,
                message_type=method.removeprefix("send_"),
                payload={"to": to_phone, **kwargs},
                status="failed",
                error=str(exc),
            )

        if log_entry.status == "failed" and provider is self._cloud_provider and self._fallback_to_mock:
            logger.warning("WhatsApp Cloud send failed, falling back to mock", extra={"event": "outbound_fallback"})
            return getattr(self._mock_provider, method)(
                db, tenant_id=tenant_id, config=config, to_phone=to_phone, **kwargs
            )
        if log_entry.status == "failed":
            engine_counters.increment("outbound_failed", tenant_id)
            logger.warning(
                "Outbound message failed: %s", log_entry.error, extra={"event": "outbound_failed"}
            )
        else:
            engine_counters.increment("outbound_sent", tenant_id)
        return log_entry

    def send_text(self, db: Session, *, tenant_id: int, to_phone: str, text: str) -> WhatsAppMessageLog:
        return self._dispatch(db, tenant_id=tenant_id, to_phone=to_phone, method="send_text", text=text)

    def send_buttons(
        self,
        db: Session,
        *,
        tenant_id: int,
        to_phone: str,
        body: str,
        buttons: Sequence[tuple[str, str]],
        header: str | None = None,
        footer: str | None = None,
    ) -> WhatsAppMessageLog:
        interactive = build_button_payload(body, buttons, header=header, footer=footer)
        return self._dispatch(
            db, tenant_id=tenant_id, to_phone=to_phone, method="send_interactive", interactive=interactive
        )

    def send_list(
        self,
        db: Session,
        *,
        tenant_id: int,
        to_phone: str,
        body: str,
        button_label: str,
        sections: Sequence[ListSection],
        header: str | None = None,
        footer: str | None = None,
    ) -> WhatsAppMessageLog:
        interactive = build_list_payload(body, button_label, sections, header=header, footer=footer)
        return self._dispatch(
            db, tenant_id=tenant_id, to_phone=to_phone, method="send_interactive", interactive=interactive
        )

    def log_inbound(
        self,
        db: Session,
        *,
        tenant_id: int,
        from_phone: str,
        to_phone: str | None,
        message_type: str,
        payload: dict[str, Any],
        provider_message_id: str | None = None,
    ) -> WhatsAppMessageLog:
        log_entry = WhatsAppMessageLog(
            tenant_id=tenant_id,
            direction="in",
            to_phone=to_phone,
            from_phone=from_phone,
            message_type=message_type,
            payload_json=safe_json(sanitize_payload(payload)),
            status="received",
            provider_message_id=provider_message_id,
        )
        db.add(log_entry)
        db.commit()
        return log_entry

    def apply_status(self, db: Session, *, tenant_id: int, event: StatusEvent) -> bool:
        """Copy a delivery receipt onto the outbound log row it refers to."""
        log_entry = (
            db.query(WhatsAppMessageLog)
            .filter(
                WhatsAppMessageLog.tenant_id == tenant_id,
                WhatsAppMessageLog.direction == "out",
                WhatsAppMessageLog.provider_message_id == event.message_id,
            )
            .first()
        )
        if log_entry is None:
            logger.info(
                "Status for unknown outbound message",
                extra={"event": "status_unknown_message", "message_id": event.message_id},
            )
            return False

        current_rank = _STATUS_RANK.get(log_entry.status, 0)
        incoming_rank = _STATUS_RANK.get(event.status, 0)
        if incoming_rank >= current_rank:
            log_entry.status = event.status
        log_entry.status_updated_at = datetime.now(timezone.utc)
        log_entry.status_details = {
            "status": event.status,
            "timestamp": event.timestamp,
            "recipient_id": event.recipient_id,
            "errors": list(event.errors),
        }
        if event.errors:
            log_entry.error = safe_json({"errors": list(event.errors)})
        db.commit()
        return True
