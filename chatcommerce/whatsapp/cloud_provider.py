from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

import httpx
from sqlalchemy.orm import Session

from chatcommerce.core.config import (
    META_API_VERSION,
    META_WA_ACCESS_TOKEN,
    OUTBOUND_MAX_RETRIES,
    OUTBOUND_TIMEOUT_SECONDS,
)
from chatcommerce.core.errors import WhatsAppSendError
from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.whatsapp.backoff import TenantBackoff
from chatcommerce.whatsapp.base import WhatsAppProvider, record_outbound

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, WhatsAppSendError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


class CloudWhatsAppProvider(WhatsAppProvider):
    INTEGRATION_NAME = "whatsapp_cloud"

    def __init__(
        self,
        *,
        client_factory: Callable[[], httpx.Client] | None = None,
        backoff: TenantBackoff | None = None,
        max_retries: int = OUTBOUND_MAX_RETRIES,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client_factory = client_factory or (lambda: httpx.Client(timeout=OUTBOUND_TIMEOUT_SECONDS))
        self._backoff = backoff or TenantBackoff()
        self._max_retries = max(1, max_retries)
        self._sleep = sleep

    def send_text(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        text: str,
    ) -> WhatsAppMessageLog:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_phone,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        return self._send(db, tenant_id=tenant_id, config=config, to_phone=to_phone, message_type="text", payload=payload)

    def send_interactive(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        interactive: dict[str, Any],
    ) -> WhatsAppMessageLog:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to_phone,
            "type": "interactive",
            "interactive": interactive,
        }
        return self._send(
            db, tenant_id=tenant_id, config=config, to_phone=to_phone, message_type="interactive", payload=payload
        )

    def _post(self, url: str, headers: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        with self._client_factory() as client:
            response = client.post(url, headers=headers, json=payload)
        if not 200 <= response.status_code < 300:
            raise WhatsAppSendError(response.status_code, response.text)
        try:
            return response.json()
        except json.JSONDecodeError:
            return {"raw": response.text}

    def _send(
        self,
        db: Session,
        *,
        tenant_id: int,
        config: WhatsAppConfig | None,
        to_phone: str,
        message_type: str,
        payload: dict[str, Any],
    ) -> WhatsAppMessageLog:
        access_token = (config.access_token if config else None) or META_WA_ACCESS_TOKEN
        phone_number_id = config.phone_number_id if config else None
        if not access_token or not phone_number_id:
            return record_outbound(
                db,
                tenant_id=tenant_id,
                to_phone=to_phone,
                from_phone=None,
                message_type=message_type,
                payload=payload,
                status="failed",
                error="WhatsApp Cloud credentials are incomplete",
            )

        url = f"{GRAPH_BASE_URL}/{META_API_VERSION}/{phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
        last_error: str | None = None

        for attempt in range(1, self._max_retries + 1):
            decision = self._backoff.before_request(tenant_id=tenant_id, integration=self.INTEGRATION_NAME)
            if decision.delay_seconds > 0:
                logger.warning(
                    "tenant integration backoff activated",
                    extra={"event": "outbound_backoff", "tenant_id": tenant_id, "duration_ms": decision.delay_seconds * 1000},
                )
                self._sleep(decision.delay_seconds)

            try:
                data = self._post(url, headers, payload)
            except Exception as exc:
                last_error = str(exc)
                failures = self._backoff.register_failure(tenant_id=tenant_id, integration=self.INTEGRATION_NAME)
                if failures == self._backoff.threshold:
                    logger.warning(
                        "tenant integration failure threshold reached",
                        extra={"event": "outbound_failure_threshold", "tenant_id": tenant_id},
                    )
                if not _is_retryable(exc) or attempt >= self._max_retries:
                    break
                continue

            self._backoff.register_success(tenant_id=tenant_id, integration=self.INTEGRATION_NAME)
            provider_id = ((data.get("messages") or [{}])[0]).get("id")
            return record_outbound(
                db,
                tenant_id=tenant_id,
                to_phone=to_phone,
                from_phone=phone_number_id,
                message_type=message_type,
                payload=payload,
                status="sent",
                provider_message_id=provider_id,
                response_payload=data,
            )

        return record_outbound(
            db,
            tenant_id=tenant_id,
            to_phone=to_phone,
            from_phone=phone_number_id,
            message_type=message_type,
            payload=payload,
            status="failed",
            error=last_error,
        )
