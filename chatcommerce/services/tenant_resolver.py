from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from chatcommerce.models.tenant import Tenant
from chatcommerce.models.whatsapp_config import WhatsAppConfig

logger = logging.getLogger(__name__)


def resolve_tenant(db: Session, *, phone_number_id: str | None, account_id: str | None) -> Tenant | None:
    """Map webhook channel identifiers to the owning tenant.

    The phone-number id is tried first. On a miss the account (WABA) id is
    used, and the phone-number id seen on the event is written back onto the
    config row so the next lookup is a direct hit. Returns None for senders no
    tenant owns.
    """
    config = None
    if phone_number_id:
        config = db.query(WhatsAppConfig).filter(WhatsAppConfig.phone_number_id == phone_number_id).first()

    if config is None and account_id:
        config = (
            db.query(WhatsAppConfig)
            .filter(WhatsAppConfig.waba_id == account_id)
            .order_by(WhatsAppConfig.id.asc())
            .first()
        )
        if config is not None and phone_number_id:
            if config.phone_number_id:
                # The channel id we had on file is no longer the one sending.
                logger.warning(
                    "Replacing stored phone_number_id %s",
                    config.phone_number_id,
                    extra={"event": "channel_replaced", "phone_number_id": phone_number_id, "account_id": account_id},
                )
            config.phone_number_id = phone_number_id
            db.commit()
            logger.info(
                "Backfilled phone_number_id from account lookup",
                extra={"event": "channel_backfilled", "phone_number_id": phone_number_id, "account_id": account_id},
            )

    if config is None:
        logger.warning(
            "No tenant for webhook channel",
            extra={"event": "tenant_not_found", "phone_number_id": phone_number_id, "account_id": account_id},
        )
        return None

    tenant = db.query(Tenant).filter(Tenant.id == config.tenant_id).first()
    if tenant is None or not tenant.is_active:
        logger.warning(
            "Webhook channel belongs to a missing or inactive tenant",
            extra={"event": "tenant_inactive", "phone_number_id": phone_number_id},
        )
        return None
    return tenant
