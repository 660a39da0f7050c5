from __future__ import annotations

import hmac
from typing import Callable

from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from chatcommerce.core.config import ADMIN_API_TOKEN
from chatcommerce.core.database import SessionLocal
from chatcommerce.whatsapp.service import WhatsAppService

_whatsapp_service = WhatsAppService()


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_whatsapp_service() -> WhatsAppService:
    return _whatsapp_service


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    """Shared-secret guard for dashboard-facing endpoints."""
    if not ADMIN_API_TOKEN:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API is not configured")
    if not x_admin_token or not hmac.compare_digest(x_admin_token, ADMIN_API_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")
