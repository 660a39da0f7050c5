import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from chatcommerce.core.config import WHATSAPP_VERIFY_TOKEN
from chatcommerce.deps import get_session_factory, get_whatsapp_service
from chatcommerce.services.webhook_processor import process_webhook_payload
from chatcommerce.whatsapp.service import WhatsAppService

router = APIRouter(tags=["webhook"])
logger = logging.getLogger(__name__)


@router.get("/webhook/whatsapp")
async def verify_whatsapp_webhook(request: Request):
    qp = request.query_params
    mode = qp.get("hub.mode")
    token = qp.get("hub.verify_token")
    challenge = qp.get("hub.challenge")

    if mode == "subscribe" and WHATSAPP_VERIFY_TOKEN and token == WHATSAPP_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")

    logger.warning("Webhook verification rejected", extra={"event": "webhook_verify_rejected"})
    raise HTTPException(status_code=403, detail="Invalid verify token")


@router.post("/webhook/whatsapp")
async def receive_whatsapp_webhook(
    request: Request,
    session_factory=Depends(get_session_factory),
    outbound: WhatsAppService = Depends(get_whatsapp_service),
):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    # Always 200 from here on: the platform redelivers anything else.
    summary = await run_in_threadpool(
        process_webhook_payload, payload, session_factory=session_factory, outbound=outbound
    )
    return {"status": "ok", **summary}
