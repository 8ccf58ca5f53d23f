"""Promoto — Inbound Webhook Routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlmodel import Session

from promoto.api.deps import get_promotion_service
from promoto.config import settings
from promoto.core.logging import get_logger
from promoto.database import get_session
from promoto.models.schemas import WebhookResult
from promoto.services.promotion import PromotionService
from promoto.services.webhook import handle_ayrshare

logger = get_logger("api.webhook")

router = APIRouter(prefix="/webhook", tags=["Webhook"])


def verify_secret(x_webhook_secret: Optional[str] = Header(default=None)) -> None:
    if settings.webhook_secret and x_webhook_secret != settings.webhook_secret:
        logger.warning("Rejected webhook with invalid secret", extra={"status_code": 401})
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/ayrshare", response_model=WebhookResult, dependencies=[Depends(verify_secret)])
async def ayrshare(
    payload: Dict[str, Any],
    session: Session = Depends(get_session),
    service: PromotionService = Depends(get_promotion_service),
):
    """Promote the Facebook/Instagram post Ayrshare just published."""
    return await handle_ayrshare(session, service, payload)
