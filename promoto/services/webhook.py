"""Promoto — Ayrshare Webhook Handler.

Ayrshare calls us after publishing a post. We pick the Facebook/Instagram
post id out of the delivery, find the restaurant by the page identifier and
promote the post. Deliveries we cannot use are answered with success=False,
never with an error, so Ayrshare does not keep redelivering them.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError
from sqlmodel import Session

from promoto.core.errors import PromotoError
from promoto.core.logging import get_logger
from promoto.models.schemas import AyrshareWebhook, WebhookResult
from promoto.services.promotion import PromotionService
from promoto.services.restaurants import get_by_page_id

logger = get_logger("services.webhook")

PROMOTABLE_PLATFORMS = ("facebook", "instagram")


def extract_post(payload: AyrshareWebhook) -> Tuple[Optional[str], str, Optional[str]]:
    """Return (external post id, content, page identifier) from a delivery."""
    post_id = None
    if payload.post:
        for entry in payload.post.postIds:
            if entry.platform in PROMOTABLE_PLATFORMS and entry.postId:
                post_id = entry.postId
                break
    content = (payload.post.post if payload.post else None) or ""
    page_id = payload.refId or payload.profile
    return post_id, content, page_id


async def handle_ayrshare(
    session: Session, service: PromotionService, raw: Dict[str, Any]
) -> WebhookResult:
    logger.info(f"Received Ayrshare webhook: {str(raw)[:200]}")
    try:
        payload = AyrshareWebhook.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Malformed webhook payload: {e}")
        return WebhookResult(success=False, message="Malformed payload")

    post_id, content, page_id = extract_post(payload)
    if not post_id:
        logger.warning("No Facebook/Instagram post ID in webhook")
        return WebhookResult(success=False, message="No valid post ID found")
    if not page_id:
        logger.warning("No page identifier in webhook")
        return WebhookResult(success=False, message="No page identifier found")

    restaurant = get_by_page_id(session, page_id)
    if not restaurant:
        logger.warning(f"Restaurant not found for page: {page_id}")
        return WebhookResult(success=False, message=f"Restaurant not found for page: {page_id}")

    try:
        await service.promote(restaurant, post_id, content, raw)
    except PromotoError as e:
        logger.error(f"Failed to process webhook: {e}", extra={"post_id": post_id, "step": e.step})
        return WebhookResult(success=False, message=f"Processing failed: {e}")

    return WebhookResult(success=True, message=f"Post {post_id} processed successfully")
