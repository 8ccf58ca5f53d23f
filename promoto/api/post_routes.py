"""Promoto — Post Promotion Routes.

`key` is either the local post id or the Meta post id.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from promoto.api.deps import get_promotion_service, http_error
from promoto.core.errors import PromotoError
from promoto.database import get_session
from promoto.services.promotion import PromotionService, list_posts

router = APIRouter(prefix="/posts", tags=["Posts"])


class ManualPost(BaseModel):
    restaurant_id: str
    post_id: str
    content: str


@router.get("")
def get_posts(restaurant_id: Optional[str] = None, session: Session = Depends(get_session)):
    return list_posts(session, restaurant_id)


@router.post("/manual")
async def promote_manual(
    body: ManualPost, service: PromotionService = Depends(get_promotion_service)
):
    """Promote a post by hand, bypassing the webhook."""
    try:
        return await service.promote_manual(body.restaurant_id, body.post_id, body.content)
    except PromotoError as e:
        raise http_error(e)


@router.post("/{key}/pause")
async def pause(key: str, service: PromotionService = Depends(get_promotion_service)):
    try:
        return await service.pause(key)
    except PromotoError as e:
        raise http_error(e)


@router.post("/{key}/activate")
async def activate(key: str, service: PromotionService = Depends(get_promotion_service)):
    try:
        return await service.activate(key)
    except PromotoError as e:
        raise http_error(e)


@router.post("/{key}/retry")
async def retry(key: str, service: PromotionService = Depends(get_promotion_service)):
    try:
        return await service.retry(key)
    except PromotoError as e:
        raise http_error(e)


@router.delete("/{key}")
async def delete(key: str, service: PromotionService = Depends(get_promotion_service)):
    try:
        await service.delete(key)
    except PromotoError as e:
        raise http_error(e)
    return {"status": "deleted", "key": key}
