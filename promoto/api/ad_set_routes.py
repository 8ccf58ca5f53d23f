"""Promoto — Ad Set & Category Routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from promoto.api.deps import get_meta_client, http_error
from promoto.connectors.meta.client import MetaClient
from promoto.core.errors import PromotoError
from promoto.database import get_session
from promoto.services import ad_sets
from promoto.services.ad_sets import AdSetResolver

router = APIRouter(prefix="/ad-sets", tags=["Ad Sets"])


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    targeting_template: Optional[Dict[str, Any]] = None


@router.get("")
def list_ad_sets(restaurant_id: Optional[str] = None, session: Session = Depends(get_session)):
    return ad_sets.list_ad_sets(session, restaurant_id)


@router.get("/categories")
def list_categories(session: Session = Depends(get_session)):
    return ad_sets.list_categories(session)


@router.put("/categories/{category_id}")
def update_category(
    category_id: str, body: CategoryUpdate, session: Session = Depends(get_session)
):
    """Edit a category's name or targeting template (age, genders, interests)."""
    try:
        return ad_sets.update_category(session, category_id, body.model_dump(exclude_unset=True))
    except PromotoError as e:
        raise http_error(e)


@router.delete("/{ad_set_id}")
async def delete_ad_set(
    ad_set_id: str,
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
):
    """Delete an ad set in Meta and locally, with the posts that reference it."""
    try:
        await AdSetResolver(session, client).delete(ad_set_id)
    except PromotoError as e:
        raise http_error(e)
    return {"status": "deleted", "id": ad_set_id}
