"""Promoto — Restaurant Routes."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from promoto.api.deps import get_meta_client, http_error
from promoto.connectors.meta.client import MetaClient
from promoto.core.errors import PromotoError
from promoto.database import get_session
from promoto.models.entities import CityArea
from promoto.services import restaurants
from promoto.services.restaurants import RestaurantService

router = APIRouter(prefix="/restaurants", tags=["Restaurants"])


class RestaurantCreate(BaseModel):
    name: str
    slug: Optional[str] = None
    website: Optional[str] = None
    facebook_page_id: Optional[str] = None
    instagram_account_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = ""
    delivery_radius_km: float = 5.0
    area: Optional[CityArea] = None
    fame: str = "Neutral"


class RestaurantUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    website: Optional[str] = None
    facebook_page_id: Optional[str] = None
    instagram_account_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: Optional[str] = None
    delivery_radius_km: Optional[float] = None
    area: Optional[CityArea] = None
    fame: Optional[str] = None


@router.get("")
def list_restaurants(session: Session = Depends(get_session)):
    return restaurants.list_restaurants(session)


@router.get("/{restaurant_id}")
def get_restaurant(restaurant_id: str, session: Session = Depends(get_session)):
    try:
        return restaurants.get_restaurant(session, restaurant_id)
    except PromotoError as e:
        raise http_error(e)


@router.post("")
async def create_restaurant(
    body: RestaurantCreate,
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
):
    """Create a restaurant and its Meta campaign ("{rid}-{slug}")."""
    try:
        return await RestaurantService(session, client).create(body.model_dump(mode="json"))
    except PromotoError as e:
        raise http_error(e)


@router.put("/{restaurant_id}")
def update_restaurant(
    restaurant_id: str, body: RestaurantUpdate, session: Session = Depends(get_session)
):
    try:
        return restaurants.update_restaurant(
            session, restaurant_id, body.model_dump(mode="json", exclude_unset=True)
        )
    except PromotoError as e:
        raise http_error(e)


@router.post("/{restaurant_id}/retry-campaign")
async def retry_campaign(
    restaurant_id: str,
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
):
    try:
        return await RestaurantService(session, client).retry_campaign(restaurant_id)
    except PromotoError as e:
        raise http_error(e)


@router.delete("/{restaurant_id}")
async def delete_restaurant(
    restaurant_id: str,
    session: Session = Depends(get_session),
    client: MetaClient = Depends(get_meta_client),
):
    try:
        await RestaurantService(session, client).delete(restaurant_id)
    except PromotoError as e:
        raise http_error(e)
    return {"status": "deleted", "id": restaurant_id}
