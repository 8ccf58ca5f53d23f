"""Promoto — Restaurant Management.

Restaurants are created by admins. Creating one also opens its Meta campaign
("{rid}-{slug}"); if Meta is unavailable the restaurant is saved without a
campaign and retry_campaign() attaches it later.
"""

from typing import List, Optional

from sqlalchemy import delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from promoto.connectors.meta.client import MetaAPIError, MetaClient
from promoto.core.cache import AD_SETS, OPPORTUNITIES, POSTS, RESTAURANTS, cache
from promoto.core.errors import (
    NotFoundError,
    PipelineStepError,
    PromotionValidationError,
)
from promoto.core.logging import get_logger
from promoto.core.slugs import slugify
from promoto.models.entities import (
    AdSet,
    CityArea,
    Counter,
    Event,
    Opportunity,
    Post,
    Restaurant,
)
from promoto.services.sequences import RESTAURANT_RID, allocate, opportunity_pk_counter

logger = get_logger("services.restaurants")

MAX_RID_ATTEMPTS = 5
IMMUTABLE_FIELDS = {"id", "rid", "created_at"}


def _validate_fields(data: dict) -> None:
    area = data.get("area")
    if area is not None and area not in {a.value for a in CityArea}:
        raise PromotionValidationError(f"Invalid area: {area}")
    radius = data.get("delivery_radius_km")
    if radius is not None and radius <= 0:
        raise PromotionValidationError("delivery_radius_km must be positive")


def list_restaurants(session: Session) -> List[dict]:
    def load() -> List[dict]:
        rows = session.exec(select(Restaurant).order_by(Restaurant.created_at.desc())).all()  # type: ignore
        return [r.model_dump() for r in rows]

    return cache.get_or_load(RESTAURANTS, "list", load)


def get_restaurant(session: Session, restaurant_id: str) -> Restaurant:
    restaurant = session.get(Restaurant, restaurant_id)
    if not restaurant:
        raise NotFoundError(f"Restaurant not found: {restaurant_id}")
    return restaurant


def get_by_page_id(session: Session, page_id: str) -> Optional[Restaurant]:
    """Look up by Facebook page id or Instagram account id."""
    return session.exec(
        select(Restaurant).where(
            or_(
                Restaurant.facebook_page_id == page_id,
                Restaurant.instagram_account_id == page_id,
            )
        )
    ).first()


def update_restaurant(session: Session, restaurant_id: str, updates: dict) -> Restaurant:
    restaurant = get_restaurant(session, restaurant_id)
    blocked = IMMUTABLE_FIELDS & set(updates)
    if blocked:
        raise PromotionValidationError(f"Fields cannot be changed: {', '.join(sorted(blocked))}")
    _validate_fields(updates)
    if updates.get("slug"):
        updates["slug"] = slugify(updates["slug"])

    for key, value in updates.items():
        setattr(restaurant, key, value)
    session.add(restaurant)
    session.commit()
    session.refresh(restaurant)
    cache.invalidate(RESTAURANTS)
    return restaurant


class RestaurantService:
    """Restaurant operations that also touch Meta."""

    def __init__(self, session: Session, client: MetaClient):
        self.session = session
        self.client = client

    def _next_rid(self) -> int:
        # rids end up in campaign names and tracking URLs; never reuse one
        highest = self.session.exec(select(func.max(Restaurant.rid))).one()
        return allocate(self.session, RESTAURANT_RID, floor=highest or 0)

    def _insert(self, data: dict) -> Restaurant:
        for attempt in range(1, MAX_RID_ATTEMPTS + 1):
            restaurant = Restaurant(**data)
            try:
                restaurant.rid = self._next_rid()
                self.session.add(restaurant)
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.warning(f"rid taken concurrently (attempt {attempt}/{MAX_RID_ATTEMPTS})")
                continue
            self.session.refresh(restaurant)
            cache.invalidate(RESTAURANTS)
            return restaurant
        raise PipelineStepError("Could not allocate a restaurant rid", step="restaurant")

    async def create(self, data: dict) -> Restaurant:
        _validate_fields(data)
        data = dict(data)
        data["slug"] = slugify(data.get("slug") or data["name"])
        restaurant = self._insert(data)

        if restaurant.meta_campaign_id:
            return restaurant
        try:
            return await self._attach_campaign(restaurant)
        except MetaAPIError as e:
            logger.error(
                f"Failed to create campaign for {restaurant.name}: {e}",
                extra={"restaurant_id": restaurant.id},
            )
            return restaurant

    async def retry_campaign(self, restaurant_id: str) -> Restaurant:
        restaurant = get_restaurant(self.session, restaurant_id)
        if restaurant.meta_campaign_id:
            return restaurant
        if not restaurant.slug:
            restaurant.slug = slugify(restaurant.name)
        try:
            return await self._attach_campaign(restaurant)
        except MetaAPIError as e:
            raise PipelineStepError(
                f"Meta refused campaign for {restaurant.name}: {e}", step="campaign"
            ) from e

    async def _attach_campaign(self, restaurant: Restaurant) -> Restaurant:
        campaign_id = await self.client.create_campaign(restaurant.rid, restaurant.slug)
        restaurant.meta_campaign_id = campaign_id
        self.session.add(restaurant)
        self.session.commit()
        self.session.refresh(restaurant)
        cache.invalidate(RESTAURANTS)
        logger.info(
            f"Attached campaign {campaign_id} ({restaurant.rid}-{restaurant.slug})",
            extra={"restaurant_id": restaurant.id},
        )
        return restaurant

    async def delete(self, restaurant_id: str) -> None:
        """Delete the restaurant and everything under it.

        Meta objects are removed best effort; local rows always go.
        """
        restaurant = get_restaurant(self.session, restaurant_id)
        ad_sets = self.session.exec(
            select(AdSet).where(AdSet.restaurant_id == restaurant.id)
        ).all()
        meta_ids = [a.meta_ad_set_id for a in ad_sets if a.meta_ad_set_id]
        if restaurant.meta_campaign_id:
            meta_ids.append(restaurant.meta_campaign_id)
        for object_id in meta_ids:
            try:
                await self.client.delete(object_id)
            except Exception as e:
                logger.warning(
                    f"Failed to delete Meta object {object_id}: {e}",
                    extra={"restaurant_id": restaurant.id},
                )

        for model in (Post, Event, AdSet, Opportunity):
            self.session.exec(delete(model).where(model.restaurant_id == restaurant.id))  # type: ignore
        self.session.exec(delete(Counter).where(Counter.name == opportunity_pk_counter(restaurant.id)))  # type: ignore
        self.session.delete(restaurant)
        self.session.commit()
        cache.invalidate(RESTAURANTS, AD_SETS, POSTS, OPPORTUNITIES)
        logger.info(f"Deleted restaurant {restaurant_id}")
