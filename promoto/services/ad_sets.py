"""Promoto — Ad Set Resolver.

Decides which ad set a new ad goes into. Ad sets are partitioned by
(restaurant, category, opportunity pk, event identifier); inside a partition
versions run 1, 2, 3, ... and an ad set takes new ads only while it is ACTIVE
and below ADSET_CAPACITY.

Lookup-then-create is made race-safe by the (partition_key, version) unique
constraint: when two requests create the same version, the loser's insert
fails, it discards the ad set it created in Meta and looks up again.
"""

from typing import List, Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from promoto.config import settings
from promoto.connectors.meta.client import MetaAPIError, MetaClient
from promoto.connectors.meta.targeting import build_targeting, radius_for_area
from promoto.core.cache import AD_SETS, CATEGORIES, POSTS, cache
from promoto.core.errors import (
    AdSetPersistError,
    ConfigurationError,
    NotFoundError,
    PipelineStepError,
    PromotionValidationError,
)
from promoto.core.logging import get_logger
from promoto.models.entities import (
    AdSet,
    AdSetCategory,
    AdSetStatus,
    Event,
    Opportunity,
    Post,
    Restaurant,
)

logger = get_logger("services.ad_sets")

ADSET_CAPACITY = 50
MAX_CREATE_ATTEMPTS = 3
EDITABLE_CATEGORY_FIELDS = {"name", "targeting_template"}


def partition_key(
    restaurant_id: str,
    category_id: str,
    opportunity_pk: Optional[int],
    event_identifier: Optional[str],
) -> str:
    pk = "-" if opportunity_pk is None else str(opportunity_pk)
    return "|".join([restaurant_id, category_id, pk, event_identifier or "-"])


def ad_set_name(
    restaurant: Restaurant,
    opportunity: Optional[Opportunity],
    category_code: str,
    version: int,
) -> str:
    """pk{pk}_{code}_v{version}; legacy rows without a pk use the slug."""
    prefix = f"pk{opportunity.pk}" if opportunity else restaurant.slug
    return f"{prefix}_{category_code}_v{version}"


class _VersionTaken(Exception):
    """Another request inserted the same partition version first."""


class AdSetResolver:
    """Find-or-create ad sets for new ads."""

    def __init__(self, session: Session, client: MetaClient):
        self.session = session
        self.client = client

    def get_category(self, code: str) -> AdSetCategory:
        category = self.session.exec(
            select(AdSetCategory).where(AdSetCategory.code == code)
        ).first()
        if not category:
            raise ConfigurationError(f"Unknown category: {code}", step="ad_set")
        return category

    def find_open(self, key: str) -> Optional[AdSet]:
        """Highest-version open ad set in the partition, read fresh."""
        return self.session.exec(
            select(AdSet)
            .where(
                AdSet.partition_key == key,
                AdSet.status == AdSetStatus.ACTIVE.value,
                AdSet.ads_count < ADSET_CAPACITY,
            )
            .order_by(AdSet.version.desc())  # type: ignore
            .limit(1)
            .execution_options(populate_existing=True)
        ).first()

    def next_version(self, key: str) -> int:
        current = self.session.exec(
            select(func.max(AdSet.version)).where(AdSet.partition_key == key)
        ).one()
        return (current or 0) + 1

    async def get_or_create(
        self,
        restaurant: Restaurant,
        opportunity: Optional[Opportunity],
        category_code: str,
        event_identifier: Optional[str] = None,
    ) -> AdSet:
        category = self.get_category(category_code)
        if not category.is_event_type:
            event_identifier = None
        key = partition_key(
            restaurant.id,
            category.id,
            opportunity.pk if opportunity else None,
            event_identifier,
        )

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            existing = self.find_open(key)
            if existing:
                logger.info(
                    f"Using existing ad set: {existing.name}",
                    extra={"restaurant_id": restaurant.id, "ad_set_id": existing.id},
                )
                return existing
            try:
                return await self._create(restaurant, opportunity, category, event_identifier, key)
            except _VersionTaken:
                logger.warning(
                    f"Ad set version collision in {key} (attempt {attempt}/{MAX_CREATE_ATTEMPTS})",
                    extra={"restaurant_id": restaurant.id, "step": "ad_set"},
                )

        raise PipelineStepError(
            f"Could not settle an ad set for {category_code} after {MAX_CREATE_ATTEMPTS} attempts",
            step="ad_set",
        )

    async def _create(
        self,
        restaurant: Restaurant,
        opportunity: Optional[Opportunity],
        category: AdSetCategory,
        event_identifier: Optional[str],
        key: str,
    ) -> AdSet:
        if not restaurant.meta_campaign_id:
            raise ConfigurationError(
                f"Restaurant {restaurant.name} has no Meta campaign", step="ad_set"
            )
        if not restaurant.facebook_page_id:
            raise ConfigurationError(
                f"Restaurant {restaurant.name} has no Facebook page", step="ad_set"
            )
        if not restaurant.has_valid_location:
            raise ConfigurationError(
                f"Restaurant {restaurant.name} has no valid location (lat/lng unset or 0,0)",
                step="ad_set",
            )

        version = self.next_version(key)
        radius_km = (
            restaurant.delivery_radius_km
            if category.requires_delivery
            else radius_for_area(restaurant.area)
        )
        targeting = build_targeting(
            restaurant.lat, restaurant.lng, radius_km, category.targeting_template
        )
        name = ad_set_name(restaurant, opportunity, category.code, version)
        daily_budget = settings.effective_daily_budget

        try:
            meta_ad_set_id = await self.client.create_ad_set(
                campaign_id=restaurant.meta_campaign_id,
                name=name,
                targeting=targeting,
                daily_budget=daily_budget,
                beneficiary=restaurant.name,
                page_id=restaurant.facebook_page_id,
            )
        except MetaAPIError as e:
            detail = f" ({e.user_message})" if e.user_message else ""
            raise PipelineStepError(
                f"Meta rejected ad set {name}: {e}{detail}", step="ad_set"
            ) from e

        await self._log_audience_estimate(name, targeting)

        ad_set = AdSet(
            restaurant_id=restaurant.id,
            category_id=category.id,
            category_code=category.code,
            opportunity_id=opportunity.id if opportunity else None,
            opportunity_pk=opportunity.pk if opportunity else None,
            event_identifier=event_identifier,
            partition_key=key,
            meta_ad_set_id=meta_ad_set_id,
            name=name,
            version=version,
            ads_count=0,
            daily_budget=daily_budget,
            status=AdSetStatus.ACTIVE.value,
        )
        self.session.add(ad_set)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            await self._discard_external(meta_ad_set_id)
            raise _VersionTaken()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Ad set {name} created in Meta as {meta_ad_set_id} but not saved locally: {e}",
                extra={"restaurant_id": restaurant.id, "step": "ad_set"},
            )
            raise AdSetPersistError(
                f"Ad set {name} exists in Meta ({meta_ad_set_id}) but could not be saved: {e}",
                meta_ad_set_id=meta_ad_set_id,
            ) from e

        self.session.refresh(ad_set)
        cache.invalidate(AD_SETS)
        logger.info(
            f"Created ad set: {name}",
            extra={"restaurant_id": restaurant.id, "ad_set_id": ad_set.id},
        )
        return ad_set

    async def _log_audience_estimate(self, name: str, targeting: dict) -> None:
        try:
            estimate = await self.client.get_audience_estimate(targeting)
        except Exception as e:
            logger.warning(f"Audience estimate failed for {name}: {e}")
            return
        if estimate:
            logger.info(
                f"Audience for {name}: {estimate.get('users_lower_bound')}"
                f"-{estimate.get('users_upper_bound')}"
            )

    async def _discard_external(self, meta_ad_set_id: str) -> None:
        try:
            await self.client.delete(meta_ad_set_id)
        except Exception as e:
            logger.error(f"Orphaned Meta ad set {meta_ad_set_id} could not be deleted: {e}")

    async def delete(self, ad_set_id: str) -> None:
        """Delete an ad set in Meta (best effort) and locally with its posts."""
        ad_set = self.session.get(AdSet, ad_set_id)
        if not ad_set:
            raise NotFoundError(f"Ad set not found: {ad_set_id}")

        name = ad_set.name
        if ad_set.meta_ad_set_id:
            try:
                await self.client.delete(ad_set.meta_ad_set_id)
            except Exception as e:
                logger.warning(
                    f"Failed to delete Meta ad set {ad_set.meta_ad_set_id}: {e}",
                    extra={"ad_set_id": ad_set.id},
                )

        self.session.exec(delete(Post).where(Post.ad_set_id == ad_set.id))  # type: ignore
        self.session.exec(delete(Event).where(Event.ad_set_id == ad_set.id))  # type: ignore
        self.session.delete(ad_set)
        self.session.commit()
        cache.invalidate(AD_SETS, POSTS)
        logger.info(f"Deleted ad set {name}", extra={"ad_set_id": ad_set_id})


# ── Admin reads & category edits ──


def list_ad_sets(session: Session, restaurant_id: Optional[str] = None) -> List[dict]:
    def load() -> List[dict]:
        query = select(AdSet).order_by(AdSet.created_at.desc())  # type: ignore
        if restaurant_id:
            query = query.where(AdSet.restaurant_id == restaurant_id)
        return [a.model_dump() for a in session.exec(query).all()]

    return cache.get_or_load(AD_SETS, ("list", restaurant_id), load)


def list_categories(session: Session) -> List[dict]:
    def load() -> List[dict]:
        rows = session.exec(select(AdSetCategory).order_by(AdSetCategory.code)).all()
        return [c.model_dump() for c in rows]

    return cache.get_or_load(CATEGORIES, "list", load)


def update_category(session: Session, category_id: str, updates: dict) -> AdSetCategory:
    category = session.get(AdSetCategory, category_id)
    if not category:
        raise NotFoundError(f"Category not found: {category_id}")
    blocked = set(updates) - EDITABLE_CATEGORY_FIELDS
    if blocked:
        raise PromotionValidationError(
            f"Only name and targeting_template are editable, got: {', '.join(sorted(blocked))}"
        )

    template = updates.get("targeting_template")
    if template is not None:
        age_min = template.get("age_min", 18)
        age_max = template.get("age_max", 65)
        if not (13 <= age_min <= age_max <= 65):
            raise PromotionValidationError("Invalid age range in targeting template")
        category.targeting_template = dict(template)
    if updates.get("name"):
        category.name = updates["name"]

    session.add(category)
    session.commit()
    session.refresh(category)
    cache.invalidate(CATEGORIES)
    return category
