"""Promoto — Ad Promotion Orchestrator.

Turns a published Facebook/Instagram post into a running Meta ad:

    preconditions → idempotency → classify → opportunity → ad set
    → tracking URL → creative → ad (+ rename)
    → {ads_count + 1, ACTIVE post, event} in one transaction → tracking link row

The Post row is written only once the Meta ad exists, so a failed run leaves
no local row behind; what it may leave behind in Meta is named in the error.
"""

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from promoto.connectors.meta.client import ACTIVE, PAUSED, MetaAPIError, MetaClient
from promoto.core.cache import AD_SETS, POSTS, cache
from promoto.core.errors import (
    DuplicatePromotionError,
    NotFoundError,
    PipelineStepError,
    PlatformRejectionError,
    PromotionValidationError,
    PromotoError,
)
from promoto.core.logging import get_logger
from promoto.models.entities import AdSet, Event, Post, PostStatus, Restaurant
from promoto.models.schemas import GeneratedLink
from promoto.services import opportunities
from promoto.services.ad_sets import AdSetResolver
from promoto.services.classifier import Classifier
from promoto.services.tracking_links import (
    META_PLATFORM_ID,
    build_meta_tracking_link,
    save_tracking_link,
    url_tags,
)

logger = get_logger("services.promotion")

MIN_POST_ID_LENGTH = 5

# Meta error codes/subcodes seen when a post cannot be used as a creative
_REJECTION_CODES = {100, 1487472, 1815433, 2446173}
_REJECTION_MARKERS = (
    "object_story_id",
    "does not exist",
    "cannot be loaded",
    "boost",
    "permission",
    "unpublished",
)

REJECTION_CHECKLIST = (
    "Meta cannot promote post {post_id}. Check that:\n"
    "  1. the post id is correct (page_id_post_id or the numeric post id)\n"
    "  2. the post belongs to page {page_id}\n"
    "  3. the post has not been deleted\n"
    "  4. the post contains no copyrighted music or content\n"
    "  5. the post is published, not a draft or scheduled post\n"
    "Meta said: {detail}"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_post_rejection(error: MetaAPIError) -> bool:
    """True if Meta refused the post itself rather than failing transiently."""
    if error.error_subcode in _REJECTION_CODES:
        return True
    message = f"{error} {error.user_message}".lower()
    return error.error_code in _REJECTION_CODES and any(m in message for m in _REJECTION_MARKERS)


@contextmanager
def _step(name: str, left_behind: str = ""):
    """Report any unexpected failure inside the block as a failure of `name`."""
    try:
        yield
    except PromotoError:
        raise
    except Exception as e:
        suffix = f"; left in Meta: {left_behind}" if left_behind else ""
        logger.error(f"Promotion failed at {name}: {e}{suffix}", extra={"step": name})
        raise PipelineStepError(f"{e}{suffix}", step=name) from e


def list_posts(session: Session, restaurant_id: Optional[str] = None) -> List[dict]:
    def load() -> List[dict]:
        query = select(Post).order_by(Post.created_at.desc())  # type: ignore
        if restaurant_id:
            query = query.where(Post.restaurant_id == restaurant_id)
        return [p.model_dump() for p in session.exec(query).all()]

    return cache.get_or_load(POSTS, ("list", restaurant_id), load)


class PromotionService:
    """Promotes posts and manages the lifecycle of their ads."""

    def __init__(self, session: Session, client: MetaClient, classifier: Classifier):
        self.session = session
        self.client = client
        self.classifier = classifier
        self.ad_sets = AdSetResolver(session, client)

    # ── Lookup ──

    def find(self, key: str) -> Post:
        """Post by local id, else by external post id (ACTIVE row first)."""
        post = self.session.get(Post, key)
        if post:
            return post
        rows = self.session.exec(
            select(Post)
            .where(Post.external_post_id == key)
            .order_by(Post.created_at.desc())  # type: ignore
        ).all()
        if not rows:
            raise NotFoundError(f"Post not found: {key}")
        active = [p for p in rows if p.status == PostStatus.ACTIVE.value]
        return active[0] if active else rows[0]

    # ── Promotion ──

    def _check_preconditions(self, restaurant: Restaurant, external_post_id: str, content: str) -> None:
        if not external_post_id or len(external_post_id.strip()) < MIN_POST_ID_LENGTH:
            raise PromotionValidationError(
                f"Post id '{external_post_id}' is too short to be a Meta post id"
            )
        if not content or not content.strip():
            raise PromotionValidationError("Post content is empty")
        if not restaurant.facebook_page_id:
            raise PromotionValidationError(
                f"Restaurant {restaurant.name} has no facebook_page_id configured"
            )
        if not restaurant.meta_campaign_id:
            raise PromotionValidationError(
                f"Restaurant {restaurant.name} has no Meta campaign; retry campaign creation first"
            )

    def _clear_previous_attempts(self, external_post_id: str) -> None:
        rows = self.session.exec(
            select(Post).where(Post.external_post_id == external_post_id)
        ).all()
        if any(p.status == PostStatus.ACTIVE.value for p in rows):
            raise DuplicatePromotionError(f"Post {external_post_id} is already promoted")
        if rows:
            for post in rows:
                self.session.delete(post)
            self.session.commit()
            cache.invalidate(POSTS)
            logger.info(
                f"Removed {len(rows)} stale record(s) for post {external_post_id}",
                extra={"post_id": external_post_id},
            )

    def _tracking_link(self, restaurant: Restaurant, opportunity, code: str, ad_set: AdSet) -> Optional[GeneratedLink]:
        if not restaurant.website:
            logger.warning(
                f"Restaurant {restaurant.name} has no website; ad runs without tracking link",
                extra={"restaurant_id": restaurant.id},
            )
            return None
        try:
            return build_meta_tracking_link(
                rid=restaurant.rid,
                pk=opportunity.pk,
                destination_url=restaurant.website,
                opportunity_slug=opportunity.slug,
                category_code=code,
                version=ad_set.version,
            )
        except ValueError as e:
            logger.warning(f"Skipping tracking link: {e}", extra={"restaurant_id": restaurant.id})
            return None

    async def _create_creative(self, restaurant: Restaurant, external_post_id: str, link: Optional[GeneratedLink]) -> str:
        try:
            return await self.client.create_creative(
                page_id=restaurant.facebook_page_id,
                post_id=external_post_id,
                destination_url=restaurant.website if link else None,
                url_tags=url_tags(link) if link else None,
            )
        except MetaAPIError as e:
            detail = e.user_message or str(e)
            if is_post_rejection(e):
                raise PlatformRejectionError(
                    REJECTION_CHECKLIST.format(
                        post_id=external_post_id,
                        page_id=restaurant.facebook_page_id,
                        detail=detail,
                    ),
                    step="creative",
                ) from e
            raise PipelineStepError(f"Meta rejected creative: {detail}", step="creative") from e

    async def _rename_ad(self, ad_id: str, pk: int) -> None:
        try:
            await self.client.rename(ad_id, f"pk{pk}_{ad_id}")
        except Exception as e:
            logger.warning(f"Ad {ad_id} keeps its temporary name: {e}", extra={"step": "ad"})

    def _new_event(self, restaurant: Restaurant, ad_set: AdSet, identifier: str, event_date) -> Optional[Event]:
        exists = self.session.exec(
            select(Event.id).where(
                Event.restaurant_id == restaurant.id, Event.identifier == identifier
            )
        ).first()
        if exists:
            return None
        return Event(
            restaurant_id=restaurant.id,
            ad_set_id=ad_set.id,
            identifier=identifier,
            name=identifier.replace("-", " "),
            event_date=event_date,
        )

    def _has_active_post(self, external_post_id: str) -> bool:
        return self.session.exec(
            select(Post.id).where(
                Post.external_post_id == external_post_id,
                Post.status == PostStatus.ACTIVE.value,
            )
        ).first() is not None

    def _persist(self, ad_set_id: str, post: Post, event: Optional[Event]) -> Post:
        """Count the ad, store the ACTIVE post and the event in one transaction.

        An event recorded concurrently by another post is not a conflict; the
        commit is repeated without it. Any other unique violation propagates.
        """
        while True:
            self.session.exec(
                update(AdSet)
                .where(AdSet.id == ad_set_id)
                .values(ads_count=AdSet.ads_count + 1)
            )
            self.session.add(post)
            if event:
                self.session.add(event)
            try:
                self.session.commit()
                return post
            except IntegrityError:
                self.session.rollback()
                if event is None or self._has_active_post(post.external_post_id):
                    raise
                logger.info(f"Event {event.identifier} recorded concurrently", extra={"post_id": post.external_post_id})
                event = None
                post = Post.model_validate(post.model_dump())

    async def _withdraw_ad(self, ad_id: str) -> None:
        try:
            await self.client.delete(ad_id)
        except Exception as e:
            logger.error(f"Ad {ad_id} could not be withdrawn from Meta: {e}")

    def _save_link(self, link: GeneratedLink, restaurant: Restaurant, pk: int, ad_id: str, post: Post) -> None:
        try:
            save_tracking_link(
                self.session,
                link,
                rid=restaurant.rid,
                pi=META_PLATFORM_ID,
                pk=pk,
                ps=ad_id,
                destination_url=restaurant.website,
                post_id=post.id,
            )
        except Exception as e:
            self.session.rollback()
            logger.warning(f"Tracking link not recorded: {e}", extra={"post_id": post.id})

    async def promote(
        self,
        restaurant: Restaurant,
        external_post_id: str,
        content: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Post:
        external_post_id = (external_post_id or "").strip()
        self._check_preconditions(restaurant, external_post_id, content)
        self._clear_previous_attempts(external_post_id)
        extra = {"restaurant_id": restaurant.id, "post_id": external_post_id}
        logger.info(f"Promoting post {external_post_id}", extra=extra)

        classification = await self.classifier.classify(content)
        code = classification.category

        with _step("opportunity"):
            category = self.ad_sets.get_category(code)
            opportunity = opportunities.get_or_create(self.session, restaurant, category.offer_type)

        event_identifier = classification.event_identifier if category.is_event_type else None
        with _step("ad_set"):
            ad_set = await self.ad_sets.get_or_create(restaurant, opportunity, code, event_identifier)

        link = self._tracking_link(restaurant, opportunity, code, ad_set)

        with _step("creative"):
            creative_id = await self._create_creative(restaurant, external_post_id, link)

        with _step("ad", left_behind=f"creative {creative_id}"):
            try:
                ad_id = await self.client.create_ad(ad_set.meta_ad_set_id, creative_id, opportunity.pk)
            except MetaAPIError as e:
                raise PipelineStepError(
                    f"Meta rejected ad in {ad_set.name}: {e.user_message or e}; "
                    f"left in Meta: creative {creative_id}",
                    step="ad",
                ) from e
        await self._rename_ad(ad_id, opportunity.pk)

        post = Post(
            restaurant_id=restaurant.id,
            ad_set_id=ad_set.id,
            opportunity_id=opportunity.id,
            opportunity_pk=opportunity.pk,
            external_post_id=external_post_id,
            meta_ad_id=ad_id,
            meta_creative_id=creative_id,
            content=content,
            category_code=code,
            event_date=classification.event_date,
            promotion_end_date=classification.promotion_end_date,
            status=PostStatus.ACTIVE.value,
            payload_json=json.dumps(payload or {}, default=str),
        )
        event = None
        if event_identifier and classification.event_date:
            event = self._new_event(restaurant, ad_set, event_identifier, classification.event_date)
        ad_set_id, ad_set_name = ad_set.id, ad_set.name
        try:
            post = self._persist(ad_set_id, post, event)
        except IntegrityError as e:
            self.session.rollback()
            await self._withdraw_ad(ad_id)
            raise DuplicatePromotionError(
                f"Post {external_post_id} was promoted concurrently; ad {ad_id} withdrawn"
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Ad {ad_id} created but post not saved: {e}", extra={**extra, "step": "persist"})
            raise PipelineStepError(
                f"Ad {ad_id} (creative {creative_id}) exists in Meta but the post could not be saved: {e}",
                step="persist",
            ) from e
        self.session.refresh(post)
        cache.invalidate(POSTS, AD_SETS)

        if link:
            self._save_link(link, restaurant, opportunity.pk, ad_id, post)

        logger.info(
            f"Promoted post {external_post_id} as ad {ad_id} in {ad_set_name}",
            extra={**extra, "ad_set_id": ad_set_id},
        )
        return post

    async def promote_manual(self, restaurant_id: str, external_post_id: str, content: str) -> Post:
        restaurant = self.session.get(Restaurant, restaurant_id)
        if not restaurant:
            raise NotFoundError(f"Restaurant not found: {restaurant_id}")
        return await self.promote(restaurant, external_post_id, content, {"manual": True})

    # ── Lifecycle ──

    async def _set_status(self, key: str, status: str) -> Post:
        post = self.find(key)
        if post.meta_ad_id:
            try:
                await self.client.set_status(post.meta_ad_id, status)
            except MetaAPIError as e:
                raise PipelineStepError(
                    f"Meta refused to set ad {post.meta_ad_id} {status}: {e}", step="status"
                ) from e
        post.status = status
        post.updated_at = _now()
        self.session.add(post)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicatePromotionError(
                f"Another record of post {post.external_post_id} is already ACTIVE"
            ) from e
        self.session.refresh(post)
        cache.invalidate(POSTS)
        logger.info(f"Post {post.external_post_id} is now {status}", extra={"post_id": post.id})
        return post

    async def pause(self, key: str) -> Post:
        return await self._set_status(key, PAUSED)

    async def activate(self, key: str) -> Post:
        return await self._set_status(key, ACTIVE)

    async def delete(self, key: str) -> None:
        post = self.find(key)
        post_id, external_id = post.id, post.external_post_id
        if post.meta_ad_id:
            try:
                await self.client.delete(post.meta_ad_id)
            except Exception as e:
                logger.warning(
                    f"Failed to delete Meta ad {post.meta_ad_id}: {e}", extra={"post_id": post_id}
                )
        self.session.exec(delete(Post).where(Post.id == post_id))  # type: ignore
        self.session.commit()
        cache.invalidate(POSTS)
        logger.info(f"Deleted post {external_id}", extra={"post_id": post_id})

    async def retry(self, key: str) -> Post:
        """Drop the record (and its ad) and promote the stored content again."""
        post = self.find(key)
        restaurant = self.session.get(Restaurant, post.restaurant_id)
        if not restaurant:
            raise NotFoundError(f"Restaurant not found: {post.restaurant_id}")
        external_post_id, content = post.external_post_id, post.content
        try:
            payload = json.loads(post.payload_json or "{}")
        except json.JSONDecodeError:
            payload = {}

        # every row for this post goes, including stale ones
        stale_ids = self.session.exec(
            select(Post.id).where(
                or_(Post.id == post.id, Post.external_post_id == external_post_id)
            )
        ).all()
        for post_id in stale_ids:
            await self.delete(post_id)
        return await self.promote(restaurant, external_post_id, content, payload)
