"""Promoto — Opportunity Resolver.

An Opportunity is a restaurant-scoped marketing occasion identified by a
sequential pk. The pipeline keeps one active opportunity per restaurant and
offer type and reuses it across posts; admins may open more by hand.

pk comes from a per-restaurant counter that only goes up, so a deleted
opportunity never hands its pk to a new one. The insert still runs under
the (restaurant_id, pk) unique constraint; a collision rolls back and
allocates again.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from promoto.core.cache import OPPORTUNITIES, cache
from promoto.core.categories import OFFER_TYPE_LABELS, OfferType
from promoto.core.errors import (
    NotFoundError,
    PipelineStepError,
    PromotionValidationError,
)
from promoto.core.logging import get_logger
from promoto.core.slugs import slugify
from promoto.services.sequences import allocate, opportunity_pk_counter
from promoto.models.entities import (
    AdSet,
    Opportunity,
    OpportunityGoal,
    OpportunityStatus,
    Restaurant,
)

logger = get_logger("services.opportunities")

MAX_PK_ATTEMPTS = 5
IMMUTABLE_FIELDS = {"id", "pk", "restaurant_id", "created_at"}


def _next_pk(session: Session, restaurant_id: str) -> int:
    """Next pk for the restaurant. Deleted opportunities never give theirs back."""
    highest = session.exec(
        select(func.max(Opportunity.pk)).where(Opportunity.restaurant_id == restaurant_id)
    ).one()
    return allocate(session, opportunity_pk_counter(restaurant_id), floor=highest or 0)


def _insert_with_next_pk(session: Session, opportunity: Opportunity) -> Opportunity:
    for attempt in range(1, MAX_PK_ATTEMPTS + 1):
        try:
            opportunity.pk = _next_pk(session, opportunity.restaurant_id)
            session.add(opportunity)
            session.commit()
        except IntegrityError:
            session.rollback()
            logger.warning(
                f"pk {opportunity.pk} taken concurrently (attempt {attempt}/{MAX_PK_ATTEMPTS})",
                extra={"restaurant_id": opportunity.restaurant_id},
            )
            opportunity = Opportunity.model_validate(opportunity.model_dump(exclude={"id"}))
            continue
        session.refresh(opportunity)
        cache.invalidate(OPPORTUNITIES)
        return opportunity

    raise PipelineStepError(
        f"Could not allocate an opportunity pk after {MAX_PK_ATTEMPTS} attempts",
        step="opportunity",
    )


def find_active(session: Session, restaurant_id: str, offer_type: str) -> Optional[Opportunity]:
    """Most recently created active opportunity for the pair."""
    return session.exec(
        select(Opportunity)
        .where(
            Opportunity.restaurant_id == restaurant_id,
            Opportunity.offer_type == offer_type,
            Opportunity.status == OpportunityStatus.ACTIVE.value,
        )
        .order_by(Opportunity.created_at.desc(), Opportunity.pk.desc())  # type: ignore
        .limit(1)
    ).first()


def get_or_create(session: Session, restaurant: Restaurant, offer_type: OfferType | str) -> Opportunity:
    """Reuse the active opportunity for this offer type or open a new one."""
    offer_type = OfferType(offer_type)
    existing = find_active(session, restaurant.id, offer_type.value)
    if existing:
        logger.info(
            f"Using opportunity pk{existing.pk} ({offer_type.value})",
            extra={"restaurant_id": restaurant.id},
        )
        return existing

    opportunity = _insert_with_next_pk(
        session,
        Opportunity(
            restaurant_id=restaurant.id,
            pk=0,
            name=f"{OFFER_TYPE_LABELS[offer_type]} (auto)",
            slug=offer_type.value,
            offer_type=offer_type.value,
            goal=OpportunityGoal.TRAFFIC.value,
            status=OpportunityStatus.ACTIVE.value,
        ),
    )
    logger.info(
        f"Created opportunity pk{opportunity.pk} ({offer_type.value})",
        extra={"restaurant_id": restaurant.id},
    )
    return opportunity


# ── Admin operations ──


def list_opportunities(session: Session, rid: Optional[int] = None) -> List[dict]:
    def load() -> List[dict]:
        query = select(Opportunity).order_by(Opportunity.created_at.desc())  # type: ignore
        if rid is not None:
            query = query.join(Restaurant, Restaurant.id == Opportunity.restaurant_id).where(
                Restaurant.rid == rid
            )
        return [o.model_dump() for o in session.exec(query).all()]

    return cache.get_or_load(OPPORTUNITIES, ("list", rid), load)


def get_opportunity(session: Session, opportunity_id: str) -> Opportunity:
    opportunity = session.get(Opportunity, opportunity_id)
    if not opportunity:
        raise NotFoundError(f"Opportunity not found: {opportunity_id}")
    return opportunity


def get_by_pk(session: Session, rid: int, pk: int) -> Opportunity:
    opportunity = session.exec(
        select(Opportunity)
        .join(Restaurant, Restaurant.id == Opportunity.restaurant_id)
        .where(Restaurant.rid == rid, Opportunity.pk == pk)
    ).first()
    if not opportunity:
        raise NotFoundError(f"Opportunity pk{pk} not found for restaurant {rid}")
    return opportunity


def create_opportunity(
    session: Session,
    restaurant_id: str,
    name: str,
    offer_type: str,
    goal: str = OpportunityGoal.TRAFFIC.value,
    slug: Optional[str] = None,
    status: str = OpportunityStatus.ACTIVE.value,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Opportunity:
    if not session.get(Restaurant, restaurant_id):
        raise NotFoundError(f"Restaurant not found: {restaurant_id}")
    try:
        offer = OfferType(offer_type)
        goal = OpportunityGoal(goal).value
        status = OpportunityStatus(status).value
    except ValueError as e:
        raise PromotionValidationError(str(e)) from e
    if start_date and end_date and end_date < start_date:
        raise PromotionValidationError("end_date must not be before start_date")

    return _insert_with_next_pk(
        session,
        Opportunity(
            restaurant_id=restaurant_id,
            pk=0,
            name=name,
            slug=slugify(slug or name) or offer.value,
            offer_type=offer.value,
            goal=goal,
            status=status,
            start_date=start_date,
            end_date=end_date,
        ),
    )


def update_opportunity(session: Session, opportunity_id: str, updates: dict) -> Opportunity:
    opportunity = get_opportunity(session, opportunity_id)
    blocked = IMMUTABLE_FIELDS & set(updates)
    if blocked:
        raise PromotionValidationError(f"Fields cannot be changed: {', '.join(sorted(blocked))}")
    try:
        if "offer_type" in updates:
            updates["offer_type"] = OfferType(updates["offer_type"]).value
        if "goal" in updates:
            updates["goal"] = OpportunityGoal(updates["goal"]).value
        if "status" in updates:
            updates["status"] = OpportunityStatus(updates["status"]).value
    except ValueError as e:
        raise PromotionValidationError(str(e)) from e
    if "slug" in updates and updates["slug"]:
        updates["slug"] = slugify(updates["slug"])

    for key, value in updates.items():
        setattr(opportunity, key, value)
    session.add(opportunity)
    session.commit()
    session.refresh(opportunity)
    cache.invalidate(OPPORTUNITIES)
    return opportunity


def delete_opportunity(session: Session, opportunity_id: str) -> None:
    opportunity = get_opportunity(session, opportunity_id)
    in_use = session.exec(
        select(AdSet.id).where(AdSet.opportunity_id == opportunity.id).limit(1)
    ).first()
    if in_use:
        raise PromotionValidationError(
            f"Opportunity pk{opportunity.pk} still has ad sets; pause or complete it instead"
        )
    session.delete(opportunity)
    session.commit()
    cache.invalidate(OPPORTUNITIES)
