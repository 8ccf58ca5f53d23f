"""Promoto — Database Models.

Restaurants, categories, opportunities, ad sets, promoted posts, events and
tracking links. Uniqueness constraints carry the concurrency guarantees of
the pipeline: racing writers collide on insert and retry their lookup.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, Index, text
from sqlmodel import SQLModel, Field, UniqueConstraint


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CityArea(str, Enum):
    SMALL = "S-CITY"
    MEDIUM = "M-CITY"
    LARGE = "L-CITY"


class AdSetStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"


class PostStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"


class OpportunityStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class OpportunityGoal(str, Enum):
    TRAFFIC = "traffic"
    LEADS = "leads"
    ORDERS = "orders"
    AWARENESS = "awareness"


class Restaurant(SQLModel, table=True):
    __tablename__ = "restaurants"

    id: str = Field(default_factory=_uuid, primary_key=True)
    rid: int = Field(unique=True, index=True, description="Public numeric id")
    slug: str = Field(index=True)
    name: str
    website: Optional[str] = None
    facebook_page_id: Optional[str] = Field(default=None, index=True)
    instagram_account_id: Optional[str] = Field(default=None, index=True)
    meta_campaign_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = ""
    delivery_radius_km: float = 5.0
    area: Optional[str] = Field(default=None, description="S-CITY | M-CITY | L-CITY")
    fame: str = "Neutral"
    created_at: datetime = Field(default_factory=_now)

    @property
    def has_valid_location(self) -> bool:
        if self.lat is None or self.lng is None:
            return False
        return not (self.lat == 0 and self.lng == 0)


class AdSetCategory(SQLModel, table=True):
    """Seeded category row. Only name and targeting template are editable."""

    __tablename__ = "ad_set_categories"

    id: str = Field(default_factory=_uuid, primary_key=True)
    code: str = Field(unique=True, index=True)
    name: str
    parent_category: str = ""
    offer_type: str = "info"
    requires_delivery: bool = False
    is_event_type: bool = False
    targeting_template: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_now)


class Opportunity(SQLModel, table=True):
    """Restaurant-scoped marketing occasion, keyed by a sequential pk."""

    __tablename__ = "opportunities"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "pk", name="uq_opportunity_restaurant_pk"),
    )

    id: str = Field(default_factory=_uuid, primary_key=True)
    restaurant_id: str = Field(foreign_key="restaurants.id", index=True)
    pk: int
    name: str
    slug: str
    offer_type: str = Field(index=True)
    goal: str = OpportunityGoal.TRAFFIC.value
    status: str = Field(default=OpportunityStatus.ACTIVE.value, index=True)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime = Field(default_factory=_now)


class AdSet(SQLModel, table=True):
    """Versioned ad grouping.

    partition_key encodes (restaurant, category, opportunity pk, event
    identifier) so the (partition_key, version) constraint also covers the
    null pk of legacy rows and the null identifier of non-event rows.
    """

    __tablename__ = "ad_sets"
    __table_args__ = (
        UniqueConstraint("partition_key", "version", name="uq_ad_set_partition_version"),
    )

    id: str = Field(default_factory=_uuid, primary_key=True)
    restaurant_id: str = Field(foreign_key="restaurants.id", index=True)
    category_id: str = Field(foreign_key="ad_set_categories.id")
    category_code: str
    opportunity_id: Optional[str] = Field(default=None, foreign_key="opportunities.id")
    opportunity_pk: Optional[int] = None
    event_identifier: Optional[str] = None
    partition_key: str = Field(index=True)
    meta_ad_set_id: Optional[str] = None
    name: str
    version: int
    ads_count: int = 0
    daily_budget: float = 0.0
    status: str = Field(default=AdSetStatus.ACTIVE.value)
    created_at: datetime = Field(default_factory=_now)


class Post(SQLModel, table=True):
    """A promoted Facebook/Instagram post and the ad created for it."""

    __tablename__ = "posts"
    __table_args__ = (
        Index(
            "uq_post_active_external_id",
            "external_post_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    id: str = Field(default_factory=_uuid, primary_key=True)
    restaurant_id: str = Field(foreign_key="restaurants.id", index=True)
    ad_set_id: Optional[str] = Field(default=None, foreign_key="ad_sets.id", index=True)
    opportunity_id: Optional[str] = Field(default=None, foreign_key="opportunities.id")
    opportunity_pk: Optional[int] = None
    external_post_id: str = Field(index=True)
    meta_ad_id: Optional[str] = None
    meta_creative_id: Optional[str] = None
    content: str = ""
    category_code: Optional[str] = None
    event_date: Optional[date] = None
    promotion_end_date: Optional[date] = Field(default=None, index=True)
    status: str = Field(default=PostStatus.PENDING.value, index=True)
    payload_json: str = Field(default="{}", description="Raw inbound payload")
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Event(SQLModel, table=True):
    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "identifier", name="uq_event_identifier"),
    )

    id: str = Field(default_factory=_uuid, primary_key=True)
    restaurant_id: str = Field(foreign_key="restaurants.id", index=True)
    ad_set_id: str = Field(foreign_key="ad_sets.id")
    identifier: str
    name: str
    event_date: date
    created_at: datetime = Field(default_factory=_now)


class TrackingLink(SQLModel, table=True):
    """Audit record of a generated attribution URL. Never updated."""

    __tablename__ = "tracking_links"

    id: str = Field(default_factory=_uuid, primary_key=True)
    rid: int = Field(index=True)
    pi: int
    pk: int = Field(index=True)
    ps: str
    post_id: Optional[str] = None
    destination_url: str
    final_url: str
    c_param: str
    utm_source: str
    utm_medium: str
    utm_campaign: str
    utm_content: str
    created_at: datetime = Field(default_factory=_now)


class Counter(SQLModel, table=True):
    """Named counter that only goes up; backs restaurant rids and opportunity pks."""

    __tablename__ = "counters"

    name: str = Field(primary_key=True)
    value: int = 0
