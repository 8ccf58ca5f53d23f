"""Shared fixtures: in-memory database, fake Meta client, fake LLM."""

import json

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from promoto.ai.base_provider import AIProvider
from promoto.connectors.meta.client import MetaAPIError
from promoto.core.cache import cache
from promoto.database import init_db
from promoto.models.entities import Restaurant
from promoto.services.classifier import Classifier


class FakeMetaClient:
    """Records every call; `fail[method]` or `fail_ids` make calls raise.

    `hooks[method]` runs once, with the call's arguments, before the call
    returns. Tests use it to let a competing writer land mid-pipeline.
    """

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.fail_ids = set()
        self.hooks = {}
        self._seq = 0

    def _call(self, method, **kwargs):
        self.calls.append((method, kwargs))
        hook = self.hooks.pop(method, None)
        if hook:
            hook(**kwargs)
        if method in self.fail:
            raise self.fail[method]
        if kwargs.get("object_id") in self.fail_ids:
            raise MetaAPIError(f"{method} failed for {kwargs['object_id']}", status_code=500)

    def _new_id(self, prefix):
        self._seq += 1
        return f"{prefix}{self._seq}"

    def count(self, method):
        return sum(1 for name, _ in self.calls if name == method)

    def args(self, method):
        return [kwargs for name, kwargs in self.calls if name == method]

    async def create_campaign(self, rid, slug):
        self._call("create_campaign", rid=rid, slug=slug)
        return self._new_id("cmp_")

    async def create_ad_set(self, campaign_id, name, targeting, daily_budget, beneficiary, page_id):
        self._call(
            "create_ad_set",
            campaign_id=campaign_id,
            name=name,
            targeting=targeting,
            daily_budget=daily_budget,
            beneficiary=beneficiary,
            page_id=page_id,
        )
        return self._new_id("as_")

    async def get_audience_estimate(self, targeting):
        self._call("get_audience_estimate", targeting=targeting)
        return {"users_lower_bound": 1000, "users_upper_bound": 2000}

    async def create_creative(self, page_id, post_id, destination_url=None, url_tags=None):
        self._call(
            "create_creative",
            page_id=page_id,
            post_id=post_id,
            destination_url=destination_url,
            url_tags=url_tags,
        )
        return self._new_id("cr_")

    async def create_ad(self, ad_set_id, creative_id, pk):
        self._call("create_ad", ad_set_id=ad_set_id, creative_id=creative_id, pk=pk)
        return self._new_id("ad_")

    async def rename(self, object_id, name):
        self._call("rename", object_id=object_id, name=name)

    async def set_status(self, object_id, status):
        self._call("set_status", object_id=object_id, status=status)

    async def delete(self, object_id):
        self._call("delete", object_id=object_id)

    async def close(self):
        pass


class FakeProvider(AIProvider):
    name = "fake"

    def __init__(self, response="", error=None):
        self.response = response
        self.error = error
        self.prompts = []

    def is_available(self) -> bool:
        return True

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.prompts.append(user_prompt)
        if self.error:
            raise self.error
        return self.response


def classifier_for(**answer) -> Classifier:
    return Classifier(provider=FakeProvider(json.dumps(answer)))


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def meta():
    return FakeMetaClient()


@pytest.fixture
def make_restaurant(session):
    counter = {"rid": 0}

    def factory(**overrides):
        counter["rid"] += 1
        data = dict(
            rid=counter["rid"],
            slug=f"bistro-{counter['rid']}",
            name=f"Bistro {counter['rid']}",
            website="https://bistro.test/menu",
            facebook_page_id=f"page{counter['rid']}",
            instagram_account_id=f"ig{counter['rid']}",
            meta_campaign_id=f"cmp_existing_{counter['rid']}",
            lat=52.2297,
            lng=21.0122,
            area="M-CITY",
        )
        data.update(overrides)
        restaurant = Restaurant(**data)
        session.add(restaurant)
        session.commit()
        session.refresh(restaurant)
        return restaurant

    return factory


@pytest.fixture
def make_classifier():
    return classifier_for


@pytest.fixture
def make_provider():
    return FakeProvider
