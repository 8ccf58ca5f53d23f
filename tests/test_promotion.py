import asyncio
import json
from datetime import date

import pytest
from sqlmodel import Session, select

from promoto.connectors.meta.client import MetaAPIError
from promoto.core.errors import (
    DuplicatePromotionError,
    NotFoundError,
    PipelineStepError,
    PlatformRejectionError,
    PromotionValidationError,
)
from promoto.models.entities import AdSet, Event, Post, PostStatus, TrackingLink
from promoto.services.promotion import PromotionService, list_posts
from promoto.services.tracking_links import parse_tracking_url

POST_ID = "page1_1234567890"


@pytest.fixture
def service(session, meta, make_classifier):
    return PromotionService(session, meta, make_classifier(category="LU_ONS"))


def promote(service, restaurant, post_id=POST_ID, content="Lunch dnia: pierogi 29 zł"):
    return asyncio.run(service.promote(restaurant, post_id, content, {"source": "test"}))


def test_promote_creates_active_post(session, meta, service, make_restaurant):
    restaurant = make_restaurant(rid=7)
    post = promote(service, restaurant)

    assert post.status == PostStatus.ACTIVE.value
    assert post.category_code == "LU_ONS"
    assert post.opportunity_pk == 1
    assert post.meta_ad_id and post.meta_creative_id
    assert json.loads(post.payload_json) == {"source": "test"}

    ad_set = session.get(AdSet, post.ad_set_id)
    assert ad_set.ads_count == 1
    assert ad_set.name == "pk1_LU_ONS_v1"

    [rename] = meta.args("rename")
    assert rename == {"object_id": post.meta_ad_id, "name": f"pk1_{post.meta_ad_id}"}


def test_creative_carries_tracking_tags(session, meta, service, make_restaurant):
    restaurant = make_restaurant(rid=7, website="https://bistro.test/menu")
    post = promote(service, restaurant)

    [creative] = meta.args("create_creative")
    assert creative["destination_url"] == "https://bistro.test/menu"
    assert "c=.pi1.pk1.ps{{ad.id}}" in creative["url_tags"]

    [link] = session.exec(select(TrackingLink)).all()
    parsed = parse_tracking_url(link.final_url)
    assert (parsed.rid, parsed.pk, parsed.utm_content) == ("7", "1", "LU_ONS-v1")
    assert link.ps == post.meta_ad_id
    assert link.post_id == post.id


def test_promote_without_website_skips_tracking(session, meta, service, make_restaurant):
    promote(service, make_restaurant(website=None))

    [creative] = meta.args("create_creative")
    assert creative["destination_url"] is None
    assert creative["url_tags"] is None
    assert session.exec(select(TrackingLink)).all() == []


def test_duplicate_active_post_rejected(meta, service, make_restaurant):
    restaurant = make_restaurant()
    promote(service, restaurant)
    calls = len(meta.calls)

    with pytest.raises(DuplicatePromotionError):
        promote(service, restaurant)
    assert len(meta.calls) == calls


def test_stale_pending_record_is_replaced(session, service, make_restaurant):
    restaurant = make_restaurant()
    session.add(
        Post(
            restaurant_id=restaurant.id,
            external_post_id=POST_ID,
            status=PostStatus.PENDING.value,
        )
    )
    session.commit()

    post = promote(service, restaurant)

    rows = session.exec(select(Post).where(Post.external_post_id == POST_ID)).all()
    assert [r.id for r in rows] == [post.id]
    assert rows[0].status == PostStatus.ACTIVE.value


@pytest.mark.parametrize(
    "overrides,post_id,content",
    [
        ({}, "123", "content"),
        ({}, POST_ID, "   "),
        ({"facebook_page_id": None}, POST_ID, "content"),
        ({"meta_campaign_id": None}, POST_ID, "content"),
    ],
)
def test_preconditions_checked_before_meta(meta, service, make_restaurant, overrides, post_id, content):
    restaurant = make_restaurant(**overrides)
    with pytest.raises(PromotionValidationError):
        promote(service, restaurant, post_id=post_id, content=content)
    assert meta.calls == []


def test_unboostable_post_gets_checklist(session, meta, service, make_restaurant):
    meta.fail["create_creative"] = MetaAPIError(
        "Invalid parameter", error_code=100, error_subcode=1487472,
        user_message="The post cannot be boosted",
    )
    with pytest.raises(PlatformRejectionError) as exc:
        promote(service, make_restaurant())

    message = str(exc.value)
    assert exc.value.step == "creative"
    assert "copyrighted" in message
    assert "draft" in message
    assert session.exec(select(Post)).all() == []
    [ad_set] = session.exec(select(AdSet)).all()
    assert ad_set.ads_count == 0


def test_ad_failure_names_leftover_creative(session, meta, service, make_restaurant):
    meta.fail["create_ad"] = MetaAPIError("Service temporarily unavailable", status_code=503)
    with pytest.raises(PipelineStepError) as exc:
        promote(service, make_restaurant())

    assert exc.value.step == "ad"
    assert "cr_" in str(exc.value)
    assert session.exec(select(Post)).all() == []
    [ad_set] = session.exec(select(AdSet)).all()
    assert ad_set.ads_count == 0


def test_rename_failure_does_not_fail_promotion(meta, service, make_restaurant):
    meta.fail["rename"] = MetaAPIError("rate limited")
    post = promote(service, make_restaurant())
    assert post.status == PostStatus.ACTIVE.value


def test_event_post_records_event(session, meta, make_classifier, make_restaurant):
    service = PromotionService(
        session,
        meta,
        make_classifier(
            category="EV_ALL",
            event_identifier="jazz-night-2030",
            event_date="2030-06-01",
            promotion_end_date="2030-06-01",
        ),
    )
    restaurant = make_restaurant()
    post = promote(service, restaurant)
    promote(service, restaurant, post_id="page1_2222222222")

    [event] = session.exec(select(Event)).all()
    assert event.identifier == "jazz-night-2030"
    assert event.ad_set_id == post.ad_set_id
    assert session.get(AdSet, post.ad_set_id).ads_count == 2


def test_pause_and_activate_by_external_id(session, meta, service, make_restaurant):
    post = promote(service, make_restaurant())

    paused = asyncio.run(service.pause(POST_ID))
    assert paused.status == "PAUSED"
    active = asyncio.run(service.activate(post.id))
    assert active.status == "ACTIVE"
    assert [a["status"] for a in meta.args("set_status")] == ["PAUSED", "ACTIVE"]


def test_pause_unknown_post(service):
    with pytest.raises(NotFoundError):
        asyncio.run(service.pause("nope-123"))


def test_delete_then_promote_again(session, meta, service, make_restaurant):
    restaurant = make_restaurant()
    first = promote(service, restaurant)
    first_id, ad_id = first.id, first.meta_ad_id
    asyncio.run(service.delete(POST_ID))

    assert session.get(Post, first_id) is None
    assert meta.args("delete")[-1] == {"object_id": ad_id}

    second = promote(service, restaurant)
    assert second.status == "ACTIVE"
    assert len(session.exec(select(Post)).all()) == 1


def test_retry_replaces_record(session, meta, service, make_restaurant):
    restaurant = make_restaurant()
    first = promote(service, restaurant)
    first_id, content = first.id, first.content
    retried = asyncio.run(service.retry(first_id))

    assert retried.id != first_id
    assert retried.content == content
    assert json.loads(retried.payload_json) == {"source": "test"}
    assert meta.count("create_ad") == 2
    assert len(session.exec(select(Post)).all()) == 1


def test_manual_promotion(session, service, make_restaurant):
    restaurant = make_restaurant()
    post = asyncio.run(service.promote_manual(restaurant.id, POST_ID, "Nowe menu"))
    assert json.loads(post.payload_json) == {"manual": True}
    assert [p["id"] for p in list_posts(session, restaurant.id)] == [post.id]

    with pytest.raises(NotFoundError):
        asyncio.run(service.promote_manual("missing", POST_ID, "x"))


def event_service(session, meta, make_classifier):
    return PromotionService(
        session,
        meta,
        make_classifier(
            category="EV_ALL",
            event_identifier="jazz-night-2030",
            event_date="2030-06-01",
            promotion_end_date="2030-06-01",
        ),
    )


def test_concurrent_promotion_of_same_post_withdraws_ad(session, engine, meta, make_classifier, make_restaurant):
    service = event_service(session, meta, make_classifier)
    restaurant = make_restaurant()
    restaurant_id = restaurant.id

    def competing_request(**_):
        with Session(engine) as other:
            other.add(
                Post(
                    restaurant_id=restaurant_id,
                    external_post_id=POST_ID,
                    meta_ad_id="ad_winner",
                    status=PostStatus.ACTIVE.value,
                )
            )
            other.commit()

    meta.hooks["create_ad"] = competing_request
    with pytest.raises(DuplicatePromotionError):
        promote(service, restaurant)

    [ad_set] = session.exec(select(AdSet)).all()
    assert ad_set.ads_count == 0
    [withdrawn] = meta.args("delete")
    assert withdrawn["object_id"] not in (None, "ad_winner")
    assert withdrawn["object_id"].startswith("ad_")
    assert session.exec(select(Event)).all() == []
    [post] = session.exec(select(Post)).all()
    assert post.meta_ad_id == "ad_winner"


def test_event_recorded_concurrently_does_not_fail_promotion(
    session, engine, meta, make_classifier, make_restaurant, monkeypatch
):
    service = event_service(session, meta, make_classifier)
    restaurant = make_restaurant()
    restaurant_id = restaurant.id

    new_event = service._new_event

    def event_then_competing_insert(restaurant, ad_set, identifier, event_date):
        event = new_event(restaurant, ad_set, identifier, event_date)
        with Session(engine) as other:
            other.add(
                Event(
                    restaurant_id=restaurant_id,
                    ad_set_id=ad_set.id,
                    identifier="jazz-night-2030",
                    name="jazz night 2030",
                    event_date=date(2030, 6, 1),
                )
            )
            other.commit()
        return event

    monkeypatch.setattr(service, "_new_event", event_then_competing_insert)
    post = promote(service, restaurant)

    assert post.status == PostStatus.ACTIVE.value
    assert len(session.exec(select(Event)).all()) == 1
    assert session.get(AdSet, post.ad_set_id).ads_count == 1
    assert meta.count("delete") == 0
