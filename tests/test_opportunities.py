import pytest
from sqlmodel import select

from promoto.core.categories import OfferType, offer_type_for
from promoto.core.errors import NotFoundError, PromotionValidationError
from promoto.models.entities import AdSet, Opportunity
from promoto.services import opportunities


def test_offer_type_mapping_is_total():
    assert offer_type_for("EV_PAR") == OfferType.EVENT
    assert offer_type_for("LU_DEL") == OfferType.LUNCH
    assert offer_type_for("PR_ONS_CYK") == OfferType.PROMO
    assert offer_type_for("PD_ONS") == OfferType.PRODUCT
    assert offer_type_for("BRAND") == OfferType.BRAND
    assert offer_type_for("NOPE") == OfferType.INFO


def test_get_or_create_reuses_active(session, make_restaurant):
    restaurant = make_restaurant()
    first = opportunities.get_or_create(session, restaurant, "lunch")
    again = opportunities.get_or_create(session, restaurant, OfferType.LUNCH)

    assert again.id == first.id
    assert first.pk == 1
    assert first.name == "Lunch (auto)"
    assert first.slug == "lunch"
    assert first.goal == "traffic"


def test_pk_strictly_increasing_per_restaurant(session, make_restaurant):
    restaurant = make_restaurant()
    other = make_restaurant()
    pks = [
        opportunities.get_or_create(session, restaurant, offer).pk
        for offer in ("event", "lunch", "promo", "product")
    ]
    assert pks == [1, 2, 3, 4]
    assert opportunities.get_or_create(session, other, "event").pk == 1


def test_completed_opportunity_is_not_reused(session, make_restaurant):
    restaurant = make_restaurant()
    first = opportunities.get_or_create(session, restaurant, "promo")
    opportunities.update_opportunity(session, first.id, {"status": "completed"})

    second = opportunities.get_or_create(session, restaurant, "promo")
    assert second.id != first.id
    assert second.pk == 2


def test_admin_create_and_lookup_by_pk(session, make_restaurant):
    restaurant = make_restaurant(rid=42)
    opportunities.get_or_create(session, restaurant, "info")
    created = opportunities.create_opportunity(
        session, restaurant.id, name="Wine Week", offer_type="event"
    )

    assert created.pk == 2
    assert created.slug == "wine-week"
    assert opportunities.get_by_pk(session, 42, 2).id == created.id
    with pytest.raises(NotFoundError):
        opportunities.get_by_pk(session, 42, 9)


def test_pk_is_immutable(session, make_restaurant):
    opportunity = opportunities.get_or_create(session, make_restaurant(), "brand")
    with pytest.raises(PromotionValidationError):
        opportunities.update_opportunity(session, opportunity.id, {"pk": 7})


def test_invalid_offer_type_rejected(session, make_restaurant):
    with pytest.raises(PromotionValidationError):
        opportunities.create_opportunity(
            session, make_restaurant().id, name="x", offer_type="party"
        )


def test_delete_refused_while_ad_sets_use_it(session, make_restaurant):
    restaurant = make_restaurant()
    opportunity = opportunities.get_or_create(session, restaurant, "lunch")
    session.add(
        AdSet(
            restaurant_id=restaurant.id,
            category_id="c",
            category_code="LU_ONS",
            opportunity_id=opportunity.id,
            opportunity_pk=opportunity.pk,
            partition_key="k",
            name="pk1_LU_ONS_v1",
            version=1,
        )
    )
    session.commit()

    with pytest.raises(PromotionValidationError):
        opportunities.delete_opportunity(session, opportunity.id)


def test_delete_unused(session, make_restaurant):
    opportunity = opportunities.get_or_create(session, make_restaurant(), "lunch")
    opportunities.delete_opportunity(session, opportunity.id)
    assert session.exec(select(Opportunity)).all() == []


def test_list_filters_by_rid(session, make_restaurant):
    a = make_restaurant(rid=10)
    b = make_restaurant(rid=11)
    opportunities.get_or_create(session, a, "lunch")
    opportunities.get_or_create(session, b, "lunch")
    opportunities.get_or_create(session, b, "promo")

    assert len(opportunities.list_opportunities(session, 11)) == 2
    assert len(opportunities.list_opportunities(session)) == 3


def test_deleted_pk_is_never_reused(session, make_restaurant):
    restaurant = make_restaurant()
    opportunities.get_or_create(session, restaurant, "lunch")
    top = opportunities.get_or_create(session, restaurant, "promo")
    assert top.pk == 2
    opportunities.delete_opportunity(session, top.id)

    again = opportunities.get_or_create(session, restaurant, "promo")
    assert again.pk == 3


def test_pk_collision_is_retried(session, make_restaurant, monkeypatch):
    restaurant = make_restaurant()
    opportunities.get_or_create(session, restaurant, "lunch")
    real_next_pk = opportunities._next_pk
    calls = []

    def next_pk(session, restaurant_id):
        calls.append(restaurant_id)
        if len(calls) == 1:
            return 1
        return real_next_pk(session, restaurant_id)

    monkeypatch.setattr(opportunities, "_next_pk", next_pk)
    created = opportunities.create_opportunity(
        session, restaurant.id, name="Wine Week", offer_type="event"
    )

    assert created.pk == 2
    assert len(calls) == 2
    assert sorted(o.pk for o in session.exec(select(Opportunity)).all()) == [1, 2]
