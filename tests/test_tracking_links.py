from urllib.parse import parse_qs, urlsplit

import pytest

from promoto.services.tracking_links import (
    build_meta_tracking_link,
    build_tracking_link,
    list_tracking_links,
    parse_tracking_url,
    save_tracking_link,
    validate_tracking_url,
)


def build(**overrides):
    args = dict(
        rid=7,
        pi=1,
        pk=3,
        ps="999",
        destination_url="https://x.test",
        opportunity_slug="lunch",
        category_code="LU_ONS",
        version=2,
    )
    args.update(overrides)
    return build_tracking_link(**args)


def test_round_trip():
    parsed = parse_tracking_url(build().final_url)
    assert parsed.rid == "7"
    assert parsed.pi == "1"
    assert parsed.pk == "3"
    assert parsed.ps == "999"
    assert parsed.utm_source == "mysite"
    assert parsed.utm_medium == "meta"
    assert parsed.utm_campaign == "pk3-lunch"
    assert parsed.utm_content == "LU_ONS-v2"


def test_components():
    link = build(pi=2)
    assert link.components.c == ".pi2.pk3.ps999"
    assert link.components.utm_medium == "google"


def test_keeps_existing_query_and_replaces_tracking_keys():
    link = build(destination_url="https://x.test/menu?lang=pl&utm_source=old")
    query = parse_qs(urlsplit(link.final_url).query)
    assert query["lang"] == ["pl"]
    assert query["utm_source"] == ["mysite"]


def test_meta_link_keeps_ad_id_macro():
    link = build_meta_tracking_link(7, 3, "https://x.test", "lunch", "LU_ONS", 1)
    assert "{{ad.id}}" in link.final_url
    assert parse_tracking_url(link.final_url).ps == "{{ad.id}}"


def test_invalid_destination_rejected():
    with pytest.raises(ValueError):
        build(destination_url="not a url")


def test_validation_lists_missing_fields():
    result = validate_tracking_url("https://x.test/?r=7&c=.pi1.pk3")
    assert not result.valid
    assert "Missing ps (placement ID) in c parameter" in result.errors
    assert "Missing utm_source parameter" in result.errors
    assert validate_tracking_url(build().final_url).valid
    assert validate_tracking_url("::nope").errors == ["Invalid URL format"]


def test_persisted_links_filter_by_rid_and_pk(session):
    save_tracking_link(session, build(), 7, 1, 3, "999", "https://x.test")
    save_tracking_link(session, build(pk=4), 7, 1, 4, "999", "https://x.test")
    save_tracking_link(session, build(rid=8), 8, 1, 3, "999", "https://x.test")

    assert len(list_tracking_links(session, rid=7)) == 2
    [link] = list_tracking_links(session, rid=7, pk=4)
    assert link.c_param == ".pi1.pk4.ps999"
