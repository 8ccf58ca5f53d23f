import pytest
from fastapi.testclient import TestClient

from promoto.api.deps import get_classifier, get_meta_client
from promoto.config import settings
from promoto.database import get_session
from promoto.main import app


@pytest.fixture
def client(session, meta, make_classifier):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_meta_client] = lambda: meta
    app.dependency_overrides[get_classifier] = lambda: make_classifier(category="LU_ONS")
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_restaurant_lifecycle(client):
    created = client.post(
        "/restaurants",
        json={"name": "Pod Lipą", "facebook_page_id": "page1", "lat": 50.06, "lng": 19.94, "area": "S-CITY"},
    ).json()
    assert created["rid"] == 1
    assert created["meta_campaign_id"]

    assert [r["id"] for r in client.get("/restaurants").json()] == [created["id"]]
    updated = client.put(f"/restaurants/{created['id']}", json={"website": "https://lipa.test"})
    assert updated.json()["website"] == "https://lipa.test"
    assert client.get("/restaurants/missing").status_code == 404


def test_manual_promotion_and_duplicate(client, make_restaurant):
    restaurant = make_restaurant()
    body = {"restaurant_id": restaurant.id, "post_id": "page1_123456", "content": "Lunch dnia"}

    first = client.post("/posts/manual", json=body)
    assert first.status_code == 200
    assert first.json()["status"] == "ACTIVE"

    again = client.post("/posts/manual", json=body)
    assert again.status_code == 409

    paused = client.post("/posts/page1_123456/pause")
    assert paused.json()["status"] == "PAUSED"
    assert len(client.get("/posts", params={"restaurant_id": restaurant.id}).json()) == 1


def test_precondition_failure_is_400(client, make_restaurant):
    restaurant = make_restaurant(meta_campaign_id=None)
    response = client.post(
        "/posts/manual",
        json={"restaurant_id": restaurant.id, "post_id": "page1_123456", "content": "x"},
    )
    assert response.status_code == 400
    assert "campaign" in response.json()["detail"]


def test_categories_listed_and_editable(client):
    categories = client.get("/ad-sets/categories").json()
    brand = next(c for c in categories if c["code"] == "BRAND")
    response = client.put(
        f"/ad-sets/categories/{brand['id']}",
        json={"targeting_template": {"age_min": 25, "age_max": 55, "genders": [], "interests": []}},
    )
    assert response.json()["targeting_template"]["age_min"] == 25


def test_opportunity_crud(client, make_restaurant):
    restaurant = make_restaurant(rid=5)
    created = client.post(
        "/opportunities",
        json={"restaurant_id": restaurant.id, "name": "Summer Menu", "offer_type": "product"},
    ).json()
    assert created["pk"] == 1
    assert client.get("/opportunities/by-pk/5/1").json()["id"] == created["id"]
    assert client.post(
        "/opportunities",
        json={"restaurant_id": restaurant.id, "name": "x", "offer_type": "party"},
    ).status_code == 422
    assert client.delete(f"/opportunities/{created['id']}").status_code == 200


def test_expire_posts_endpoint(client):
    result = client.post("/scheduler/expire-posts").json()
    assert result == {"total": 0, "success": 0, "failed": 0, "errors": []}


def test_tracking_endpoints(client):
    link = client.post(
        "/tracking-links/generate",
        json={
            "rid": 7,
            "pi": 1,
            "pk": 3,
            "ps": "999",
            "destination_url": "https://x.test",
            "opportunity_slug": "lunch",
            "category_code": "LU_ONS",
            "version": 2,
            "save": True,
        },
    ).json()
    parsed = client.post("/tracking-links/parse", json={"url": link["final_url"]}).json()
    assert parsed["utm_campaign"] == "pk3-lunch"
    assert client.post("/tracking-links/validate", json={"url": link["final_url"]}).json()["valid"]
    assert len(client.get("/tracking-links", params={"rid": 7}).json()) == 1
    assert {"id": 5, "medium": "marketplace"} in client.get("/tracking-links/platforms").json()


def test_webhook_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")
    payload = {"post": {"postIds": []}}

    assert client.post("/webhook/ayrshare", json=payload).status_code == 401
    response = client.post(
        "/webhook/ayrshare", json=payload, headers={"x-webhook-secret": "s3cret"}
    )
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "No valid post ID found"}
