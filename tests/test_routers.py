import pytest
from fastapi.testclient import TestClient

from localfy.main import create_app
from localfy.services.auth import AuthSession
from tests.fakes import FakeRepository, build_store, make_document


@pytest.fixture
def repository() -> FakeRepository:
    documents = [make_document(i, category="drinks" if i % 3 == 0 else "food") for i in range(25)]
    documents[0].data["location"] = {"latitude": 0.0, "longitude": 0.001}
    documents[1].data["location"] = '{"latitude": 0.0, "longitude": 0.1}'
    return FakeRepository(documents)


@pytest.fixture
def client(repository: FakeRepository):
    app = create_app(use_lifespan=False)
    auth = AuthSession()
    app.state.auth = auth
    app.state.store = build_store(repository, auth=auth)
    with TestClient(app) as test_client:
        yield test_client


def test_refresh_then_list(client: TestClient) -> None:
    refreshed = client.post("/businesses/refresh")
    listed = client.get("/businesses")

    assert refreshed.status_code == 200
    body = listed.json()
    assert body["status"] == "ready"
    assert body["count"] == 20
    assert body["has_more"] is True
    assert body["categories"] == ["drinks", "food"]
    assert body["items"][0]["id"] == "biz-000"
    assert "createdAt" in body["items"][0]
    assert "distance" not in body["items"][0]


def test_list_with_origin_adds_distance(client: TestClient) -> None:
    client.post("/businesses/refresh")

    body = client.get("/businesses", params={"lat": 0.0, "lng": 0.0}).json()

    distances = {item["id"]: item["distance"] for item in body["items"]}
    assert distances["biz-000"] == "111 m"
    assert distances["biz-001"] == "11.1 km"
    assert distances["biz-002"] is None


@pytest.mark.parametrize(
    ("params", "expected_status"),
    [({"lat": 10.0}, 400), ({"lng": 10.0}, 400), ({"lat": 91.0, "lng": 0.0}, 422)],
)
def test_list_rejects_incomplete_or_invalid_origin(client: TestClient, params: dict, expected_status: int) -> None:
    response = client.get("/businesses", params=params)

    assert response.status_code == expected_status


def test_category_and_load_more(client: TestClient) -> None:
    client.post("/businesses/refresh")

    selected = client.put("/businesses/category", json={"category": "drinks"})
    assert selected.json()["selected_category"] == "drinks"
    assert all(item["category"] == "drinks" for item in selected.json()["items"])

    more = client.post("/businesses/load-more")
    assert more.json()["total_loaded"] == 22
    assert more.json()["has_more"] is False

    reset = client.post("/businesses/pagination/reset")
    assert reset.json()["has_more"] is True


def test_get_business_not_found(client: TestClient) -> None:
    response = client.get("/businesses/missing")

    assert response.status_code == 404


def test_patch_business(client: TestClient, repository: FakeRepository) -> None:
    client.post("/businesses/refresh")

    invalid = client.patch("/businesses/biz-001", json={"nickname": "X"})
    assert invalid.status_code == 400

    saved = client.patch("/businesses/biz-001", json={"name": "Renamed"})
    assert saved.status_code == 200
    assert saved.json()["item"]["name"] == "Renamed"

    repository.fail_update = True
    failed = client.patch("/businesses/biz-001", json={"name": "X"})
    assert failed.status_code == 503
    assert client.get("/businesses/biz-001").json()["item"]["name"] == "X"


def test_favorites(client: TestClient) -> None:
    client.post("/businesses/refresh")

    toggled = client.post("/businesses/biz-002/favorite")
    favorites = client.get("/favorites")

    assert toggled.json() == {"business_id": "biz-002", "favorite": True}
    assert favorites.json()["favorites"] == ["biz-002"]
    assert [item["id"] for item in favorites.json()["items"]] == ["biz-002"]
    assert client.get("/businesses/biz-002").json()["favorite"] is True


def test_observed_ids(client: TestClient, repository: FakeRepository) -> None:
    response = client.put("/businesses/observed", json={"ids": ["biz-001", "biz-000"]})

    assert response.json() == {"observed": ["biz-000", "biz-001"]}
    assert sorted(repository.subscribe_calls) == ["biz-000", "biz-001"]


def test_owned_businesses(client: TestClient) -> None:
    response = client.get("/owners/owner-1/businesses")

    assert response.json()["count"] == 25


def test_session_sign_in_and_out(client: TestClient) -> None:
    assert client.put("/session", json={"user_id": "  "}).status_code == 400
    assert client.put("/session", json={"user_id": "user-1"}).json() == {"user_id": "user-1"}
    assert client.delete("/session").json() == {"user_id": None}


def test_missing_store_is_unavailable() -> None:
    app = create_app(use_lifespan=False)
    with TestClient(app) as test_client:
        response = test_client.get("/businesses")

    assert response.status_code == 503


@pytest.mark.parametrize(
    ("ping_result", "expected_status", "expected_mongo"),
    [((True, None), 200, "up"), ((False, "connection refused"), 503, "down")],
)
def test_health(client: TestClient, monkeypatch, ping_result, expected_status, expected_mongo) -> None:
    async def fake_ping():
        return ping_result

    monkeypatch.setattr("localfy.routers.health.ping_mongo", fake_ping)

    response = client.get("/health")

    assert response.status_code == expected_status
    assert response.json()["mongo"] == expected_mongo
    assert response.json()["store"] == "idle"
