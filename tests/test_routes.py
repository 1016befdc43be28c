from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.testclient import TestClient

import main
from config import Settings
from main import create_app
from models import STATS_KEY
from tests.fakes import BrokenRedis, FakeRedis


def test_root_lists_endpoints(client: TestClient) -> None:
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["endpoints"]["trackVisit"] == "POST /api/visits/track"


def test_track_visit(client: TestClient, fake_redis: FakeRedis) -> None:
    response = client.post("/api/visits/track", json={"countryCode": "US"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Visit tracked successfully",
        "data": {"country": "us", "count": 1},
    }
    assert fake_redis.hashes[STATS_KEY] == {"us": "1"}


def test_track_visit_format_errors(client: TestClient, fake_redis: FakeRedis) -> None:
    for payload in ({"countryCode": "usa"}, {"countryCode": "1x"}, {}, {"countryCode": None}):
        response = client.post("/api/visits/track", json=payload)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation error"
        assert body["errors"][0]["field"] == "countryCode"

    assert fake_redis.calls == []


def test_track_visit_unknown_country(client: TestClient, fake_redis: FakeRedis) -> None:
    response = client.post("/api/visits/track", json={"countryCode": "ZZ"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Invalid country code: ZZ"
    assert fake_redis.calls == []


def test_track_visits_batch(client: TestClient) -> None:
    response = client.post("/api/visits/track/batch", json={"countryCodes": ["us", "de", "US"]})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 3
    assert data["visits"][-1] == {"country": "us", "count": 2}


def test_track_visits_batch_validation(client: TestClient, fake_redis: FakeRedis) -> None:
    assert client.post("/api/visits/track/batch", json={"countryCodes": []}).status_code == 400
    assert client.post("/api/visits/track/batch", json={"countryCodes": ["us", "xx"]}).status_code == 400
    assert client.post("/api/visits/track/batch", json={"countryCodes": ["us"] * 101}).status_code == 400
    assert fake_redis.hashes == {}


def test_visit_scenario_over_http(client: TestClient) -> None:
    client.post("/api/visits/track", json={"countryCode": "us"})
    client.post("/api/visits/track", json={"countryCode": "US"})
    client.post("/api/visits/track", json={"countryCode": "uk"})

    stats = client.get("/api/visits/stats").json()
    assert stats["data"] == {"us": 2, "uk": 1}

    total = client.get("/api/visits/total").json()
    assert total["data"] == {"total": 3}

    top = client.get("/api/visits/top", params={"limit": 1}).json()
    assert top["data"] == {"limit": 1, "countries": [{"country": "us", "count": 2}]}


def test_stats_empty(client: TestClient) -> None:
    response = client.get("/api/visits/stats")

    assert response.status_code == 200
    assert response.json()["data"] == {}


def test_country_stats(client: TestClient, fake_redis: FakeRedis) -> None:
    fake_redis.hashes[STATS_KEY] = {"de": "7"}

    assert client.get("/api/visits/stats/DE").json()["data"] == {"country": "de", "count": 7}
    assert client.get("/api/visits/stats/fr").json()["data"] == {"country": "fr", "count": 0}


def test_country_stats_invalid(client: TestClient) -> None:
    assert client.get("/api/visits/stats/usa").status_code == 400
    assert client.get("/api/visits/stats/zz").status_code == 400


def test_top_countries_default_and_bounds(client: TestClient, fake_redis: FakeRedis) -> None:
    fake_redis.hashes[STATS_KEY] = {"us": "100", "uk": "50", "de": "25"}

    response = client.get("/api/visits/top")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["limit"] == 10
    assert data["countries"][1] == {"country": "uk", "count": 50}

    for limit in ("0", "101", "abc", "1.5"):
        response = client.get("/api/visits/top", params={"limit": limit})
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "limit"


def test_reset(client: TestClient, fake_redis: FakeRedis) -> None:
    client.post("/api/visits/track", json={"countryCode": "us"})

    response = client.delete("/api/visits/reset")

    assert response.status_code == 200
    assert response.json()["data"] == {"success": True, "message": "Statistics reset successfully"}
    assert client.get("/api/visits/stats").json()["data"] == {}
    assert client.delete("/api/visits/reset").status_code == 200


def test_countries_listing(client: TestClient) -> None:
    data = client.get("/api/visits/countries").json()["data"]
    assert data["total"] == 11
    assert data["countries"][0] == {"code": "au", "name": "Australia"}

    popular = client.get("/api/visits/countries", params={"popular": "true"}).json()["data"]
    assert [c["code"] for c in popular["countries"]] == ["us", "gb", "de"]

    found = client.get("/api/visits/countries", params={"search": "united"}).json()["data"]
    assert {c["code"] for c in found["countries"]} == {"us", "uk", "gb"}


def test_country_info(client: TestClient) -> None:
    response = client.get("/api/visits/countries/UK")

    assert response.status_code == 200
    assert response.json()["data"] == {"code": "uk", "name": "United Kingdom"}


def test_country_info_not_found(client: TestClient) -> None:
    response = client.get("/api/visits/countries/zz")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Country not found"}


def test_unknown_route(client: TestClient) -> None:
    response = client.get("/api/nothing-here")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found - /api/nothing-here"}


def test_backend_down_returns_503(settings: Settings, countries) -> None:
    app = create_app(settings, redis_client=BrokenRedis(), countries=countries, wait_for_backend=False)

    with TestClient(app) as client:
        for method, path, kwargs in (
            ("post", "/api/visits/track", {"json": {"countryCode": "us"}}),
            ("get", "/api/visits/stats", {}),
            ("get", "/api/visits/stats/us", {}),
            ("get", "/api/visits/top", {}),
            ("get", "/api/visits/total", {}),
            ("delete", "/api/visits/reset", {}),
        ):
            response = getattr(client, method)(path, **kwargs)
            assert response.status_code == 503
            body = response.json()
            assert body["success"] is False
            assert body["message"] == "Database connection error"
            assert "error" in body


def test_backend_error_detail_hidden_in_production(settings: Settings, countries) -> None:
    settings.env = "production"
    app = create_app(settings, redis_client=BrokenRedis(), countries=countries, wait_for_backend=False)

    with TestClient(app) as client:
        body = client.get("/api/visits/total").json()

    assert body == {"success": False, "message": "Database connection error"}


def test_stats_cache_enabled(app_factory, fake_redis: FakeRedis) -> None:
    with TestClient(app_factory(stats_cache_enabled=True)) as client:
        client.post("/api/visits/track", json={"countryCode": "us"})
        assert client.get("/api/visits/stats").json()["data"] == {"us": 1}

        client.post("/api/visits/track", json={"countryCode": "us"})
        assert client.get("/api/visits/stats").json()["data"] == {"us": 1}
        assert client.get("/api/visits/stats/us").json()["data"]["count"] == 2

        client.delete("/api/visits/reset")
        assert client.get("/api/visits/stats").json()["data"] == {}


def test_shutdown_closes_redis(app_factory, fake_redis: FakeRedis) -> None:
    with TestClient(app_factory()):
        assert fake_redis.closed is False

    assert fake_redis.closed is True


def test_module_level_app_for_uvicorn() -> None:
    assert isinstance(main.app, FastAPI)
    paths = {route.path for route in main.app.routes}
    assert {"/", "/health", "/api/visits/track", "/api/visits/stats"} <= paths


class LoopRecordingRedis(FakeRedis):
    """Remembers whether PING ran on a thread with a running event loop."""

    def __init__(self) -> None:
        super().__init__()
        self.pinged_on_loop: list[bool] = []

    def ping(self) -> bool:
        try:
            asyncio.get_running_loop()
            self.pinged_on_loop.append(True)
        except RuntimeError:
            self.pinged_on_loop.append(False)
        return True


def test_startup_wait_runs_off_event_loop(settings: Settings, countries) -> None:
    backend = LoopRecordingRedis()
    app = create_app(settings, redis_client=backend, countries=countries)

    with TestClient(app) as client:
        assert client.get("/health/live").status_code == 200

    assert backend.pinged_on_loop[0] is False
