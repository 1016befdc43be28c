from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from config import Settings
from countries import CountryData
from main import create_app
from models import VisitTracker
from tests.fakes import FakeRedis

TEST_COUNTRIES = {
    "us": "United States",
    "uk": "United Kingdom",
    "gb": "United Kingdom of Great Britain",
    "de": "Germany",
    "fr": "France",
    "it": "Italy",
    "es": "Spain",
    "ca": "Canada",
    "au": "Australia",
    "jp": "Japan",
    "br": "Brazil",
}


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def countries() -> CountryData:
    return CountryData(countries=TEST_COUNTRIES, popular=["us", "gb", "de", "xx"])


@pytest.fixture
def tracker(fake_redis: FakeRedis, countries: CountryData) -> VisitTracker:
    return VisitTracker(fake_redis, countries=countries)


@pytest.fixture
def settings() -> Settings:
    settings = Settings()
    settings.env = "test"
    settings.rate_limit_enabled = False
    settings.stats_cache_enabled = False
    settings.redis_startup_attempts = 1
    settings.frontend_url = "*"
    return settings


@pytest.fixture
def app_factory(settings: Settings, fake_redis: FakeRedis, countries: CountryData):
    def _make(**overrides):
        for name, value in overrides.items():
            setattr(settings, name, value)
        return create_app(settings, redis_client=fake_redis, countries=countries)

    return _make


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client
