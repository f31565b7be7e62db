"""Shared fixtures: a temp-file SQLite database, a stubbed upstream, and an
ASGI test client with the database and service dependencies overridden.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-countries.db")
os.environ.setdefault("CACHE_DIR", "./test-cache")

from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from reporter import SnapshotReporter
from service import CountryService, get_country_service

REFRESH_TIME = datetime(2025, 10, 22, 12, 0, 0, tzinfo=timezone.utc)

RAW_COUNTRIES = [
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139589,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Ghana",
        "capital": "Accra",
        "region": "Africa",
        "population": 31072945,
        "flag": "https://flagcdn.com/gh.svg",
        "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
    },
    {
        "name": "France",
        "capital": "Paris",
        "region": "Europe",
        "population": 67391582,
        "flag": "https://flagcdn.com/fr.svg",
        "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
    },
    {
        "name": "Mystery Isle",
        "region": "Oceania",
        "population": 5000,
        "currencies": [{"code": "XYZ"}],
    },
    {"name": "Antarctica", "region": "Polar", "population": 1000},
    {"name": "Bad", "population": None},
]

RATES = {"USD": 1.0, "NGN": 1600.0, "GHS": 12.5, "EUR": 0.92}


class FakeDataClient:
    """Stands in for ExternalDataClient; returns canned payloads or raises."""

    def __init__(self, countries=None, rates=None, error=None):
        self.countries = RAW_COUNTRIES if countries is None else countries
        self.rates = RATES if rates is None else rates
        self.error = error
        self.calls = 0

    async def fetch_all(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.countries, self.rates


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_client():
    return FakeDataClient()


@pytest.fixture
def reporter(tmp_path):
    return SnapshotReporter(tmp_path / "cache")


@pytest.fixture
def country_service(fake_client, reporter):
    return CountryService(
        client=fake_client,
        reporter=reporter,
        clock=lambda: REFRESH_TIME,
        multiplier=lambda: 1500,
    )


@pytest.fixture
async def client(test_session_factory, country_service):
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_country_service] = lambda: country_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
