"""Refresh orchestration: stage order, shared timestamp, failure mapping."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import REFRESH_TIME, FakeDataClient
from errors import InternalError, NotFoundError, UpstreamUnavailable, ValidationError
from models import Country
from reporter import SnapshotReporter
from service import NOT_AVAILABLE, CountryService


async def test_refresh_persists_valid_countries_and_reports(country_service, test_db, reporter):
    result = await country_service.refresh_countries(test_db)

    assert result.total_countries == 4
    assert result.last_refreshed_at == "2025-10-22T12:00:00Z"
    assert result.skipped == 2

    rows = (await test_db.execute(select(Country).order_by(Country.id))).scalars().all()
    assert [c.name for c in rows] == ["Nigeria", "Ghana", "France", "Mystery Isle"]
    assert reporter.has_image()
    assert reporter.read_last_refreshed() == "2025-10-22T12:00:00Z"


async def test_every_record_carries_the_refresh_start_time(country_service, test_db):
    await country_service.refresh_countries(test_db)

    rows = (await test_db.execute(select(Country))).scalars().all()
    assert {c.last_refreshed_at.replace(tzinfo=REFRESH_TIME.tzinfo) for c in rows} == {REFRESH_TIME}


async def test_refreshing_twice_updates_timestamp_and_keeps_one_row_per_name(fake_client, reporter, test_db):
    times = iter([REFRESH_TIME, REFRESH_TIME + timedelta(hours=2)])
    service = CountryService(client=fake_client, reporter=reporter, clock=lambda: next(times), multiplier=lambda: 1000)

    await service.refresh_countries(test_db)
    second = await service.refresh_countries(test_db)

    assert second.last_refreshed_at == "2025-10-22T14:00:00Z"
    assert second.total_countries == 4
    rows = (await test_db.execute(select(Country))).scalars().all()
    assert len(rows) == 4
    assert {c.last_refreshed_at.replace(tzinfo=REFRESH_TIME.tzinfo) for c in rows} == {REFRESH_TIME + timedelta(hours=2)}
    assert reporter.read_last_refreshed() == "2025-10-22T14:00:00Z"


async def test_refreshing_twice_with_non_ascii_name_updates_in_place(reporter, test_session_factory):
    countries = [{"name": "Åland Islands", "population": 28875, "currencies": [{"code": "EUR"}]}]
    service = CountryService(
        client=FakeDataClient(countries=countries), reporter=reporter, clock=lambda: REFRESH_TIME,
    )

    for _ in range(2):
        async with test_session_factory() as session:
            result = await service.refresh_countries(session)
        assert result.total_countries == 1

    async with test_session_factory() as session:
        found = await service.get_country(session, "åland islands")
    assert found.name == "Åland Islands"


async def test_upstream_failure_leaves_records_untouched(fake_client, country_service, test_db, reporter):
    await country_service.refresh_countries(test_db)
    before = {c.name: c.estimated_gdp for c in (await test_db.execute(select(Country))).scalars().all()}

    fake_client.error = UpstreamUnavailable("Exchange Rate API")
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await country_service.refresh_countries(test_db)

    assert exc_info.value.source == "Exchange Rate API"
    after = {c.name: c.estimated_gdp for c in (await test_db.execute(select(Country))).scalars().all()}
    assert after == before


async def test_upstream_failure_on_first_refresh_writes_nothing(reporter, test_db):
    service = CountryService(client=FakeDataClient(error=UpstreamUnavailable("REST Countries API")), reporter=reporter)

    with pytest.raises(UpstreamUnavailable):
        await service.refresh_countries(test_db)

    assert (await test_db.execute(select(Country))).scalars().all() == []
    assert not reporter.has_image()
    assert reporter.read_last_refreshed() is None


async def test_unexpected_failure_becomes_internal_error(reporter, test_db):
    service = CountryService(client=FakeDataClient(error=RuntimeError("boom")), reporter=reporter)

    with pytest.raises(InternalError) as exc_info:
        await service.refresh_countries(test_db)

    assert exc_info.value.to_response() == {"error": "Internal server error"}
    assert isinstance(exc_info.value.cause, RuntimeError)


async def test_reporting_failure_becomes_internal_error(fake_client, test_db, tmp_path):
    blocker = tmp_path / "cache"
    blocker.write_text("a file where the cache directory should be")

    service = CountryService(client=fake_client, reporter=SnapshotReporter(blocker), clock=lambda: REFRESH_TIME)

    with pytest.raises(InternalError):
        await service.refresh_countries(test_db)


async def test_overlapping_refreshes_are_serialized(reporter, test_session_factory):
    active = 0
    peak = 0

    class SlowClient(FakeDataClient):
        async def fetch_all(self):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1
            return await super().fetch_all()

    service = CountryService(client=SlowClient(), reporter=reporter, clock=lambda: REFRESH_TIME)

    async def run():
        async with test_session_factory() as session:
            return await service.refresh_countries(session)

    results = await asyncio.gather(run(), run())

    assert peak == 1
    assert [r.total_countries for r in results] == [4, 4]


async def test_list_countries_raises_not_found_when_empty(country_service, test_db):
    with pytest.raises(NotFoundError):
        await country_service.list_countries(test_db)


async def test_list_countries_rejects_invalid_sort(country_service, test_db):
    with pytest.raises(ValidationError):
        await country_service.list_countries(test_db, sort="population_desc")


async def test_delete_unknown_country_raises_not_found(country_service, test_db):
    with pytest.raises(NotFoundError):
        await country_service.delete_country(test_db, "Atlantis")


async def test_status_before_and_after_refresh(country_service, test_db):
    assert await country_service.status(test_db) == {"total_countries": 0, "last_refreshed_at": NOT_AVAILABLE}

    await country_service.refresh_countries(test_db)

    assert await country_service.status(test_db) == {
        "total_countries": 4,
        "last_refreshed_at": "2025-10-22T12:00:00Z",
    }
