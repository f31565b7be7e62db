import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from clients import ExternalDataClient
from errors import CountryCacheError, InternalError, NotFoundError
from logger import get_logger
from models import Country
from reconciler import random_multiplier, reconcile_all
from reporter import SnapshotReporter
from repository import CountryRepository, SortOrder

logger = get_logger(__name__)

NOT_AVAILABLE = "Not available"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RefreshStage(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RefreshResult:
    total_countries: int
    last_refreshed_at: str
    skipped: int = 0


class CountryService:
    """Runs the refresh pipeline and answers the read-side queries.

    A refresh is fetch -> reconcile -> upsert -> report, in that order, with
    one start time shared by every record, the marker file and the result.
    Overlapping refreshes in this process are serialized by a lock.
    """

    def __init__(
        self,
        client: Optional[ExternalDataClient] = None,
        reporter: Optional[SnapshotReporter] = None,
        clock: Callable[[], datetime] = utc_now,
        multiplier: Callable[[], int] = random_multiplier,
    ):
        self.client = client or ExternalDataClient()
        self.reporter = reporter or SnapshotReporter()
        self.clock = clock
        self.multiplier = multiplier
        self._refresh_lock = asyncio.Lock()

    async def refresh_countries(self, session: AsyncSession) -> RefreshResult:
        if self._refresh_lock.locked():
            logger.info("Refresh already in progress; waiting for it to finish")
        async with self._refresh_lock:
            return await self._refresh(session)

    async def _refresh(self, session: AsyncSession) -> RefreshResult:
        stage = RefreshStage.IDLE
        refreshed_at = self.clock()
        try:
            stage = self._enter(RefreshStage.FETCHING)
            countries_data, rates = await self.client.fetch_all()

            stage = self._enter(RefreshStage.RECONCILING)
            report = reconcile_all(countries_data, rates, refreshed_at, self.multiplier)

            stage = self._enter(RefreshStage.PERSISTING)
            repository = CountryRepository(session)
            await repository.upsert_all(report.records)

            stage = self._enter(RefreshStage.REPORTING)
            snapshot = await self.reporter.publish(repository, refreshed_at)
        except CountryCacheError as e:
            logger.error("Refresh failed while %s: %s", stage.value, e.details or e.message)
            self._enter(RefreshStage.FAILED)
            raise
        except Exception as e:
            logger.exception("Refresh failed while %s", stage.value)
            self._enter(RefreshStage.FAILED)
            raise InternalError(e) from e

        self._enter(RefreshStage.DONE)
        return RefreshResult(
            total_countries=snapshot.total_countries,
            last_refreshed_at=snapshot.last_refreshed_at,
            skipped=len(report.skipped),
        )

    @staticmethod
    def _enter(stage: RefreshStage) -> RefreshStage:
        logger.debug("Refresh stage: %s", stage.value)
        return stage

    async def list_countries(
        self,
        session: AsyncSession,
        region: Optional[str] = None,
        currency: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> List[Country]:
        order = SortOrder.parse(sort)
        countries = await CountryRepository(session).find_all(region=region, currency=currency, sort=order)
        if not countries:
            raise NotFoundError("No countries found")
        return countries

    async def get_country(self, session: AsyncSession, name: str) -> Country:
        country = await CountryRepository(session).find_by_name(name)
        if country is None:
            raise NotFoundError("Country not found")
        return country

    async def delete_country(self, session: AsyncSession, name: str) -> int:
        deleted = await CountryRepository(session).delete_by_name(name)
        if not deleted:
            raise NotFoundError("Country not found")
        logger.info("Deleted country %r", name)
        return deleted

    async def status(self, session: AsyncSession) -> dict:
        total = await CountryRepository(session).count()
        return {
            "total_countries": total,
            "last_refreshed_at": self.reporter.read_last_refreshed() or NOT_AVAILABLE,
        }


country_service = CountryService()


def get_country_service() -> CountryService:
    return country_service
