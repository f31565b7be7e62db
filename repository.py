from enum import Enum
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ValidationError
from logger import get_logger
from models import REFRESHED_FIELDS, Country
from schemas import CountryRecord, name_key

logger = get_logger(__name__)


class SortOrder(str, Enum):
    GDP_DESC = "gdp_desc"
    GDP_ASC = "gdp_asc"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SortOrder"]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise ValidationError("sort", f"Invalid sort option, expected one of: {allowed}")


def _gdp_order(descending: bool):
    # nulls last on every backend, then insertion order for ties
    gdp = Country.estimated_gdp.desc() if descending else Country.estimated_gdp.asc()
    return (Country.estimated_gdp.is_(None), gdp, Country.id)


class CountryRepository:
    """Owns the stored country set. Names match case-insensitively everywhere."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert_all(self, records: Sequence[CountryRecord]) -> int:
        """Insert or update every record in one transaction, keyed by name."""
        if not records:
            return 0
        try:
            keys = [name_key(r.name) for r in records]
            result = await self.session.execute(
                select(Country).where(Country.name_key.in_(sorted(set(keys))))
            )
            existing: Dict[str, Country] = {c.name_key: c for c in result.scalars().all()}

            inserted = updated = 0
            for key, record in zip(keys, records):
                values = record.model_dump(include=set(REFRESHED_FIELDS))
                country = existing.get(key)
                if country is None:
                    country = Country(name=record.name, name_key=key, **values)
                    self.session.add(country)
                    existing[key] = country
                    inserted += 1
                else:
                    for attr, value in values.items():
                        setattr(country, attr, value)
                    updated += 1
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception("Database error during upsert; rolled back")
            raise
        logger.info("Upserted %d countries (%d new, %d updated)", inserted + updated, inserted, updated)
        return inserted + updated

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Country.id)))
        return result.scalar() or 0

    async def find_all(
        self,
        region: Optional[str] = None,
        currency: Optional[str] = None,
        sort: Optional[SortOrder] = None,
    ) -> List[Country]:
        stmt = select(Country)
        if region:
            stmt = stmt.where(Country.region.icontains(region, autoescape=True))
        if currency:
            stmt = stmt.where(Country.currency_code.icontains(currency, autoescape=True))
        if sort is not None:
            stmt = stmt.order_by(*_gdp_order(sort is SortOrder.GDP_DESC))
        else:
            stmt = stmt.order_by(Country.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_name(self, name: str) -> Optional[Country]:
        result = await self.session.execute(
            select(Country).where(Country.name_key == name_key(name))
        )
        return result.scalars().first()

    async def delete_by_name(self, name: str) -> int:
        try:
            result = await self.session.execute(
                delete(Country).where(Country.name_key == name_key(name))
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount or 0

    async def top_by_gdp(self, limit: int = 5) -> List[Country]:
        result = await self.session.execute(
            select(Country).order_by(*_gdp_order(True)).limit(limit)
        )
        return list(result.scalars().all())
