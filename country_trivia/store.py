from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from country_trivia.db import METADATA_ROW_ID, Country, RefreshMetadata, normalize_name
from country_trivia.error import InternalError
from country_trivia.log import setup_logger
from country_trivia.schema import CountryDraft, SortOption

logger = setup_logger(__name__, "store.log")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# columns overwritten when a name is seen again; created_at is insert-only
_UPDATABLE = (
    "name",
    "capital",
    "region",
    "population",
    "currency_code",
    "exchange_rate",
    "estimated_gdp",
    "flag_url",
    "last_refreshed_at",
)


def _order_by(sort: SortOption) -> list:
    gdp_is_null = Country.estimated_gdp.is_(None)
    if sort is SortOption.GDP_DESC:
        # nulls last in both GDP directions
        return [gdp_is_null, Country.estimated_gdp.desc(), Country.name_key]
    if sort is SortOption.GDP_ASC:
        return [gdp_is_null, Country.estimated_gdp.asc(), Country.name_key]
    if sort is SortOption.POPULATION_DESC:
        return [Country.population.desc(), Country.name_key]
    if sort is SortOption.POPULATION_ASC:
        return [Country.population.asc(), Country.name_key]
    if sort is SortOption.NAME_DESC:
        return [Country.name_key.desc()]
    return [Country.name_key.asc()]


class CountryStore:
    """Snapshot store for reconciled countries and the refresh metadata row."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.bind.dialect.name
        try:
            return _UPSERT_DIALECTS[dialect](Country)
        except KeyError:
            raise InternalError(f"Upsert is not supported on the '{dialect}' dialect")

    async def bulk_upsert(self, drafts: Sequence[CountryDraft], refreshed_at: datetime) -> int:
        """
        Insert or update every draft, keyed on the normalized name, in a
        single transaction. Either all rows are written or none are.
        """
        logger.info(f"Upserting {len(drafts)} countries.")
        try:
            for draft in drafts:
                stmt = self._insert().values(
                    name_key=normalize_name(draft.name),
                    created_at=refreshed_at,
                    last_refreshed_at=refreshed_at,
                    **draft.model_dump(),
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Country.name_key],
                    set_={column: getattr(stmt.excluded, column) for column in _UPDATABLE},
                )
                await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Bulk upsert failed, batch rolled back: {e}")
            raise InternalError("Could not persist country data", str(e))
        logger.info(f"Committed {len(drafts)} countries.")
        return len(drafts)

    async def find_all(
        self,
        region: Optional[str] = None,
        currency_code: Optional[str] = None,
        sort: SortOption = SortOption.NAME_ASC,
    ) -> Sequence[Country]:
        stmt = select(Country)
        if region is not None:
            stmt = stmt.where(sa.func.lower(Country.region) == region.lower())
        if currency_code is not None:
            stmt = stmt.where(sa.func.lower(Country.currency_code) == currency_code.lower())
        stmt = stmt.order_by(*_order_by(sort))

        result = await self.db.execute(stmt)
        countries = result.scalars().all()
        logger.info(
            f"Found {len(countries)} countries (region={region}, currency={currency_code}, sort={sort.value})."
        )
        return countries

    async def find_by_name(self, name: str) -> Optional[Country]:
        result = await self.db.execute(
            select(Country).where(Country.name_key == normalize_name(name))
        )
        return result.scalar_one_or_none()

    async def delete_by_name(self, name: str) -> bool:
        try:
            result = await self.db.execute(
                delete(Country).where(Country.name_key == normalize_name(name))
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error deleting country '{name}': {e}")
            raise InternalError("Could not delete country", str(e))
        deleted = result.rowcount > 0
        logger.info(f"Delete '{name}': {'removed' if deleted else 'no such country'}.")
        return deleted

    async def count(self) -> int:
        result = await self.db.execute(select(sa.func.count(Country.id)))
        return result.scalar_one()

    async def top_by_gdp(self, limit: int = 5) -> Sequence[Country]:
        result = await self.db.execute(
            select(Country)
            .where(Country.estimated_gdp.is_not(None))
            .order_by(Country.estimated_gdp.desc(), Country.name_key)
            .limit(limit)
        )
        return result.scalars().all()

    async def get_metadata(self) -> RefreshMetadata:
        metadata = await self.db.get(RefreshMetadata, METADATA_ROW_ID)
        if metadata is None:
            return RefreshMetadata(id=METADATA_ROW_ID, total_countries=0, last_refreshed_at=None)
        return metadata

    async def set_metadata(self, total_countries: int, refreshed_at: datetime) -> RefreshMetadata:
        try:
            metadata = await self.db.get(RefreshMetadata, METADATA_ROW_ID)
            if metadata is None:
                metadata = RefreshMetadata(id=METADATA_ROW_ID)
                self.db.add(metadata)
            metadata.total_countries = total_countries
            metadata.last_refreshed_at = refreshed_at
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error updating refresh metadata: {e}")
            raise InternalError("Could not update refresh metadata", str(e))
        logger.info(f"Refresh metadata set: total={total_countries}, at={refreshed_at}")
        return metadata
