import asyncio
import random
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from country_trivia.db import Country, RefreshMetadata
from country_trivia.error import BadRequestError, NotFoundError
from country_trivia.fetch import ExternalSources
from country_trivia.log import setup_logger
from country_trivia.reconcile import reconcile_countries
from country_trivia.render import SummaryRenderer
from country_trivia.schema import CountryFilter
from country_trivia.store import CountryStore

logger = setup_logger(__name__, "service.log")

TOP_N = 5


class RefreshResult(BaseModel):
    countries_processed: int
    total_countries: int
    last_refreshed_at: datetime
    warning: Optional[str] = None


class Service():
    def __init__(
        self,
        db: AsyncSession,
        sources: Optional[ExternalSources] = None,
        renderer: Optional[SummaryRenderer] = None,
        refresh_lock: Optional[asyncio.Lock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.store = CountryStore(db)
        self.sources = sources
        self.renderer = renderer or SummaryRenderer()
        self.refresh_lock = refresh_lock or asyncio.Lock()
        self.rng = rng

    async def refresh(self) -> RefreshResult:
        """
        Fetch both sources, reconcile, persist the batch atomically, update the
        metadata row and redraw the summary image.

        Only one refresh runs at a time per lock. A fetch failure aborts before
        anything is written. A rendering failure does not undo the refresh; it
        is reported through ``RefreshResult.warning``.
        """
        if self.sources is None:
            raise RuntimeError("Service.refresh requires external sources")

        async with self.refresh_lock:
            logger.info("Starting country data refresh.")
            countries, rates = await self._fetch_sources()

            drafts = reconcile_countries(countries, rates, rng=self.rng)
            keyed = [draft for draft in drafts if draft.name]
            if len(keyed) != len(drafts):
                logger.warning(f"Skipping {len(drafts) - len(keyed)} country records without a name.")

            refreshed_at = datetime.now(timezone.utc)
            processed = await self.store.bulk_upsert(keyed, refreshed_at)

            total = await self.store.count()
            await self.store.set_metadata(total, refreshed_at)
            logger.info(f"Refresh committed: processed={processed}, total={total}.")

            warning = await self._render_summary(total, refreshed_at)
            return RefreshResult(
                countries_processed=processed,
                total_countries=total,
                last_refreshed_at=refreshed_at,
                warning=warning,
            )

    async def _fetch_sources(self):
        """
        Run both fetches concurrently and wait for both. If either fails the
        other is cancelled and awaited before the error is raised, so no fetch
        outlives the refresh that started it.
        """
        countries_task = asyncio.ensure_future(self.sources.fetch_countries())
        rates_task = asyncio.ensure_future(self.sources.fetch_exchange_rates())
        tasks = (countries_task, rates_task)
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except BaseException:
            # refresh itself was cancelled
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        failed = [task for task in done if task.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            # collect every outcome so none is left unretrieved
            await asyncio.gather(*tasks, return_exceptions=True)
            first = countries_task if countries_task in failed else rates_task
            logger.error(f"Fetch failed, refresh aborted: {first.exception()}")
            raise first.exception()

        return countries_task.result(), rates_task.result()

    async def _render_summary(self, total: int, refreshed_at: datetime) -> Optional[str]:
        try:
            top = await self.store.top_by_gdp(TOP_N)
            await asyncio.to_thread(self.renderer.render, total, top, refreshed_at)
            logger.info("image successfully created")
            return None
        except Exception as e:
            # the refresh is already committed
            logger.error(f"Error generating summary image: {e}")
            return f"Summary image could not be generated: {e}"

    async def filter_search(self, filters: CountryFilter) -> list[Country]:
        logger.info(
            f"Filtering search with region='{filters.region}', currency='{filters.currency}', "
            f"sort='{filters.sort.value}'"
        )
        countries = await self.store.find_all(
            region=filters.region,
            currency_code=filters.currency,
            sort=filters.sort,
        )
        return list(countries)

    @staticmethod
    def _require_name(name: str) -> str:
        if not name or not name.strip():
            raise BadRequestError("Country name is required")
        return name.strip()

    async def fetch_by_name(self, name: str) -> Country:
        name = self._require_name(name)
        logger.info(f"Fetching country by name: {name}")
        country = await self.store.find_by_name(name)
        if country is None:
            logger.info(f"Country not found: {name}")
            raise NotFoundError("Country not found")
        return country

    async def delete_country(self, name: str) -> None:
        name = self._require_name(name)
        logger.info(f"Attempting to delete country: {name}")
        if not await self.store.delete_by_name(name):
            raise NotFoundError("Country not found")
        logger.info(f"Successfully deleted country: {name}")

    async def status(self) -> RefreshMetadata:
        metadata = await self.store.get_metadata()
        logger.info(
            f"Status fetched: total_countries={metadata.total_countries}, "
            f"last_refreshed_at={metadata.last_refreshed_at}"
        )
        return metadata

    async def serve_file(self) -> dict:
        return self.renderer.serve_file()
