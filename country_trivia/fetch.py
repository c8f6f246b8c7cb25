import asyncio

import aiohttp
from pydantic import ValidationError

from country_trivia.config import Config
from country_trivia.error import ServiceUnavailableError
from country_trivia.log import setup_logger
from country_trivia.schema import CurrencyApiResponse

logger = setup_logger(__name__, "fetch.log")


class ExternalSources:
    """
    Country and exchange-rate fetchers.

    Each call is a single attempt bounded by ``timeout`` seconds. Any failure
    (transport error, bad status, timeout, unusable payload) is raised as
    ServiceUnavailableError.
    """

    def __init__(self, countries_url: str, rates_url: str, timeout: float = 30):
        self.countries_url = countries_url
        self.rates_url = rates_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @classmethod
    def from_config(cls, config: Config) -> "ExternalSources":
        return cls(
            countries_url=config.COUNTRIES_API_URL,
            rates_url=config.EXCHANGE_RATE_API_URL,
            timeout=config.FETCH_TIMEOUT,
        )

    async def _get_json(self, url: str, source: str):
        logger.info(f"Fetching {source} data from {url}")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as response:
                    response.raise_for_status()
                    data = await response.json(content_type=None)
            logger.info(f"Successfully fetched {source} data.")
            return data
        except asyncio.TimeoutError:
            logger.error(f"{source} request timed out after {self.timeout.total}s")
            raise ServiceUnavailableError(f"{source} request timed out")
        except aiohttp.ClientError as e:
            logger.error(f"Error fetching {source} data: {e}")
            raise ServiceUnavailableError(f"Could not fetch data from {source}: {e}")
        except ValueError as e:
            logger.error(f"{source} returned a body that is not JSON: {e}")
            raise ServiceUnavailableError(f"Could not fetch data from {source}: invalid JSON")

    async def fetch_countries(self) -> list:
        data = await self._get_json(self.countries_url, "Countries API")
        if not isinstance(data, list):
            logger.error(f"Countries API returned {type(data).__name__}, expected a list")
            raise ServiceUnavailableError("Invalid response format from Countries API")
        logger.info(f"Received {len(data)} country records.")
        return data

    async def fetch_exchange_rates(self) -> dict[str, float]:
        data = await self._get_json(self.rates_url, "Exchange Rate API")
        try:
            validated = CurrencyApiResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"Exchange Rate API payload rejected: {e}")
            raise ServiceUnavailableError("Invalid response format from Exchange Rate API")
        logger.info(f"Received {len(validated.rates)} usable exchange rates.")
        return validated.rates
