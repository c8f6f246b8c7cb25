import asyncio
import random

from country_trivia.error import ServiceUnavailableError
from country_trivia.render import SummaryRenderer

NIGERIA = {
    "name": "Nigeria",
    "capital": "Abuja",
    "region": "Africa",
    "population": 206139589,
    "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    "flag": "https://flagcdn.com/ng.svg",
}
GHANA = {
    "name": "Ghana",
    "capital": "Accra",
    "region": "Africa",
    "population": 31072945,
    "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
    "flag": "https://flagcdn.com/gh.svg",
}
GERMANY = {
    "name": "Germany",
    "capital": "Berlin",
    "region": "Europe",
    "population": 83240525,
    "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
    "flag": "https://flagcdn.com/de.svg",
}
ATLANTIS = {"name": "Atlantis", "population": 1000, "currencies": []}
SEALAND = {
    "name": "Sealand",
    "region": "Europe",
    "population": 27,
    "currencies": [{"code": "SPD"}],
}

COUNTRIES = [NIGERIA, GHANA, GERMANY, ATLANTIS, SEALAND]
RATES = {"NGN": 1600.23, "GHS": 15.2, "EUR": 0.92}


class FixedRandom(random.Random):
    """Random source whose random() always returns the same value."""

    def __init__(self, value: float = 0.5):
        self.value = value
        super().__init__()

    def random(self):
        return self.value


class FakeSources:
    def __init__(self, countries=None, rates=None, countries_error=None, rates_error=None):
        self.countries = COUNTRIES if countries is None else countries
        self.rates = RATES if rates is None else rates
        self.countries_error = countries_error
        self.rates_error = rates_error
        self.calls = 0

    async def fetch_countries(self):
        self.calls += 1
        await asyncio.sleep(0)
        if self.countries_error:
            raise self.countries_error
        return self.countries

    async def fetch_exchange_rates(self):
        await asyncio.sleep(0)
        if self.rates_error:
            raise self.rates_error
        return self.rates


class BrokenRenderer(SummaryRenderer):
    def render(self, total_countries, top_countries, last_refreshed_at):
        raise OSError("disk full")


def unavailable(source="Countries API"):
    return ServiceUnavailableError(f"Could not fetch data from {source}: connection refused")
