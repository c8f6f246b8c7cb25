import random
from typing import Iterable, Mapping, Optional

from pydantic import ValidationError

from country_trivia.log import setup_logger
from country_trivia.schema import CountryDraft, RawCountry

logger = setup_logger(__name__, "service.log")

MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


def extract_currency_code(country: RawCountry) -> Optional[str]:
    # only the first listed currency counts
    if not country.currencies:
        return None
    return country.currencies[0].code


def draw_multiplier(rng: random.Random) -> float:
    """Uniform draw from [1000, 2000)."""
    return MULTIPLIER_MIN + rng.random() * (MULTIPLIER_MAX - MULTIPLIER_MIN)


def compute_estimated_gdp(population: int, exchange_rate: float, rng: random.Random) -> float:
    if population == 0:
        return 0.0
    multiplier = draw_multiplier(rng)
    return round(population * multiplier / exchange_rate, 2)


def reconcile_country(
    country: RawCountry, rates: Mapping[str, float], rng: random.Random
) -> CountryDraft:
    currency_code = extract_currency_code(country)

    if currency_code is None:
        exchange_rate = None
        estimated_gdp = 0.0
    elif currency_code not in rates:
        logger.warning(f"No exchange rate for {currency_code} ({country.name}).")
        exchange_rate = None
        estimated_gdp = None
    else:
        exchange_rate = rates[currency_code]
        estimated_gdp = compute_estimated_gdp(country.population, exchange_rate, rng)

    return CountryDraft(
        name=country.name,
        capital=country.capital,
        region=country.region,
        population=country.population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=country.flag,
    )


def reconcile_countries(
    countries: Iterable, rates: Mapping[str, float], rng: Optional[random.Random] = None
) -> list[CountryDraft]:
    """
    Merge raw country records with an exchange-rate table.

    Produces one draft per input, in input order. A fresh multiplier is drawn
    for every record that has a resolvable rate; pass ``rng`` to control it.
    Malformed source fields fall back to their defaults instead of failing
    the batch.
    """
    rng = rng or random.Random()
    drafts = []
    for item in countries:
        try:
            country = item if isinstance(item, RawCountry) else RawCountry.from_source(item)
        except ValidationError as e:
            logger.warning(f"Malformed country record, using defaults: {e}")
            country = RawCountry()
        drafts.append(reconcile_country(country, rates, rng))
    logger.info(f"Reconciled {len(drafts)} countries against {len(rates)} rates.")
    return drafts
