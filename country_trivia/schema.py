import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class CountryResponseSchema(BaseModel):
    id: UUID
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: UtcDatetime
    created_at: UtcDatetime

    model_config = ConfigDict(from_attributes=True)


class StatusSchema(BaseModel):
    total_countries: int
    last_refreshed_at: Optional[UtcDatetime] = None

    model_config = ConfigDict(from_attributes=True)


class RefreshResponseSchema(BaseModel):
    message: str = "Countries data refreshed successfully"
    countries_processed: int
    last_refreshed_at: UtcDatetime
    warning: Optional[str] = None


class SortOption(str, Enum):
    GDP_DESC = "gdp_desc"
    GDP_ASC = "gdp_asc"
    POPULATION_DESC = "population_desc"
    POPULATION_ASC = "population_asc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOption":
        """Unknown or missing sort values fall back to name_asc."""
        try:
            return cls(value.strip().lower())
        except (AttributeError, ValueError):
            return cls.NAME_ASC


class CountryFilter(BaseModel):
    region: Optional[str] = None
    currency: Optional[str] = None
    sort: SortOption = SortOption.NAME_ASC

    @field_validator("region", mode="before")
    @classmethod
    def _strip_region(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return None

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return None

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value):
        return SortOption.parse(value)


# External payloads. Parsing is deliberately lenient: a malformed field
# degrades to its default so one bad record never fails the batch.


class Currency(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    symbol: Optional[str] = None

    @field_validator("code", "name", "symbol", mode="before")
    @classmethod
    def _text_or_none(cls, value):
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class RawCountry(BaseModel):
    name: str = ""
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = 0
    currencies: list[Currency] = Field(default_factory=list)
    flag: Optional[str] = None

    @classmethod
    def from_source(cls, item) -> "RawCountry":
        return cls.model_validate(item if isinstance(item, dict) else {})

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value):
        return value.strip() if isinstance(value, str) else ""

    @field_validator("capital", "region", "flag", mode="before")
    @classmethod
    def _optional_text(cls, value):
        if isinstance(value, str) and value.strip():
            return value
        return None

    @field_validator("population", mode="before")
    @classmethod
    def _population(cls, value):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        if not math.isfinite(value) or value < 0:
            return 0
        return int(value)

    @field_validator("currencies", mode="before")
    @classmethod
    def _currencies(cls, value):
        if not isinstance(value, list):
            return []
        return [item if isinstance(item, dict) else {} for item in value]


class CurrencyApiResponse(BaseModel):
    result: Optional[str] = None
    base_code: Optional[str] = None
    time_last_update_utc: Optional[str] = None
    rates: dict[str, float]

    @field_validator("rates", mode="before")
    @classmethod
    def _positive_rates(cls, value):
        if not isinstance(value, dict):
            raise ValueError("rates must be an object")
        return {
            code: rate
            for code, rate in value.items()
            if isinstance(code, str)
            and isinstance(rate, (int, float))
            and not isinstance(rate, bool)
            and math.isfinite(rate)
            and rate > 0
        }


class CountryDraft(BaseModel):
    """A reconciled, not yet persisted country record."""

    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int = 0
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
