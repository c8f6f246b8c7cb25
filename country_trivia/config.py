from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent


class Config(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./countries.db"
    COUNTRIES_API_URL: str = (
        "https://restcountries.com/v2/all?fields=name,capital,region,population,flag,currencies"
    )
    EXCHANGE_RATE_API_URL: str = "https://open.er-api.com/v6/latest/USD"
    FETCH_TIMEOUT: float = 30
    CACHE_DIR: str = "cache"
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


config = Config()
