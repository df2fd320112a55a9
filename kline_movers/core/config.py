"""Environment-driven settings plus the per-run record that controls candle collection."""

from functools import lru_cache

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from kline_movers.core.errors import SetupError, StorageNotFoundError, StorageParseError
from kline_movers.core.storage import JsonStorage

CONFIG_RECORD = "config"


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "kline-movers"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    STORAGE_DIR: str = "storage"
    BINANCE_FUTURES_REST_URL: str = "https://fapi.binance.com"
    HTTP_TIMEOUT_S: float = 10.0
    HTTP_MAX_CONNECTIONS: int = 50
    KLINES_LIMIT: int = 500
    KLINES_INTERVAL: str = "1h"
    FILTERS: dict[str, str] = {
        "status": "TRADING",
        "contractType": "PERPETUAL",
        "quoteAsset": "USDT",
    }
    RSI_PERIOD: int | None = 14

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class KlineConfig(BaseModel):
    """Candle request parameters shared by every instrument fetch."""

    limit: int = Field(ge=1)
    interval: str = Field(min_length=1)


class RunConfig(BaseModel):
    """Read-only record describing one collection run."""

    klines: KlineConfig
    filters: dict[str, str] = Field(default_factory=dict)
    rsi_period: int | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RunConfig":
        return cls(
            klines=KlineConfig(limit=settings.KLINES_LIMIT, interval=settings.KLINES_INTERVAL),
            filters=dict(settings.FILTERS),
            rsi_period=settings.RSI_PERIOD,
        )


def load_run_config(storage: JsonStorage, settings: Settings) -> RunConfig:
    """Return the stored run record, falling back to settings when none was saved."""

    try:
        raw = storage.load(CONFIG_RECORD)
    except StorageNotFoundError:
        try:
            return RunConfig.from_settings(settings)
        except ValidationError as exc:
            raise SetupError(f"invalid run settings: {exc}") from exc
    except StorageParseError as exc:
        raise SetupError(str(exc)) from exc

    try:
        return RunConfig.model_validate(raw)
    except ValidationError as exc:
        raise SetupError(f"invalid {CONFIG_RECORD} record: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
