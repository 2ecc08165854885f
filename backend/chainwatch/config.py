"""Application configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from core.models.prediction import PredictionTarget, Timeframe

DEFAULT_SLOTS = [f"{target.value}:5m" for target in PredictionTarget] + [
    "price:20m",
    "price:1h",
    "price:6h",
    "price:12h",
    "price:1d",
    "price:1w",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CHAINWATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Redis (empty = in-memory storage)
    redis_url: str = ""

    # Data source endpoints
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    mempool_url: str = "https://mempool.space/api"
    blockstream_url: str = "https://blockstream.info/api"
    blockchair_url: str = "https://api.blockchair.com/bitcoin"
    http_timeout: float = 15.0
    requests_per_minute: int = 120

    # Predictions
    prediction_slots: list[str] = DEFAULT_SLOTS
    resolve_interval: float = 30.0
    prediction_cap: int = 500
    min_resolved_for_accuracy: int = 5

    # Alerts
    alert_scan_interval: float = 180.0
    alert_cap: int = 200
    toast_limit: int = 5
    toast_duration: float = 5.0
    large_tx_min_btc: float = 10.0
    large_tx_block_depth: int = 2
    dormant_check_limit: int = 10
    flow_block_depth: int = 6

    # Logging
    log_level: str = "INFO"


def parse_slot(slot: str) -> tuple[PredictionTarget, Timeframe]:
    """Parse a ``target:timeframe`` string such as ``price:1h``."""
    target, sep, timeframe = slot.partition(":")
    if not sep:
        raise ValueError(f"Invalid prediction slot {slot!r}, expected 'target:timeframe'")
    try:
        return PredictionTarget(target.strip()), Timeframe(timeframe.strip())
    except ValueError as e:
        raise ValueError(f"Invalid prediction slot {slot!r}: {e}") from e


def parse_slots(slots: list[str]) -> list[tuple[PredictionTarget, Timeframe]]:
    """Parse and de-duplicate configured slots, keeping their order."""
    parsed: list[tuple[PredictionTarget, Timeframe]] = []
    for slot in slots:
        pair = parse_slot(slot)
        if pair not in parsed:
            parsed.append(pair)
    return parsed


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
