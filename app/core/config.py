from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # ─────────── APP ───────────
    app_name: str = "Cooperative Trade Engine"
    environment: str = "dev"
    log_level: str = "INFO"
    log_sql: bool = False

    # ─────────── API ───────────
    api_prefix: str = "/v1"
    request_id_header: str = "X-Request-Id"

    # ─────────── DATABASE ───────────
    database_url: str

    # ─────────── JWT / AUTH ───────────
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_access_token_minutes: int = 1440  # 24 hours

    # ─────────── TRADE ───────────
    trade_currency: str = "KES"
    trade_commodities: List[str] = ["kales", "cabbage", "tomatoes"]
    open_bids_query_limit: int = 100        # per commodity
    notification_fanout_limit: int = 500    # recipients per notification

    # offer submissions per (buyer, bid) per window
    offer_rate_limit_per_window: int = 4
    offer_rate_limit_window_seconds: int = 60
    offer_rate_limit_backend: Literal["database", "memory"] = "database"

    # ─────────── SWEEP ───────────
    trade_sweep_enabled: bool = True       # API workers run the sweep in-process
    trade_sweep_interval_seconds: int = 60
    trade_sweep_batch_limit: int = 100      # per commodity per pass

    @field_validator("trade_commodities")
    @classmethod
    def _normalize_commodities(cls, value: List[str]) -> List[str]:
        normalized = [c.strip().lower() for c in value if c and c.strip()]
        if not normalized:
            raise ValueError("trade_commodities must not be empty")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
