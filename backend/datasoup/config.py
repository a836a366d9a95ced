"""Centralised settings — reads .env / env vars via pydantic-settings."""
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """All configuration for DataSoup, sourced from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── App ──
    APP_ENV: str = "development"
    APP_LOG_LEVEL: str = "INFO"

    # ── Catalog (CKAN package_search) ──
    CATALOG_SEARCH_URL: str = "https://data.gov.il/api/3/action/package_search"
    CATALOG_ROWS: int = 99999
    CATALOG_TIMEOUT_S: float = 120.0
    CATALOG_TIMEZONE: str = "UTC"
    DATASET_URL_BASE: str = "https://data.gov.il/dataset"

    # ── Storage ──
    DATA_DIR: str = "data"
    SNAPSHOT_FILENAME: str = "packagedata.json"

    # ── Fetching ──
    USER_AGENT: str = "datasoup/1.0 (datagov-external-client)"
    FETCH_TIMEOUT_S: float = 300.0
    FETCH_MAX_CONNECTIONS: int = 50
    BACKOFF_INITIAL_S: float = 5.0
    BOOTSTRAP_MAX_ATTEMPTS: int = 6
    UPDATE_MAX_ATTEMPTS: int = 1
    UPDATE_PAUSE_S: float = 2.0  # keeps Telegram below its flood limit

    # ── Eligibility ──
    MAX_RESOURCE_BYTES: int = 200_000_000
    BOOTSTRAP_LOOKBACK_DAYS: int = 7
    EXEMPT_RESOURCE_IDS: list[str] = [
        "053cea08-09bc-40ec-8f7a-156f0677aff3",
        "aba233c2-6a5a-487d-b0a8-9413ef849f15",
    ]
    FLIGHTS_RESOURCE_ID: str = "e83f763b-b7d7-479e-b172-ae981ddc6de5"

    # ── Notifications ──
    MESSAGE_MAX_UTF16: int = 3800
    NOTIFY_EMPTY_DIFFS: bool = True
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    TELEGRAM_TOKEN: str | None = None
    TELEGRAM_TOKEN_FILE: str = ".telegram_token"
    TELEGRAM_CHAT_ID: str = "@datasoup"
    TELEGRAM_TIMEOUT_S: float = 30.0

    # ── Dashboard ──
    DASHBOARD_HOST: str = "0.0.0.0"
    DASHBOARD_PORT: int = 8080

    # ── Metrics ──
    METRICS_TEXTFILE: str | None = None


settings = Settings()
