"""Engine configuration loaded from environment variables."""

from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings

from drawsync.core.constants import (
    DEFAULT_TICKET_PRICE_CSPR,
    DISPLAY_DECIMAL_PLACES,
    REFRESH_INTERVAL_SECONDS,
    REFUND_WINDOW_MS,
    RESOLVE_INTERVAL_MS,
    RESOLVE_MAX_ATTEMPTS,
    SETTLE_BACKOFF_CEILING_MS,
    SETTLE_BACKOFF_FLOOR_MS,
    SETTLE_BACKOFF_STEP_MS,
    SETTLE_MAX_ATTEMPTS,
)


class Settings(BaseSettings):
    """DrawSync engine settings."""

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    # Backend
    api_base_url: str = "http://localhost:3001/api"
    push_url: str = "http://localhost:3001"  # Socket.IO server root
    http_timeout_seconds: float = 10.0

    # Deploy-hash resolution
    resolve_max_attempts: int = RESOLVE_MAX_ATTEMPTS
    resolve_interval_ms: int = RESOLVE_INTERVAL_MS

    # Settlement polling
    settle_max_attempts: int = SETTLE_MAX_ATTEMPTS
    settle_backoff_floor_ms: int = SETTLE_BACKOFF_FLOOR_MS
    settle_backoff_ceiling_ms: int = SETTLE_BACKOFF_CEILING_MS
    settle_backoff_step_ms: int = SETTLE_BACKOFF_STEP_MS

    # Refunds
    refund_window_ms: int = REFUND_WINDOW_MS

    # Lottery
    ticket_price_cspr: Decimal = DEFAULT_TICKET_PRICE_CSPR
    display_decimal_places: int = DISPLAY_DECIMAL_PLACES

    # Background refresh
    refresh_interval_seconds: float = REFRESH_INTERVAL_SECONDS

    # Explorer
    explorer_url: str = "https://testnet.cspr.live"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_testing(self) -> bool:
        return self.app_env == "testing"

    @property
    def service_root_url(self) -> str:
        """Backend root without the ``/api`` suffix (health lives there)."""
        base = self.api_base_url.rstrip("/")
        if base.endswith("/api"):
            return base[: -len("/api")]
        return base


def get_settings() -> Settings:
    """Return settings instance."""
    return Settings()
