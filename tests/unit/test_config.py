"""Tests for engine configuration loading."""

from __future__ import annotations

import os
from decimal import Decimal
from unittest.mock import patch

from drawsync.core.config import Settings, get_settings


class TestSettingsDefaults:
    """Settings should load with sane defaults (no .env required)."""

    def test_settings_loads_without_env_file(self):
        with patch.dict(os.environ, {}, clear=True):
            s = Settings(_env_file=None)
        assert s.app_env == "development"
        assert s.api_base_url == "http://localhost:3001/api"
        assert s.push_url == "http://localhost:3001"

    def test_default_env_is_development(self):
        s = Settings(_env_file=None)
        assert s.is_development is True
        assert s.is_production is False
        assert s.is_testing is False

    def test_polling_defaults(self):
        s = Settings(_env_file=None)
        assert s.resolve_max_attempts == 15
        assert s.resolve_interval_ms == 2000
        assert s.settle_max_attempts == 20
        assert (s.settle_backoff_floor_ms, s.settle_backoff_ceiling_ms, s.settle_backoff_step_ms) == (
            3000,
            6000,
            500,
        )

    def test_refund_and_price_defaults(self):
        s = Settings(_env_file=None)
        assert s.refund_window_ms == 60_000
        assert s.ticket_price_cspr == Decimal("50")


class TestSettingsFromEnv:
    def test_override_via_env(self):
        overrides = {
            "APP_ENV": "production",
            "API_BASE_URL": "https://lottery.example/api/",
            "TICKET_PRICE_CSPR": "12.5",
            "SETTLE_MAX_ATTEMPTS": "5",
        }
        with patch.dict(os.environ, overrides, clear=False):
            s = Settings(_env_file=None)
        assert s.is_production is True
        assert s.ticket_price_cspr == Decimal("12.5")
        assert s.settle_max_attempts == 5
        assert s.service_root_url == "https://lottery.example"

    def test_root_url_without_api_suffix(self):
        s = Settings(_env_file=None, api_base_url="https://lottery.example")
        assert s.service_root_url == "https://lottery.example"

    def test_get_settings_returns_settings(self):
        assert isinstance(get_settings(), Settings)
