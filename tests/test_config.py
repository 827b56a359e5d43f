"""Tests for Settings configuration model."""

from pathlib import Path

import pytest

from src.config import Settings, require_settings
from src.errors import ConfigurationError, ExternalFetchError


class TestDefaults:
    def test_forecast_and_history_limits(self):
        s = Settings()
        assert s.max_forecast_days == 5
        assert s.history_window == 6
        assert s.context_lookback_messages == 6

    def test_validation_thresholds(self):
        s = Settings()
        assert s.validator_confidence_cap == 65
        assert s.validator_fix_ceiling == 65
        assert s.regenerate_confidence_threshold == 70

    def test_server_defaults(self):
        s = Settings()
        assert s.port == 3000
        assert s.static_dir == Path("static")

    def test_weather_defaults(self):
        s = Settings()
        assert s.openweather_base_url == "https://api.openweathermap.org/data/2.5"
        assert s.weather_timeout_seconds == 10.0


class TestRequireSettings:
    def test_missing_keys_are_listed(self):
        s = Settings(anthropic_api_key="", openweather_api_key="")
        assert s.missing_required() == ["ANTHROPIC_API_KEY", "OPENWEATHER_API_KEY"]
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            require_settings(s)

    def test_blank_values_count_as_missing(self):
        s = Settings(anthropic_api_key="  ", openweather_api_key="key")
        assert s.missing_required() == ["ANTHROPIC_API_KEY"]

    def test_complete_configuration_passes(self):
        s = Settings(anthropic_api_key="sk-test", openweather_api_key="ow-test")
        require_settings(s)


class TestErrors:
    def test_external_fetch_error_with_status(self):
        err = ExternalFetchError("OpenWeather", "city not found", status=404)
        assert str(err) == "OpenWeather returned 404: city not found"
        assert err.status == 404

    def test_external_fetch_error_without_status(self):
        err = ExternalFetchError("OpenWeather", "timed out")
        assert str(err) == "OpenWeather failed: timed out"
        assert err.status is None
