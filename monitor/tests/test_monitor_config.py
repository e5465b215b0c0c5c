"""
Unit tests for monitor_config.py environment parsing.
"""

import pytest

from feed_source import FETCH_TIMEOUT, VEHICLE_POSITIONS_URL
from monitor_config import MonitorConfig


class TestDefaults:
    def test_empty_environment(self):
        config = MonitorConfig.from_env({})
        assert config.feed_url == VEHICLE_POSITIONS_URL
        assert config.api_key is None
        assert config.feed_file is None
        assert config.feed_timeout == FETCH_TIMEOUT
        assert config.refresh_interval == 10
        assert config.threshold_km == 0.5
        assert config.port == 8080
        assert config.log_level == "INFO"

    def test_blank_values_use_defaults(self):
        config = MonitorConfig.from_env({"REFRESH_INTERVAL": "", "TFN_API_KEY": "  "})
        assert config.refresh_interval == 10
        assert config.api_key is None

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("BUNCHING_THRESHOLD_KM", "0.3")
        assert MonitorConfig.from_env().threshold_km == 0.3


class TestOverrides:
    def test_all_values(self):
        config = MonitorConfig.from_env({
            "FEED_URL": "http://feed.local/vp",
            "TFN_API_KEY": "secret",
            "FEED_FILE": "samples/vp.pb",
            "FEED_TIMEOUT": "5",
            "REFRESH_INTERVAL": "2.5",
            "BUNCHING_THRESHOLD_KM": "0.25",
            "HEALTH_PORT": "9000",
            "LOG_LEVEL": "debug",
        })
        assert config.feed_url == "http://feed.local/vp"
        assert config.api_key == "secret"
        assert config.feed_file == "samples/vp.pb"
        assert config.feed_timeout == 5.0
        assert config.refresh_interval == 2.5
        assert config.threshold_km == 0.25
        assert config.port == 9000
        assert config.log_level == "DEBUG"

    def test_port_falls_back_to_port_var(self):
        assert MonitorConfig.from_env({"PORT": "3001"}).port == 3001

    def test_health_port_wins_over_port(self):
        assert MonitorConfig.from_env({"PORT": "3001", "HEALTH_PORT": "9000"}).port == 9000

    def test_zero_threshold_allowed(self):
        assert MonitorConfig.from_env({"BUNCHING_THRESHOLD_KM": "0"}).threshold_km == 0.0


class TestValidation:
    @pytest.mark.parametrize("env", [
        {"REFRESH_INTERVAL": "soon"},
        {"REFRESH_INTERVAL": "0"},
        {"REFRESH_INTERVAL": "-10"},
        {"BUNCHING_THRESHOLD_KM": "-0.1"},
        {"BUNCHING_THRESHOLD_KM": "nan"},
        {"BUNCHING_THRESHOLD_KM": "inf"},
        {"FEED_TIMEOUT": "0"},
        {"HEALTH_PORT": "eighty"},
        {"HEALTH_PORT": "70000"},
        {"PORT": "-1"},
    ])
    def test_bad_values_raise(self, env):
        with pytest.raises(ValueError):
            MonitorConfig.from_env(env)

    def test_error_names_variable(self):
        with pytest.raises(ValueError, match="BUNCHING_THRESHOLD_KM"):
            MonitorConfig.from_env({"BUNCHING_THRESHOLD_KM": "close"})

    def test_port_out_of_range_names_variable(self):
        with pytest.raises(ValueError, match="HEALTH_PORT"):
            MonitorConfig.from_env({"HEALTH_PORT": "70000"})

    def test_port_bounds_accepted(self):
        assert MonitorConfig.from_env({"HEALTH_PORT": "0"}).port == 0
        assert MonitorConfig.from_env({"HEALTH_PORT": "65535"}).port == 65535
