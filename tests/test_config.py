"""Tests for setupdesk.config — environment variable loading and validation."""

import pytest

from setupdesk.config import Config, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure SetupDesk env vars are cleared between tests."""
    for var in [
        "BACKEND_URL",
        "PRO_TRADER_INSTRUMENTS",
        "SIGNAL_PAIRS",
        "SETUP_POLL_SECONDS",
        "TRADE_STATUS_POLL_SECONDS",
        "SIGNAL_POLL_SECONDS",
        "LOG_LEVEL",
        "DASHBOARD_PORT",
    ]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def no_env_file(tmp_path):
    return str(tmp_path / "missing.env")


class TestLoadConfig:
    def test_defaults(self, no_env_file):
        cfg = load_config(no_env_file)
        assert cfg.backend_url == "http://localhost:8002"
        assert cfg.pro_trader_instruments == ("XAUUSD",)
        assert cfg.signal_pairs == ("XAUUSD", "GBPUSD")
        assert cfg.setup_poll_seconds == 60
        assert cfg.trade_status_poll_seconds == 60
        assert cfg.signal_poll_seconds == 180
        assert cfg.log_level == "INFO"
        assert cfg.dashboard_port == 8080

    def test_overrides(self, monkeypatch, no_env_file):
        monkeypatch.setenv("BACKEND_URL", "https://signals.example.com/")
        monkeypatch.setenv("SIGNAL_PAIRS", " eurusd , usdjpy ")
        monkeypatch.setenv("SIGNAL_POLL_SECONDS", "300")
        cfg = load_config(no_env_file)
        assert cfg.api_base_url == "https://signals.example.com"
        assert cfg.signal_pairs == ("EURUSD", "USDJPY")
        assert cfg.signal_poll_seconds == 300

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("PRO_TRADER_INSTRUMENTS=XAUUSD,EURUSD\nLOG_LEVEL=DEBUG\n")
        cfg = load_config(str(env_file))
        assert cfg.pro_trader_instruments == ("XAUUSD", "EURUSD")
        assert cfg.log_level == "DEBUG"

    def test_unknown_instrument(self, monkeypatch, no_env_file):
        monkeypatch.setenv("SIGNAL_PAIRS", "XAUUSD,BTCUSD")
        with pytest.raises(ValueError, match="SIGNAL_PAIRS"):
            load_config(no_env_file)

    def test_non_positive_interval(self, monkeypatch, no_env_file):
        monkeypatch.setenv("SETUP_POLL_SECONDS", "0")
        with pytest.raises(ValueError, match="SETUP_POLL_SECONDS"):
            load_config(no_env_file)

    def test_empty_backend_url(self, monkeypatch, no_env_file):
        monkeypatch.setenv("BACKEND_URL", "  ")
        with pytest.raises(ValueError, match="BACKEND_URL"):
            load_config(no_env_file)


def test_config_is_frozen(make_config):
    cfg = make_config()
    assert isinstance(cfg, Config)
    with pytest.raises(AttributeError):
        cfg.backend_url = "http://elsewhere"
