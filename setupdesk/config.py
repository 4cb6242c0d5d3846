"""SetupDesk — application configuration.

Loads .env variables into a typed config object.
Validates instrument lists and polling intervals on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from setupdesk.backend.models import INSTRUMENTS


_DEFAULT_BACKEND_URL = "http://localhost:8002"


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    backend_url: str
    pro_trader_instruments: tuple[str, ...]
    signal_pairs: tuple[str, ...]
    setup_poll_seconds: int
    trade_status_poll_seconds: int
    signal_poll_seconds: int
    log_level: str
    dashboard_port: int

    @property
    def api_base_url(self) -> str:
        """Return the backend base URL without a trailing slash."""
        return self.backend_url.rstrip("/")


def _symbols(var: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(var, default)
    symbols = tuple(s.strip().upper() for s in raw.split(",") if s.strip())
    unknown = [s for s in symbols if s not in INSTRUMENTS]
    if unknown:
        raise ValueError(
            f"{var} names unknown instrument(s): {', '.join(unknown)}"
        )
    return symbols


def _interval(var: str, default: str) -> int:
    value = int(os.environ.get(var, default))
    if value <= 0:
        raise ValueError(f"{var} must be a positive number of seconds, got {value}")
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value is empty, names an unknown instrument, or is not a positive
    interval.
    """
    load_dotenv(dotenv_path=env_path)

    backend_url = os.environ.get("BACKEND_URL", _DEFAULT_BACKEND_URL).strip()
    if not backend_url:
        raise ValueError("Missing required environment variable(s): BACKEND_URL")

    return Config(
        backend_url=backend_url,
        pro_trader_instruments=_symbols("PRO_TRADER_INSTRUMENTS", "XAUUSD"),
        signal_pairs=_symbols("SIGNAL_PAIRS", "XAUUSD,GBPUSD"),
        setup_poll_seconds=_interval("SETUP_POLL_SECONDS", "60"),
        trade_status_poll_seconds=_interval("TRADE_STATUS_POLL_SECONDS", "60"),
        signal_poll_seconds=_interval("SIGNAL_POLL_SECONDS", "180"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        dashboard_port=int(os.environ.get("DASHBOARD_PORT", "8080")),
    )
