"""DeskManager — wires client, store, scheduler and trade lifecycle.

One polling source is registered per configured endpoint: the pro-trader
analysis and trade status of every full-setup instrument, the analysis of
every simple-signal pair, and the cross-pair summary.  All sources run on
one ``PollingScheduler`` and write only through their own callbacks.
"""

import logging
from typing import Optional

from setupdesk.backend.client import BackendClient
from setupdesk.backend.models import SignalSnapshot, get_instrument
from setupdesk.config import Config
from setupdesk.core.scheduler import PollingScheduler
from setupdesk.core.store import (
    MULTI_PAIR_SOURCE,
    SetupStore,
    setup_source,
    signal_source,
    trade_status_source,
)
from setupdesk.core.trades import TradeLifecycleManager

logger = logging.getLogger("setupdesk.desk_manager")


class DeskManager:
    """Lifecycle owner for every polling source of the dashboard.

    Args:
        config:    Global ``Config`` loaded from ``.env``.
        client:    Shared ``BackendClient`` (or a mock in tests).
        scheduler: Optional scheduler; a default one is created otherwise.
    """

    def __init__(
        self,
        config: Config,
        client: BackendClient,
        scheduler: Optional[PollingScheduler] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._scheduler = scheduler or PollingScheduler()
        self._store = SetupStore()
        self._lifecycle = TradeLifecycleManager(
            client=client,
            store=self._store,
            refresh=self.refresh_trade_status,
        )
        self._registered = False

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def config(self) -> Config:
        return self._config

    @property
    def store(self) -> SetupStore:
        return self._store

    @property
    def scheduler(self) -> PollingScheduler:
        return self._scheduler

    @property
    def lifecycle(self) -> TradeLifecycleManager:
        return self._lifecycle

    @property
    def pro_trader_symbols(self) -> tuple[str, ...]:
        return self._config.pro_trader_instruments

    @property
    def signal_symbols(self) -> tuple[str, ...]:
        return self._config.signal_pairs

    def register_sources(self) -> None:
        """Register every polling source.  Call once before :meth:`start`."""
        if self._registered:
            return
        cfg = self._config

        for symbol in cfg.pro_trader_instruments:
            instrument = get_instrument(symbol)
            self._register(
                setup_source(symbol),
                lambda i=instrument: self._client.fetch_analysis(i),
                cfg.setup_poll_seconds,
                lambda setups, s=symbol: self._store.apply_analysis(setup_source(s), s, setups),
            )
            self._register(
                trade_status_source(symbol),
                lambda i=instrument: self._client.fetch_trade_status(i),
                cfg.trade_status_poll_seconds,
                lambda status, s=symbol: self._store.apply_trade_status(
                    trade_status_source(s), s, status,
                ),
            )

        for symbol in cfg.signal_pairs:
            instrument = get_instrument(symbol)
            self._register(
                signal_source(symbol),
                lambda i=instrument: self._client.fetch_signal(i),
                cfg.signal_poll_seconds,
                lambda snap, s=symbol: self._store.apply_signal(signal_source(s), snap),
            )

        if cfg.signal_pairs:
            self._register(
                MULTI_PAIR_SOURCE,
                self._client.fetch_multi_pair,
                cfg.signal_poll_seconds,
                lambda summary: self._store.apply_multi_pair(MULTI_PAIR_SOURCE, summary),
            )

        self._registered = True

    def _register(self, name, fetch, interval, on_success) -> None:
        self._scheduler.register(
            name,
            fetch,
            interval,
            on_success,
            on_error=lambda message, n=name: self._store.record_error(n, message),
        )
        logger.info("Registered source '%s' (%ds).", name, interval)

    def start(self) -> None:
        """Register sources if needed and start polling."""
        self.register_sources()
        self._scheduler.start()

    def stop(self) -> None:
        """Stop polling; in-flight results are discarded on arrival."""
        self._scheduler.stop()

    # ── Refreshes ────────────────────────────────────────────────────────

    async def refresh_trade_status(self, symbol: str) -> None:
        """Re-fetch *symbol*'s trade status through the scheduler."""
        await self._scheduler.refresh_now(trade_status_source(symbol))

    async def refresh(self, symbol: str) -> None:
        """Manual refresh of everything polled for *symbol*.

        Simple-signal pairs are force-scanned through ``/scan``; the result
        is applied like a poll result.
        """
        symbol = symbol.upper()
        if symbol in self.pro_trader_symbols:
            await self._scheduler.refresh_now(setup_source(symbol))
            await self._scheduler.refresh_now(trade_status_source(symbol))
        if symbol in self.signal_symbols:
            await self.force_scan(symbol)

    async def force_scan(self, symbol: str) -> Optional[SignalSnapshot]:
        """Ask the backend to re-scan a simple-signal pair.

        Returns:
            The stored snapshot after the scan, or ``None`` if the scan
            failed (the error is recorded on the pair's source).
        """
        instrument = get_instrument(symbol)
        applied = await self._scheduler.refresh_now(
            signal_source(instrument.symbol),
            fetch=lambda: self._client.scan_signal(instrument),
        )
        return self._store.signal(instrument.symbol) if applied else None

    def get_status(self) -> dict:
        """Per-source polling counters and current error strings."""
        return {
            "running": self._scheduler.running,
            "sources": {
                name: {
                    **self._scheduler.stats(name),
                    "error": self._store.error(name),
                    "updated_at": self._store.updated_at(name),
                }
                for name in self._scheduler.source_names
            },
        }
