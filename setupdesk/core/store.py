"""SetupStore — latest reconciled state per instrument.

Writers are the scheduler's success/error callbacks only (and, through the
scheduler, the trade lifecycle manager's post-mutation re-fetch).  Reads
always reflect the most recent applied poll.  Operator selection state lives
here too but is never touched by incoming data.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from setupdesk.backend.models import (
    BULLISH,
    DIRECTIONS,
    FLAT_STATUS,
    MultiPairSummary,
    Setup,
    SignalSnapshot,
    TradeStatus,
)

logger = logging.getLogger("setupdesk.store")

SETUP_SCANNING = "setup_scanning"
TRADE_MONITORING = "trade_monitoring"

MULTI_PAIR_SOURCE = "multi-pair"


def setup_source(symbol: str) -> str:
    return f"setup:{symbol}"


def trade_status_source(symbol: str) -> str:
    return f"trade-status:{symbol}"


def signal_source(symbol: str) -> str:
    return f"signal:{symbol}"


class SetupStore:
    """In-memory store for setups, trade status and simple signals."""

    def __init__(self) -> None:
        self._setups: dict[tuple[str, str], Optional[Setup]] = {}
        self._trade_status: dict[str, TradeStatus] = {}
        self._signals: dict[str, SignalSnapshot] = {}
        self._multi_pair: Optional[MultiPairSummary] = None
        self._active_direction: dict[str, str] = {}
        self._errors: dict[str, str] = {}
        self._updated_at: dict[str, str] = {}

    # ── Writers (poll callbacks) ─────────────────────────────────────────

    def apply_analysis(
        self,
        source: str,
        instrument: str,
        setups: dict[str, Optional[Setup]],
    ) -> None:
        """Replace the instrument's setups wholesale.

        A ``None`` entry (backend reported no setup) still replaces the
        previous setup for that direction.
        """
        for direction, setup in setups.items():
            self._setups[(instrument, direction)] = setup
        self._mark_ok(source)

    def apply_trade_status(self, source: str, instrument: str, status: TradeStatus) -> None:
        previous = self._trade_status.get(instrument)
        self._trade_status[instrument] = status
        if previous is not None and previous.position_size != status.position_size:
            logger.info(
                "%s position size %d%% -> %d%%",
                instrument, previous.position_size, status.position_size,
            )
        self._mark_ok(source)

    def apply_signal(self, source: str, snapshot: SignalSnapshot) -> None:
        self._signals[snapshot.pair] = snapshot
        self._mark_ok(source)

    def apply_multi_pair(self, source: str, summary: MultiPairSummary) -> None:
        self._multi_pair = summary
        self._mark_ok(source)

    def record_error(self, source: str, message: str) -> None:
        """Remember the latest failure of *source*; data stays as it was."""
        self._errors[source] = message

    def _mark_ok(self, source: str) -> None:
        self._errors.pop(source, None)
        self._updated_at[source] = datetime.now(timezone.utc).isoformat()

    # ── Operator selection ───────────────────────────────────────────────

    def select_direction(self, instrument: str, direction: str) -> None:
        """Choose which direction's setup is shown in detail."""
        direction = direction.lower()
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")
        self._active_direction[instrument] = direction

    def active_direction(self, instrument: str) -> str:
        return self._active_direction.get(instrument, BULLISH)

    # ── Reads ────────────────────────────────────────────────────────────

    def setup(self, instrument: str, direction: str) -> Optional[Setup]:
        return self._setups.get((instrument, direction))

    def setups(self, instrument: str) -> dict[str, Optional[Setup]]:
        return {d: self._setups.get((instrument, d)) for d in DIRECTIONS}

    def has_analysis(self, instrument: str) -> bool:
        """``True`` once any analysis poll for *instrument* was applied."""
        return any((instrument, d) in self._setups for d in DIRECTIONS)

    def selected_setup(self, instrument: str) -> Optional[Setup]:
        """The active direction's setup, or the other one if it is missing."""
        active = self.active_direction(instrument)
        setup = self.setup(instrument, active)
        if setup is not None:
            return setup
        for direction in DIRECTIONS:
            if direction != active and self.setup(instrument, direction) is not None:
                return self.setup(instrument, direction)
        return None

    def trade_status(self, instrument: str) -> Optional[TradeStatus]:
        """Last known trade status, ``None`` before the first status poll."""
        return self._trade_status.get(instrument)

    def position(self, instrument: str) -> TradeStatus:
        """Last known trade status, flat until the first status poll."""
        return self._trade_status.get(instrument, FLAT_STATUS)

    def signal(self, pair: str) -> Optional[SignalSnapshot]:
        return self._signals.get(pair)

    @property
    def multi_pair(self) -> Optional[MultiPairSummary]:
        return self._multi_pair

    def view_mode(self, instrument: str) -> str:
        """``trade_monitoring`` while in a trade, else ``setup_scanning``."""
        status = self._trade_status.get(instrument)
        if status is not None and status.in_trade:
            return TRADE_MONITORING
        return SETUP_SCANNING

    def show_direction_selector(self, instrument: str) -> bool:
        """Dual selector is shown only while scanning with both setups held."""
        if self.view_mode(instrument) == TRADE_MONITORING:
            return False
        return all(self.setup(instrument, d) is not None for d in DIRECTIONS)

    def error(self, source: str) -> Optional[str]:
        return self._errors.get(source)

    def errors_for(self, *sources: str) -> dict[str, str]:
        """Current error strings for the given sources."""
        return {s: self._errors[s] for s in sources if s in self._errors}

    @property
    def errors(self) -> dict[str, str]:
        return dict(self._errors)

    def updated_at(self, source: str) -> Optional[str]:
        return self._updated_at.get(source)
