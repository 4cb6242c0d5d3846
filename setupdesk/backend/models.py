"""Backend data models — typed representations of the analysis API objects.

Every record here is produced by ``setupdesk.core.normalizer`` from raw JSON
and is immutable once built, except ``PendingEntryForm`` which the operator
edits while the entry confirmation dialog is open.
"""

from dataclasses import dataclass, field
from typing import Optional


# ── Instruments ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Instrument:
    """Static per-instrument metadata."""

    symbol: str
    pip_size: float  # price units per pip
    precision: int  # decimal places shown
    pro_trader_slug: str  # path segment under /api/pro-trader-{slug}

    @property
    def pair_slug(self) -> str:
        """Path segment for the simple-signal endpoints, e.g. ``xauusd``."""
        return self.symbol.lower()


INSTRUMENTS: dict[str, Instrument] = {
    "XAUUSD": Instrument("XAUUSD", 0.10, 2, "gold"),
    "EURUSD": Instrument("EURUSD", 0.0001, 5, "eurusd"),
    "GBPUSD": Instrument("GBPUSD", 0.0001, 5, "gbpusd"),
    "USDJPY": Instrument("USDJPY", 0.01, 3, "usdjpy"),
}


def get_instrument(symbol: str) -> Instrument:
    """Look up an instrument by symbol (case-insensitive).

    Raises:
        KeyError: If the symbol is not in the registry.
    """
    key = symbol.upper()
    if key not in INSTRUMENTS:
        raise KeyError(f"Unknown instrument: {symbol}")
    return INSTRUMENTS[key]


# Minimum total confluence score for a setup to be actionable, whatever its status.
ENTRY_THRESHOLD = 5

BULLISH = "bullish"
BEARISH = "bearish"
DIRECTIONS = (BULLISH, BEARISH)


# ── Setup ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Confluence:
    """One piece of detected evidence with its point score."""

    type: str  # LIQUIDITY_GRAB, FVG, ORDER_BLOCK, ...
    score: int
    description: str = ""


@dataclass(frozen=True)
class WatchItem:
    """A requirement the backend is watching on an in-progress step."""

    key: str
    text: str = ""
    status: str = ""
    current: str = ""
    time_left: Optional[str] = None
    explanation: str = ""


@dataclass(frozen=True)
class EntryOption:
    """An entry-timing option attached to a ready / in-progress step."""

    key: str  # "early_entry", "confirmation_entry", ...
    type: str = ""
    trigger: str = ""
    entry_price: Optional[str] = None
    stop_loss: Optional[str] = None
    position_size: Optional[str] = None
    pros: str = ""
    cons: str = ""
    action: str = ""
    current: Optional[str] = None


@dataclass(frozen=True)
class Step:
    """One step of the backend's setup protocol, rendered as sent."""

    number: int
    title: str
    status: str  # complete | waiting | in_progress | ready
    details: str = ""
    explanation: str = ""
    watching_for: tuple[WatchItem, ...] = ()
    entry_options: tuple[EntryOption, ...] = ()


@dataclass(frozen=True)
class PlanLevel:
    """A stop-loss or take-profit level with its rationale."""

    price: Optional[str]  # absolute ("$2651.20") or pip offset ("$-5.00")
    reason: str = ""
    why: str = ""
    action: str = ""
    rr_ratio: Optional[str] = None


@dataclass(frozen=True)
class TradePlan:
    """Entry, stop and targets for a READY setup."""

    status: Optional[str]
    entry_price: Optional[str]
    entry_method: str = ""
    stop_loss: Optional[PlanLevel] = None
    take_profit_1: Optional[PlanLevel] = None
    take_profit_2: Optional[PlanLevel] = None


@dataclass(frozen=True)
class InvalidationRule:
    """A condition that retires the setup (evaluated by the backend)."""

    condition: str
    reason: str = ""
    action: str = ""


@dataclass(frozen=True)
class LiveCandle:
    """The in-progress bar of the setup timeframe."""

    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    current: Optional[float] = None
    time_remaining: Optional[float] = None  # minutes
    candle_start: Optional[str] = None
    candle_close_expected: Optional[str] = None

    @property
    def progress_pct(self) -> Optional[float]:
        """Elapsed share of a 60-minute bar, clamped to 0–100."""
        if self.time_remaining is None:
            return None
        pct = (60.0 - self.time_remaining) / 60.0 * 100.0
        return max(0.0, min(100.0, pct))


@dataclass(frozen=True)
class Setup:
    """The backend's current directional thesis for one instrument."""

    instrument: str
    direction: str  # bullish | bearish
    status: Optional[str]  # SCANNING | RETEST_WAITING | READY
    pattern_type: Optional[str]
    total_score: int
    confidence: str
    confluences: tuple[Confluence, ...] = ()
    setup_steps: tuple[Step, ...] = ()
    trade_plan: Optional[TradePlan] = None
    invalidation: tuple[InvalidationRule, ...] = ()
    live_candle: Optional[LiveCandle] = None
    current_price: Optional[float] = None
    why_this_setup: dict = field(default_factory=dict)
    last_update: Optional[str] = None

    @property
    def actionable(self) -> bool:
        """``True`` when the score reaches the fixed entry threshold."""
        return self.total_score >= ENTRY_THRESHOLD


# ── Trade status ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Alert:
    """A trade-management alert raised by the backend."""

    title: str
    message: str = ""
    priority: str = "LOW"  # HIGH | MEDIUM | LOW
    action: Optional[str] = None


@dataclass(frozen=True)
class TradeStatus:
    """Authoritative position record mirrored from the backend."""

    in_trade: bool
    position_size: int  # 0, 50 or 100 (percent of target size)
    direction: Optional[str] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None
    current_price: Optional[float] = None
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None
    progress_to_tp1_pct: Optional[float] = None
    time_in_trade: Optional[str] = None
    alerts: tuple[Alert, ...] = ()


FLAT_STATUS = TradeStatus(in_trade=False, position_size=0)


# ── Simple-signal pairs ──────────────────────────────────────────────────


@dataclass(frozen=True)
class SignalSnapshot:
    """Latest analysis of a simple-signal pair (``/api/{pair}/analysis``)."""

    pair: str
    status: str  # signal | no_signal | error
    signal: Optional[str] = None  # BUY | SELL
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    confluence_score: Optional[float] = None
    signal_strength: Optional[str] = None
    risk_reward_ratio: Optional[float] = None
    trade_reasons: tuple[str, ...] = ()
    skip_reason: Optional[str] = None
    skip_context: Optional[str] = None
    current_price: Optional[float] = None
    session: Optional[str] = None
    last_update: Optional[str] = None


@dataclass(frozen=True)
class MultiPairSummary:
    """Cross-pair overview from ``/api/multi-pair/analysis``."""

    timestamp: Optional[str]
    pair_status: dict = field(default_factory=dict)  # pair -> status
    total_signals: int = 0
    active_pairs: tuple[str, ...] = ()


# ── Trade mutations ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class EnterTradeRequest:
    """Body of ``POST /api/pro-trader-{instrument}/enter-trade``."""

    entry_price: float
    position_size: int
    stop_loss: float
    take_profit_1: float
    take_profit_2: Optional[float]
    trade_direction: str


@dataclass(frozen=True)
class ExitTradeRequest:
    """Body of ``POST /api/pro-trader-{instrument}/exit-trade``."""

    exit_price: float
    position_size: int
    reason: str


@dataclass(frozen=True)
class MutationResult:
    """Acknowledgement of an accepted enter/exit request."""

    success: bool
    message: str = ""
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None


@dataclass
class PendingEntryForm:
    """Editable draft of an entry request awaiting operator confirmation."""

    instrument: str
    direction: str
    kind: str  # "early" (FLAT -> 50) or "confirmation" (50 -> 100)
    entry_price: Optional[float]
    position_size: int
    stop_loss: Optional[float]
    take_profit_1: Optional[float]
    take_profit_2: Optional[float]
