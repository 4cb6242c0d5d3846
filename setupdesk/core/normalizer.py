"""Setup normalizer — raw backend JSON into typed records.

Tolerates missing optional fields (absent stays ``None``), never reorders or
filters confluences and setup steps, and derives the confidence label from
the total score.  A payload that is not a JSON object raises ``ShapeError``.
"""

import logging
from typing import Any, Optional

from setupdesk.backend.models import (
    BEARISH,
    BULLISH,
    DIRECTIONS,
    Alert,
    Confluence,
    EntryOption,
    InvalidationRule,
    LiveCandle,
    MultiPairSummary,
    PlanLevel,
    Setup,
    SignalSnapshot,
    Step,
    TradePlan,
    TradeStatus,
    WatchItem,
)
from setupdesk.core.pricing import parse_price
from setupdesk.errors import ShapeError

logger = logging.getLogger("setupdesk.normalizer")

SETUP_STATUSES = ("SCANNING", "RETEST_WAITING", "READY")
POSITION_SIZES = (0, 50, 100)

# (floor, label); the highest matching band wins.
_CONFIDENCE_BANDS = (
    (10, "EXTREME"),
    (7, "HIGH"),
    (5, "MODERATE"),
)

_NO_SETUP_STATUSES = {"error", "no_setup", "no_signal"}
_PLAN_NOT_READY = "not ready yet"


def confidence_for_score(total_score: int) -> str:
    """Map a total confluence score to its display band.

    ``>=10`` EXTREME, ``7–9`` HIGH, ``5–6`` MODERATE, below 5 LOW.
    """
    for floor, label in _CONFIDENCE_BANDS:
        if total_score >= floor:
            return label
    return "LOW"


# ── Field helpers ────────────────────────────────────────────────────────


def _require_object(raw: Any, what: str) -> dict:
    if not isinstance(raw, dict):
        raise ShapeError(f"{what} payload must be a JSON object, got {type(raw).__name__}")
    return raw


def _float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_price(value)
    return None


def _int(value: Any) -> Optional[int]:
    number = _float(value)
    return None if number is None else int(round(number))


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _price_text(value: Any) -> Optional[str]:
    """Keep prices as the backend's text; numbers become plain strings."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"${value}"
    return str(value)


def _setup_status(raw: dict) -> Optional[str]:
    for key in ("setup_status", "status"):
        value = raw.get(key)
        if not isinstance(value, str):
            continue
        token = value.strip().upper().replace(" ", "_").replace("-", "_")
        if token in SETUP_STATUSES:
            return token
    return None


# ── Setup parts ──────────────────────────────────────────────────────────


def _confluence(raw: Any) -> Confluence:
    raw = _require_object(raw, "confluence")
    return Confluence(
        type=str(raw.get("type", "")),
        score=_int(raw.get("score")) or 0,
        description=str(raw.get("description") or ""),
    )


def _watch_items(raw: Any) -> tuple[WatchItem, ...]:
    if isinstance(raw, dict):
        pairs = list(raw.items())
    elif isinstance(raw, list):
        pairs = [(str(i), item) for i, item in enumerate(raw)]
    else:
        return ()
    items = []
    for key, item in pairs:
        if not isinstance(item, dict):
            continue
        items.append(
            WatchItem(
                key=key,
                text=str(item.get("text") or ""),
                status=str(item.get("status") or ""),
                current=str(item.get("current") or ""),
                time_left=_text(item.get("time_left")),
                explanation=str(item.get("explanation") or ""),
            )
        )
    return tuple(items)


def _entry_options(raw: Any) -> tuple[EntryOption, ...]:
    if isinstance(raw, dict):
        pairs = list(raw.items())
    elif isinstance(raw, list):
        pairs = [(str(i), item) for i, item in enumerate(raw)]
    else:
        return ()
    options = []
    for key, item in pairs:
        # dict-shaped options also carry free-text keys such as "recommended"
        if not isinstance(item, dict):
            continue
        options.append(
            EntryOption(
                key=key,
                type=str(item.get("type") or key),
                trigger=str(item.get("trigger") or ""),
                entry_price=_price_text(item.get("entry_price")),
                stop_loss=_price_text(item.get("stop_loss")),
                position_size=_text(item.get("position_size")),
                pros=str(item.get("pros") or ""),
                cons=str(item.get("cons") or ""),
                action=str(item.get("action") or ""),
                current=_text(item.get("current") or item.get("current_count")),
            )
        )
    return tuple(options)


def _step(raw: Any, index: int) -> Step:
    raw = _require_object(raw, "setup step")
    number = _int(raw.get("step"))
    return Step(
        number=number if number is not None else index + 1,
        title=str(raw.get("title") or ""),
        status=str(raw.get("status") or ""),
        details=str(raw.get("details") or ""),
        explanation=str(raw.get("explanation") or ""),
        watching_for=_watch_items(raw.get("watching_for")),
        entry_options=_entry_options(raw.get("entry_options")),
    )


def _plan_level(raw: Any) -> Optional[PlanLevel]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        return PlanLevel(price=_price_text(raw))
    return PlanLevel(
        price=_price_text(raw.get("price")),
        reason=str(raw.get("reason") or ""),
        why=str(raw.get("why") or ""),
        action=str(raw.get("action") or ""),
        rr_ratio=_text(raw.get("rr_ratio")),
    )


def _trade_plan(raw: Any) -> Optional[TradePlan]:
    if not isinstance(raw, dict) or not raw:
        return None
    status = _text(raw.get("status"))
    if status is not None and status.strip().lower() == _PLAN_NOT_READY:
        return None
    return TradePlan(
        status=status,
        entry_price=_price_text(raw.get("entry_price")),
        entry_method=str(raw.get("entry_method") or ""),
        stop_loss=_plan_level(raw.get("stop_loss")),
        take_profit_1=_plan_level(raw.get("take_profit_1")),
        take_profit_2=_plan_level(raw.get("take_profit_2")),
    )


def _invalidation(raw: Any) -> tuple[InvalidationRule, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(
        InvalidationRule(
            condition=str(item.get("condition") or ""),
            reason=str(item.get("reason") or ""),
            action=str(item.get("action") or ""),
        )
        for item in raw
        if isinstance(item, dict)
    )


def _live_candle(raw: Any) -> Optional[LiveCandle]:
    if not isinstance(raw, dict) or not raw:
        return None
    return LiveCandle(
        open=_float(raw.get("open")),
        high=_float(raw.get("high")),
        low=_float(raw.get("low")),
        current=_float(raw.get("current")),
        time_remaining=_float(raw.get("time_remaining")),
        candle_start=_text(raw.get("candle_start")),
        candle_close_expected=_text(raw.get("candle_close_expected")),
    )


def _why_this_setup(raw: Any) -> dict:
    """Flatten the per-timeframe context into ``{timeframe: [points]}``."""
    if not isinstance(raw, dict):
        return {}
    context: dict = {}
    for timeframe, block in raw.items():
        if not isinstance(block, dict):
            continue
        if timeframe == "session":
            parts = [
                str(block.get(k))
                for k in ("current_session", "strength", "explanation")
                if block.get(k)
            ]
            context[timeframe] = parts
        else:
            points = block.get("points")
            context[timeframe] = [str(p) for p in points] if isinstance(points, list) else []
    return context


# ── Public API ───────────────────────────────────────────────────────────


def normalize_setup(raw: Any, instrument: str, direction: str) -> Optional[Setup]:
    """Build a ``Setup`` from one directional analysis payload.

    Returns:
        ``None`` when the payload represents "no setup" (empty, or an
        ``error`` / ``no_setup`` status).

    Raises:
        ShapeError: If *raw* or one of its confluences / steps is not a
            JSON object.
    """
    if raw is None:
        return None
    raw = _require_object(raw, "setup")
    if not raw:
        return None
    top_status = raw.get("status")
    if isinstance(top_status, str) and top_status.lower() in _NO_SETUP_STATUSES:
        logger.debug("%s %s: no setup (%s)", instrument, direction, top_status)
        return None

    confluences = tuple(_confluence(c) for c in raw.get("confluences") or [])
    steps = tuple(_step(s, i) for i, s in enumerate(raw.get("setup_steps") or []))

    total_score = _int(raw.get("total_score"))
    if total_score is None:
        total_score = sum(c.score for c in confluences)

    return Setup(
        instrument=instrument,
        direction=direction,
        status=_setup_status(raw),
        pattern_type=_text(raw.get("pattern_type")),
        total_score=total_score,
        confidence=confidence_for_score(total_score),
        confluences=confluences,
        setup_steps=steps,
        trade_plan=_trade_plan(raw.get("trade_plan")),
        invalidation=_invalidation(raw.get("invalidation")),
        live_candle=_live_candle(raw.get("live_candle")),
        current_price=_float(raw.get("current_price")),
        why_this_setup=_why_this_setup(raw.get("why_this_setup")),
        last_update=_text(raw.get("last_update")),
    )


def normalize_analysis(raw: Any, instrument: str) -> dict[str, Optional[Setup]]:
    """Normalize a pro-trader analysis payload into both directions.

    Accepts either ``{"bullish": {...}, "bearish": {...}}`` or a single
    setup object (direction from its ``direction`` field, default bullish).
    The direction not covered by the payload maps to ``None``.
    """
    raw = _require_object(raw, "analysis")
    if BULLISH in raw or BEARISH in raw:
        return {
            d: normalize_setup(raw.get(d), instrument, d) for d in DIRECTIONS
        }

    direction = str(raw.get("direction") or BULLISH).lower()
    if direction not in DIRECTIONS:
        direction = BULLISH
    result: dict[str, Optional[Setup]] = {d: None for d in DIRECTIONS}
    result[direction] = normalize_setup(raw, instrument, direction)
    return result


def _alert(raw: Any) -> Alert:
    raw = _require_object(raw, "alert")
    return Alert(
        title=str(raw.get("title") or ""),
        message=str(raw.get("message") or ""),
        priority=str(raw.get("priority") or "LOW").upper(),
        action=_text(raw.get("action")),
    )


def normalize_trade_status(raw: Any) -> TradeStatus:
    """Build a ``TradeStatus`` and enforce ``position_size > 0 ⇔ in_trade``.

    The position size is authoritative: a nonzero size with
    ``in_trade: false`` is read as in trade (and logged).

    Raises:
        ShapeError: On a position size outside {0, 50, 100}, or a record
            that claims to be in trade without any position size.
    """
    raw = _require_object(raw, "trade status")
    in_trade = bool(raw.get("in_trade", False))
    size = _int(raw.get("position_size"))

    if size is None:
        if in_trade:
            raise ShapeError("trade status reports in_trade without a position_size")
        size = 0
    if size not in POSITION_SIZES:
        raise ShapeError(f"position_size must be one of {POSITION_SIZES}, got {size}")
    if (size > 0) != in_trade:
        logger.warning(
            "Trade status disagrees with itself (in_trade=%s, position_size=%d); "
            "trusting position_size.",
            in_trade, size,
        )
        in_trade = size > 0

    progress = raw.get("progress_to_tp1_pct", raw.get("progress_to_tp1"))
    return TradeStatus(
        in_trade=in_trade,
        position_size=size,
        direction=_text(raw.get("direction") or raw.get("trade_direction")),
        entry_price=_float(raw.get("entry_price")),
        stop_loss=_float(raw.get("stop_loss")),
        take_profit_1=_float(raw.get("take_profit_1")),
        take_profit_2=_float(raw.get("take_profit_2")),
        current_price=_float(raw.get("current_price")),
        pnl=_float(raw.get("pnl")),
        pnl_pct=_float(raw.get("pnl_pct")),
        progress_to_tp1_pct=_float(progress),
        time_in_trade=_text(raw.get("time_in_trade")),
        alerts=tuple(_alert(a) for a in raw.get("alerts") or []),
    )


def normalize_signal(raw: Any, pair: str) -> SignalSnapshot:
    """Build a ``SignalSnapshot`` from ``{status, data: {...}}``.

    The snapshot is keyed by *pair*, the symbol that was polled; the
    backend's own ``pair`` spelling (e.g. ``"GBP/USD"``) is ignored.
    """
    raw = _require_object(raw, "signal")
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    signal = data.get("signal") if isinstance(data.get("signal"), dict) else {}
    skip = data.get("skip_info") if isinstance(data.get("skip_info"), dict) else {}
    market = data.get("market_data") if isinstance(data.get("market_data"), dict) else {}
    session = market.get("session") if isinstance(market.get("session"), dict) else {}
    reasons = signal.get("trade_reasons")

    return SignalSnapshot(
        pair=pair.upper(),
        status=str(raw.get("status") or "error"),
        signal=_text(signal.get("signal")),
        entry_price=_float(signal.get("entry_price")),
        stop_loss=_float(signal.get("stop_loss")),
        take_profit=_float(signal.get("take_profit")),
        confluence_score=_float(signal.get("confluence_score")),
        signal_strength=_text(signal.get("signal_strength")),
        risk_reward_ratio=_float(signal.get("risk_reward_ratio")),
        trade_reasons=tuple(str(r) for r in reasons) if isinstance(reasons, list) else (),
        skip_reason=_text(skip.get("skip_reason")),
        skip_context=_text(skip.get("context")),
        current_price=_float(market.get("current_price")),
        session=_text(session.get("current_session")),
        last_update=_text(data.get("last_update")),
    )


def normalize_multi_pair(raw: Any) -> MultiPairSummary:
    """Build the cross-pair overview from ``/api/multi-pair/analysis``."""
    raw = _require_object(raw, "multi-pair")
    pairs = raw.get("pairs") if isinstance(raw.get("pairs"), dict) else {}
    summary = raw.get("summary") if isinstance(raw.get("summary"), dict) else {}
    active = summary.get("active_pairs")
    return MultiPairSummary(
        timestamp=_text(raw.get("timestamp")),
        pair_status={
            str(p).upper(): (v.get("status") if isinstance(v, dict) else None)
            for p, v in pairs.items()
        },
        total_signals=_int(summary.get("total_signals")) or 0,
        active_pairs=tuple(str(p) for p in active) if isinstance(active, list) else (),
    )
