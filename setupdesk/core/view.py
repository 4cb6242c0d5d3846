"""View models — JSON-ready dicts built from the store on every render.

This is where pip offsets are turned into absolute prices; nothing upstream
of rendering ever sees converted values.  Steps and confluences keep the
backend's order.
"""

from dataclasses import asdict
from typing import Optional

from setupdesk.backend.models import (
    DIRECTIONS,
    Instrument,
    PlanLevel,
    Setup,
    SignalSnapshot,
    TradeStatus,
    get_instrument,
)
from setupdesk.core.alerts import prioritize_alerts
from setupdesk.core.pricing import extract_anchor, format_price, resolve_price
from setupdesk.core.store import (
    MULTI_PAIR_SOURCE,
    SetupStore,
    setup_source,
    signal_source,
    trade_status_source,
)
from setupdesk.core.trades import TradeLifecycleManager


def _price(value: Optional[float], instrument: Instrument) -> Optional[str]:
    return format_price(value, instrument) if value is not None else None


def _level_view(level: Optional[PlanLevel], setup: Setup, instrument: Instrument) -> Optional[dict]:
    if level is None:
        return None
    return {
        "price": resolve_price(level.price, setup.confluences, instrument),
        "raw_price": level.price,
        "reason": level.reason,
        "why": level.why,
        "action": level.action,
        "rr_ratio": level.rr_ratio,
    }


def setup_view(setup: Setup) -> dict:
    """Render one setup, converting trade-plan offsets to absolute prices."""
    instrument = get_instrument(setup.instrument)
    plan = setup.trade_plan
    plan_view = None
    if plan is not None:
        plan_view = {
            "status": plan.status,
            "entry_price": resolve_price(plan.entry_price, setup.confluences, instrument),
            "raw_entry_price": plan.entry_price,
            "entry_method": plan.entry_method,
            "stop_loss": _level_view(plan.stop_loss, setup, instrument),
            "take_profit_1": _level_view(plan.take_profit_1, setup, instrument),
            "take_profit_2": _level_view(plan.take_profit_2, setup, instrument),
        }

    steps = []
    for step in setup.setup_steps:
        step_dict = asdict(step)
        for option in step_dict["entry_options"]:
            for key in ("entry_price", "stop_loss"):
                option[key] = resolve_price(option[key], setup.confluences, instrument)
        steps.append(step_dict)

    candle = None
    if setup.live_candle is not None:
        candle = asdict(setup.live_candle)
        candle["progress_pct"] = setup.live_candle.progress_pct

    anchor = extract_anchor(setup.confluences)
    return {
        "instrument": setup.instrument,
        "direction": setup.direction,
        "status": setup.status,
        "pattern_type": setup.pattern_type,
        "total_score": setup.total_score,
        "confidence": setup.confidence,
        "actionable": setup.actionable,
        "current_price": _price(setup.current_price, instrument),
        "anchor_price": _price(anchor, instrument),
        "confluences": [asdict(c) for c in setup.confluences],
        "setup_steps": steps,
        "trade_plan": plan_view,
        "invalidation": [asdict(r) for r in setup.invalidation],
        "live_candle": candle,
        "why_this_setup": setup.why_this_setup,
        "last_update": setup.last_update,
    }


def setup_summary(setup: Optional[Setup]) -> Optional[dict]:
    """Compact per-direction card used by the dual selector."""
    if setup is None:
        return None
    return {
        "status": setup.status,
        "pattern_type": setup.pattern_type,
        "total_score": setup.total_score,
        "confidence": setup.confidence,
        "actionable": setup.actionable,
    }


def trade_view(status: TradeStatus, instrument: Instrument) -> dict:
    """Render a trade status with alerts in display order."""
    return {
        "in_trade": status.in_trade,
        "position_size": status.position_size,
        "direction": status.direction,
        "entry_price": _price(status.entry_price, instrument),
        "stop_loss": _price(status.stop_loss, instrument),
        "take_profit_1": _price(status.take_profit_1, instrument),
        "take_profit_2": _price(status.take_profit_2, instrument),
        "current_price": _price(status.current_price, instrument),
        "pnl": status.pnl,
        "pnl_pct": status.pnl_pct,
        "progress_to_tp1_pct": status.progress_to_tp1_pct,
        "time_in_trade": status.time_in_trade,
        "alerts": [asdict(a) for a in prioritize_alerts(status.alerts)],
    }


def signal_view(snapshot: SignalSnapshot) -> dict:
    """Render a simple-signal snapshot with prices at instrument precision."""
    instrument = get_instrument(snapshot.pair)
    view = asdict(snapshot)
    for key in ("entry_price", "stop_loss", "take_profit", "current_price"):
        view[key] = _price(getattr(snapshot, key), instrument)
    return view


def instrument_view(
    store: SetupStore,
    lifecycle: TradeLifecycleManager,
    symbol: str,
) -> dict:
    """Full detail view for one pro-trader instrument."""
    instrument = get_instrument(symbol)
    mode = store.view_mode(symbol)
    selected = store.selected_setup(symbol)
    status = store.trade_status(symbol)
    form = lifecycle.entry_form(symbol)

    return {
        "instrument": symbol,
        "loading": not store.has_analysis(symbol),
        "view_mode": mode,
        "active_direction": store.active_direction(symbol),
        "show_direction_selector": store.show_direction_selector(symbol),
        "directions": {d: setup_summary(store.setup(symbol, d)) for d in DIRECTIONS},
        "setup": setup_view(selected) if selected is not None else None,
        "trade": trade_view(status, instrument) if status is not None else None,
        "position_state": lifecycle.position_state(symbol),
        "actions": lifecycle.available_actions(symbol),
        "action_pending": lifecycle.is_pending(symbol),
        "entry_form": asdict(form) if form is not None else None,
        "errors": store.errors_for(setup_source(symbol), trade_status_source(symbol)),
    }


def overview(
    store: SetupStore,
    pro_trader_symbols: tuple[str, ...],
    signal_symbols: tuple[str, ...],
) -> dict:
    """Home-page overview across all configured instruments."""
    pro_trader = {}
    for symbol in pro_trader_symbols:
        selected = store.selected_setup(symbol)
        pro_trader[symbol] = {
            "view_mode": store.view_mode(symbol),
            "position_size": store.position(symbol).position_size,
            "setup": setup_summary(selected),
            "errors": store.errors_for(setup_source(symbol), trade_status_source(symbol)),
        }

    signals = {}
    for symbol in signal_symbols:
        snapshot = store.signal(symbol)
        signals[symbol] = {
            "signal": signal_view(snapshot) if snapshot is not None else None,
            "errors": store.errors_for(signal_source(symbol)),
        }

    summary = store.multi_pair
    return {
        "pro_trader": pro_trader,
        "signals": signals,
        "summary": asdict(summary) if summary is not None else None,
        "summary_error": store.error(MULTI_PAIR_SOURCE),
    }
