"""Shared payload builders for the SetupDesk tests.

Payload shapes follow what the analysis backend sends for
``/api/pro-trader-gold/analysis`` and ``/trade-status``.
"""

import copy

import pytest

from setupdesk.config import Config


def _gold_setup() -> dict:
    return {
        "status": "success",
        "pair": "XAUUSD",
        "current_price": 2652.35,
        "setup_status": "READY",
        "pattern_type": "LIQUIDITY_GRAB_REVERSAL",
        "confluences": [
            {
                "type": "LIQUIDITY_GRAB",
                "score": 4,
                "description": "LIVE Liquidity Grab at $2648.50! Price spiking to $2643.10",
            },
            {"type": "ORDER_BLOCK", "score": 2, "description": "Order Block at $2645.00-$2649.00"},
            {"type": "FVG", "score": 1, "description": "Price inside H1 FVG"},
        ],
        "total_score": 7,
        "setup_steps": [
            {"step": 1, "title": "H4 support identified", "status": "complete",
             "details": "Support at $2648.50", "explanation": "Institutions defend this level"},
            {"step": 2, "title": "Liquidity grab", "status": "complete",
             "details": "Stops swept", "explanation": "Weak longs flushed"},
            {
                "step": 3,
                "title": "Entry window",
                "status": "ready",
                "details": "Rejection candle forming",
                "explanation": "Wait for the close or enter early",
                "entry_options": {
                    "early_entry": {
                        "type": "Early entry (50%)",
                        "trigger": "Wick rejection confirmed",
                        "entry_price": "$2652.35 (market order)",
                        "stop_loss": "$-60.00",
                        "position_size": "50% of planned trade",
                        "action": "Enter 50% position NOW if confident",
                    },
                    "confirmation_entry": {
                        "type": "Confirmation entry",
                        "trigger": "Candle closes 5+ pips above support",
                        "entry_price": "$40.00",
                        "position_size": "Add remaining 50%",
                    },
                    "recommended": "Start with 50% early entry, add 50% on confirmation.",
                },
            },
            {"step": 4, "title": "Manage trade", "status": "waiting"},
        ],
        "trade_plan": {
            "status": "Ready",
            "entry_price": "$20.00",
            "entry_method": "Limit order 2 pips above H4 support",
            "stop_loss": {"price": "$-60.00", "reason": "Below grab low", "why": "Stops already swept"},
            "take_profit_1": {"price": "$2670.00", "rr_ratio": "1:2", "action": "Close 50%",
                              "why": "Previous H1 high"},
            "take_profit_2": {"price": "$300.00", "rr_ratio": "1:4", "action": "Close rest",
                              "why": "H4 resistance"},
        },
        "invalidation": [
            {"condition": "H1 closes below $2643.10", "reason": "Grab failed", "action": "Cancel setup"},
        ],
        "live_candle": {
            "open": 2649.0, "high": 2653.1, "low": 2643.1, "current": 2652.35,
            "time_remaining": 15, "candle_start": "14:00", "candle_close_expected": "15:00",
        },
        "why_this_setup": {
            "daily": {"points": ["Above 200 EMA", "Higher highs"]},
            "h4": {"points": ["Support at $2648.50"]},
            "session": {"current_session": "London", "strength": "High",
                        "explanation": "Peak liquidity"},
        },
        "last_update": "2026-10-19T14:45:00+00:00",
    }


@pytest.fixture
def gold_setup_payload():
    """Factory for a READY bullish gold setup; keyword overrides replace keys."""

    def _build(**overrides) -> dict:
        payload = copy.deepcopy(_gold_setup())
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def trade_status_payload():
    """Factory for a ``trade-status`` payload at the given position size."""

    def _build(position_size: int = 0, **overrides) -> dict:
        payload = {
            "in_trade": position_size > 0,
            "position_size": position_size,
            "direction": "bullish" if position_size else None,
            "entry_price": 2652.0 if position_size else None,
            "stop_loss": 2642.5 if position_size else None,
            "take_profit_1": 2670.0 if position_size else None,
            "take_profit_2": 2680.5 if position_size else None,
            "current_price": 2656.4 if position_size else None,
            "pnl": 44.0 if position_size else None,
            "pnl_pct": 0.17 if position_size else None,
            "progress_to_tp1_pct": 24.4 if position_size else None,
            "time_in_trade": "1h 12m" if position_size else None,
            "alerts": [],
        }
        payload.update(overrides)
        return payload

    return _build


@pytest.fixture
def make_config():
    """Factory for a ``Config`` with test defaults."""

    def _build(**overrides) -> Config:
        defaults = dict(
            backend_url="http://backend.test",
            pro_trader_instruments=("XAUUSD",),
            signal_pairs=("XAUUSD", "GBPUSD"),
            setup_poll_seconds=60,
            trade_status_poll_seconds=60,
            signal_poll_seconds=180,
            log_level="WARNING",
            dashboard_port=8080,
        )
        defaults.update(overrides)
        return Config(**defaults)

    return _build
