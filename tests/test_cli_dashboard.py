"""Tests for setupdesk.cli.dashboard — console rendering."""

from unittest.mock import AsyncMock

from setupdesk.cli.dashboard import format_instrument, print_desk
from setupdesk.core.normalizer import normalize_analysis, normalize_trade_status
from setupdesk.core.store import setup_source, trade_status_source
from setupdesk.core.view import instrument_view
from setupdesk.desk_manager import DeskManager

SYMBOL = "XAUUSD"


def _desk(make_config, gold_setup_payload, trade_status_payload, size=0):
    desk = DeskManager(make_config(), AsyncMock())
    desk.store.apply_analysis(
        setup_source(SYMBOL), SYMBOL, normalize_analysis(gold_setup_payload(), SYMBOL),
    )
    desk.store.apply_trade_status(
        trade_status_source(SYMBOL), SYMBOL, normalize_trade_status(trade_status_payload(size)),
    )
    return desk


def test_setup_block(make_config, gold_setup_payload, trade_status_payload):
    desk = _desk(make_config, gold_setup_payload, trade_status_payload)
    text = format_instrument(instrument_view(desk.store, desk.lifecycle, SYMBOL))
    assert "BULLISH LIQUIDITY_GRAB_REVERSAL" in text
    assert "Score:      7 (HIGH)" in text
    assert "[>] Step 3: Entry window" in text
    assert "Entry:      $2650.50" in text
    assert "Actions:    enter" in text


def test_trade_block(make_config, gold_setup_payload, trade_status_payload):
    desk = _desk(make_config, gold_setup_payload, trade_status_payload, size=100)
    text = format_instrument(instrument_view(desk.store, desk.lifecycle, SYMBOL))
    assert "In trade:   bullish 100%" in text
    assert "P&L:        +44.00" in text
    assert "Actions:    exit_partial, close" in text


def test_print_desk(make_config, gold_setup_payload, trade_status_payload, capsys):
    desk = _desk(make_config, gold_setup_payload, trade_status_payload)
    desk.store.record_error("signal:GBPUSD", "HTTP 502")
    output = print_desk(desk)
    assert "Signals" in output
    assert "GBPUSD   LOADING" in output
    assert "! signal:GBPUSD: HTTP 502" in output
    assert capsys.readouterr().out.strip() == output.strip()
