"""CLI dashboard — prints the reconciled desk state to the console."""

from setupdesk.core.store import TRADE_MONITORING
from setupdesk.core.view import instrument_view, overview

_STEP_MARKS = {
    "complete": "[x]",
    "in_progress": "[~]",
    "waiting": "[ ]",
    "ready": "[>]",
}


def format_instrument(view: dict) -> str:
    """Format one instrument's detail view model as text.

    Args:
        view: Dict produced by ``setupdesk.core.view.instrument_view``.

    Returns:
        The formatted block (not printed).
    """
    symbol = view["instrument"]
    lines = [f"──────────────── {symbol} ────────────────"]

    if view["loading"]:
        lines.append("  Loading setup...")
    for source, message in view["errors"].items():
        lines.append(f"  ! {source}: {message}")

    if view["view_mode"] == TRADE_MONITORING and view["trade"]:
        trade = view["trade"]
        pnl = f"{trade['pnl']:+.2f}" if trade["pnl"] is not None else "N/A"
        lines += [
            f"  In trade:   {trade['direction'] or '?'} {trade['position_size']}%",
            f"  Entry:      {trade['entry_price'] or 'N/A'}",
            f"  Current:    {trade['current_price'] or 'N/A'}",
            f"  Stop:       {trade['stop_loss'] or 'N/A'}",
            f"  TP1 / TP2:  {trade['take_profit_1'] or 'N/A'} / {trade['take_profit_2'] or 'N/A'}",
            f"  P&L:        {pnl}",
        ]
        for alert in trade["alerts"]:
            lines.append(f"  [{alert['priority']}] {alert['title']}: {alert['message']}")
    else:
        if view["show_direction_selector"]:
            lines.append(f"  Direction:  {view['active_direction']} (bullish/bearish available)")
        setup = view["setup"]
        if setup is None:
            lines.append("  No setup.")
        else:
            lines += [
                f"  {setup['direction'].upper()} {setup['pattern_type'] or 'Scanning'}"
                f" — {setup['status'] or 'N/A'}",
                f"  Score:      {setup['total_score']} ({setup['confidence']})",
            ]
            for step in setup["setup_steps"]:
                mark = _STEP_MARKS.get(step["status"], "[?]")
                lines.append(f"  {mark} Step {step['number']}: {step['title']}")
            plan = setup["trade_plan"]
            if plan:
                lines.append(f"  Entry:      {plan['entry_price']}")
                for key, label in (
                    ("stop_loss", "Stop"),
                    ("take_profit_1", "TP1"),
                    ("take_profit_2", "TP2"),
                ):
                    if plan[key]:
                        lines.append(f"  {label + ':':<11} {plan[key]['price']}")

    lines.append(f"  Actions:    {', '.join(view['actions'])}")
    return "\n".join(lines)


def print_desk(desk) -> str:
    """Format and print every configured instrument.

    Args:
        desk: A ``DeskManager``.

    Returns:
        The formatted string (also printed to stdout).
    """
    blocks = [
        format_instrument(instrument_view(desk.store, desk.lifecycle, symbol))
        for symbol in desk.pro_trader_symbols
    ]

    summary = overview(desk.store, desk.pro_trader_symbols, desk.signal_symbols)
    signal_lines = ["──────────────── Signals ────────────────"]
    for symbol, entry in summary["signals"].items():
        snap = entry["signal"]
        if snap is None:
            status = "LOADING"
        elif snap["status"] == "signal":
            status = f"{snap['signal']} @ {snap['entry_price']}"
        else:
            status = f"WAITING ({snap['skip_reason'] or snap['status']})"
        signal_lines.append(f"  {symbol:<8} {status}")
        for source, message in entry["errors"].items():
            signal_lines.append(f"  ! {source}: {message}")
    blocks.append("\n".join(signal_lines))

    output = "\n".join(blocks)
    print(output)
    return output
