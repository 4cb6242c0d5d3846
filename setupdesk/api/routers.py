"""Dashboard API routers — /desk view models and operator trade actions.

No business logic here.  Reads go through the view builder, writes through
the desk manager, store and trade lifecycle manager.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from setupdesk.core.store import signal_source
from setupdesk.core.trades import PARTIAL
from setupdesk.core.view import instrument_view, overview, signal_view
from setupdesk.errors import InvalidTransition, MutationRejected, TransportError

logger = logging.getLogger("setupdesk.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_desk = None  # Set via configure_routers()


def configure_routers(desk) -> None:
    """Inject the running ``DeskManager`` (or a duck-type for tests)."""
    global _desk  # noqa: PLW0603
    _desk = desk


def _require_desk():
    if _desk is None:
        raise HTTPException(status_code=503, detail="Desk not started")
    return _desk


def _pro_trader_symbol(symbol: str) -> str:
    desk = _require_desk()
    key = symbol.upper()
    if key not in desk.pro_trader_symbols:
        raise HTTPException(status_code=404, detail=f"Unknown instrument: {symbol}")
    return key


async def _mutation(call):
    """Await a trade mutation and map its failures onto HTTP statuses."""
    try:
        result = await call
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except MutationRejected as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransportError as exc:
        logger.error("Trade action failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {
        "success": result.success,
        "message": result.message,
        "pnl": result.pnl,
        "pnl_pct": result.pnl_pct,
    }


# ── Request bodies ───────────────────────────────────────────────────────


class DirectionBody(BaseModel):
    direction: str


class EntryFormPatch(BaseModel):
    entry_price: Optional[float] = None
    position_size: Optional[int] = None
    stop_loss: Optional[float] = None
    take_profit_1: Optional[float] = None
    take_profit_2: Optional[float] = None


class ExitBody(BaseModel):
    exit_price: float
    position_size: Optional[int] = None


# ── Reads ────────────────────────────────────────────────────────────────


@router.get("/desk")
async def get_desk():
    """Overview of every configured instrument plus polling status."""
    desk = _require_desk()
    view = overview(desk.store, desk.pro_trader_symbols, desk.signal_symbols)
    view["polling"] = desk.get_status()
    return view


@router.get("/desk/{symbol}")
async def get_instrument_view(symbol: str):
    """Detail view: selected setup, trade monitor, actions and errors."""
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    return instrument_view(desk.store, desk.lifecycle, key)


@router.get("/signals/{symbol}")
async def get_signal(symbol: str):
    """Latest snapshot of a simple-signal pair."""
    desk = _require_desk()
    key = symbol.upper()
    if key not in desk.signal_symbols:
        raise HTTPException(status_code=404, detail=f"Unknown signal pair: {symbol}")
    snapshot = desk.store.signal(key)
    return {
        "signal": signal_view(snapshot) if snapshot is not None else None,
        "errors": desk.store.errors_for(signal_source(key)),
    }


# ── Operator selection & refresh ─────────────────────────────────────────


@router.post("/desk/{symbol}/direction")
async def post_direction(symbol: str, body: DirectionBody):
    """Choose which direction's setup the detail view shows."""
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    try:
        desk.store.select_direction(key, body.direction)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    logger.info("%s direction set to %s via dashboard.", key, desk.store.active_direction(key))
    return {"active_direction": desk.store.active_direction(key)}


@router.post("/desk/{symbol}/refresh")
async def post_refresh(symbol: str):
    """Refresh now (force scan for simple-signal pairs)."""
    desk = _require_desk()
    key = symbol.upper()
    if key not in desk.pro_trader_symbols and key not in desk.signal_symbols:
        raise HTTPException(status_code=404, detail=f"Unknown instrument: {symbol}")
    await desk.refresh(key)
    logger.info("Manual refresh of %s via dashboard.", key)
    return {"refreshed": key}


# ── Entry form ───────────────────────────────────────────────────────────


@router.post("/desk/{symbol}/entry-form")
async def open_entry_form(symbol: str):
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    try:
        form = desk.lifecycle.open_entry_form(key)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"entry_form": asdict(form)}


@router.patch("/desk/{symbol}/entry-form")
async def patch_entry_form(symbol: str, body: EntryFormPatch):
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    fields = body.model_dump(exclude_unset=True)
    try:
        form = desk.lifecycle.update_entry_form(key, **fields)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"entry_form": asdict(form)}


@router.delete("/desk/{symbol}/entry-form")
async def delete_entry_form(symbol: str):
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    desk.lifecycle.cancel_entry_form(key)
    return {"entry_form": None}


@router.post("/desk/{symbol}/entry-form/submit")
async def submit_entry_form(symbol: str):
    """Send the confirmed entry; the form stays open if it fails."""
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    return await _mutation(desk.lifecycle.submit_entry_form(key))


@router.post("/desk/{symbol}/add-more")
async def post_add_more(symbol: str, body: EntryFormPatch):
    """Add the confirmation half to a 50% position in one step.

    Opens the confirmation entry form, applies the confirmed values and
    submits it.
    """
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    state = desk.lifecycle.position_state(key)
    if state != PARTIAL:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot add more to {key}: position is {state}, needs {PARTIAL}",
        )
    desk.lifecycle.open_entry_form(key)
    fields = body.model_dump(exclude_unset=True)
    try:
        desk.lifecycle.update_entry_form(key, **fields)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return await _mutation(desk.lifecycle.submit_entry_form(key))


# ── Exits ────────────────────────────────────────────────────────────────


@router.post("/desk/{symbol}/exit-partial")
async def post_exit_partial(symbol: str, body: ExitBody):
    """Close 50% of a full position at the confirmed price."""
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    size = body.position_size if body.position_size is not None else 50
    return await _mutation(desk.lifecycle.exit_partial(key, body.exit_price, size))


@router.post("/desk/{symbol}/close")
async def post_close(symbol: str, body: ExitBody):
    """Close the entire remaining position at the confirmed price and size."""
    desk = _require_desk()
    key = _pro_trader_symbol(symbol)
    if body.position_size is None:
        raise HTTPException(status_code=422, detail="position_size must be confirmed")
    return await _mutation(desk.lifecycle.close(key, body.exit_price, body.position_size))
