"""Trade lifecycle — FLAT → PARTIAL(50) → FULL(100) and back to FLAT.

Every transition is two-phase: submit the mutation, then (only on success)
re-fetch the trade status through the scheduler.  Local position state is
never changed optimistically; the next status read is the truth.  Guards run
before any network call.
"""

import logging
from typing import Awaitable, Callable, Optional

from setupdesk.backend.client import BackendClient
from setupdesk.backend.models import (
    BULLISH,
    EnterTradeRequest,
    ExitTradeRequest,
    MutationResult,
    PendingEntryForm,
    Setup,
    get_instrument,
)
from setupdesk.core.pricing import parse_price, resolve_price
from setupdesk.core.store import SetupStore
from setupdesk.errors import InvalidTransition

logger = logging.getLogger("setupdesk.trades")

FLAT = "FLAT"
PARTIAL = "PARTIAL"
FULL = "FULL"

_STATE_BY_SIZE = {0: FLAT, 50: PARTIAL, 100: FULL}

EARLY_ENTRY = "early"
CONFIRMATION_ENTRY = "confirmation"

_ENTRY_OPTION_KEYS = {
    EARLY_ENTRY: "early_entry",
    CONFIRMATION_ENTRY: "confirmation_entry",
}
_ENTRY_STEP_STATUSES = ("ready", "in_progress")
_FORM_FIELDS = ("entry_price", "position_size", "stop_loss", "take_profit_1", "take_profit_2")

ACTION_ENTER = "enter"
ACTION_ADD_MORE = "add_more"
ACTION_EXIT_PARTIAL = "exit_partial"
ACTION_CLOSE = "close"

RefreshFn = Callable[[str], Awaitable[None]]


def state_for_size(position_size: int) -> str:
    """Map a position size (0/50/100) to FLAT / PARTIAL / FULL."""
    try:
        return _STATE_BY_SIZE[position_size]
    except KeyError:
        raise ValueError(f"position_size must be 0, 50 or 100, got {position_size}") from None


class TradeLifecycleManager:
    """Issues enter/exit requests and reconciles with server state.

    Args:
        client: Backend client used for the mutations.
        store: Source of the last known trade status and setups.
        refresh: Coroutine function re-fetching an instrument's trade
                 status into the store (normally via the scheduler).
    """

    def __init__(
        self,
        client: BackendClient,
        store: SetupStore,
        refresh: RefreshFn,
    ) -> None:
        self._client = client
        self._store = store
        self._refresh = refresh
        self._forms: dict[str, PendingEntryForm] = {}
        self._pending: set[str] = set()

    # ── State ────────────────────────────────────────────────────────────

    def position_state(self, instrument: str) -> str:
        return state_for_size(self._store.position(instrument).position_size)

    def available_actions(self, instrument: str) -> list[str]:
        """Actions valid for the last known position of *instrument*."""
        state = self.position_state(instrument)
        if state == FLAT:
            return [ACTION_ENTER]
        if state == PARTIAL:
            return [ACTION_ADD_MORE, ACTION_CLOSE]
        return [ACTION_EXIT_PARTIAL, ACTION_CLOSE]

    def is_pending(self, instrument: str) -> bool:
        """``True`` while a mutation for *instrument* or its status re-fetch runs."""
        return instrument in self._pending

    # ── Pending entry form ───────────────────────────────────────────────

    def entry_form(self, instrument: str) -> Optional[PendingEntryForm]:
        return self._forms.get(instrument)

    def open_entry_form(self, instrument: str) -> PendingEntryForm:
        """Open the entry confirmation dialog for the next valid entry.

        FLAT opens an early entry (50%) seeded from the selected setup;
        PARTIAL opens the confirmation add (100%).

        Raises:
            InvalidTransition: When already FULL, or when FLAT and no
                actionable setup is available.
        """
        state = self.position_state(instrument)
        if state == FULL:
            raise InvalidTransition(f"{instrument} is already at full size")

        setup = self._store.selected_setup(instrument)
        if state == FLAT:
            if setup is None or not setup.actionable:
                raise InvalidTransition(f"{instrument} has no actionable setup to enter")
            form = self._seed_form(instrument, setup, EARLY_ENTRY, 50, setup.direction)
        else:
            status = self._store.position(instrument)
            direction = status.direction or (setup.direction if setup else BULLISH)
            form = self._seed_form(instrument, setup, CONFIRMATION_ENTRY, 100, direction)
            # keep the open trade's protective levels
            form.stop_loss = status.stop_loss if status.stop_loss is not None else form.stop_loss
            if status.take_profit_1 is not None:
                form.take_profit_1 = status.take_profit_1
            if status.take_profit_2 is not None:
                form.take_profit_2 = status.take_profit_2

        self._forms[instrument] = form
        return form

    def _seed_form(
        self,
        instrument: str,
        setup: Optional[Setup],
        kind: str,
        position_size: int,
        direction: str,
    ) -> PendingEntryForm:
        meta = get_instrument(instrument)
        entry = stop = tp1 = tp2 = None

        if setup is not None:
            confluences = setup.confluences

            def _price(text: Optional[str]) -> Optional[float]:
                return parse_price(resolve_price(text, confluences, meta))

            plan = setup.trade_plan
            if plan is not None:
                entry = _price(plan.entry_price)
                stop = _price(plan.stop_loss.price) if plan.stop_loss else None
                tp1 = _price(plan.take_profit_1.price) if plan.take_profit_1 else None
                tp2 = _price(plan.take_profit_2.price) if plan.take_profit_2 else None

            option_key = _ENTRY_OPTION_KEYS[kind]
            for step in setup.setup_steps:
                if step.status not in _ENTRY_STEP_STATUSES:
                    continue
                for option in step.entry_options:
                    if option.key != option_key:
                        continue
                    entry = _price(option.entry_price) or entry
                    stop = stop if stop is not None else _price(option.stop_loss)

        return PendingEntryForm(
            instrument=instrument,
            direction=direction,
            kind=kind,
            entry_price=entry,
            position_size=position_size,
            stop_loss=stop,
            take_profit_1=tp1,
            take_profit_2=tp2,
        )

    def update_entry_form(self, instrument: str, **fields) -> PendingEntryForm:
        """Edit the open entry form.

        Raises:
            InvalidTransition: When no form is open.
            ValueError: On an unknown field name.
        """
        form = self._forms.get(instrument)
        if form is None:
            raise InvalidTransition(f"No entry form open for {instrument}")
        for name, value in fields.items():
            if name not in _FORM_FIELDS:
                raise ValueError(f"Unknown entry form field: {name}")
            setattr(form, name, value)
        return form

    def cancel_entry_form(self, instrument: str) -> None:
        """Discard the open entry form, if any."""
        self._forms.pop(instrument, None)

    async def submit_entry_form(self, instrument: str) -> MutationResult:
        """Send the open entry form; discard it only when the backend accepts."""
        form = self._forms.get(instrument)
        if form is None:
            raise InvalidTransition(f"No entry form open for {instrument}")

        missing = [
            name for name in ("entry_price", "stop_loss", "take_profit_1")
            if getattr(form, name) is None
        ]
        if missing:
            raise InvalidTransition(f"Entry form incomplete: {', '.join(missing)}")

        request = EnterTradeRequest(
            entry_price=float(form.entry_price),
            position_size=int(form.position_size),
            stop_loss=float(form.stop_loss),
            take_profit_1=float(form.take_profit_1),
            take_profit_2=float(form.take_profit_2) if form.take_profit_2 is not None else None,
            trade_direction=form.direction,
        )
        if form.kind == EARLY_ENTRY:
            result = await self.enter(instrument, request)
        else:
            result = await self.add_more(instrument, request)
        self._forms.pop(instrument, None)
        return result

    # ── Transitions ──────────────────────────────────────────────────────

    async def enter(self, instrument: str, request: EnterTradeRequest) -> MutationResult:
        """FLAT → PARTIAL: open a 50% early entry."""
        self._require_state(instrument, FLAT, "enter")
        if request.position_size != 50:
            raise InvalidTransition("An initial entry must be 50% of target size")
        meta = get_instrument(instrument)
        return await self._run(instrument, "enter", lambda: self._client.enter_trade(meta, request))

    async def add_more(self, instrument: str, request: EnterTradeRequest) -> MutationResult:
        """PARTIAL → FULL: add the confirmation half (total becomes 100%)."""
        self._require_state(instrument, PARTIAL, "add more")
        if request.position_size != 100:
            raise InvalidTransition("Adding to a position must raise it to 100%")
        meta = get_instrument(instrument)
        return await self._run(instrument, "add_more", lambda: self._client.enter_trade(meta, request))

    async def exit_partial(
        self,
        instrument: str,
        exit_price: float,
        position_size: int = 50,
    ) -> MutationResult:
        """FULL → PARTIAL: take profit on half the position."""
        self._require_state(instrument, FULL, "exit 50%")
        if position_size != 50:
            raise InvalidTransition("A partial exit closes exactly 50%")
        request = ExitTradeRequest(
            exit_price=self._checked_price(exit_price),
            position_size=50,
            reason="partial_profit",
        )
        meta = get_instrument(instrument)
        return await self._run(instrument, "exit_partial", lambda: self._client.exit_trade(meta, request))

    async def close(self, instrument: str, exit_price: float, position_size: int) -> MutationResult:
        """PARTIAL|FULL → FLAT: close everything that remains.

        *position_size* is the operator-confirmed quantity and must equal
        the current position size.
        """
        current = self._store.position(instrument).position_size
        if current == 0:
            raise InvalidTransition(f"Cannot close {instrument}: no open position")
        if position_size != current:
            raise InvalidTransition(
                f"Close must cover the entire remaining size ({current}%), got {position_size}%"
            )
        request = ExitTradeRequest(
            exit_price=self._checked_price(exit_price),
            position_size=current,
            reason="manual_close",
        )
        meta = get_instrument(instrument)
        return await self._run(instrument, "close", lambda: self._client.exit_trade(meta, request))

    # ── Internals ────────────────────────────────────────────────────────

    def _require_state(self, instrument: str, expected: str, action: str) -> None:
        state = self.position_state(instrument)
        if state != expected:
            raise InvalidTransition(
                f"Cannot {action} {instrument}: position is {state}, needs {expected}"
            )

    @staticmethod
    def _checked_price(price: float) -> float:
        if price is None or price <= 0:
            raise InvalidTransition(f"Exit price must be positive, got {price}")
        return float(price)

    async def _run(self, instrument: str, action: str, call) -> MutationResult:
        if instrument in self._pending:
            raise InvalidTransition(f"A trade action for {instrument} is already in progress")
        self._pending.add(instrument)
        try:
            result = await call()
            logger.info("%s %s accepted: %s", instrument, action, result.message or "ok")
            # stays pending until the store holds the post-mutation position
            await self._refresh(instrument)
        finally:
            self._pending.discard(instrument)
        return result
