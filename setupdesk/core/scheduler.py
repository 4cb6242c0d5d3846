"""PollingScheduler — runs independent fetch cadences on one event loop.

Each registered source is fetched immediately on ``start()`` and then every
``interval`` seconds until ``stop()``.  A tick that finds the previous fetch
of the same source still outstanding is skipped.  Results are applied in
completion order, guarded by a per-source dispatch sequence so that a slow
earlier request never overwrites data from a later one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from setupdesk.errors import DeskError

logger = logging.getLogger("setupdesk.scheduler")

FetchFn = Callable[[], Awaitable[Any]]
SuccessFn = Callable[[Any], None]
ErrorFn = Callable[[str], None]


@dataclass
class _PollSource:
    """Book-keeping for one registered source."""

    name: str
    fetch: FetchFn
    interval: float
    on_success: SuccessFn
    on_error: Optional[ErrorFn] = None
    dispatched_seq: int = 0
    applied_seq: int = 0
    in_flight: set = field(default_factory=set)
    timer: Optional[asyncio.Task] = None
    tick_count: int = 0
    skipped_ticks: int = 0


class PollingScheduler:
    """Owner of every polling timer in the process.

    Args:
        sleep: Awaitable used between ticks.  Tests inject a fake to drive
               the schedule without real time passing.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._sleep = sleep
        self._sources: dict[str, _PollSource] = {}
        self._running: bool = False
        self._torn_down: bool = False
        self._generation: int = 0

    # ── Registration ─────────────────────────────────────────────────────

    def register(
        self,
        name: str,
        fetch: FetchFn,
        interval: float,
        on_success: SuccessFn,
        on_error: Optional[ErrorFn] = None,
    ) -> None:
        """Register a data source.

        Args:
            name: Unique source name, e.g. ``"setup:XAUUSD"``.
            fetch: Coroutine function returning the parsed result.
            interval: Seconds between ticks.
            on_success: Called with the result of an applied fetch.
            on_error: Called with an error string when a fetch fails.
        """
        if name in self._sources:
            raise ValueError(f"Source already registered: {name}")
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._sources[name] = _PollSource(
            name=name,
            fetch=fetch,
            interval=interval,
            on_success=on_success,
            on_error=on_error,
        )

    @property
    def source_names(self) -> list[str]:
        """Names of all registered sources."""
        return list(self._sources.keys())

    @property
    def running(self) -> bool:
        return self._running

    def is_outstanding(self, name: str) -> bool:
        """``True`` while a fetch for *name* has not completed."""
        return bool(self._source(name).in_flight)

    def stats(self, name: str) -> dict:
        """Tick counters for *name* (used by status endpoints and tests)."""
        src = self._source(name)
        return {
            "interval": src.interval,
            "ticks": src.tick_count,
            "skipped_ticks": src.skipped_ticks,
            "dispatched_seq": src.dispatched_seq,
            "applied_seq": src.applied_seq,
            "outstanding": bool(src.in_flight),
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start one timer task per source.  Must run inside an event loop."""
        if self._running:
            return
        self._running = True
        self._torn_down = False
        for src in self._sources.values():
            src.timer = asyncio.create_task(
                self._run_timer(src), name=f"poll:{src.name}"
            )
            logger.info(
                "Polling '%s' every %.0fs.", src.name, src.interval,
            )

    def stop(self) -> None:
        """Clear every pending timer and ignore in-flight results.

        In-flight requests are not cancelled; they complete and their
        results are dropped.
        """
        self._running = False
        self._torn_down = True
        # fetches dispatched before this point belong to a finished run
        self._generation += 1
        for src in self._sources.values():
            if src.timer is not None:
                src.timer.cancel()
                src.timer = None
        logger.info("Polling stopped for %d source(s).", len(self._sources))

    async def _run_timer(self, src: _PollSource) -> None:
        while self._running:
            self.tick(src.name)
            await self._sleep(src.interval)

    # ── Dispatch ─────────────────────────────────────────────────────────

    def tick(self, name: str) -> Optional[asyncio.Task]:
        """Fire one scheduled tick for *name*.

        Returns:
            The fetch task, or ``None`` when the tick was skipped because a
            fetch for the same source is still outstanding.
        """
        src = self._source(name)
        src.tick_count += 1
        if src.in_flight:
            src.skipped_ticks += 1
            logger.debug("Skipping tick for '%s': fetch still outstanding.", name)
            return None
        return self._dispatch(src)

    def refresh_now(self, name: str, fetch: Optional[FetchFn] = None) -> asyncio.Task:
        """Dispatch a fetch for *name* immediately, even if one is pending.

        Used for manual refreshes and post-mutation re-fetches; the sequence
        guard keeps whichever of the overlapping results was dispatched last.

        Args:
            name: Registered source name.
            fetch: One-off replacement for the source's fetch (e.g. a
                   force-scan endpoint); results go through the same
                   callbacks and guard.
        """
        return self._dispatch(self._source(name), fetch)

    def _dispatch(self, src: _PollSource, fetch: Optional[FetchFn] = None) -> asyncio.Task:
        src.dispatched_seq += 1
        seq = src.dispatched_seq
        task = asyncio.create_task(
            self._fetch(src, seq, self._generation, fetch or src.fetch),
            name=f"fetch:{src.name}:{seq}",
        )
        src.in_flight.add(task)
        task.add_done_callback(src.in_flight.discard)
        return task

    async def _fetch(
        self,
        src: _PollSource,
        seq: int,
        generation: int,
        fetch: FetchFn,
    ) -> bool:
        """Run one fetch and apply it if still current.

        Returns:
            ``True`` when the result was applied to the store.
        """
        try:
            result = await fetch()
        except DeskError as exc:
            return self._fail(src, seq, generation, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error polling '%s'", src.name)
            return self._fail(src, seq, generation, f"{type(exc).__name__}: {exc}")

        if self._torn_down or generation != self._generation:
            logger.debug("Dropping result for '%s': scheduler stopped.", src.name)
            return False
        if seq <= src.applied_seq:
            logger.debug(
                "Dropping stale result for '%s' (seq %d <= applied %d).",
                src.name, seq, src.applied_seq,
            )
            return False
        src.applied_seq = seq
        try:
            src.on_success(result)
        except Exception as exc:
            logger.exception("Applying result for '%s' failed", src.name)
            if src.on_error is not None:
                src.on_error(f"{type(exc).__name__}: {exc}")
            return False
        return True

    def _fail(self, src: _PollSource, seq: int, generation: int, message: str) -> bool:
        if self._torn_down or generation != self._generation:
            return False
        if seq <= src.applied_seq:
            # a later request already succeeded; this failure is old news
            return False
        logger.warning("Poll '%s' failed: %s", src.name, message)
        if src.on_error is not None:
            src.on_error(message)
        return False

    def _source(self, name: str) -> _PollSource:
        src = self._sources.get(name)
        if src is None:
            raise KeyError(f"Unknown source: {name}")
        return src
