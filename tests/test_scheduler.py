"""Tests for setupdesk.core.scheduler — cadences, skips and the stale-result guard."""

import asyncio

import pytest

from setupdesk.core.scheduler import PollingScheduler
from setupdesk.errors import TransportError


class _Recorder:
    def __init__(self):
        self.applied = []
        self.errors = []

    def ok(self, value):
        self.applied.append(value)

    def fail(self, message):
        self.errors.append(message)


def _gated_fetch(results):
    """Fetch whose Nth call waits on ``gates[N]`` then returns ``results[N]``."""
    gates = [asyncio.Event() for _ in results]
    calls = {"n": 0}

    async def _fetch():
        i = calls["n"]
        calls["n"] += 1
        await gates[i].wait()
        return results[i]

    return _fetch, gates


# ── Registration ─────────────────────────────────────────────────────────


class TestRegister:
    def test_duplicate_name_rejected(self):
        sched = PollingScheduler()
        sched.register("setup:XAUUSD", lambda: None, 60, lambda r: None)
        with pytest.raises(ValueError):
            sched.register("setup:XAUUSD", lambda: None, 60, lambda r: None)

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValueError):
            PollingScheduler().register("x", lambda: None, 0, lambda r: None)

    def test_unknown_source(self):
        with pytest.raises(KeyError):
            PollingScheduler().tick("missing")


# ── Ticks ────────────────────────────────────────────────────────────────


class TestTick:
    @pytest.mark.asyncio
    async def test_skip_while_outstanding(self):
        rec = _Recorder()
        fetch, gates = _gated_fetch(["first", "second"])
        sched = PollingScheduler()
        sched.register("s", fetch, 60, rec.ok, rec.fail)

        task = sched.tick("s")
        await asyncio.sleep(0)
        assert sched.is_outstanding("s")
        assert sched.tick("s") is None
        assert sched.stats("s")["skipped_ticks"] == 1

        gates[0].set()
        assert await task is True
        assert rec.applied == ["first"]
        await asyncio.sleep(0)
        assert not sched.is_outstanding("s")

        # next tick dispatches again
        second = sched.tick("s")
        assert second is not None
        gates[1].set()
        await second
        assert rec.applied == ["first", "second"]

    @pytest.mark.asyncio
    async def test_stale_result_dropped(self):
        rec = _Recorder()
        fetch, gates = _gated_fetch(["older", "newer"])
        sched = PollingScheduler()
        sched.register("s", fetch, 60, rec.ok, rec.fail)

        first = sched.refresh_now("s")
        second = sched.refresh_now("s")
        await asyncio.sleep(0)

        gates[1].set()
        assert await second is True
        gates[0].set()
        assert await first is False

        assert rec.applied == ["newer"]
        assert sched.stats("s")["applied_seq"] == 2

    @pytest.mark.asyncio
    async def test_failure_reports_error(self):
        rec = _Recorder()

        async def _boom():
            raise TransportError("HTTP 500", status_code=500)

        sched = PollingScheduler()
        sched.register("s", _boom, 60, rec.ok, rec.fail)
        assert await sched.tick("s") is False
        assert rec.applied == []
        assert rec.errors == ["HTTP 500"]

    @pytest.mark.asyncio
    async def test_unexpected_exception_reported(self):
        rec = _Recorder()

        async def _boom():
            raise RuntimeError("kaput")

        sched = PollingScheduler()
        sched.register("s", _boom, 60, rec.ok, rec.fail)
        await sched.tick("s")
        assert rec.errors == ["RuntimeError: kaput"]

    @pytest.mark.asyncio
    async def test_old_failure_after_newer_success_ignored(self):
        rec = _Recorder()
        gate = asyncio.Event()
        calls = {"n": 0}

        async def _fetch():
            calls["n"] += 1
            if calls["n"] == 1:
                await gate.wait()
                raise TransportError("timeout")
            return "fresh"

        sched = PollingScheduler()
        sched.register("s", _fetch, 60, rec.ok, rec.fail)
        first = sched.refresh_now("s")
        await asyncio.sleep(0)
        await sched.refresh_now("s")
        gate.set()
        await first

        assert rec.applied == ["fresh"]
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_refresh_now_with_override_fetch(self):
        rec = _Recorder()

        async def _poll():
            return "poll"

        async def _scan():
            return "scan"

        sched = PollingScheduler()
        sched.register("s", _poll, 180, rec.ok, rec.fail)
        await sched.refresh_now("s", fetch=_scan)
        assert rec.applied == ["scan"]


# ── Lifecycle ────────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_stop_drops_in_flight_result(self):
        rec = _Recorder()
        fetch, gates = _gated_fetch(["late"])
        sched = PollingScheduler()
        sched.register("s", fetch, 60, rec.ok, rec.fail)

        task = sched.tick("s")
        await asyncio.sleep(0)
        sched.stop()
        gates[0].set()
        assert await task is False
        assert rec.applied == []

    @pytest.mark.asyncio
    async def test_stop_drops_in_flight_failure(self):
        rec = _Recorder()
        gate = asyncio.Event()

        async def _fetch():
            await gate.wait()
            raise TransportError("Network error: refused")

        sched = PollingScheduler()
        sched.register("s", _fetch, 60, rec.ok, rec.fail)
        task = sched.tick("s")
        await asyncio.sleep(0)
        sched.stop()
        gate.set()
        await task
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_start_fetches_immediately_then_every_interval(self):
        sleeps = []
        done = asyncio.Event()
        rec = _Recorder()

        async def _fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) >= 3:
                done.set()
                await asyncio.Event().wait()
            await asyncio.sleep(0)

        async def _fetch():
            return "tick"

        sched = PollingScheduler(sleep=_fake_sleep)
        sched.register("s", _fetch, 60, rec.ok, rec.fail)
        sched.start()
        assert sched.running
        await asyncio.wait_for(done.wait(), timeout=1)
        sched.stop()
        await asyncio.sleep(0)

        assert sleeps == [60, 60, 60]
        assert sched.stats("s")["ticks"] == 3
        assert not sched.running

    @pytest.mark.asyncio
    async def test_independent_cadences(self):
        sleeps = {"fast": [], "slow": []}

        def _sleeper():
            async def _fake_sleep(seconds):
                key = "fast" if seconds == 60 else "slow"
                sleeps[key].append(seconds)
                await asyncio.Event().wait()
            return _fake_sleep

        async def _fetch():
            return None

        sched = PollingScheduler(sleep=_sleeper())
        sched.register("setup:XAUUSD", _fetch, 60, lambda r: None)
        sched.register("signal:GBPUSD", _fetch, 180, lambda r: None)
        sched.start()
        await asyncio.sleep(0)
        sched.stop()
        await asyncio.sleep(0)

        assert sleeps == {"fast": [60], "slow": [180]}
        assert sched.stats("setup:XAUUSD")["ticks"] == 1
        assert sched.stats("signal:GBPUSD")["ticks"] == 1

    @pytest.mark.asyncio
    async def test_restart_drops_result_from_previous_run(self):
        rec = _Recorder()
        fetch, gates = _gated_fetch(["before-stop"])

        async def _idle_sleep(seconds):
            await asyncio.Event().wait()

        sched = PollingScheduler(sleep=_idle_sleep)
        sched.register("s", fetch, 60, rec.ok, rec.fail)

        old = sched.tick("s")
        await asyncio.sleep(0)
        sched.stop()
        sched.start()
        await asyncio.sleep(0)

        gates[0].set()
        assert await old is False
        assert rec.applied == []
        sched.stop()


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_failing_success_callback_recorded(self):
        errors = []

        def _bad_apply(result):
            raise ValueError("cannot apply")

        async def _fetch():
            return "payload"

        sched = PollingScheduler()
        sched.register("s", _fetch, 60, _bad_apply, errors.append)
        task = sched.tick("s")
        assert await task is False
        assert errors == ["ValueError: cannot apply"]
        assert task.exception() is None
