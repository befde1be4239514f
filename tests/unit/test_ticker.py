"""Unit tests for the Ticker periodic loop."""

from __future__ import annotations

import asyncio

import pytest

from fleetcron.core.scheduler.ticker import Ticker


@pytest.mark.unit
class TestTicker:
    @pytest.mark.asyncio
    async def test_fire_immediately_runs_before_first_interval(self) -> None:
        calls: list[int] = []

        async def cb() -> None:
            calls.append(1)

        ticker = Ticker('t', 60.0, cb, fire_immediately=True)
        ticker.start()
        await asyncio.sleep(0.05)
        await ticker.stop()
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_without_fire_immediately_waits_for_interval(self) -> None:
        calls: list[int] = []

        async def cb() -> None:
            calls.append(1)

        ticker = Ticker('t', 60.0, cb)
        ticker.start()
        await asyncio.sleep(0.05)
        await ticker.stop()
        assert calls == []

    @pytest.mark.asyncio
    async def test_ticks_repeatedly(self) -> None:
        calls: list[int] = []

        async def cb() -> None:
            calls.append(1)

        ticker = Ticker('t', 0.01, cb)
        ticker.start()
        await asyncio.sleep(0.2)
        await ticker.stop()
        assert len(calls) >= 3

    @pytest.mark.asyncio
    async def test_callback_error_does_not_end_loop(self) -> None:
        calls: list[int] = []

        async def cb() -> None:
            calls.append(1)
            raise RuntimeError('transient')

        ticker = Ticker('t', 0.01, cb, fire_immediately=True)
        ticker.start()
        await asyncio.sleep(0.1)
        assert ticker.running is True
        await ticker.stop()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_progress_callback(self) -> None:
        started = asyncio.Event()
        finished: list[bool] = []

        async def cb() -> None:
            started.set()
            await asyncio.sleep(0.05)
            finished.append(True)

        ticker = Ticker('t', 60.0, cb, fire_immediately=True)
        ticker.start()
        await started.wait()
        await ticker.stop()
        assert finished == [True]
        assert ticker.running is False

    @pytest.mark.asyncio
    async def test_no_tick_after_stop(self) -> None:
        calls: list[int] = []

        async def cb() -> None:
            calls.append(1)

        ticker = Ticker('t', 0.01, cb)
        ticker.start()
        await asyncio.sleep(0.05)
        await ticker.stop()
        count = len(calls)
        await asyncio.sleep(0.05)
        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self) -> None:
        async def cb() -> None:
            pass

        await Ticker('t', 1.0, cb).stop()
