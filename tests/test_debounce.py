from __future__ import annotations

import asyncio

import pytest

from stagecontrol.debounce import Debouncer, LoopScheduler, ManualScheduler


def test_burst_of_calls_dispatches_once_with_latest_arguments() -> None:
    scheduler = ManualScheduler()
    calls = []
    debouncer = Debouncer(lambda *args, **kwargs: calls.append((args, kwargs)), scheduler=scheduler)

    for text in ("a", "an", "ann"):
        debouncer(text, field="fullName")
        scheduler.advance(0.1)

    assert calls == []
    assert debouncer.pending

    scheduler.advance(0.3)

    assert calls == [(("ann",), {"field": "fullName"})]
    assert not debouncer.pending
    assert scheduler.pending == 0


def test_dispatch_waits_for_the_full_quiet_period() -> None:
    scheduler = ManualScheduler()
    calls = []
    debouncer = Debouncer(calls.append, scheduler=scheduler, quiet_period=0.5)

    debouncer("x")
    assert scheduler.advance(0.49) == 0
    assert scheduler.advance(0.02) == 1
    assert calls == ["x"]


def test_cancel_drops_the_pending_dispatch() -> None:
    scheduler = ManualScheduler()
    calls = []
    debouncer = Debouncer(calls.append, scheduler=scheduler)

    debouncer("x")
    debouncer.cancel()
    scheduler.advance(1.0)

    assert calls == []
    assert not debouncer.pending


def test_flush_dispatches_immediately() -> None:
    scheduler = ManualScheduler()
    calls = []
    debouncer = Debouncer(calls.append, scheduler=scheduler)

    assert debouncer.flush() is False
    debouncer("x")
    assert debouncer.flush() is True
    scheduler.advance(1.0)

    assert calls == ["x"]


def test_negative_quiet_period_is_rejected() -> None:
    with pytest.raises(ValueError):
        Debouncer(print, scheduler=ManualScheduler(), quiet_period=-0.1)


def test_loop_scheduler_dispatches_after_quiet_period() -> None:
    async def scenario() -> list:
        calls = []
        debouncer = Debouncer(calls.append, scheduler=LoopScheduler(), quiet_period=0.05)
        debouncer("a")
        debouncer("ab")
        await asyncio.sleep(0.01)
        assert calls == []
        await asyncio.sleep(0.2)
        return calls

    assert asyncio.run(scenario()) == ["ab"]
