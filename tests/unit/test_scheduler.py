from __future__ import annotations

import asyncio

from core.display.scheduler import AsyncioScheduler, TimerSlot, VirtualScheduler


def test_virtual_scheduler_runs_in_due_order():
    scheduler = VirtualScheduler()
    fired = []
    scheduler.schedule(200, lambda: fired.append(("b", scheduler.now_ms)))
    scheduler.schedule(100, lambda: fired.append(("a", scheduler.now_ms)))
    scheduler.advance(150)
    assert fired == [("a", 100)]
    scheduler.run_until_idle()
    assert fired == [("a", 100), ("b", 200)]


def test_cancelled_task_never_fires():
    scheduler = VirtualScheduler()
    fired = []
    task = scheduler.schedule(10, lambda: fired.append(1))
    task.cancel()
    scheduler.advance(100)
    assert fired == []
    assert scheduler.pending_count == 0


def test_timer_slot_keeps_one_live_task():
    scheduler = VirtualScheduler()
    slot = TimerSlot(scheduler, "test")
    fired = []
    slot.start(100, lambda: fired.append("first"))
    slot.start(100, lambda: fired.append("second"))
    assert scheduler.pending_count == 1
    scheduler.advance(100)
    assert fired == ["second"]
    assert not slot.active


def test_timer_slot_survives_failing_callback():
    scheduler = VirtualScheduler()
    slot = TimerSlot(scheduler, "test")

    def boom():
        raise RuntimeError("boom")

    slot.start(5, boom)
    scheduler.advance(10)
    assert not slot.active


def test_asyncio_scheduler_fires_and_cancels():
    async def scenario():
        scheduler = AsyncioScheduler()
        fired = []
        scheduler.schedule(1, lambda: fired.append("kept"))
        scheduler.schedule(1, lambda: fired.append("dropped")).cancel()
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["kept"]
