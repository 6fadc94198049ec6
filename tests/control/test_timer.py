from __future__ import annotations

import threading

from gbpilot.control.timer import IntervalTimer, ManualTimer


def test_manual_timer_fires_immediately_and_on_demand() -> None:
    calls = []
    timer = ManualTimer()

    timer.start(lambda: calls.append("tick"), 2.0)
    assert calls == ["tick"]
    assert timer.fire()
    assert calls == ["tick", "tick"]

    timer.cancel()
    assert not timer.fire()
    assert not timer.active


def test_interval_timer_ticks_until_cancelled() -> None:
    ticked = threading.Event()
    count = []

    def _tick() -> None:
        count.append(1)
        if len(count) >= 3:
            ticked.set()

    timer = IntervalTimer()
    timer.start(_tick, 0.01)
    assert ticked.wait(2.0)
    timer.cancel()
    assert not timer.active
