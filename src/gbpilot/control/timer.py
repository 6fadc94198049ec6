"""Interval timers driving the controller's cycles."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Timer(Protocol):
    def start(self, callback: Callable[[], None], interval_s: float, *, immediate: bool = True) -> None:
        ...

    def cancel(self) -> None:
        ...

    @property
    def active(self) -> bool:
        ...


class IntervalTimer:
    """
    Calls ``callback`` every ``interval_s`` seconds from a daemon thread.

    Each tick runs on its own short-lived thread. The callback is responsible
    for dropping ticks it cannot serve.
    """

    def __init__(self, name: str = "gbpilot-timer") -> None:
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop.is_set()

    def start(self, callback: Callable[[], None], interval_s: float, *, immediate: bool = True) -> None:
        self.cancel()
        stop = threading.Event()
        self._stop = stop
        interval = max(0.001, float(interval_s))

        def _loop() -> None:
            if immediate and not stop.is_set():
                self._dispatch(callback)
            while not stop.wait(interval):
                self._dispatch(callback)

        self._thread = threading.Thread(target=_loop, name=self._name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _dispatch(self, callback: Callable[[], None]) -> None:
        worker = threading.Thread(target=callback, name=f"{self._name}-tick", daemon=True)
        worker.start()


class ManualTimer:
    """Timer driven explicitly with ``fire()``; useful for tests and single-step runs."""

    def __init__(self) -> None:
        self.callback: Optional[Callable[[], None]] = None
        self.interval_s: Optional[float] = None
        self.start_count = 0
        self.cancel_count = 0

    @property
    def active(self) -> bool:
        return self.callback is not None

    def start(self, callback: Callable[[], None], interval_s: float, *, immediate: bool = True) -> None:
        self.callback = callback
        self.interval_s = interval_s
        self.start_count += 1
        if immediate:
            callback()

    def cancel(self) -> None:
        self.callback = None
        self.cancel_count += 1

    def fire(self) -> bool:
        if self.callback is None:
            return False
        self.callback()
        return True


__all__ = ["IntervalTimer", "ManualTimer", "Timer"]
