# -*- coding: utf-8 -*-

import threading
from typing import Any, Callable, Optional


class ThreadClockSource:
    """
    1 Hz pulse driven by a daemon thread.
    Each pulse is handed to `post` (normally SerialDispatcher.post) so the
    engine is only ever touched from its owner thread.
    """

    def __init__(self, post: Callable[..., Any]):
        self._post = post
        self._generation = 0
        self._stop: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def is_armed(self) -> bool:
        return self._stop is not None

    def arm(self, interval_sec: float, on_tick: Callable[[], None]) -> None:
        self.disarm()
        self._generation += 1
        stop = threading.Event()
        self._stop = stop
        self._thread = threading.Thread(
            target=self._loop,
            args=(interval_sec, on_tick, stop, self._generation),
            name="timer-clock",
            daemon=True,
        )
        self._thread.start()

    def disarm(self) -> None:
        if self._stop is not None:
            self._stop.set()
        # pulses already queued for the old generation become no-ops
        self._generation += 1
        self._stop = None
        self._thread = None

    def _loop(self, interval_sec, on_tick, stop, generation) -> None:
        while not stop.wait(interval_sec):
            self._post(self._deliver, on_tick, generation)

    def _deliver(self, on_tick: Callable[[], None], generation: int) -> None:
        if generation != self._generation:
            return
        on_tick()
