# -*- coding: utf-8 -*-
"""
Deterministic stand-ins for the engine's collaborators: a fixed clock,
a manually pulsed clock source, immediate notification delivery, an
inline dispatcher and an in-memory record store.
"""

from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from core.errors import NotificationError, StoreError
from domain.models import Record


class FixedClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualClockSource:
    """Clock source that only pulses when told to. Optionally advances a FixedClock."""

    def __init__(self, clock: Optional[FixedClock] = None):
        self.clock = clock
        self.interval_sec: Optional[float] = None
        self._on_tick: Optional[Callable[[], None]] = None
        self.arm_count = 0
        self.disarm_count = 0

    @property
    def is_armed(self) -> bool:
        return self._on_tick is not None

    def arm(self, interval_sec: float, on_tick: Callable[[], None]) -> None:
        self.interval_sec = interval_sec
        self._on_tick = on_tick
        self.arm_count += 1

    def disarm(self) -> None:
        self._on_tick = None
        self.disarm_count += 1

    def pulse(self, count: int = 1) -> int:
        """Deliver up to `count` ticks; returns how many were delivered."""
        delivered = 0
        for _ in range(count):
            if self._on_tick is None:
                break
            if self.clock is not None:
                self.clock.advance(self.interval_sec or 1)
            self._on_tick()
            delivered += 1
        return delivered


class ImmediateNotifier:
    """Keeps scheduled alerts in a dict; deliver() invokes the handler right away."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.scheduled: Dict[str, Dict[str, Any]] = {}
        self.cancelled: List[str] = []
        self._handler: Optional[Callable[[str], None]] = None

    def set_handler(self, on_user_acted: Callable[[str], None]) -> None:
        self._handler = on_user_acted

    def schedule_completion_alert(self, session_id: str, tag_name: str, fire_after_sec: float) -> None:
        if self.fail:
            raise NotificationError("notifications unavailable")
        self.scheduled[session_id] = {
            "tag_name": tag_name,
            "fire_after_sec": fire_after_sec,
        }

    def cancel_completion_alert(self, session_id: str) -> None:
        if self.scheduled.pop(session_id, None) is not None:
            self.cancelled.append(session_id)

    def cancel_all(self) -> None:
        self.cancelled.extend(self.scheduled)
        self.scheduled.clear()

    def deliver(self, session_id: str) -> None:
        self.scheduled.pop(session_id, None)
        if self._handler is not None:
            self._handler(session_id)


class InlineDispatcher:
    """Runs every posted call immediately on the calling thread."""

    def start(self) -> None:
        pass

    def stop(self, timeout: float = 2.0) -> None:
        pass

    def in_owner_thread(self) -> bool:
        return True

    def post(self, fn: Callable[..., Any], *args: Any) -> Future:
        fut: Future = Future()
        try:
            fut.set_result(fn(*args))
        except Exception as e:
            fut.set_exception(e)
        return fut

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        return fn(*args)


class MemoryRecordStore:
    def __init__(self):
        self.records: List[Record] = []
        self.fail_next = 0

    def append(self, record: Record) -> None:
        if self.fail_next > 0:
            self.fail_next -= 1
            raise StoreError("disk full")
        self.records.append(record)
