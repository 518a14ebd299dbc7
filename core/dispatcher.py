# -*- coding: utf-8 -*-

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_STOP = object()


class SerialDispatcher:
    """
    One worker thread that owns the timer engine.
    Clock pulses, notification callbacks and caller requests are all
    queued here and applied one at a time, in arrival order.
    """

    def __init__(self, name: str = "timer-engine"):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread is None:
            return
        self._queue.put(_STOP)
        if not self.in_owner_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def in_owner_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def post(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Queue fn(*args) and return without waiting."""
        return self._submit(fn, args, True)

    def _submit(self, fn, args, log_errors: bool) -> Future:
        fut: Future = Future()
        self._queue.put((fn, args, fut, log_errors))
        return fut

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        """Run fn(*args) on the owner thread and return its result."""
        if self.in_owner_thread():
            return fn(*args)
        if self._thread is None:
            raise RuntimeError("Dispatcher is not running.")
        return self._submit(fn, args, False).result(timeout=timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, args, fut, log_errors = item
            if not fut.set_running_or_notify_cancel():
                continue
            try:
                fut.set_result(fn(*args))
            except Exception as e:
                # call() re-raises in the caller; only posts need logging here
                if log_errors:
                    logger.exception("dispatched call %r failed", fn)
                fut.set_exception(e)
