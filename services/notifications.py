# -*- coding: utf-8 -*-

import logging
import threading
from typing import Callable, Dict, Optional

from plyer import notification

from core.errors import NotificationError

logger = logging.getLogger(__name__)


class DesktopNotifier:
    """
    One-shot completion alerts shown through the OS notification center.

    Each alert is a threading.Timer; when it fires the toast is shown and
    the handler receives the session id. The handler is expected to post
    into the engine's dispatcher, never to touch engine state directly.
    """

    def __init__(
        self,
        app_name: str = "ClockedIn",
        title: str = "Timer Completed!",
        kind: str = "timer_completion",
        timeout_sec: int = 10,
    ):
        self.app_name = app_name
        self.title = title
        self.kind = kind
        self.timeout_sec = timeout_sec
        self._handler: Optional[Callable[[str], None]] = None
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def set_handler(self, on_user_acted: Callable[[str], None]) -> None:
        self._handler = on_user_acted

    def schedule_completion_alert(self, session_id: str, tag_name: str, fire_after_sec: float) -> None:
        timer = threading.Timer(
            max(0.0, float(fire_after_sec)),
            self._fire,
            args=(session_id, tag_name),
        )
        timer.daemon = True
        with self._lock:
            old = self._timers.pop(session_id, None)
            if old is not None:
                old.cancel()
            self._timers[session_id] = timer
        try:
            timer.start()
        except RuntimeError as e:
            with self._lock:
                self._timers.pop(session_id, None)
            raise NotificationError(f"could not schedule alert for {session_id}: {e}") from e
        logger.debug("alert scheduled: session=%s in %ss", session_id, fire_after_sec)

    def cancel_completion_alert(self, session_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()
            logger.debug("alert cancelled: session=%s", session_id)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for t in timers:
            t.cancel()

    def _fire(self, session_id: str, tag_name: str) -> None:
        with self._lock:
            if self._timers.pop(session_id, None) is None:
                return  # cancelled

        try:
            notification.notify(
                title=self.title,
                message=f"{tag_name} session finished. Tap to review.",
                app_name=self.app_name,
                timeout=self.timeout_sec,
            )
        except Exception as e:
            # toast is cosmetic; the session still needs its review
            logger.warning("could not show %s notification: %s", self.kind, e)

        if self._handler is not None:
            self._handler(session_id)
