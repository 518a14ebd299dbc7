# -*- coding: utf-8 -*-

import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from domain.models import (
    CompletionEvent,
    EngineState,
    Idle,
    PendingReview,
    Record,
    ReviewTicket,
    Running,
    Session,
    Tag,
)

logger = logging.getLogger(__name__)

ABORT_MIN_ELAPSED_SEC = 30
TICK_INTERVAL_SEC = 1
# late alerts only ever target recent sessions
FINISHED_IDS_KEPT = 64

StateCallback = Callable[[EngineState], None]
CompletionCallback = Callable[[CompletionEvent], None]


def format_time(seconds: int) -> str:
    m = max(0, int(seconds)) // 60
    s = max(0, int(seconds)) % 60
    return f"{m:02d}:{s:02d}"


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class EngineSnapshot:
    status: str  # "idle" | "running" | "pending_review"
    remaining_sec: int
    progress: float
    time_string: str
    session: Optional[Session]


class TimerEngine:
    """
    Single-timer state machine: Idle -> Running -> PendingReview -> Idle.

    Not thread-safe on its own. Every call must come from one owner
    (see core.dispatcher.SerialDispatcher); the clock source and the
    notifier are expected to post their callbacks there.

    Collaborators (duck-typed):
    - clock.arm(interval_sec, on_tick) / clock.disarm()
    - notifier.schedule_completion_alert(session_id, tag_name, fire_after_sec)
      / notifier.cancel_completion_alert(session_id)
    """

    def __init__(
        self,
        clock,
        notifier,
        now: Callable[[], float] = time.time,
        abort_min_elapsed_sec: float = ABORT_MIN_ELAPSED_SEC,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.clock = clock
        self.notifier = notifier
        self._now = now
        self.abort_min_elapsed_sec = abort_min_elapsed_sec
        self._new_id = id_factory

        self._state: EngineState = Idle()
        self._observers: List[Tuple[StateCallback, Optional[CompletionCallback]]] = []
        # sessions that already left Running for good (completed or aborted)
        self._finished_ids: "OrderedDict[str, None]" = OrderedDict()

    # ----- Observers -----
    def subscribe(
        self,
        on_state_changed: StateCallback,
        on_completion: Optional[CompletionCallback] = None,
    ) -> Callable[[], None]:
        entry = (on_state_changed, on_completion)
        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    def _emit_state_change(self) -> None:
        state = self._state
        for on_state_changed, _ in list(self._observers):
            try:
                on_state_changed(state)
            except Exception:
                logger.exception("state observer failed")

    def _emit_completion(self, session: Session, completed_at: float) -> None:
        event = CompletionEvent(session=session, completed_at=completed_at)
        for _, on_completion in list(self._observers):
            if on_completion is None:
                continue
            try:
                on_completion(event)
            except Exception:
                logger.exception("completion observer failed")

    # ----- Read-only projections -----
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return isinstance(self._state, Running)

    @property
    def is_idle(self) -> bool:
        return isinstance(self._state, Idle)

    @property
    def current_session(self) -> Optional[Session]:
        if isinstance(self._state, (Running, PendingReview)):
            return self._state.session
        return None

    @property
    def pending_session(self) -> Optional[Session]:
        if isinstance(self._state, PendingReview):
            return self._state.session
        return None

    @property
    def remaining_sec(self) -> int:
        if isinstance(self._state, Running):
            return self._state.remaining_sec
        return 0

    @property
    def time_string(self) -> str:
        return format_time(self.remaining_sec)

    @property
    def progress(self) -> float:
        state = self._state
        if isinstance(state, PendingReview):
            return 1.0
        if not isinstance(state, Running):
            return 0.0
        frac = 1.0 - (state.remaining_sec / float(state.session.duration_sec))
        return min(1.0, max(0.0, frac))

    def snapshot(self) -> EngineSnapshot:
        state = self._state
        if isinstance(state, Running):
            status = "running"
        elif isinstance(state, PendingReview):
            status = "pending_review"
        else:
            status = "idle"
        return EngineSnapshot(
            status=status,
            remaining_sec=self.remaining_sec,
            progress=self.progress,
            time_string=self.time_string,
            session=self.current_session,
        )

    def now(self) -> float:
        return self._now()

    def review(self) -> Optional[ReviewTicket]:
        state = self._state
        if not isinstance(state, PendingReview):
            return None
        return ReviewTicket(
            session=state.session,
            completed_at=state.completed_at,
            reviewed_at=self._now(),
        )

    # ----- Transitions -----
    def start(self, duration_sec: int, tag: Tag) -> bool:
        duration_sec = int(duration_sec)
        if duration_sec <= 0:
            raise ValueError("Duration must be positive.")

        if not isinstance(self._state, Idle):
            logger.info("start rejected: engine is %s", type(self._state).__name__)
            return False

        session = Session(
            id=self._new_id(),
            tag=tag,
            duration_sec=duration_sec,
            start_ts=self._now(),
        )
        self._state = Running(session=session, remaining_sec=duration_sec)
        self.clock.arm(TICK_INTERVAL_SEC, self.tick)
        self._schedule_alert(session, duration_sec)
        logger.info(
            "timer started: session=%s tag=%s duration=%ss",
            session.id,
            tag.name,
            duration_sec,
        )

        self._emit_state_change()
        return True

    def resume(self, session: Session, remaining_sec: int) -> bool:
        """
        Re-enter Running for a session started by an earlier process.
        The session keeps its id and start time; only the countdown restarts.
        """
        remaining_sec = int(remaining_sec)
        if remaining_sec <= 0:
            raise ValueError("Remaining time must be positive.")
        if session.id in self._finished_ids:
            logger.debug("resume for finished session=%s ignored", session.id)
            return False
        if not isinstance(self._state, Idle):
            logger.info("resume rejected: engine is %s", type(self._state).__name__)
            return False

        remaining_sec = min(remaining_sec, session.duration_sec)
        self._state = Running(session=session, remaining_sec=remaining_sec)
        self.clock.arm(TICK_INTERVAL_SEC, self.tick)
        self._schedule_alert(session, remaining_sec)
        logger.info("timer resumed: session=%s remaining=%ss", session.id, remaining_sec)

        self._emit_state_change()
        return True

    def tick(self) -> None:
        state = self._state
        if not isinstance(state, Running):
            return

        remaining = max(0, state.remaining_sec - 1)
        if remaining > 0:
            self._state = Running(session=state.session, remaining_sec=remaining)
            self._emit_state_change()
            return

        self._complete(state.session)

    def abort(self) -> Optional[Record]:
        """
        Stop the running session early. Returns a record to persist when
        more than the minimum elapsed time was tracked, otherwise None.
        """
        state = self._state
        if not isinstance(state, Running):
            return None

        session = state.session
        self.clock.disarm()
        self._cancel_alert(session)

        stop_ts = self._now()
        elapsed = stop_ts - session.start_ts
        record = None
        if elapsed > self.abort_min_elapsed_sec:
            record = Record(
                id=self._new_id(),
                tag_id=session.tag.id,
                start_ts=session.start_ts,
                stop_ts=stop_ts,
                distraction_min=0,
            )

        self._mark_finished(session.id)
        self._state = Idle()
        logger.info(
            "timer aborted: session=%s elapsed=%.1fs record=%s",
            session.id,
            elapsed,
            "yes" if record else "no",
        )

        self._emit_state_change()
        return record

    def reconcile_external_completion(
        self,
        session_id: str,
        tag: Tag,
        start_ts: float,
        duration_sec: Optional[int] = None,
    ) -> bool:
        """
        Enter PendingReview for a session whose completion was learned
        from a notification. Returns False when nothing changed.
        """
        if session_id in self._finished_ids:
            logger.debug("duplicate completion for session=%s ignored", session_id)
            return False

        state = self._state
        if isinstance(state, Running):
            if state.session.id != session_id:
                logger.warning(
                    "completion for session=%s ignored: session=%s is running",
                    session_id,
                    state.session.id,
                )
                return False
            self._complete(state.session)
            return True

        if isinstance(state, PendingReview):
            if state.session.id != session_id:
                logger.warning(
                    "completion for session=%s ignored: session=%s awaits review",
                    session_id,
                    state.session.id,
                )
            return False

        now = self._now()
        if duration_sec is None or int(duration_sec) <= 0:
            duration_sec = max(1, int(now - start_ts))
        session = Session(
            id=session_id,
            tag=tag,
            duration_sec=int(duration_sec),
            start_ts=start_ts,
        )
        self._mark_finished(session_id)
        self._state = PendingReview(session=session, completed_at=now)
        logger.info("session=%s reconciled from notification", session_id)

        self._emit_completion(session, now)
        self._emit_state_change()
        return True

    def clear_review(self) -> bool:
        state = self._state
        if not isinstance(state, PendingReview):
            logger.info("clear_review rejected: engine is %s", type(state).__name__)
            return False
        self._state = Idle()
        logger.info("review cleared: session=%s", state.session.id)
        self._emit_state_change()
        return True

    # ----- Internals -----
    def _mark_finished(self, session_id: str) -> None:
        self._finished_ids[session_id] = None
        self._finished_ids.move_to_end(session_id)
        while len(self._finished_ids) > FINISHED_IDS_KEPT:
            self._finished_ids.popitem(last=False)

    def _complete(self, session: Session) -> None:
        self.clock.disarm()
        completed_at = self._now()
        self._mark_finished(session.id)
        self._state = PendingReview(session=session, completed_at=completed_at)
        logger.info("timer completed: session=%s", session.id)

        self._emit_completion(session, completed_at)
        self._emit_state_change()

    def _schedule_alert(self, session: Session, fire_after_sec: int) -> None:
        try:
            self.notifier.schedule_completion_alert(
                session.id, session.tag.name, fire_after_sec
            )
        except Exception as e:
            # the in-process countdown still completes the session
            logger.warning("could not schedule alert for session=%s: %s", session.id, e)

    def _cancel_alert(self, session: Session) -> None:
        try:
            self.notifier.cancel_completion_alert(session.id)
        except Exception as e:
            logger.warning("could not cancel alert for session=%s: %s", session.id, e)
