# -*- coding: utf-8 -*-

import json
import logging
import math
import sqlite3
import uuid
from typing import Any, Callable, Dict, Optional

import config
from core.errors import StoreError
from core.timer_engine import CompletionCallback, EngineSnapshot, StateCallback, TimerEngine
from domain.models import Record, ReviewTicket, SaveResult, Session, Tag
from storage.repos import AppStateRepo, TagRepo

logger = logging.getLogger(__name__)

ACTIVE_SESSION_KEY = "active_session"


def _new_id() -> str:
    return str(uuid.uuid4())


class TimerService:
    """
    Orchestrates:
    - TimerEngine transitions, always applied on the dispatcher thread
    - Record persistence for aborted and reviewed sessions
    - Completion alerts delivered by the notifier
    - The app_state mirror of the live session (for cold-start reconciliation)
    """

    def __init__(
        self,
        engine: TimerEngine,
        dispatcher,
        record_store,
        tag_repo: TagRepo,
        state_repo: Optional[AppStateRepo] = None,
        id_factory: Callable[[], str] = _new_id,
    ):
        self.engine = engine
        self.dispatcher = dispatcher
        self.record_store = record_store
        self.tag_repo = tag_repo
        self.state_repo = state_repo
        self._new_id = id_factory

        self.engine.notifier.set_handler(self._on_user_acted)

    # ----- Observers -----
    def subscribe(
        self,
        on_state_changed: StateCallback,
        on_completion: Optional[CompletionCallback] = None,
    ) -> Callable[[], None]:
        unsubscribe = self.dispatcher.call(self.engine.subscribe, on_state_changed, on_completion)

        def _unsubscribe() -> None:
            self.dispatcher.call(unsubscribe)

        return _unsubscribe

    # ----- Public API -----
    def get_snapshot(self) -> EngineSnapshot:
        return self.dispatcher.call(self.engine.snapshot)

    def review(self) -> Optional[ReviewTicket]:
        return self.dispatcher.call(self.engine.review)

    def start(self, tag_id: str, minutes: int = config.DEFAULT_DURATION_MIN) -> bool:
        if not tag_id:
            raise ValueError("Tag must be selected before starting timer.")
        minutes = int(minutes)
        if minutes < config.MIN_DURATION_MIN or minutes > config.MAX_DURATION_MIN:
            raise ValueError(
                f"Duration must be between {config.MIN_DURATION_MIN} "
                f"and {config.MAX_DURATION_MIN} minutes."
            )

        tag = self.tag_repo.get(tag_id)
        if tag is None:
            raise ValueError("Selected tag not found.")

        return self.dispatcher.call(self._start, tag, minutes * 60)

    def abort(self) -> SaveResult:
        return self.dispatcher.call(self._abort)

    def commit_review(self, distraction_min: int = 0) -> SaveResult:
        return self.dispatcher.call(self._commit_review, distraction_min)

    def discard_review(self) -> bool:
        return self.dispatcher.call(self._discard_review)

    def handle_notification(self, session_id: str) -> Optional[ReviewTicket]:
        return self.dispatcher.call(self._handle_notification, session_id)

    def restore(self) -> Optional[ReviewTicket]:
        """
        Pick up a session left behind by a previous process.
        Finished sessions go straight to review; unfinished ones resume
        counting down, so a new start is rejected until they end.
        """
        return self.dispatcher.call(self._restore)

    def close(self) -> None:
        """Stop the clock and drop pending alerts; the live session stays mirrored."""
        self.dispatcher.call(self.engine.clock.disarm)
        self.engine.notifier.cancel_all()

    # ----- Dispatcher-side work -----
    def _start(self, tag: Tag, duration_sec: int) -> bool:
        if not self.engine.start(duration_sec, tag):
            return False
        session = self.engine.current_session
        self._save_active(
            {
                "id": session.id,
                "tag_id": tag.id,
                "start_ts": session.start_ts,
                "duration_sec": session.duration_sec,
            }
        )
        return True

    def _abort(self) -> SaveResult:
        if not self.engine.is_running:
            return SaveResult(saved=False, error="No timer is running.")

        record = self.engine.abort()
        self._clear_active()
        if record is None:
            return SaveResult(saved=False)
        return self._persist(record)

    def _commit_review(self, distraction_min: int) -> SaveResult:
        ticket = self.engine.review()
        if ticket is None:
            return SaveResult(saved=False, error="No session awaiting review.")

        record = ticket.build_record(self._new_id(), distraction_min)
        result = self._persist(record)
        if result.saved:
            self.engine.clear_review()
            self._clear_active()
        return result

    def _discard_review(self) -> bool:
        if not self.engine.clear_review():
            return False
        self._clear_active()
        return True

    def _handle_notification(self, session_id: str) -> Optional[ReviewTicket]:
        pending = self.engine.pending_session
        if pending is None:
            active = self._load_active()
            if active is None or active.get("id") != session_id:
                logger.warning("notification for unknown session=%s", session_id)
                return None
            self._reconcile(active)

        pending = self.engine.pending_session
        if pending is None or pending.id != session_id:
            return None
        return self.engine.review()

    def _restore(self) -> Optional[ReviewTicket]:
        if not self.engine.is_idle:
            return self.engine.review()

        active = self._load_active()
        if active is None:
            return None

        planned_end = float(active["start_ts"]) + int(active["duration_sec"])
        remaining = planned_end - self.engine.now()
        if remaining <= 0:
            self._reconcile(active)
            return self.engine.review()

        tag = self._lookup_tag(active)
        if tag is None:
            return None
        session = Session(
            id=active["id"],
            tag=tag,
            duration_sec=int(active["duration_sec"]),
            start_ts=float(active["start_ts"]),
        )
        self.engine.resume(session, math.ceil(remaining))
        return None

    # ----- Internals -----
    def _on_user_acted(self, session_id: str) -> None:
        # notifier thread: hand over to the engine's owner
        self.dispatcher.post(self._handle_notification, session_id)

    def _reconcile(self, active: Dict[str, Any]) -> bool:
        tag = self._lookup_tag(active)
        if tag is None:
            return False
        return self.engine.reconcile_external_completion(
            active["id"],
            tag,
            float(active["start_ts"]),
            int(active.get("duration_sec") or 0) or None,
        )

    def _lookup_tag(self, active: Dict[str, Any]) -> Optional[Tag]:
        tag = self.tag_repo.get(active["tag_id"])
        if tag is None:
            # records cascade away with their tag; the stored session goes too
            logger.warning(
                "session=%s dropped: tag %s no longer exists",
                active["id"],
                active["tag_id"],
            )
            self._clear_active()
        return tag

    def _persist(self, record: Record) -> SaveResult:
        try:
            self.record_store.append(record)
        except StoreError as e:
            logger.error("record %s not saved: %s", record.id, e)
            return SaveResult(saved=False, record=record, error=str(e))
        logger.info(
            "record saved: tag=%s %.0fs distraction=%sm",
            record.tag_id,
            record.duration_sec,
            record.distraction_min,
        )
        return SaveResult(saved=True, record=record)

    def _save_active(self, data: Dict[str, Any]) -> None:
        if self.state_repo is None:
            return
        try:
            self.state_repo.set(ACTIVE_SESSION_KEY, json.dumps(data))
        except sqlite3.Error as e:
            logger.warning("could not persist active session: %s", e)

    def _load_active(self) -> Optional[Dict[str, Any]]:
        if self.state_repo is None:
            return None
        raw = self.state_repo.get(ACTIVE_SESSION_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("discarding unreadable %s entry", ACTIVE_SESSION_KEY)
            self.state_repo.delete(ACTIVE_SESSION_KEY)
            return None

    def _clear_active(self) -> None:
        if self.state_repo is None:
            return
        try:
            self.state_repo.delete(ACTIVE_SESSION_KEY)
        except sqlite3.Error as e:
            logger.warning("could not clear active session: %s", e)
