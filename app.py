#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import threading
import time

import config
from core.clock import ThreadClockSource
from core.dispatcher import SerialDispatcher
from core.timer_engine import TimerEngine
from domain.models import CompletionEvent, EngineState, Running
from services.notifications import DesktopNotifier
from services.timer_service import TimerService
from storage.db import Database
from storage.repos import AppStateRepo, RecordRepo, TagRepo

logger = logging.getLogger(__name__)


def build_service(db: Database, dispatcher: SerialDispatcher) -> TimerService:
    notifier = DesktopNotifier(
        app_name=config.APP_NAME,
        title=config.NOTIFICATION_TITLE,
        kind=config.NOTIFICATION_KIND,
        timeout_sec=config.NOTIFICATION_TIMEOUT_SEC,
    )
    engine = TimerEngine(
        clock=ThreadClockSource(dispatcher.post),
        notifier=notifier,
        abort_min_elapsed_sec=config.ABORT_MIN_ELAPSED_SEC,
    )
    return TimerService(
        engine=engine,
        dispatcher=dispatcher,
        record_store=RecordRepo(db),
        tag_repo=TagRepo(db),
        state_repo=AppStateRepo(db),
    )


def _ask_distraction(max_min: int) -> int:
    while True:
        raw = input(f"Minutes distracted (0-{max_min}) [0]: ").strip()
        if not raw:
            return 0
        try:
            return min(max_min, max(0, int(raw)))
        except ValueError:
            print("Please enter a whole number of minutes.")


def main():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format=config.LOG_FORMAT,
    )
    logging.getLogger("plyer").setLevel(logging.WARNING)

    db = Database(db_path=config.DB_PATH)
    db.init_schema()

    tag_repo = TagRepo(db)
    tags = tag_repo.list()
    tag = tags[0] if tags else tag_repo.create("Focus")

    dispatcher = SerialDispatcher()
    dispatcher.start()
    service = build_service(db, dispatcher)

    completed = threading.Event()

    def on_state_changed(state: EngineState) -> None:
        if isinstance(state, Running) and state.remaining_sec % 60 == 0:
            logger.info("%s remaining", service.engine.time_string)

    def on_completion(event: CompletionEvent) -> None:
        if event.claim():
            completed.set()

    service.subscribe(on_state_changed, on_completion)

    try:
        ticket = service.restore()
        if ticket is None:
            if service.get_snapshot().status == "running":
                print("Resuming the session from the previous run.")
            else:
                service.start(tag.id, config.DEFAULT_DURATION_MIN)
            while not completed.is_set():
                time.sleep(0.5)
            ticket = service.review()

        print(f"{ticket.tag.name}: {ticket.duration_text}")
        distraction = _ask_distraction(ticket.max_distraction_min)
        result = service.commit_review(distraction)
        while not result.saved:
            print(f"Could not save: {result.error}")
            if result.record is None or input("Retry? [y/N] ").strip().lower() != "y":
                service.discard_review()
                break
            result = service.commit_review(distraction)
        if result.saved:
            logged = RecordRepo(db).list(tag_id=ticket.tag.id)
            print(f"{len(logged)} {ticket.tag.name} session(s) logged.")
    except KeyboardInterrupt:
        result = service.abort()
        if result.saved:
            print("Partial session saved.")
    finally:
        service.close()
        dispatcher.stop()
        db.close()


if __name__ == "__main__":
    main()
