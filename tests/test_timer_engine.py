"""Unit tests for TimerEngine: fixed clock, manual pulses, no threads."""

import pytest

from core.fakes import FixedClock, ImmediateNotifier, ManualClockSource
from core.timer_engine import FINISHED_IDS_KEPT, TimerEngine, format_time
from domain.models import Idle, PendingReview, Running, Session, Tag

TAG = Tag(id="tag-1", name="Coding", color="#FF9500", note="Software development tasks")
OTHER_TAG = Tag(id="tag-2", name="Reading")


# ---- Helpers ----

class Recorder:
    def __init__(self, claim: bool = True):
        self.states = []
        self.completions = []
        self.claimed = 0
        self._claim = claim

    def on_state(self, state):
        self.states.append(state)

    def on_completion(self, event):
        self.completions.append(event)
        if self._claim and event.claim():
            self.claimed += 1


def make_engine(notifier=None, abort_min: float = 30):
    clock = FixedClock()
    source = ManualClockSource(clock)
    notifier = notifier or ImmediateNotifier()
    engine = TimerEngine(
        clock=source,
        notifier=notifier,
        now=clock,
        abort_min_elapsed_sec=abort_min,
    )
    return engine, source, clock, notifier


def running_engine(duration: int = 60):
    engine, source, clock, notifier = make_engine()
    assert engine.start(duration, TAG)
    return engine, source, clock, notifier


# ---- format_time ----

class TestFormatTime:
    def test_zero(self):
        assert format_time(0) == "00:00"

    def test_minutes_and_seconds(self):
        assert format_time(25 * 60) == "25:00"
        assert format_time(61) == "01:01"

    def test_negative_clamps(self):
        assert format_time(-5) == "00:00"


# ---- start ----

class TestStart:
    def test_start_from_idle(self):
        engine, source, clock, notifier = make_engine()
        rec = Recorder()
        engine.subscribe(rec.on_state, rec.on_completion)

        assert engine.start(1500, TAG) is True

        state = engine.state
        assert isinstance(state, Running)
        assert state.remaining_sec == 1500
        assert state.session.tag == TAG
        assert state.session.duration_sec == 1500
        assert state.session.start_ts == clock.now
        assert source.is_armed
        assert source.interval_sec == 1
        assert len(rec.states) == 1

    def test_start_schedules_alert_for_remaining_time(self):
        engine, _, _, notifier = make_engine()
        engine.start(300, TAG)
        session_id = engine.current_session.id
        assert notifier.scheduled[session_id] == {"tag_name": "Coding", "fire_after_sec": 300}

    def test_second_start_is_rejected(self):
        engine, source, _, _ = make_engine()
        assert engine.start(60, TAG) is True
        first = engine.current_session

        assert engine.start(120, OTHER_TAG) is False
        assert engine.current_session is first
        assert engine.remaining_sec == 60
        assert source.arm_count == 1

    def test_start_rejected_while_pending_review(self):
        engine, source, _, _ = running_engine(3)
        source.pulse(3)
        pending = engine.state

        assert engine.start(60, OTHER_TAG) is False
        assert engine.state is pending
        assert isinstance(engine.state, PendingReview)

    @pytest.mark.parametrize("duration", [0, -10])
    def test_non_positive_duration(self, duration):
        engine, _, _, _ = make_engine()
        with pytest.raises(ValueError):
            engine.start(duration, TAG)
        assert isinstance(engine.state, Idle)

    def test_scheduling_failure_does_not_block_start(self):
        engine, source, _, _ = make_engine(notifier=ImmediateNotifier(fail=True))
        assert engine.start(60, TAG) is True
        assert engine.is_running
        assert source.is_armed


# ---- tick ----

class TestTick:
    def test_countdown_is_monotonic(self):
        engine, source, _, _ = running_engine(10)
        for k in range(1, 10):
            source.pulse()
            assert engine.remaining_sec == 10 - k
            assert engine.remaining_sec >= 0

    def test_tick_while_idle_is_noop(self):
        engine, _, _, _ = make_engine()
        rec = Recorder()
        engine.subscribe(rec.on_state)
        engine.tick()
        assert isinstance(engine.state, Idle)
        assert rec.states == []

    def test_reaching_zero_enters_pending_review(self):
        engine, source, clock, _ = running_engine(5)
        delivered = source.pulse(20)

        assert delivered == 5
        state = engine.state
        assert isinstance(state, PendingReview)
        assert state.completed_at == clock.now
        assert not source.is_armed

    def test_completion_emitted_once_across_observers(self):
        engine, source, _, _ = running_engine(3)
        recorders = [Recorder() for _ in range(3)]
        for rec in recorders:
            engine.subscribe(rec.on_state, rec.on_completion)

        source.pulse(3)
        engine.tick()

        for rec in recorders:
            assert len(rec.completions) == 1
        assert sum(rec.claimed for rec in recorders) == 1
        assert recorders[0].claimed == 1

    def test_completion_precedes_state_change(self):
        engine, source, _, _ = running_engine(2)
        log = []
        engine.subscribe(
            lambda s: log.append(("state", type(s).__name__)),
            lambda e: log.append(("completion", e.session.id)),
        )
        source.pulse(2)
        assert log == [
            ("state", "Running"),
            ("completion", engine.current_session.id),
            ("state", "PendingReview"),
        ]


# ---- projections ----

class TestProjections:
    def test_idle(self):
        engine, _, _, _ = make_engine()
        assert engine.progress == 0.0
        assert engine.time_string == "00:00"
        assert engine.snapshot().status == "idle"
        assert engine.snapshot().session is None

    def test_running(self):
        engine, source, _, _ = running_engine(100)
        source.pulse(25)
        assert engine.progress == pytest.approx(0.25)
        assert engine.time_string == "01:15"
        snap = engine.snapshot()
        assert snap.status == "running"
        assert snap.remaining_sec == 75

    def test_pending_review(self):
        engine, source, _, _ = running_engine(4)
        source.pulse(4)
        assert engine.progress == 1.0
        assert engine.snapshot().status == "pending_review"
        assert engine.pending_session is engine.current_session


# ---- abort ----

class TestAbort:
    def test_abort_under_threshold_discards(self):
        engine, source, clock, notifier = running_engine(600)
        session_id = engine.current_session.id
        clock.advance(29)

        assert engine.abort() is None
        assert isinstance(engine.state, Idle)
        assert not source.is_armed
        assert notifier.cancelled == [session_id]

    def test_abort_at_exact_threshold_discards(self):
        engine, _, clock, _ = running_engine(600)
        clock.advance(30)
        assert engine.abort() is None

    def test_abort_over_threshold_emits_record(self):
        engine, _, clock, _ = running_engine(600)
        session = engine.current_session
        clock.advance(31)

        record = engine.abort()

        assert record is not None
        assert record.tag_id == TAG.id
        assert record.start_ts == session.start_ts
        assert record.stop_ts == clock.now
        assert record.distraction_min == 0
        assert isinstance(engine.state, Idle)

    def test_abort_when_idle(self):
        engine, _, _, _ = make_engine()
        assert engine.abort() is None

    def test_abort_during_review_is_noop(self):
        engine, source, _, _ = running_engine(3)
        source.pulse(3)
        pending = engine.state
        assert engine.abort() is None
        assert engine.state is pending

    def test_tick_after_abort_is_noop(self):
        engine, _, clock, _ = running_engine(3)
        clock.advance(2)
        engine.abort()
        engine.tick()
        assert isinstance(engine.state, Idle)

    def test_engine_is_reusable_after_abort(self):
        engine, _, _, _ = running_engine(60)
        engine.abort()
        assert engine.start(60, OTHER_TAG) is True


# ---- external completion ----

class TestReconcile:
    def test_from_idle_synthesizes_review(self):
        engine, _, clock, _ = make_engine()
        rec = Recorder()
        engine.subscribe(rec.on_state, rec.on_completion)
        start_ts = clock.now - 1500

        assert engine.reconcile_external_completion("abc", TAG, start_ts, 1500) is True

        state = engine.state
        assert isinstance(state, PendingReview)
        assert state.session.id == "abc"
        assert state.session.tag == TAG
        assert state.session.start_ts == start_ts
        assert state.completed_at == clock.now
        assert rec.claimed == 1

    def test_second_delivery_is_noop(self):
        engine, _, clock, _ = make_engine()
        engine.reconcile_external_completion("abc", TAG, clock.now - 60)
        first = engine.state
        clock.advance(45)

        assert engine.reconcile_external_completion("abc", TAG, clock.now - 60) is False
        assert engine.state is first
        assert engine.state.completed_at == first.completed_at

    def test_unknown_duration_uses_elapsed(self):
        engine, _, clock, _ = make_engine()
        engine.reconcile_external_completion("abc", TAG, clock.now - 90)
        assert engine.pending_session.duration_sec == 90

    def test_running_session_completes(self):
        engine, source, _, _ = running_engine(1500)
        session = engine.current_session
        source.pulse(10)

        assert engine.reconcile_external_completion(session.id, TAG, session.start_ts) is True
        assert isinstance(engine.state, PendingReview)
        assert engine.pending_session is session
        assert not source.is_armed
        assert source.pulse(5) == 0

    def test_other_running_session_untouched(self):
        engine, _, _, _ = running_engine(60)
        running = engine.state
        assert engine.reconcile_external_completion("stale", TAG, 0.0) is False
        assert engine.state is running

    def test_other_pending_session_untouched(self):
        engine, source, _, _ = running_engine(2)
        source.pulse(2)
        pending = engine.state
        assert engine.reconcile_external_completion("stale", OTHER_TAG, 0.0) is False
        assert engine.state is pending

    def test_after_in_process_completion_is_noop(self):
        engine, source, clock, _ = running_engine(3)
        rec = Recorder()
        engine.subscribe(rec.on_state, rec.on_completion)
        session = engine.current_session
        source.pulse(3)
        completed_at = engine.state.completed_at
        clock.advance(10)

        assert engine.reconcile_external_completion(session.id, TAG, session.start_ts) is False
        assert engine.state.completed_at == completed_at
        assert len(rec.completions) == 1

    def test_after_review_cleared_is_noop(self):
        engine, source, _, _ = running_engine(3)
        session = engine.current_session
        source.pulse(3)
        engine.clear_review()

        assert engine.reconcile_external_completion(session.id, TAG, session.start_ts) is False
        assert isinstance(engine.state, Idle)

    def test_after_abort_is_noop(self):
        engine, _, clock, _ = running_engine(60)
        session = engine.current_session
        clock.advance(5)
        engine.abort()
        assert engine.reconcile_external_completion(session.id, TAG, session.start_ts) is False
        assert isinstance(engine.state, Idle)


# ---- review gate ----

class TestReview:
    def test_no_review_unless_pending(self):
        engine, _, _, _ = running_engine(60)
        assert engine.review() is None

    def test_review_reports_wall_clock_elapsed(self):
        engine, source, clock, _ = running_engine(1500)
        source.pulse(1500)
        clock.advance(61)

        ticket = engine.review()
        assert ticket.tag == TAG
        assert ticket.elapsed_sec == pytest.approx(1561)
        assert ticket.max_distraction_min == 27

    def test_clear_review(self):
        engine, source, _, _ = running_engine(2)
        source.pulse(2)
        assert engine.clear_review() is True
        assert isinstance(engine.state, Idle)
        assert engine.start(60, TAG) is True

    def test_clear_review_rejected_outside_review(self):
        engine, _, _, _ = make_engine()
        assert engine.clear_review() is False
        engine.start(60, TAG)
        assert engine.clear_review() is False
        assert engine.is_running


# ---- observers ----

class TestObservers:
    def test_failing_observer_does_not_stop_others(self):
        engine, _, _, _ = make_engine()
        rec = Recorder()

        def boom(state):
            raise RuntimeError("observer bug")

        engine.subscribe(boom)
        engine.subscribe(rec.on_state)
        assert engine.start(60, TAG) is True
        assert len(rec.states) == 1

    def test_unsubscribe(self):
        engine, _, _, _ = make_engine()
        rec = Recorder()
        unsubscribe = engine.subscribe(rec.on_state)
        unsubscribe()
        unsubscribe()
        engine.start(60, TAG)
        assert rec.states == []

    def test_events_in_transition_order(self):
        engine, source, clock, _ = make_engine()
        rec = Recorder()
        engine.subscribe(rec.on_state)
        engine.start(2, TAG)
        source.pulse(2)
        engine.clear_review()
        assert [type(s).__name__ for s in rec.states] == [
            "Running",
            "Running",
            "PendingReview",
            "Idle",
        ]


# ---- resume ----

class TestResume:
    def make_session(self, clock, duration_sec: int = 600, elapsed: float = 100) -> Session:
        return Session(id="prev", tag=TAG, duration_sec=duration_sec, start_ts=clock.now - elapsed)

    def test_resume_from_idle(self):
        engine, source, clock, notifier = make_engine()
        session = self.make_session(clock)

        assert engine.resume(session, 500) is True

        assert engine.state == Running(session=session, remaining_sec=500)
        assert source.is_armed
        assert notifier.scheduled["prev"]["fire_after_sec"] == 500

        source.pulse(500)
        assert engine.pending_session is session

    def test_remaining_capped_at_duration(self):
        engine, _, clock, _ = make_engine()
        engine.resume(self.make_session(clock, duration_sec=60), 300)
        assert engine.remaining_sec == 60

    def test_resume_rejected_unless_idle(self):
        engine, _, clock, _ = running_engine(60)
        running = engine.state
        assert engine.resume(self.make_session(clock), 500) is False
        assert engine.state is running

    def test_resume_finished_session_is_noop(self):
        engine, _, clock, _ = make_engine()
        session = self.make_session(clock)
        engine.resume(session, 500)
        engine.abort()

        assert engine.resume(session, 400) is False
        assert engine.is_idle

    def test_non_positive_remaining(self):
        engine, _, clock, _ = make_engine()
        with pytest.raises(ValueError):
            engine.resume(self.make_session(clock), 0)

    def test_abort_measures_from_original_start(self):
        engine, _, clock, _ = make_engine()
        session = self.make_session(clock, elapsed=100)
        engine.resume(session, 500)
        clock.advance(10)

        record = engine.abort()

        assert record.start_ts == session.start_ts
        assert record.duration_sec == pytest.approx(110)


# ---- finished-session memory ----

class TestFinishedIds:
    def test_memory_is_bounded(self):
        engine, _, clock, _ = make_engine()
        for i in range(FINISHED_IDS_KEPT + 10):
            engine.reconcile_external_completion(f"s{i}", TAG, clock.now - 60)
            engine.clear_review()

        assert len(engine._finished_ids) == FINISHED_IDS_KEPT
        assert "s0" not in engine._finished_ids

    def test_recent_ids_still_deduplicated(self):
        engine, _, clock, _ = make_engine()
        for i in range(FINISHED_IDS_KEPT + 10):
            engine.reconcile_external_completion(f"s{i}", TAG, clock.now - 60)
            engine.clear_review()

        last = f"s{FINISHED_IDS_KEPT + 9}"
        assert engine.reconcile_external_completion(last, TAG, clock.now - 60) is False
        assert engine.is_idle
