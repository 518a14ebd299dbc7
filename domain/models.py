# -*- coding: utf-8 -*-

import math
from dataclasses import dataclass, field
from typing import Optional, Union

DEFAULT_TAG_COLOR = "#007AFF"


@dataclass(frozen=True)
class Tag:
    id: str
    name: str
    color: str = DEFAULT_TAG_COLOR
    note: str = ""


@dataclass(frozen=True)
class Session:
    id: str
    tag: Tag
    duration_sec: int
    start_ts: float

    @property
    def formatted_duration(self) -> str:
        m = int(self.duration_sec) // 60
        s = int(self.duration_sec) % 60
        return f"{m:02d}:{s:02d}"


@dataclass(frozen=True)
class Record:
    id: str
    tag_id: str
    start_ts: float
    stop_ts: float
    distraction_min: int = 0

    @property
    def duration_sec(self) -> float:
        return self.stop_ts - self.start_ts


# ----- Engine state (exactly one at a time) -----
@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Running:
    session: Session
    remaining_sec: int


@dataclass(frozen=True)
class PendingReview:
    session: Session
    completed_at: float


EngineState = Union[Idle, Running, PendingReview]


@dataclass(frozen=True)
class ReviewTicket:
    """
    What the review step needs, whether the session finished in-process
    or was reconciled from a notification.
    """

    session: Session
    completed_at: float
    reviewed_at: float

    @property
    def tag(self) -> Tag:
        return self.session.tag

    @property
    def elapsed_sec(self) -> float:
        return max(0.0, self.reviewed_at - self.session.start_ts)

    @property
    def max_distraction_min(self) -> int:
        # picker bound only; the record keeps exact timestamps
        return int(math.ceil(self.elapsed_sec / 60))

    @property
    def duration_text(self) -> str:
        total = self.max_distraction_min
        hours = total // 60
        minutes = total % 60
        if hours > 0:
            return f"{hours} hours {minutes} minutes"
        return f"{minutes} minutes"

    def build_record(self, record_id: str, distraction_min: int = 0) -> Record:
        distraction_min = int(distraction_min)
        if distraction_min < 0 or distraction_min > self.max_distraction_min:
            raise ValueError(
                f"Distraction must be between 0 and {self.max_distraction_min} minutes."
            )
        return Record(
            id=record_id,
            tag_id=self.session.tag.id,
            start_ts=self.session.start_ts,
            stop_ts=self.reviewed_at,
            distraction_min=distraction_min,
        )


@dataclass
class CompletionEvent:
    """Emitted once per session; the first consumer to claim() owns it."""

    session: Session
    completed_at: float
    _claimed: bool = field(default=False, repr=False)

    def claim(self) -> bool:
        # engine callbacks run on the single dispatcher thread
        if self._claimed:
            return False
        self._claimed = True
        return True

    @property
    def claimed(self) -> bool:
        return self._claimed


@dataclass(frozen=True)
class SaveResult:
    saved: bool
    record: Optional[Record] = None
    error: Optional[str] = None
