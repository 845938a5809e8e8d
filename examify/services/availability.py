"""
Exam availability gate.

Classifies an exam as ``upcoming``, ``live`` or ``ended`` at a given instant.
``ended`` never blocks an attempt; the exam keeps running in practice mode and
late submissions simply fall outside the official window
(see :func:`within_official_window`).
"""
import enum
from datetime import datetime, timezone
from typing import Any, Optional


class ExamState(str, enum.Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    ENDED = "ended"


def to_utc(value: Any) -> Optional[datetime]:
    """Normalise a timestamp to an aware UTC datetime.

    Naive datetimes are taken to be UTC. ISO strings are parsed. Anything
    missing or unparseable becomes None, which callers treat as "no bound".
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def exam_state(exam: Any, now: Optional[datetime] = None) -> ExamState:
    if getattr(exam, "is_practice", False):
        return ExamState.LIVE
    now = to_utc(now) or utcnow()
    start = to_utc(getattr(exam, "start_at", None))
    end = to_utc(getattr(exam, "end_at", None))
    if start is not None and now < start:
        return ExamState.UPCOMING
    if end is not None and now > end:
        return ExamState.ENDED
    return ExamState.LIVE


def is_practice_mode(exam: Any, now: Optional[datetime] = None) -> bool:
    """True for practice exams and for timed exams whose window has closed."""
    return bool(getattr(exam, "is_practice", False)) or exam_state(exam, now) is ExamState.ENDED


def accepts_official_attempt(exam: Any, now: Optional[datetime] = None) -> bool:
    """Whether an attempt made at ``now`` counts toward official standings."""
    return not getattr(exam, "is_practice", False) and exam_state(exam, now) is ExamState.LIVE


def within_official_window(exam: Any, submitted_at: Any) -> bool:
    """Inclusive check of a submission time against ``exam.end_at``.

    An exam without an end time admits every submission. A submission with no
    parseable time cannot be placed in the window and is left out.
    """
    end = to_utc(getattr(exam, "end_at", None))
    if end is None:
        return True
    submitted = to_utc(submitted_at)
    if submitted is None:
        return False
    return submitted <= end
