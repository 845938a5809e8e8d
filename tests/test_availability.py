from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from examify.services.availability import (
    ExamState, exam_state, is_practice_mode, accepts_official_attempt, within_official_window, to_utc,
)

T = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def exam(**kw):
    return SimpleNamespace(**{"is_practice": False, "start_at": None, "end_at": None, **kw})


def test_practice_is_always_live():
    e = exam(is_practice=True, start_at=T, end_at=T + timedelta(hours=1))
    assert exam_state(e, T - timedelta(days=1)) is ExamState.LIVE
    assert exam_state(e, T + timedelta(days=1)) is ExamState.LIVE
    assert is_practice_mode(e, T)


def test_window_classification_uses_strict_bounds():
    e = exam(start_at=T, end_at=T + timedelta(hours=1))
    assert exam_state(e, T - timedelta(seconds=1)) is ExamState.UPCOMING
    assert exam_state(e, T) is ExamState.LIVE
    assert exam_state(e, T + timedelta(hours=1)) is ExamState.LIVE
    assert exam_state(e, T + timedelta(hours=1, seconds=1)) is ExamState.ENDED


def test_missing_bounds_remove_that_half():
    assert exam_state(exam(), T) is ExamState.LIVE
    assert exam_state(exam(end_at=T), T - timedelta(days=30)) is ExamState.LIVE
    assert exam_state(exam(start_at=T), T + timedelta(days=30)) is ExamState.LIVE


def test_ended_exam_runs_in_practice_mode():
    e = exam(start_at=T, end_at=T + timedelta(hours=1))
    later = T + timedelta(hours=2)
    assert is_practice_mode(e, later)
    assert not accepts_official_attempt(e, later)
    assert accepts_official_attempt(e, T + timedelta(minutes=5))
    assert not accepts_official_attempt(e, T - timedelta(minutes=5))


def test_naive_and_string_timestamps_are_utc():
    e = exam(start_at=T.replace(tzinfo=None), end_at="2024-03-01T17:00:00+06:00")
    assert exam_state(e, T - timedelta(seconds=1)) is ExamState.UPCOMING
    assert exam_state(e, T + timedelta(minutes=59)) is ExamState.LIVE
    assert exam_state(e, T + timedelta(hours=2)) is ExamState.ENDED


def test_garbage_timestamps_are_ignored():
    assert to_utc("not a date") is None
    assert to_utc("") is None
    assert to_utc(12345) is None
    assert exam_state(exam(start_at="tomorrow-ish", end_at=None), T) is ExamState.LIVE


def test_official_window_is_inclusive():
    e = exam(end_at=T)
    assert within_official_window(e, T)
    assert not within_official_window(e, T + timedelta(seconds=1))
    assert not within_official_window(e, None)
    assert within_official_window(exam(), T + timedelta(days=365))
