"""
Leaderboard ranking.

Per-exam order is an explicit comparator: final score descending, then fewer
wrong answers, then earlier submission, then submission id. Ranks are the
1-based position in that order; ties never share a rank.

The batch leaderboard sums the final score of every submitted attempt per
student across the batch's exams and orders by total descending, then by
student id.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from examify.services.availability import to_utc, within_official_window
from examify.services.scoring import StudentTotal, aggregate_by_student, final_score

_LATEST = datetime.max.replace(tzinfo=timezone.utc)


class LeaderboardView(str, enum.Enum):
    OFFICIAL = "official"
    ALL = "all"


@dataclass
class RankedSubmission:
    rank: int
    submission: Any
    score: float


@dataclass
class RankedStudent:
    rank: int
    student_id: str
    total_score: float
    attempts: int
    name: Optional[str] = None
    roll: Optional[str] = None


@dataclass
class LeaderboardSummary:
    participants: int
    average_score: float
    max_score: float
    min_score: float


def is_submitted(submission: Any) -> bool:
    """Rows that were started but never submitted are attempts in progress, not results."""
    return getattr(submission, "submitted_at", None) is not None


def submission_sort_key(submission: Any, negative_marks_per_wrong: Any = 0.0):
    submitted = to_utc(getattr(submission, "submitted_at", None)) or _LATEST
    return (
        -final_score(submission, negative_marks_per_wrong),
        getattr(submission, "wrong_answers", None) or 0,
        submitted,
        str(getattr(submission, "id", "") or ""),
    )


def rank_submissions(exam: Any, submissions: Iterable[Any],
                     view: LeaderboardView = LeaderboardView.ALL) -> List[RankedSubmission]:
    neg = getattr(exam, "negative_marks_per_wrong", 0.0)
    rows = [s for s in submissions if is_submitted(s)]
    if view is LeaderboardView.OFFICIAL:
        rows = [s for s in rows if within_official_window(exam, s.submitted_at)]
    rows.sort(key=lambda s: submission_sort_key(s, neg))
    return [RankedSubmission(rank=i, submission=s, score=final_score(s, neg)) for i, s in enumerate(rows, start=1)]


def official_leaderboard(exam: Any, submissions: Iterable[Any]) -> List[RankedSubmission]:
    return rank_submissions(exam, submissions, LeaderboardView.OFFICIAL)


def all_leaderboard(exam: Any, submissions: Iterable[Any]) -> List[RankedSubmission]:
    return rank_submissions(exam, submissions, LeaderboardView.ALL)


def summarize(ranked: List[RankedSubmission]) -> LeaderboardSummary:
    if not ranked:
        return LeaderboardSummary(0, 0.0, 0.0, 0.0)
    scores = [r.score for r in ranked]
    return LeaderboardSummary(
        participants=len(scores),
        average_score=round(sum(scores) / len(scores), 2),
        max_score=round(max(scores), 2),
        min_score=round(min(scores), 2),
    )


def rank_of(ranked: List[RankedSubmission], submission_id: str) -> Optional[int]:
    """Rank of one submission in an already ranked list, None when it is not listed."""
    for row in ranked:
        if getattr(row.submission, "id", None) == submission_id:
            return row.rank
    return None


def batch_leaderboard(exams: Iterable[Any], submissions: Iterable[Any]) -> List[RankedStudent]:
    exams_by_id = {e.id: e for e in exams}
    rows = [s for s in submissions if s.exam_id in exams_by_id and is_submitted(s)]
    totals: List[StudentTotal] = list(aggregate_by_student(rows, exams_by_id).values())
    totals.sort(key=lambda t: (-t.total_score, t.student_id))
    return [
        RankedStudent(rank=i, student_id=t.student_id, total_score=t.total_score,
                      attempts=t.attempts, name=t.name, roll=t.roll)
        for i, t in enumerate(totals, start=1)
    ]
