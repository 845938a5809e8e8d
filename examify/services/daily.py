"""
Daily check-in: attendance, the three daily tasks, and the per-batch progress
report staff read for one calendar day.

Days are calendar dates in ``settings.DISPLAY_TIMEZONE``; a student who checks
in at 01:00 Dhaka time is present for that Dhaka date even though it is
still the previous day in UTC.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from examify.core.config import settings
from examify.models.orm import Batch, Exam, StudentAttendance, StudentExam, StudentTask, User
from examify.services.availability import ExamState, exam_state, utcnow
from examify.services.scoring import final_score

logger = logging.getLogger(__name__)

TASK_KINDS = ("mandatory", "optional", "todo")


@dataclass
class ExamScore:
    name: str
    score: float


@dataclass
class ReportRow:
    uid: str
    name: str
    roll: str
    present: bool = False
    mandatory_done: bool = False
    optional_done: bool = False
    todo_done: bool = False
    mandatory_url: Optional[str] = None
    optional_url: Optional[str] = None
    todo_url: Optional[str] = None
    exams: List[ExamScore] = field(default_factory=list)


def _zone() -> ZoneInfo:
    return ZoneInfo(settings.DISPLAY_TIMEZONE)


def local_today(now: Optional[datetime] = None) -> date:
    return (now or utcnow()).astimezone(_zone()).date()


def day_bounds(day: date):
    """UTC instants covering the whole local calendar day, end inclusive."""
    start = datetime.combine(day, time.min, tzinfo=_zone())
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def enrolled_batches(db: Session, student: User) -> List[Batch]:
    ids = list(student.enrolled_batches or [])
    if not ids:
        return []
    return list(db.execute(select(Batch).where(Batch.id.in_(ids))).scalars().all())


def has_attendance(db: Session, student_id: str, day: date) -> bool:
    stmt = select(StudentAttendance.id).where(StudentAttendance.student_id == student_id,
                                              StudentAttendance.attendance_date == day).limit(1)
    return db.execute(stmt).first() is not None


def mark_attendance(db: Session, student_id: str, day: date, batch_ids: List[str]) -> int:
    """Mark the student present in each batch for ``day``; repeated calls are harmless."""
    if not batch_ids:
        return 0
    existing = {
        a.batch_id: a for a in db.execute(
            select(StudentAttendance).where(StudentAttendance.student_id == student_id,
                                            StudentAttendance.attendance_date == day,
                                            StudentAttendance.batch_id.in_(batch_ids))
        ).scalars().all()
    }
    for batch_id in batch_ids:
        row = existing.get(batch_id)
        if row is None:
            db.add(StudentAttendance(student_id=student_id, batch_id=batch_id, attendance_date=day, present=True))
        else:
            row.present = True
    db.commit()
    logger.info("attendance for %s on %s in %d batches", student_id, day, len(batch_ids))
    return len(batch_ids)


def get_task(db: Session, student_id: str, batch_id: str, day: date) -> Optional[StudentTask]:
    return db.scalar(select(StudentTask).where(StudentTask.student_id == student_id,
                                               StudentTask.batch_id == batch_id,
                                               StudentTask.task_date == day))


def submit_task(db: Session, student_id: str, batch_id: str, day: date, kind: str, url: str) -> StudentTask:
    if kind not in TASK_KINDS:
        raise ValueError(f"unknown task kind {kind!r}")
    task = get_task(db, student_id, batch_id, day)
    if task is None:
        task = StudentTask(student_id=student_id, batch_id=batch_id, task_date=day)
        db.add(task)
    setattr(task, f"{kind}_done", True)
    setattr(task, f"{kind}_url", url)
    db.commit(); db.refresh(task)
    return task


def live_exams(db: Session, batch_ids: List[str], now: Optional[datetime] = None) -> List[Exam]:
    """Timed exams of these batches whose window is open right now."""
    if not batch_ids:
        return []
    now = now or utcnow()
    stmt = select(Exam).where(Exam.batch_id.in_(batch_ids), Exam.start_at.is_not(None), Exam.end_at.is_not(None))
    return [e for e in db.execute(stmt).scalars().all()
            if not e.is_practice and exam_state(e, now) is ExamState.LIVE]


def daily_report(db: Session, batch_id: str, day: date) -> List[ReportRow]:
    # enrolled_batches is a JSON list; membership is checked here so it works on any backend
    roster = [u for u in db.execute(select(User).order_by(User.roll)).scalars().all()
              if batch_id in (u.enrolled_batches or [])]
    if not roster:
        return []
    ids = [u.uid for u in roster]
    present = {
        a.student_id for a in db.execute(
            select(StudentAttendance).where(StudentAttendance.batch_id == batch_id,
                                            StudentAttendance.attendance_date == day,
                                            StudentAttendance.present.is_(True))
        ).scalars().all()
    }
    tasks: Dict[str, StudentTask] = {
        t.student_id: t for t in db.execute(
            select(StudentTask).where(StudentTask.batch_id == batch_id, StudentTask.task_date == day)
        ).scalars().all()
    }
    start, end = day_bounds(day)
    subs = db.execute(
        select(StudentExam).where(StudentExam.student_id.in_(ids),
                                  StudentExam.submitted_at >= start, StudentExam.submitted_at <= end)
        .options(selectinload(StudentExam.exam)).order_by(StudentExam.submitted_at)
    ).scalars().all()

    rows = []
    for u in roster:
        t = tasks.get(u.uid)
        row = ReportRow(uid=u.uid, name=u.name, roll=u.roll, present=u.uid in present)
        if t is not None:
            for kind in TASK_KINDS:
                setattr(row, f"{kind}_done", bool(getattr(t, f"{kind}_done")))
                setattr(row, f"{kind}_url", getattr(t, f"{kind}_url"))
        for s in subs:
            if s.student_id == u.uid:
                exam = s.exam
                row.exams.append(ExamScore(name=exam.name if exam else "Exam",
                                           score=round(final_score(s, exam.negative_marks_per_wrong if exam else 0), 2)))
        rows.append(row)
    return rows


def platform_stats(db: Session) -> Dict[str, int]:
    def count(model) -> int:
        return db.scalar(select(func.count()).select_from(model)) or 0
    return {
        "users": count(User),
        "exams": count(Exam),
        "batches": count(Batch),
        "submissions": db.scalar(select(func.count()).select_from(StudentExam)
                                 .where(StudentExam.submitted_at.is_not(None))) or 0,
    }
