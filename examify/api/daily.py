import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import date
from sqlalchemy.orm import Session
from examify.core.auth import require_roles, TokenData, STUDENT
from examify.core.database import get_db
from examify.api.batches import BatchOut, batch_out
from examify.api.exams import ExamOut, exam_out, get_student_or_401
from examify.services import daily
from examify.services.availability import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()

student_only = require_roles(STUDENT)


class TodayOut(BaseModel):
    day: date
    attendance: bool
    batches: List[BatchOut]
    live_exams: List[ExamOut]


class AttendanceOut(BaseModel):
    day: date
    attendance: bool
    batches_marked: int


class TaskIn(BaseModel):
    batch_id: str
    type: Literal["mandatory", "optional", "todo"]
    url: str = Field(min_length=1)


class TaskOut(BaseModel):
    batch_id: str
    day: date
    mandatory_done: bool = False
    mandatory_url: Optional[str] = None
    optional_done: bool = False
    optional_url: Optional[str] = None
    todo_done: bool = False
    todo_url: Optional[str] = None


def task_out(batch_id: str, day: date, task=None) -> TaskOut:
    if task is None:
        return TaskOut(batch_id=batch_id, day=day)
    return TaskOut(batch_id=batch_id, day=day,
                   mandatory_done=bool(task.mandatory_done), mandatory_url=task.mandatory_url,
                   optional_done=bool(task.optional_done), optional_url=task.optional_url,
                   todo_done=bool(task.todo_done), todo_url=task.todo_url)


def _ensure_enrolled(student, batch_id: str) -> None:
    if batch_id not in (student.enrolled_batches or []):
        raise HTTPException(403, "আপনি এই ব্যাচে ভর্তি নন")


@router.get("", response_model=TodayOut)
def today(user: TokenData = Depends(student_only), db: Session = Depends(get_db)):
    student = get_student_or_401(db, user)
    now = utcnow()
    day = daily.local_today(now)
    batches = daily.enrolled_batches(db, student)
    return TodayOut(day=day, attendance=daily.has_attendance(db, student.uid, day),
                    batches=[batch_out(b) for b in batches],
                    live_exams=[exam_out(e, now) for e in daily.live_exams(db, [b.id for b in batches], now)])


@router.post("/attendance", response_model=AttendanceOut)
def check_in(user: TokenData = Depends(student_only), db: Session = Depends(get_db)):
    student = get_student_or_401(db, user)
    batch_ids = [b.id for b in daily.enrolled_batches(db, student)]
    if not batch_ids:
        raise HTTPException(400, "আপনি কোনো ব্যাচে ভর্তি নন")
    day = daily.local_today()
    marked = daily.mark_attendance(db, student.uid, day, batch_ids)
    return AttendanceOut(day=day, attendance=True, batches_marked=marked)


@router.get("/tasks", response_model=TaskOut)
def my_tasks(batch_id: str, user: TokenData = Depends(student_only), db: Session = Depends(get_db)):
    student = get_student_or_401(db, user)
    _ensure_enrolled(student, batch_id)
    day = daily.local_today()
    return task_out(batch_id, day, daily.get_task(db, student.uid, batch_id, day))


@router.post("/tasks", response_model=TaskOut)
def submit_task(payload: TaskIn, user: TokenData = Depends(student_only), db: Session = Depends(get_db)):
    student = get_student_or_401(db, user)
    _ensure_enrolled(student, payload.batch_id)
    day = daily.local_today()
    task = daily.submit_task(db, student.uid, payload.batch_id, day, payload.type, payload.url.strip())
    logger.info("student %s submitted %s task for batch %s", student.uid, payload.type, payload.batch_id)
    return task_out(payload.batch_id, day, task)
