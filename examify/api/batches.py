from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, or_
from examify.core.auth import get_current_user, TokenData
from examify.core.database import get_db
from examify.models.orm import Batch, Exam, StudentExam
from examify.api.exams import ExamOut, exam_out, ensure_batch_access, get_student_or_401
from examify.services.availability import to_utc, utcnow
from examify.services.exports import mask_mobile_number
from examify.services.leaderboard import batch_leaderboard

router = APIRouter()


class BatchOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: str
    is_public: bool
    created_at: Optional[datetime] = None


class BatchLeaderboardRow(BaseModel):
    rank: int
    student_id: str
    name: Optional[str] = None
    roll: Optional[str] = None
    total_score: float
    attempts: int


def batch_out(b: Batch) -> BatchOut:
    return BatchOut(id=b.id, name=b.name, description=b.description, status=b.status,
                    is_public=bool(b.is_public), created_at=to_utc(b.created_at))


def get_batch_or_404(db: Session, batch_id: str) -> Batch:
    batch = db.get(Batch, batch_id)
    if not batch: raise HTTPException(404, "ব্যাচ খুঁজে পাওয়া যায়নি")
    return batch


@router.get("", response_model=List[BatchOut])
def list_batches(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = select(Batch).order_by(Batch.created_at.desc())
    if not user.is_staff:
        student = get_student_or_401(db, user)
        stmt = stmt.where(or_(Batch.is_public.is_(True), Batch.id.in_(student.enrolled_batches or [])))
    return [batch_out(b) for b in db.execute(stmt).scalars().all()]


@router.get("/{batch_id}", response_model=BatchOut)
def get_batch(batch_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    batch = get_batch_or_404(db, batch_id)
    ensure_batch_access(db, user, batch_id)
    return batch_out(batch)


@router.get("/{batch_id}/exams", response_model=List[ExamOut])
def batch_exams(batch_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    get_batch_or_404(db, batch_id)
    ensure_batch_access(db, user, batch_id)
    now = utcnow()
    exams = db.execute(select(Exam).where(Exam.batch_id == batch_id).order_by(Exam.created_at.desc())).scalars().all()
    return [exam_out(e, now) for e in exams]


@router.get("/{batch_id}/leaderboard", response_model=List[BatchLeaderboardRow])
def batch_leaderboard_view(batch_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    get_batch_or_404(db, batch_id)
    ensure_batch_access(db, user, batch_id)
    exams = db.execute(select(Exam).where(Exam.batch_id == batch_id)).scalars().all()
    if not exams:
        return []
    subs = db.execute(
        select(StudentExam).where(StudentExam.exam_id.in_([e.id for e in exams]))
        .options(selectinload(StudentExam.student))
    ).scalars().all()
    return [
        BatchLeaderboardRow(rank=r.rank, student_id=r.student_id, name=r.name, roll=mask_mobile_number(r.roll),
                            total_score=round(r.total_score, 2), attempts=r.attempts)
        for r in batch_leaderboard(exams, subs)
    ]
