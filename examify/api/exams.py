import logging
from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Union
from datetime import datetime
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, or_
from examify.core.auth import require_roles, get_current_user, TokenData, STUDENT
from examify.core.database import get_db
from examify.models.orm import Exam, Batch, User, StudentExam, StudentResponse
from examify.services.availability import ExamState, exam_state, is_practice_mode, to_utc, utcnow, within_official_window
from examify.services.exports import mask_mobile_number, format_duration
from examify.services.leaderboard import LeaderboardView, rank_submissions, summarize, rank_of, is_submitted
from examify.services.questions import exam_questions
from examify.services.scoring import final_score, grade_answers

logger = logging.getLogger(__name__)
router = APIRouter()


class ExamOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    batch_id: Optional[str] = None
    duration_minutes: Optional[int] = None
    marks_per_question: float
    negative_marks_per_wrong: float
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_practice: bool
    status: str
    number_of_attempts: str
    state: ExamState
    practice_mode: bool


class QuestionOut(BaseModel):
    id: str
    question_text: str
    options: List[str]
    subject: Optional[str] = None
    paper: Optional[str] = None
    chapter: Optional[str] = None
    question_marks: Optional[str] = None


class StartOut(BaseModel):
    submission_id: str
    started_at: datetime
    practice_mode: bool


class SubmitIn(BaseModel):
    answers: Dict[str, Union[int, str]] = Field(default_factory=dict)


class SubmitOut(BaseModel):
    submission_id: str
    score: float
    correct_answers: int
    wrong_answers: int
    unattempted: int
    marks_from_correct: float
    negative_marks: float
    practice_mode: bool
    counts_officially: bool
    submitted_at: datetime


class LeaderboardRow(BaseModel):
    rank: int
    submission_id: str
    student_id: str
    name: Optional[str] = None
    roll: Optional[str] = None
    score: float
    correct_answers: int
    wrong_answers: int
    unattempted: int
    submitted_at: Optional[datetime] = None
    time_taken: str


class LeaderboardSummaryOut(BaseModel):
    participants: int
    average_score: float
    max_score: float
    min_score: float


class LeaderboardOut(BaseModel):
    exam_id: str
    view: LeaderboardView
    summary: LeaderboardSummaryOut
    entries: List[LeaderboardRow]


class MyResultOut(BaseModel):
    submission_id: str
    score: float
    correct_answers: int
    wrong_answers: int
    unattempted: int
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    rank: Optional[int] = None
    total: int


def exam_out(exam: Exam, now: Optional[datetime] = None) -> ExamOut:
    now = now or utcnow()
    return ExamOut(
        id=exam.id, name=exam.name, description=exam.description, batch_id=exam.batch_id,
        duration_minutes=exam.duration_minutes,
        marks_per_question=exam.marks_per_question if exam.marks_per_question is not None else 1.0,
        negative_marks_per_wrong=exam.negative_marks_per_wrong or 0.0,
        start_at=to_utc(exam.start_at), end_at=to_utc(exam.end_at),
        is_practice=bool(exam.is_practice), status=exam.status, number_of_attempts=exam.number_of_attempts,
        state=exam_state(exam, now), practice_mode=is_practice_mode(exam, now),
    )


def get_exam_or_404(db: Session, exam_id: str) -> Exam:
    exam = db.get(Exam, exam_id)
    if not exam: raise HTTPException(404, "পরীক্ষা খুঁজে পাওয়া যায়নি")
    return exam


def get_student_or_401(db: Session, user: TokenData) -> User:
    student = db.get(User, user.sub)
    if not student: raise HTTPException(401, "অ্যাকাউন্ট খুঁজে পাওয়া যায়নি")
    return student


def can_access_batch(db: Session, user: TokenData, batch_id: Optional[str]) -> bool:
    if batch_id is None or user.is_staff:
        return True
    batch = db.get(Batch, batch_id)
    if batch is None:
        return False
    if batch.is_public:
        return True
    student = db.get(User, user.sub)
    return bool(student and batch_id in (student.enrolled_batches or []))


def ensure_batch_access(db: Session, user: TokenData, batch_id: Optional[str]) -> None:
    if not can_access_batch(db, user, batch_id):
        raise HTTPException(403, "আপনি এই ব্যাচে ভর্তি নন")


def exam_submissions(db: Session, exam_id: str) -> List[StudentExam]:
    stmt = select(StudentExam).where(StudentExam.exam_id == exam_id).options(selectinload(StudentExam.student))
    return list(db.execute(stmt).scalars().all())


def _student_rows(db: Session, exam_id: str, student_id: str) -> List[StudentExam]:
    stmt = select(StudentExam).where(StudentExam.exam_id == exam_id, StudentExam.student_id == student_id)
    return list(db.execute(stmt).scalars().all())


def _check_attempt_policy(exam: Exam, rows: List[StudentExam]) -> None:
    if exam.number_of_attempts == "one_time" and any(is_submitted(r) for r in rows):
        raise HTTPException(403, "আপনি ইতিমধ্যে এই পরীক্ষায় অংশগ্রহণ করেছেন এবং শুধুমাত্র একবার অংশগ্রহণের অনুমতি রয়েছে।")


def _reject_upcoming(exam: Exam, now: datetime) -> None:
    if exam_state(exam, now) is ExamState.UPCOMING:
        raise HTTPException(403, "পরীক্ষা এখনো শুরু হয়নি।")


@router.get("", response_model=List[ExamOut])
def list_exams(batch_id: Optional[str] = None, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    stmt = select(Exam).order_by(Exam.created_at.desc())
    if batch_id:
        ensure_batch_access(db, user, batch_id)
        stmt = stmt.where(Exam.batch_id == batch_id)
    elif not user.is_staff:
        student = get_student_or_401(db, user)
        public_ids = select(Batch.id).where(Batch.is_public.is_(True))
        stmt = stmt.where(or_(Exam.batch_id.is_(None), Exam.batch_id.in_(student.enrolled_batches or []),
                              Exam.batch_id.in_(public_ids)))
    now = utcnow()
    return [exam_out(e, now) for e in db.execute(stmt).scalars().all()]


@router.get("/{exam_id}", response_model=ExamOut)
def get_exam(exam_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ensure_batch_access(db, user, exam.batch_id)
    return exam_out(exam)


@router.post("/{exam_id}/start", response_model=StartOut)
def start_exam(exam_id: str, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ensure_batch_access(db, user, exam.batch_id)
    now = utcnow()
    _reject_upcoming(exam, now)
    rows = _student_rows(db, exam_id, user.sub)
    _check_attempt_policy(exam, rows)
    open_row = next((r for r in rows if not is_submitted(r)), None)
    if open_row is None:
        open_row = StudentExam(exam_id=exam_id, student_id=user.sub)
        db.add(open_row)
    open_row.started_at = now
    db.commit(); db.refresh(open_row)
    return StartOut(submission_id=open_row.id, started_at=now, practice_mode=is_practice_mode(exam, now))


@router.get("/{exam_id}/questions", response_model=List[QuestionOut])
def list_questions(exam_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ensure_batch_access(db, user, exam.batch_id)
    if not user.is_staff:
        _reject_upcoming(exam, utcnow())
    return [QuestionOut(id=q.id, question_text=q.question_text, options=q.options(), subject=q.subject,
                        paper=q.paper, chapter=q.chapter, question_marks=q.question_marks)
            for q in exam_questions(db, exam)]


@router.post("/{exam_id}/submit", response_model=SubmitOut)
def submit_exam(exam_id: str, payload: SubmitIn, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ensure_batch_access(db, user, exam.batch_id)
    now = utcnow()
    _reject_upcoming(exam, now)
    rows = _student_rows(db, exam_id, user.sub)
    _check_attempt_policy(exam, rows)

    grade = grade_answers(exam, exam_questions(db, exam), payload.answers)
    sub = next((r for r in rows if not is_submitted(r)), None)
    if sub is None:
        sub = StudentExam(exam_id=exam_id, student_id=user.sub, started_at=now)
        db.add(sub)
    sub.score = grade.score
    sub.correct_answers = grade.correct_answers
    sub.wrong_answers = grade.wrong_answers
    sub.unattempted = grade.unattempted
    sub.submitted_at = now
    for r in grade.responses:
        sub.responses.append(StudentResponse(question_id=r.question_id, selected_option=r.selected_option,
                                             is_correct=r.is_correct, marks_obtained=r.marks_obtained))
    db.commit(); db.refresh(sub)
    practice = is_practice_mode(exam, now)
    logger.info("student %s submitted exam %s: score=%s practice=%s", user.sub, exam_id, sub.score, practice)
    return SubmitOut(
        submission_id=sub.id, score=grade.score, correct_answers=grade.correct_answers,
        wrong_answers=grade.wrong_answers, unattempted=grade.unattempted,
        marks_from_correct=grade.marks_from_correct, negative_marks=grade.negative_marks,
        practice_mode=practice, counts_officially=within_official_window(exam, now), submitted_at=now,
    )


@router.get("/{exam_id}/leaderboard", response_model=LeaderboardOut)
def exam_leaderboard(exam_id: str, view: LeaderboardView = Query(LeaderboardView.OFFICIAL),
                     user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ensure_batch_access(db, user, exam.batch_id)
    ranked = rank_submissions(exam, exam_submissions(db, exam_id), view)
    s = summarize(ranked)
    entries = []
    for row in ranked:
        sub = row.submission
        student = sub.student
        entries.append(LeaderboardRow(
            rank=row.rank, submission_id=sub.id, student_id=sub.student_id,
            name=student.name if student else None,
            roll=mask_mobile_number(student.roll) if student else None,
            score=round(row.score, 2), correct_answers=sub.correct_answers or 0,
            wrong_answers=sub.wrong_answers or 0, unattempted=sub.unattempted or 0,
            submitted_at=to_utc(sub.submitted_at), time_taken=format_duration(sub.started_at, sub.submitted_at),
        ))
    return LeaderboardOut(exam_id=exam_id, view=view, entries=entries,
                          summary=LeaderboardSummaryOut(participants=s.participants, average_score=s.average_score,
                                                        max_score=s.max_score, min_score=s.min_score))


@router.get("/{exam_id}/my-result", response_model=MyResultOut)
def my_result(exam_id: str, user: TokenData = Depends(require_roles(STUDENT)), db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    mine = [r for r in _student_rows(db, exam_id, user.sub) if is_submitted(r)]
    if not mine: raise HTTPException(404, "এই পরীক্ষার কোনো ফলাফল পাওয়া যায়নি")
    latest = max(mine, key=lambda r: to_utc(r.submitted_at))
    ranked = rank_submissions(exam, exam_submissions(db, exam_id), LeaderboardView.ALL)
    return MyResultOut(
        submission_id=latest.id, score=round(final_score(latest, exam.negative_marks_per_wrong), 2),
        correct_answers=latest.correct_answers or 0, wrong_answers=latest.wrong_answers or 0,
        unattempted=latest.unattempted or 0, started_at=to_utc(latest.started_at),
        submitted_at=to_utc(latest.submitted_at), rank=rank_of(ranked, latest.id), total=len(ranked),
    )
