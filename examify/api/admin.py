import logging
import secrets
import string
from urllib.parse import quote
from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field, constr, model_validator
from typing import List, Literal, Optional
from datetime import date, datetime
from sqlalchemy.orm import Session
from sqlalchemy import select
from examify.core.auth import require_roles, TokenData, ADMIN, MODERATOR
from examify.core.config import settings
from examify.core.database import get_db
from examify.models.orm import Batch, Exam, User, StudentExam, QuestionFile
from examify.api.batches import BatchOut, batch_out, get_batch_or_404
from examify.api.exams import ExamOut, exam_out, get_exam_or_404, exam_submissions, LeaderboardRow
from examify.services.availability import to_utc
from examify.services import daily
from examify.services.csv_import import CSVImportError, parse_questions_csv
from examify.services.exports import results_csv, export_filename, format_duration
from examify.services.leaderboard import LeaderboardView, rank_submissions
from examify.services.questions import store_question_file
from examify.jobs.queue import enqueue_rescore

logger = logging.getLogger(__name__)
router = APIRouter()

staff = require_roles(ADMIN, MODERATOR)
admin_only = require_roles(ADMIN)


# ---------------------------------------------------------------- batches

class BatchIn(BaseModel):
    name: constr(min_length=1)
    description: Optional[str] = None
    status: Literal["live", "end"] = "live"
    is_public: bool = False


class BatchPatch(BaseModel):
    name: Optional[constr(min_length=1)] = None
    description: Optional[str] = None
    status: Optional[Literal["live", "end"]] = None
    is_public: Optional[bool] = None


@router.post("/batches", response_model=BatchOut, status_code=201, dependencies=[Depends(staff)])
def create_batch(payload: BatchIn, db: Session = Depends(get_db)):
    b = Batch(**payload.model_dump())
    db.add(b); db.commit(); db.refresh(b)
    logger.info("created batch %s", b.id)
    return batch_out(b)


@router.patch("/batches/{batch_id}", response_model=BatchOut, dependencies=[Depends(staff)])
def update_batch(batch_id: str, payload: BatchPatch, db: Session = Depends(get_db)):
    b = get_batch_or_404(db, batch_id)
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(b, k, v)
    db.commit(); db.refresh(b)
    return batch_out(b)


@router.delete("/batches/{batch_id}", dependencies=[Depends(admin_only)])
def delete_batch(batch_id: str, db: Session = Depends(get_db)):
    b = get_batch_or_404(db, batch_id)
    db.delete(b); db.commit()
    logger.info("deleted batch %s", batch_id)
    return {"ok": True}


# ---------------------------------------------------------------- exams

class ExamIn(BaseModel):
    name: constr(min_length=1)
    description: Optional[str] = None
    batch_id: Optional[str] = None
    file_id: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    marks_per_question: float = Field(default=1.0, gt=0)
    negative_marks_per_wrong: float = Field(default=0.0, ge=0)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_practice: bool = False
    status: Literal["draft", "live", "end"] = "live"
    number_of_attempts: Literal["one_time", "multiple"] = "multiple"
    shuffle_questions: bool = False
    mandatory_subjects: Optional[list] = None
    optional_subjects: Optional[list] = None

    @model_validator(mode="after")
    def practice_has_no_window(self):
        if self.is_practice:
            self.start_at = None
            self.end_at = None
        self.start_at, self.end_at = to_utc(self.start_at), to_utc(self.end_at)
        if self.start_at and self.end_at and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        return self


class ExamPatch(BaseModel):
    name: Optional[constr(min_length=1)] = None
    description: Optional[str] = None
    batch_id: Optional[str] = None
    file_id: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    marks_per_question: Optional[float] = Field(default=None, gt=0)
    negative_marks_per_wrong: Optional[float] = Field(default=None, ge=0)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    is_practice: Optional[bool] = None
    status: Optional[Literal["draft", "live", "end"]] = None
    number_of_attempts: Optional[Literal["one_time", "multiple"]] = None
    shuffle_questions: Optional[bool] = None
    mandatory_subjects: Optional[list] = None
    optional_subjects: Optional[list] = None


def _check_refs(db: Session, batch_id: Optional[str], file_id: Optional[str]) -> None:
    if batch_id and not db.get(Batch, batch_id): raise HTTPException(404, "ব্যাচ খুঁজে পাওয়া যায়নি")
    if file_id and not db.get(QuestionFile, file_id): raise HTTPException(404, "প্রশ্ন ফাইল খুঁজে পাওয়া যায়নি")


@router.post("/exams", response_model=ExamOut, status_code=201, dependencies=[Depends(staff)])
def create_exam(payload: ExamIn, db: Session = Depends(get_db)):
    _check_refs(db, payload.batch_id, payload.file_id)
    e = Exam(**payload.model_dump())
    db.add(e); db.commit(); db.refresh(e)
    logger.info("created exam %s in batch %s", e.id, e.batch_id)
    return exam_out(e)


@router.patch("/exams/{exam_id}", response_model=ExamOut, dependencies=[Depends(staff)])
def update_exam(exam_id: str, payload: ExamPatch, db: Session = Depends(get_db)):
    e = get_exam_or_404(db, exam_id)
    changes = payload.model_dump(exclude_unset=True)
    _check_refs(db, changes.get("batch_id"), changes.get("file_id"))
    for k, v in changes.items():
        setattr(e, k, to_utc(v) if k in ("start_at", "end_at") else v)
    if e.is_practice:
        e.start_at = None
        e.end_at = None
    start, end = to_utc(e.start_at), to_utc(e.end_at)
    if start and end and end < start:
        db.rollback()
        raise HTTPException(400, "শেষের সময় শুরুর সময়ের আগে হতে পারে না")
    db.commit(); db.refresh(e)
    return exam_out(e)


@router.delete("/exams/{exam_id}", dependencies=[Depends(admin_only)])
def delete_exam(exam_id: str, db: Session = Depends(get_db)):
    e = get_exam_or_404(db, exam_id)
    db.delete(e); db.commit()
    logger.info("deleted exam %s", exam_id)
    return {"ok": True}


# ---------------------------------------------------------------- users

class UserIn(BaseModel):
    name: constr(min_length=1)
    roll: constr(min_length=1)
    batch_id: Optional[str] = None
    password_mode: Literal["auto", "manual"] = "auto"
    password: Optional[str] = None


class UserOut(BaseModel):
    uid: str
    name: str
    roll: str
    enrolled_batches: List[str]
    password: Optional[str] = None


class EnrollIn(BaseModel):
    user_id: str


def generate_password(length: Optional[int] = None) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length or settings.AUTO_PASSWORD_LENGTH))


@router.post("/users", response_model=UserOut, status_code=201, dependencies=[Depends(staff)])
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    if payload.password_mode == "manual" and not payload.password:
        raise HTTPException(400, "পাসওয়ার্ড দিন")
    if db.scalar(select(User).where(User.roll == payload.roll.strip())):
        raise HTTPException(409, "এই রোল দিয়ে ইতিমধ্যে একজন শিক্ষার্থী আছে")
    _check_refs(db, payload.batch_id, None)
    password = generate_password() if payload.password_mode == "auto" else payload.password
    u = User(name=payload.name, roll=payload.roll.strip(), password=password,
             enrolled_batches=[payload.batch_id] if payload.batch_id else [])
    db.add(u); db.commit(); db.refresh(u)
    logger.info("created user %s", u.uid)
    # the generated password is shown once so staff can hand it to the student
    return UserOut(uid=u.uid, name=u.name, roll=u.roll, enrolled_batches=list(u.enrolled_batches), password=password)


@router.post("/batches/{batch_id}/students", dependencies=[Depends(staff)])
def enroll_student(batch_id: str, payload: EnrollIn, db: Session = Depends(get_db)):
    get_batch_or_404(db, batch_id)
    u = db.get(User, payload.user_id)
    if not u: raise HTTPException(404, "শিক্ষার্থী খুঁজে পাওয়া যায়নি")
    current = list(u.enrolled_batches or [])
    if batch_id not in current:
        u.enrolled_batches = current + [batch_id]
        db.commit()
    return {"ok": True, "enrolled_batches": u.enrolled_batches}


@router.delete("/batches/{batch_id}/students/{user_id}", dependencies=[Depends(admin_only)])
def remove_student(batch_id: str, user_id: str, db: Session = Depends(get_db)):
    u = db.get(User, user_id)
    if not u: raise HTTPException(404, "শিক্ষার্থী খুঁজে পাওয়া যায়নি")
    u.enrolled_batches = [b for b in (u.enrolled_batches or []) if b != batch_id]
    db.commit()
    return {"ok": True, "enrolled_batches": u.enrolled_batches}


@router.delete("/users/unenrolled", dependencies=[Depends(admin_only)])
def cleanup_unenrolled(db: Session = Depends(get_db)):
    stale = [u for u in db.execute(select(User)).scalars().all() if not u.enrolled_batches]
    for u in stale:
        db.delete(u)
    db.commit()
    logger.info("removed %d unenrolled students", len(stale))
    return {"ok": True, "count": len(stale)}


# ---------------------------------------------------------------- questions

class QuestionFileOut(BaseModel):
    id: str
    display_name: str
    original_filename: Optional[str] = None
    total_questions: int
    converted_zero_index: bool = False


@router.post("/questions/upload", response_model=QuestionFileOut, status_code=201, dependencies=[Depends(staff)])
async def upload_questions(file: UploadFile = File(...), display_name: Optional[str] = Form(None),
                           force_zero_index: bool = Form(False), db: Session = Depends(get_db)):
    content = await file.read()
    try:
        parsed = parse_questions_csv(content, force_zero_index=force_zero_index)
    except CSVImportError as e:
        logger.warning("rejected CSV %s: %s", file.filename, e)
        raise HTTPException(400, str(e))
    qf = store_question_file(db, parsed, display_name or file.filename or "questions.csv", file.filename)
    return QuestionFileOut(id=qf.id, display_name=qf.display_name, original_filename=qf.original_filename,
                           total_questions=qf.total_questions, converted_zero_index=parsed.converted_zero_index)


# ---------------------------------------------------------------- results

class ResultPatch(BaseModel):
    score: Optional[float] = None
    correct_answers: Optional[int] = Field(default=None, ge=0)
    wrong_answers: Optional[int] = Field(default=None, ge=0)
    unattempted: Optional[int] = Field(default=None, ge=0)


@router.get("/exams/{exam_id}/results", response_model=List[LeaderboardRow], dependencies=[Depends(staff)])
def exam_results(exam_id: str, db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    rows = []
    for r in rank_submissions(exam, exam_submissions(db, exam_id), LeaderboardView.ALL):
        sub = r.submission
        rows.append(LeaderboardRow(
            rank=r.rank, submission_id=sub.id, student_id=sub.student_id,
            name=sub.student.name if sub.student else None, roll=sub.student.roll if sub.student else None,
            score=round(r.score, 2), correct_answers=sub.correct_answers or 0, wrong_answers=sub.wrong_answers or 0,
            unattempted=sub.unattempted or 0, submitted_at=to_utc(sub.submitted_at),
            time_taken=format_duration(sub.started_at, sub.submitted_at),
        ))
    return rows


@router.patch("/results/{result_id}")
def update_result(result_id: str, payload: ResultPatch, user: TokenData = Depends(staff), db: Session = Depends(get_db)):
    sub = db.get(StudentExam, result_id)
    if not sub: raise HTTPException(404, "ফলাফল খুঁজে পাওয়া যায়নি")
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(sub, k, v)
    db.commit()
    logger.info("result %s updated by %s", result_id, user.sub)
    return {"ok": True, "id": sub.id, "score": sub.score}


@router.delete("/results/{result_id}", dependencies=[Depends(admin_only)])
def delete_result(result_id: str, db: Session = Depends(get_db)):
    sub = db.get(StudentExam, result_id)
    if not sub: raise HTTPException(404, "ফলাফল খুঁজে পাওয়া যায়নি")
    db.delete(sub); db.commit()
    return {"ok": True}


@router.get("/exams/{exam_id}/results.csv", dependencies=[Depends(staff)])
def export_results(exam_id: str, db: Session = Depends(get_db)):
    exam = get_exam_or_404(db, exam_id)
    ranked = rank_submissions(exam, exam_submissions(db, exam_id), LeaderboardView.ALL)
    body = results_csv(exam, ranked)
    return Response(content=body.encode("utf-8"), media_type="text/csv; charset=utf-8",
                    headers={"Content-Disposition": f"attachment; filename=\"results.csv\"; filename*=UTF-8''{quote(export_filename(exam))}"})


@router.post("/exams/{exam_id}/rescore", status_code=202)
def start_rescore(exam_id: str, user: TokenData = Depends(admin_only), db: Session = Depends(get_db)):
    get_exam_or_404(db, exam_id)
    job = enqueue_rescore(exam_id, requested_by=user.sub)
    return {"job_id": job.get_id(), "exam_id": exam_id}


# ---------------------------------------------------------------- reports

class ReportExamOut(BaseModel):
    name: str
    score: float


class ReportRowOut(BaseModel):
    uid: str
    name: str
    roll: str
    present: bool
    mandatory_done: bool
    optional_done: bool
    todo_done: bool
    mandatory_url: Optional[str] = None
    optional_url: Optional[str] = None
    todo_url: Optional[str] = None
    exams: List[ReportExamOut]


class StatsOut(BaseModel):
    users: int
    exams: int
    batches: int
    submissions: int


@router.get("/reports", response_model=List[ReportRowOut], dependencies=[Depends(staff)])
def progress_report(batch_id: str, day: Optional[date] = Query(None, alias="date"), db: Session = Depends(get_db)):
    get_batch_or_404(db, batch_id)
    rows = daily.daily_report(db, batch_id, day or daily.local_today())
    return [
        ReportRowOut(uid=r.uid, name=r.name, roll=r.roll, present=r.present,
                     mandatory_done=r.mandatory_done, optional_done=r.optional_done, todo_done=r.todo_done,
                     mandatory_url=r.mandatory_url, optional_url=r.optional_url, todo_url=r.todo_url,
                     exams=[ReportExamOut(name=e.name, score=e.score) for e in r.exams])
        for r in rows
    ]


@router.get("/stats", response_model=StatsOut, dependencies=[Depends(staff)])
def stats(db: Session = Depends(get_db)):
    return StatsOut(**daily.platform_stats(db))
