import logging
from rq import get_current_job
from sqlalchemy import select
from sqlalchemy.orm import Session
from examify.core.database import SessionLocal
from examify.models.orm import Exam, StudentExam, StudentResponse
from examify.services.questions import exam_questions
from examify.services.scoring import grade_answers

logger = logging.getLogger(__name__)


def rescore_exam(db: Session, exam_id: str) -> dict:
    """Re-grade every submitted attempt of an exam from its stored responses.

    Attempts with no stored responses (manual or legacy rows) are left as they are.
    """
    exam = db.get(Exam, exam_id)
    if exam is None:
        raise LookupError(f"exam {exam_id} not found")
    questions = exam_questions(db, exam)
    subs = db.execute(select(StudentExam).where(StudentExam.exam_id == exam_id,
                                                StudentExam.submitted_at.is_not(None))).scalars().all()
    rescored = skipped = changed = 0
    for sub in subs:
        if not sub.responses:
            skipped += 1
            continue
        answers = {r.question_id: r.selected_option for r in sub.responses if r.selected_option is not None}
        grade = grade_answers(exam, questions, answers)
        if sub.score != grade.score:
            changed += 1
        sub.score = grade.score
        sub.correct_answers = grade.correct_answers
        sub.wrong_answers = grade.wrong_answers
        sub.unattempted = grade.unattempted
        sub.responses.clear()
        db.flush()
        for r in grade.responses:
            sub.responses.append(StudentResponse(question_id=r.question_id, selected_option=r.selected_option,
                                                 is_correct=r.is_correct, marks_obtained=r.marks_obtained))
        rescored += 1
    db.commit()
    logger.info("rescored exam %s: %d rescored, %d changed, %d skipped", exam_id, rescored, changed, skipped)
    return {"exam_id": exam_id, "rescored": rescored, "changed": changed, "skipped": skipped}


def rescore_job(exam_id: str) -> dict:
    job = get_current_job()
    if job is not None:
        job.meta.update({"state": "running"}); job.save_meta()
    db = SessionLocal()
    try:
        result = rescore_exam(db, exam_id)
    except Exception:
        logger.exception("rescore of exam %s failed", exam_id)
        if job is not None:
            job.meta.update({"state": "failed"}); job.save_meta()
        raise
    finally:
        db.close()
    if job is not None:
        job.meta.update({"state": "done", "result": result}); job.save_meta()
    return result
