import logging
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session
from examify.models.orm import Exam, Question, QuestionFile
from examify.services.csv_import import ImportResult

logger = logging.getLogger(__name__)


def exam_questions(db: Session, exam: Exam) -> List[Question]:
    if not exam.file_id:
        return []
    stmt = select(Question).where(Question.file_id == exam.file_id).order_by(Question.order_index)
    return list(db.execute(stmt).scalars().all())


def store_question_file(db: Session, parsed: ImportResult, display_name: str,
                        original_filename: Optional[str] = None) -> QuestionFile:
    qf = QuestionFile(display_name=display_name, original_filename=original_filename,
                      total_questions=len(parsed.questions))
    db.add(qf); db.flush()
    for i, pq in enumerate(parsed.questions):
        db.add(Question(file_id=qf.id, order_index=i, **pq.to_dict()))
    db.commit(); db.refresh(qf)
    logger.info("stored question file %s with %d questions", qf.id, qf.total_questions)
    return qf
