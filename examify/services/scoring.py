import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)


def _num(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def final_score(submission: Any, negative_marks_per_wrong: Any = 0.0) -> float:
    """Score of one submission.

    A stored numeric score is authoritative. Rows without one fall back to
    ``correct - wrong * negative_marks_per_wrong`` with missing counts as zero.
    """
    stored = getattr(submission, "score", None)
    if stored is not None and stored != "":
        try:
            return float(stored)
        except (TypeError, ValueError):
            logger.debug("ignoring non-numeric stored score %r", stored)
    correct = _num(getattr(submission, "correct_answers", None))
    wrong = _num(getattr(submission, "wrong_answers", None))
    return correct - wrong * _num(negative_marks_per_wrong)


@dataclass
class StudentTotal:
    student_id: str
    total_score: float = 0.0
    attempts: int = 0
    name: Optional[str] = None
    roll: Optional[str] = None


def aggregate_by_student(submissions: Iterable[Any], exams_by_id: Mapping[str, Any]) -> Dict[str, StudentTotal]:
    """Unweighted sum of final scores per student, in discovery order.

    Students appear only if they have at least one submission.
    """
    totals: Dict[str, StudentTotal] = {}
    for sub in submissions:
        student_id = getattr(sub, "student_id", None)
        if not student_id:
            continue
        exam = exams_by_id.get(getattr(sub, "exam_id", None))
        neg = getattr(exam, "negative_marks_per_wrong", 0.0) if exam is not None else 0.0
        entry = totals.get(student_id)
        if entry is None:
            student = getattr(sub, "student", None)
            entry = totals[student_id] = StudentTotal(
                student_id=student_id,
                name=getattr(student, "name", None),
                roll=getattr(student, "roll", None),
            )
        entry.total_score += final_score(sub, neg)
        entry.attempts += 1
    return totals


# ---------------------------------------------------------------------------
# Grading a set of answers against the question list
# ---------------------------------------------------------------------------

@dataclass
class ResponseRow:
    question_id: str
    selected_option: Optional[str]
    is_correct: bool
    marks_obtained: float


@dataclass
class Grade:
    correct_answers: int = 0
    wrong_answers: int = 0
    unattempted: int = 0
    marks_from_correct: float = 0.0
    negative_marks: float = 0.0
    relevant_question_ids: List[str] = field(default_factory=list)
    responses: List[ResponseRow] = field(default_factory=list)

    @property
    def score(self) -> float:
        return round(self.marks_from_correct - self.negative_marks, 2)


def normalize_option(value: Any) -> Optional[str]:
    """Canonical text of a chosen/answer option: ``2``, ``"2"`` and ``"2.0"`` all become ``"2"``."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return text
    return str(int(number)) if number.is_integer() else text


def _subject_keys(config: Any) -> set:
    keys = set()
    for item in config or []:
        if isinstance(item, str):
            keys.add(item)
        elif isinstance(item, Mapping):
            for k in ("id", "name"):
                if item.get(k):
                    keys.add(item[k])
    return keys


def relevant_questions(exam: Any, questions: List[Any], answered_ids: set) -> List[Any]:
    """Questions that count for this student.

    Exams without a subject structure use every question. Otherwise mandatory
    subjects always count, optional subjects only when the student answered at
    least one of their questions, and unmatched questions are kept.
    """
    mandatory_cfg = getattr(exam, "mandatory_subjects", None)
    optional_cfg = getattr(exam, "optional_subjects", None)
    if not mandatory_cfg and not optional_cfg:
        return list(questions)
    mandatory = _subject_keys(mandatory_cfg)
    optional = _subject_keys(optional_cfg)
    attempted = {q.subject for q in questions if str(q.id) in answered_ids and q.subject}
    selected = []
    for q in questions:
        if q.subject in mandatory:
            selected.append(q)
        elif q.subject in optional:
            if q.subject in attempted:
                selected.append(q)
        else:
            selected.append(q)
    return selected


def grade_answers(exam: Any, questions: List[Any], answers: Mapping[str, Any]) -> Grade:
    chosen = {str(k): normalize_option(v) for k, v in (answers or {}).items()}
    answered_ids = {k for k, v in chosen.items() if v is not None}
    default_marks = _num(getattr(exam, "marks_per_question", None), 1.0) or 1.0
    negative = _num(getattr(exam, "negative_marks_per_wrong", None))

    grade = Grade()
    for q in relevant_questions(exam, questions, answered_ids):
        qid = str(q.id)
        grade.relevant_question_ids.append(qid)
        marks = _num(getattr(q, "question_marks", None), default_marks)
        selected = chosen.get(qid)
        if selected is None:
            grade.unattempted += 1
            grade.responses.append(ResponseRow(qid, None, False, 0.0))
        elif selected == normalize_option(q.answer):
            grade.correct_answers += 1
            grade.marks_from_correct += marks
            grade.responses.append(ResponseRow(qid, selected, True, marks))
        else:
            grade.wrong_answers += 1
            grade.negative_marks += negative
            grade.responses.append(ResponseRow(qid, selected, False, -negative))
    logger.debug("graded %d questions: %d correct, %d wrong", len(grade.relevant_question_ids),
                 grade.correct_answers, grade.wrong_answers)
    return grade
