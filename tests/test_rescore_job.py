import pytest

from examify.jobs.rescore_job import rescore_exam
from examify.models.orm import Question, StudentResponse
from examify.services.questions import exam_questions
from examify.services.scoring import grade_answers

from conftest import add_student, add_exam, add_question_file, add_submission, now_utc


def _submit(db, exam, student, answers):
    grade = grade_answers(exam, exam_questions(db, exam), answers)
    s = add_submission(db, exam, student, score=grade.score, correct=grade.correct_answers,
                       wrong=grade.wrong_answers, unattempted=grade.unattempted, submitted_at=now_utc())
    for r in grade.responses:
        s.responses.append(StudentResponse(question_id=r.question_id, selected_option=r.selected_option,
                                           is_correct=r.is_correct, marks_obtained=r.marks_obtained))
    db.commit()
    return s


def test_rescore_after_answer_key_fix(db):
    qf = add_question_file(db)
    exam = add_exam(db, file_id=qf.id, negative_marks_per_wrong=0.5)
    qs = exam_questions(db, exam)
    student = add_student(db)
    s = _submit(db, exam, student, {qs[0].id: 1, qs[1].id: 1})
    assert (s.correct_answers, s.wrong_answers, s.score) == (1, 1, 0.5)

    db.get(Question, qs[0].id).answer = "1"
    db.commit()
    result = rescore_exam(db, exam.id)
    assert result == {"exam_id": exam.id, "rescored": 1, "changed": 1, "skipped": 0}
    db.refresh(s)
    assert (s.correct_answers, s.wrong_answers, s.unattempted, s.score) == (2, 0, 2, 2.0)
    assert len(s.responses) == 4


def test_rows_without_responses_are_skipped(db):
    exam = add_exam(db, file_id=add_question_file(db).id)
    legacy = add_submission(db, exam, add_student(db), score=7, correct=7, submitted_at=now_utc())
    add_submission(db, exam, add_student(db, roll="2"), submitted_at=None)
    assert rescore_exam(db, exam.id)["skipped"] == 1
    db.refresh(legacy)
    assert legacy.score == 7


def test_unknown_exam(db):
    with pytest.raises(LookupError):
        rescore_exam(db, "missing")
