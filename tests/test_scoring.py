from types import SimpleNamespace

import pytest

from examify.services.scoring import final_score, aggregate_by_student, grade_answers, normalize_option


def sub(**kw):
    return SimpleNamespace(**{"score": None, "correct_answers": 0, "wrong_answers": 0, **kw})


def q(qid, answer, subject=None, marks=None):
    return SimpleNamespace(id=qid, answer=answer, subject=subject, question_marks=marks)


def test_stored_score_is_authoritative():
    assert final_score(sub(score=3.0, correct_answers=18, wrong_answers=2), 0.25) == 3.0
    assert final_score(sub(score=0, correct_answers=10), 0.5) == 0
    assert final_score(sub(score="12.5"), 0.25) == 12.5


def test_non_numeric_stored_score_falls_back_to_counts():
    assert final_score(sub(score="n/a", correct_answers=18, wrong_answers=2), 0.25) == pytest.approx(17.5)
    assert final_score(sub(score="", correct_answers=3), 0) == 3


def test_fallback_arithmetic():
    assert final_score(sub(correct_answers=18, wrong_answers=2), 0.25) == pytest.approx(17.5)
    assert final_score(sub(correct_answers=5, wrong_answers=4), 0) == 5


def test_fallback_tolerates_missing_counts():
    assert final_score(SimpleNamespace(), 0.25) == 0
    assert final_score(sub(correct_answers=None, wrong_answers=None), None) == 0
    assert final_score(sub(correct_answers="7", wrong_answers="2"), "0.5") == 6


def test_aggregate_sums_per_student():
    exams = {"e1": SimpleNamespace(negative_marks_per_wrong=0), "e2": SimpleNamespace(negative_marks_per_wrong=0.5)}
    subs = [
        sub(student_id="s1", exam_id="e1", score=10),
        sub(student_id="s2", exam_id="e1", score=4),
        sub(student_id="s1", exam_id="e2", correct_answers=8, wrong_answers=1),
    ]
    totals = aggregate_by_student(subs, exams)
    assert list(totals) == ["s1", "s2"]
    assert totals["s1"].total_score == 17.5
    assert totals["s1"].attempts == 2
    assert totals["s2"].total_score == 4


def test_normalize_option():
    assert normalize_option(2) == "2"
    assert normalize_option("2.0") == "2"
    assert normalize_option(" 3 ") == "3"
    assert normalize_option("") is None
    assert normalize_option("B") == "B"


def test_grade_answers_counts_and_negative_marks():
    exam = SimpleNamespace(marks_per_question=2, negative_marks_per_wrong=0.5)
    questions = [q("a", "1"), q("b", "2"), q("c", "3"), q("d", "4")]
    g = grade_answers(exam, questions, {"a": 1, "b": "3", "c": "3"})
    assert (g.correct_answers, g.wrong_answers, g.unattempted) == (2, 1, 1)
    assert g.marks_from_correct == 4
    assert g.negative_marks == 0.5
    assert g.score == 3.5
    assert [r.is_correct for r in g.responses] == [True, False, True, False]


def test_question_marks_override_exam_default():
    exam = SimpleNamespace(marks_per_question=1, negative_marks_per_wrong=0)
    g = grade_answers(exam, [q("a", "1", marks="2.5"), q("b", "1")], {"a": 1, "b": 1})
    assert g.score == 3.5


def test_optional_subjects_count_only_when_attempted():
    exam = SimpleNamespace(marks_per_question=1, negative_marks_per_wrong=0,
                           mandatory_subjects=["bangla"], optional_subjects=[{"id": "bio"}, {"id": "math"}])
    questions = [q("b1", "1", "bangla"), q("b2", "1", "bangla"), q("bio1", "2", "bio"), q("m1", "3", "math")]
    g = grade_answers(exam, questions, {"b1": 1, "bio1": 2})
    assert g.relevant_question_ids == ["b1", "b2", "bio1"]
    assert (g.correct_answers, g.wrong_answers, g.unattempted) == (2, 0, 1)
