from datetime import datetime, timezone
from types import SimpleNamespace

from examify.services.exports import mask_mobile_number, format_duration, format_local, results_csv, export_filename
from examify.services.leaderboard import RankedSubmission


def test_mask_mobile_number():
    assert mask_mobile_number("01712345678") == "*******5678"
    assert mask_mobile_number("+880 1712-345678") == "*********5678"
    assert mask_mobile_number("1234") == "1234"
    assert mask_mobile_number("ROLL-42") == "ROLL-42"
    assert mask_mobile_number(None) is None


def test_format_duration():
    start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
    assert format_duration(start, datetime(2024, 1, 1, 11, 2, 3, tzinfo=timezone.utc)) == "1h 2m 3s"
    assert format_duration(start, datetime(2024, 1, 1, 10, 5, 9)) == "5m 9s"
    assert format_duration(start, None) == "N/A"
    assert format_duration(start, datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)) == "N/A"


def test_format_local_uses_dhaka_time():
    assert format_local(datetime(2024, 1, 1, 18, 30, tzinfo=timezone.utc)) == "02/01/2024, 12:30 AM"
    assert format_local(None) == ""


def test_results_csv_layout():
    exam = SimpleNamespace(name="Model Test", duration_minutes=30, negative_marks_per_wrong=0.25)
    student = SimpleNamespace(name="করিম", roll="01812345678")
    s = SimpleNamespace(student=student, correct_answers=18, wrong_answers=2, unattempted=0,
                        submitted_at=datetime(2024, 1, 1, 4, 0, tzinfo=timezone.utc))
    lines = results_csv(exam, [RankedSubmission(rank=1, submission=s, score=17.5)]).splitlines()
    assert lines[0] == "# পরীক্ষা: Model Test"
    assert lines[3] == "# মোট শিক্ষার্থী: 1"
    assert lines[4] == ""
    assert lines[5].startswith("ক্র.স.,নাম,রোল,স্কোর")
    assert lines[6] == "1,করিম,*******5678,17.50,18,2,0,\"01/01/2024, 10:00 AM\""


def test_export_filename():
    exam = SimpleNamespace(name="Model  Test 1")
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert export_filename(exam, stamp) == f"Model_Test_1_results_{int(stamp.timestamp())}.csv"
