import csv
import io
import re
from datetime import datetime
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from examify.core.config import settings
from examify.services.availability import to_utc
from examify.services.leaderboard import RankedSubmission

_DIGITS = re.compile(r"[^\d০-৯]")

RESULT_HEADERS = ["ক্র.স.", "নাম", "রোল", "স্কোর", "সঠিক", "ভুল", "উত্তর না দেওয়া", "জমা দেওয়ার সময়"]


def mask_mobile_number(value: Optional[str]) -> Optional[str]:
    """Hide all but the last four digits of anything that looks like a phone number (8+ digits)."""
    if not value:
        return value
    digits = _DIGITS.sub("", value)
    if len(digits) < 8:
        return value
    return "*" * (len(digits) - 4) + digits[-4:]


def format_local(value: Any, fmt: str = "%d/%m/%Y, %I:%M %p") -> str:
    dt = to_utc(value)
    if dt is None:
        return ""
    return dt.astimezone(ZoneInfo(settings.DISPLAY_TIMEZONE)).strftime(fmt)


def format_duration(start: Any, end: Any) -> str:
    """``1h 2m 3s`` / ``2m 3s``; ``N/A`` when either end is missing or the span is negative."""
    start_dt, end_dt = to_utc(start), to_utc(end)
    if start_dt is None or end_dt is None:
        return "N/A"
    total = int((end_dt - start_dt).total_seconds())
    if total < 0:
        return "N/A"
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    return f"{minutes}m {seconds}s"


def results_csv(exam: Any, ranked: List[RankedSubmission]) -> str:
    buf = io.StringIO()
    buf.write(f"# পরীক্ষা: {exam.name}\n")
    buf.write(f"# সময়: {exam.duration_minutes or 0} মিনিট\n")
    buf.write(f"# নেগেটিভ মার্ক: {exam.negative_marks_per_wrong or 0}\n")
    buf.write(f"# মোট শিক্ষার্থী: {len(ranked)}\n")
    buf.write("\n")
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(RESULT_HEADERS)
    for row in ranked:
        sub = row.submission
        student = getattr(sub, "student", None)
        writer.writerow([
            row.rank,
            getattr(student, "name", None) or "N/A",
            mask_mobile_number(getattr(student, "roll", None) or "N/A"),
            f"{row.score:.2f}",
            sub.correct_answers or 0,
            sub.wrong_answers or 0,
            sub.unattempted or 0,
            format_local(sub.submitted_at),
        ])
    return buf.getvalue()


def export_filename(exam: Any, now: Optional[datetime] = None) -> str:
    stamp = int((now or datetime.now()).timestamp())
    safe_name = re.sub(r"\s+", "_", exam.name)
    return f"{safe_name}_results_{stamp}.csv"
