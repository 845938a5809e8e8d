"""
Question-bank CSV import.

The header row is matched case-insensitively against synonym lists. The
``question``, ``option1``, ``option2``, ``option3`` and ``answer`` columns are
required; a file missing any of them is rejected as a whole.
"""
import csv
import io
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Union

from examify.core.config import settings

logger = logging.getLogger(__name__)

REQUIRED = ("question_text", "option1", "option2", "option3", "answer")

COLUMN_SYNONYMS: Dict[str, tuple] = {
    "question_text": ("question", "questions", "question_text", "q"),
    "option1": ("option1", "option_1", "opt1", "a"),
    "option2": ("option2", "option_2", "opt2", "b"),
    "option3": ("option3", "option_3", "opt3", "c"),
    "option4": ("option4", "option_4", "opt4", "d"),
    "option5": ("option5", "option_5", "opt5", "e"),
    "answer": ("answer", "ans", "correct_answer"),
    "explanation": ("explanation", "exp", "explanation_text"),
    "subject": ("subject", "subject_name", "section"),
    "paper": ("paper", "paper_name"),
    "chapter": ("chapter", "chapter_name"),
    "highlight": ("highlight", "tag"),
    "type": ("type", "question_type"),
}

_FONT_TAG = re.compile(r"</?font\b[^>]*>", re.IGNORECASE)
_INTEGER = re.compile(r"^\d+$")


class CSVImportError(ValueError):
    """The file cannot be imported; nothing from it should be stored."""


@dataclass
class ParsedQuestion:
    question_text: str
    option1: str
    option2: str
    option3: str
    answer: str
    option4: Optional[str] = None
    option5: Optional[str] = None
    explanation: Optional[str] = None
    subject: Optional[str] = None
    paper: Optional[str] = None
    chapter: Optional[str] = None
    highlight: Optional[str] = None
    type: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ImportResult:
    questions: List[ParsedQuestion] = field(default_factory=list)
    columns: Dict[str, int] = field(default_factory=dict)
    converted_zero_index: bool = False


def strip_font_tags(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    return _FONT_TAG.sub("", text)


def _decode(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1252", errors="replace")


def _normalize_header(name: str) -> str:
    name = name.strip().strip("\"'").strip().lower()
    return re.sub(r"\s+", "_", name)


def map_columns(header: List[str]) -> Dict[str, int]:
    names = [_normalize_header(h) for h in header]
    mapping: Dict[str, int] = {}
    for key, synonyms in COLUMN_SYNONYMS.items():
        for index, name in enumerate(names):
            if name in synonyms:
                mapping[key] = index
                break
    return mapping


def detect_zero_indexed(questions: List[ParsedQuestion], max_answer: Optional[int] = None) -> bool:
    """Numeric answers that include 0 and never exceed ``max_answer`` are 0-indexed."""
    limit = settings.ZERO_INDEX_MAX_ANSWER if max_answer is None else max_answer
    values = [int(q.answer.strip()) for q in questions if _INTEGER.match(q.answer.strip())]
    return bool(values) and 0 in values and max(values) <= limit


def shift_answers_to_one_indexed(questions: List[ParsedQuestion]) -> None:
    for q in questions:
        answer = q.answer.strip()
        if _INTEGER.match(answer):
            q.answer = str(int(answer) + 1)


def parse_questions_csv(content: Union[bytes, str], force_zero_index: bool = False) -> ImportResult:
    text = _decode(content)
    rows = [r for r in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in r)]
    if not rows:
        raise CSVImportError("CSV ফাইলটি খালি")

    columns = map_columns(rows[0])
    missing = [key for key in REQUIRED if key not in columns]
    if missing:
        raise CSVImportError(
            "CSV must have columns: question, option1, option2, option3, answer "
            f"(missing: {', '.join('question' if m == 'question_text' else m for m in missing)})"
        )
    if len(rows) < 2:
        raise CSVImportError("CSV file must have header and at least one data row")

    def cell(row: List[str], key: str) -> Optional[str]:
        index = columns.get(key)
        if index is None:
            return None
        return row[index].strip() if index < len(row) else ""

    result = ImportResult(columns=columns)
    for row in rows[1:]:
        question_text = cell(row, "question_text")
        if not question_text:
            continue
        raw_type = cell(row, "type")
        result.questions.append(ParsedQuestion(
            question_text=strip_font_tags(question_text),
            option1=strip_font_tags(cell(row, "option1")) or "",
            option2=strip_font_tags(cell(row, "option2")) or "",
            option3=strip_font_tags(cell(row, "option3")) or "",
            option4=strip_font_tags(cell(row, "option4")),
            option5=strip_font_tags(cell(row, "option5")),
            answer=cell(row, "answer") or "",
            explanation=strip_font_tags(cell(row, "explanation")),
            subject=cell(row, "subject") or None,
            paper=cell(row, "paper") or None,
            chapter=cell(row, "chapter") or None,
            highlight=cell(row, "highlight") or None,
            type=int(raw_type) if raw_type and _INTEGER.match(raw_type) else 0,
        ))

    if not result.questions:
        raise CSVImportError("CSV file must have header and at least one data row")

    if force_zero_index or detect_zero_indexed(result.questions):
        shift_answers_to_one_indexed(result.questions)
        result.converted_zero_index = True
    logger.info("parsed %d questions from CSV (zero-index converted: %s)",
                len(result.questions), result.converted_zero_index)
    return result
