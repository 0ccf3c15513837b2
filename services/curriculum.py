"""
Curriculum rules: which subjects a class studies and what each exam is worth.

Pure functions, no database access.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from services.exceptions import ValidationError


class ExamType(str, Enum):
    """The six grading cycles of an academic year, in calendar order."""
    PA1 = "PA1"
    PA2 = "PA2"
    HALF_YEARLY = "Half Yearly"
    PA3 = "PA3"
    PA4 = "PA4"
    ANNUAL = "Annual"


EXAM_TYPES = [e.value for e in ExamType]

# Term exams are always out of 100; periodic assessments depend on the class tier.
TERM_EXAMS = {ExamType.HALF_YEARLY, ExamType.ANNUAL}
TERM_EXAM_MAX = 100
SENIOR_PA_MAX = 40
JUNIOR_PA_MAX = 30
FALLBACK_MAX = 100

MIN_CLASS = 1
MAX_CLASS_WITH_RULES = 10


@dataclass(frozen=True)
class SubjectRule:
    name: str
    code: str
    from_class: int
    to_class: int

    def applies_to(self, class_number: int) -> bool:
        return self.from_class <= class_number <= self.to_class


SUBJECT_RULES = [
    SubjectRule("Hindi", "HINDI", 1, 10),
    SubjectRule("English", "ENG", 1, 10),
    SubjectRule("Maths", "MATH", 1, 10),
    SubjectRule("EVS", "EVS", 1, 5),
    SubjectRule("Computer", "COMP", 1, 8),
    SubjectRule("S.St", "SST", 6, 10),
    SubjectRule("Science", "SCI", 6, 10),
    SubjectRule("AI", "AI", 9, 10),
]


def parse_class_number(value: Union[int, str, None]) -> Optional[int]:
    """Read the leading integer of a class label ("7", "7-B").

    Roman numerals and other labels do not parse.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = re.match(r"\s*(\d+)", str(value))
    if match:
        return int(match.group(1))
    return None


def subjects_for_class(class_number: Union[int, str, None]) -> List[SubjectRule]:
    number = parse_class_number(class_number)
    if number is None or number < MIN_CLASS or number > MAX_CLASS_WITH_RULES:
        return []
    return [rule for rule in SUBJECT_RULES if rule.applies_to(number)]


def is_subject_applicable(subject: str, class_number: Union[int, str, None]) -> bool:
    key = (subject or "").strip().lower()
    return any(
        key in (rule.code.lower(), rule.name.lower())
        for rule in subjects_for_class(class_number)
    )


def exam_type_from_value(value: Union[str, ExamType, None]) -> ExamType:
    if isinstance(value, ExamType):
        return value
    cleaned = " ".join(str(value or "").split())
    for exam in ExamType:
        if exam.value.lower() == cleaned.lower():
            return exam
    raise ValidationError(f"Unknown exam type: {value!r}", error_code="invalid_exam_type")


def max_marks(class_number: Union[int, str, None], exam_type: Union[str, ExamType]) -> int:
    exam = exam_type_from_value(exam_type)
    if exam in TERM_EXAMS:
        return TERM_EXAM_MAX

    number = parse_class_number(class_number)
    if number is not None:
        if number >= 9:
            return SENIOR_PA_MAX
        if number >= MIN_CLASS:
            return JUNIOR_PA_MAX
    return FALLBACK_MAX
