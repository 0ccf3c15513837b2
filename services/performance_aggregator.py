"""
Latest-exam percentage and the per-subject marks view for a student.

The headline percentage walks a fixed chain of sources, because the
pre-computed ones can be stale, missing or zero while real marks exist:

1. the server-side percentage function,
2. the denormalised latest-exam summary row,
3. the first entry of a grades list the caller already holds,
4. the raw mark rows of the most recently updated exam type.

The first source yielding a positive number wins. A source whose store call
fails is skipped. When nothing answers the percentage is 0.
"""

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, List, Optional, Sequence

from services.entity_store import EntityStore
from services.exceptions import NotFoundError, StoreUnavailableError
from utils.numbers import percent, round_half_up

logger = logging.getLogger(__name__)

SOURCE_FUNCTION = "aggregate_function"
SOURCE_SUMMARY = "summary"
SOURCE_GRADES = "recent_grades"
SOURCE_MARKS = "marks"
SOURCE_NONE = "none"

PERFORMANCE_BANDS = [
    (90, "Outstanding!"),
    (75, "Excellent!"),
    (60, "Good!"),
    (45, "Keep Improving!"),
]


def performance_band(percentage) -> str:
    for floor, label in PERFORMANCE_BANDS:
        if percentage >= floor:
            return label
    return "Needs Attention"


@dataclass(frozen=True)
class LatestPercentage:
    percentage: float
    source: str

    @property
    def whole(self) -> int:
        return round_half_up(self.percentage)


@dataclass
class ExamResult:
    mark_id: int
    exam_type: str
    marks_obtained: float
    total_marks: int
    percentage: int
    remarks: str
    updated_at: object

    def to_dict(self):
        return {
            "mark_id": self.mark_id,
            "exam_type": self.exam_type,
            "marks_obtained": self.marks_obtained,
            "total_marks": self.total_marks,
            "percentage": self.percentage,
            "remarks": self.remarks,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class SubjectBreakdown:
    subject_id: int
    subject_name: str
    subject_code: Optional[str]
    results: List[ExamResult] = field(default_factory=list)

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "subject_code": self.subject_code,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class StudentReport:
    admission_id: str
    student_name: str
    class_section: str
    latest_percentage: int
    latest_source: str
    performance_band: str
    exams_count: int
    subjects: List[SubjectBreakdown] = field(default_factory=list)
    history: List[dict] = field(default_factory=list)

    def to_dict(self):
        return {
            "admission_id": self.admission_id,
            "student_name": self.student_name,
            "class_section": self.class_section,
            "latest_exam_percentage": self.latest_percentage,
            "latest_exam_percentage_source": self.latest_source,
            "performance_band": self.performance_band,
            "exams_count": self.exams_count,
            "subjects": [s.to_dict() for s in self.subjects],
            "history": self.history,
        }


def _number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _field(item, name):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


class PerformanceAggregator:

    def __init__(self, store: Optional[EntityStore] = None, history_limit: int = 10):
        self.store = store or EntityStore()
        self.history_limit = history_limit

    def latest_percentage(self, student_id, recent_grades: Optional[Sequence] = None) -> LatestPercentage:
        strategies = [
            (SOURCE_FUNCTION, lambda: self._from_function(student_id)),
            (SOURCE_SUMMARY, lambda: self._from_summary(student_id)),
            (SOURCE_GRADES, lambda: self._from_grades(recent_grades)),
            (SOURCE_MARKS, lambda: self._from_marks(student_id)),
        ]
        for source, strategy in strategies:
            try:
                value = strategy()
            except StoreUnavailableError as exc:
                logger.warning("Percentage source %s unavailable for student %s: %s", source, student_id, exc.message)
                continue
            if value is not None and value > 0:
                logger.debug("Latest percentage for student %s from %s: %s", student_id, source, value)
                return LatestPercentage(round_half_up(value, 2), source)

        return LatestPercentage(0.0, SOURCE_NONE)

    def headline_percentage(self, student_id, recent_grades: Optional[Sequence] = None) -> int:
        return self.latest_percentage(student_id, recent_grades).whole

    def _from_function(self, student_id):
        return self.store.latest_exam_percentage(student_id).percentage

    def _from_summary(self, student_id):
        summary = self.store.latest_exam_summary(student_id)
        if summary is None:
            return None
        return _number(summary.percentage)

    def _from_grades(self, recent_grades):
        if not recent_grades:
            return None
        latest = recent_grades[0]
        obtained = _number(_field(latest, "marks_obtained"))
        total = _number(_field(latest, "total_marks"))
        if obtained is None or total is None or total <= 0:
            return None
        return obtained / total * 100

    def _from_marks(self, student_id):
        exam_type = self.store.latest_mark_exam_type(student_id)
        if not exam_type:
            return None
        rows = self.store.marks_for_exam(student_id, exam_type)
        total = sum(float(r.total_marks or 0) for r in rows)
        obtained = sum(float(r.marks_obtained or 0) for r in rows)
        if total <= 0:
            return None
        return obtained / total * 100

    def student_report(self, student_id, recent_grades: Optional[Sequence] = None,
                       subject_names: Optional[AbstractSet[str]] = None) -> StudentReport:
        """Build the report card view.

        ``subject_names`` restricts the breakdown and history to those subjects;
        ``None`` means every subject.
        """
        student = self.store.get_student(student_id)
        if student is None:
            raise NotFoundError("Student not found", error_code="student_not_found")

        breakdown = {}
        for mark in self.store.marks_for_student(student_id):
            subject = mark.subject
            if subject_names is not None and (subject is None or subject.name not in subject_names):
                continue
            item = breakdown.get(mark.subject_id)
            if item is None:
                item = SubjectBreakdown(
                    subject_id=mark.subject_id,
                    subject_name=subject.name if subject else "",
                    subject_code=subject.code if subject else None,
                )
                breakdown[mark.subject_id] = item
            # Per-row figure only; the fallback chain is for the headline.
            item.results.append(ExamResult(
                mark_id=mark.mark_id,
                exam_type=mark.exam_type,
                marks_obtained=mark.marks_obtained,
                total_marks=mark.total_marks,
                percentage=percent(mark.marks_obtained, mark.total_marks),
                remarks=mark.remarks or "",
                updated_at=mark.updated_at,
            ))

        names = {sid: b.subject_name for sid, b in breakdown.items()}
        subject_ids = None if subject_names is None else list(names)
        history = [
            {
                "mark_id": h.mark_id,
                "exam_type": h.exam_type,
                "subject_id": h.subject_id,
                "subject_name": names.get(h.subject_id, ""),
                "old_marks": h.old_marks,
                "new_marks": h.new_marks,
                "updated_by": h.updated_by,
                "created_at": h.created_at.isoformat() if h.created_at else None,
            }
            for h in self.store.history_for_student(student_id, self.history_limit, subject_ids)
        ]

        latest = self.latest_percentage(student_id, recent_grades)
        return StudentReport(
            admission_id=student.admission_id,
            student_name=student.name,
            class_section=student.class_section,
            latest_percentage=latest.whole,
            latest_source=latest.source,
            performance_band=performance_band(latest.whole),
            exams_count=len(self.store.exam_types_with_results(student_id)),
            subjects=list(breakdown.values()),
            history=history,
        )
