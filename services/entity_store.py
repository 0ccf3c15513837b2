"""
Entity store boundary.

Every read and write the records services perform goes through EntityStore,
which sits on the Flask-SQLAlchemy session. Driver errors are rolled back and
re-raised as StoreUnavailableError so callers only deal with one failure type.
"""

import logging
import math
import re
from collections.abc import Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from functools import wraps
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import (
    ClassSection, LatestExamSummary, Mark, MarksHistory,
    Student, Subject, Teacher, TeacherAssignment
)
from services.exceptions import NotFoundError, StoreUnavailableError, StudentHasMarksError
from utils.clock import utcnow
from utils.numbers import percent

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class AggregateResult:
    """Normalised result of the server-side percentage function."""
    percentage: Optional[float]


def _coerce_number(value):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _first_number(values):
    for value in values:
        number = _coerce_number(value)
        if number is not None:
            return number
    return None


def normalize_percentage(raw) -> AggregateResult:
    """Collapse whatever the driver hands back into AggregateResult.

    Accepts a bare number or numeric string, a sequence whose first element
    is a number, row or mapping, or a mapping/row holding the value.
    """
    if raw is None:
        return AggregateResult(None)

    number = _coerce_number(raw)
    if number is not None:
        return AggregateResult(number)

    if hasattr(raw, "_mapping"):
        return AggregateResult(_first_number(raw._mapping.values()))
    if isinstance(raw, Mapping):
        return AggregateResult(_first_number(raw.values()))
    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        if len(raw) == 0:
            return AggregateResult(None)
        first = raw[0]
        number = _coerce_number(first)
        if number is not None:
            return AggregateResult(number)
        if hasattr(first, "_mapping"):
            return AggregateResult(_first_number(first._mapping.values()))
        if isinstance(first, Mapping):
            return AggregateResult(_first_number(first.values()))
    return AggregateResult(None)


def _guarded(func_):
    @wraps(func_)
    def wrapper(self, *args, **kwargs):
        try:
            return func_(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Entity store call %s failed: %s", func_.__name__, exc)
            raise StoreUnavailableError(str(exc), error_code="store_unavailable") from exc
    return wrapper


class EntityStore:

    def __init__(self, session=None, percentage_function: Optional[str] = "get_latest_exam_percentage"):
        self._session = session
        if percentage_function and not _IDENTIFIER.match(percentage_function):
            raise ValueError(f"Invalid function name: {percentage_function!r}")
        self.percentage_function = percentage_function

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @contextmanager
    def transaction(self):
        """Commit on success; roll back and translate driver errors otherwise."""
        try:
            yield self.session
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailableError(str(exc), error_code="store_unavailable") from exc
        except Exception:
            self.session.rollback()
            raise

    # ---------------------------------------------------------
    # Students
    # ---------------------------------------------------------

    @_guarded
    def get_student(self, student_id) -> Optional[Student]:
        return self.session.get(Student, student_id)

    @_guarded
    def get_student_by_admission_id(self, admission_id: str) -> Optional[Student]:
        return Student.query.filter_by(admission_id=admission_id).first()

    @_guarded
    def find_class_section(self, class_number, section) -> Optional[ClassSection]:
        return ClassSection.query.filter_by(
            class_number=class_number,
            section=(section or "").strip().upper()
        ).first()

    def link_student_class_section(self, student: Student, class_section: ClassSection):
        with self.transaction():
            student.class_section_id = class_section.class_section_id
        return student

    def delete_student(self, student_id):
        student = self.get_student(student_id)
        if not student:
            raise NotFoundError("Student not found", error_code="student_not_found")

        if self.count_marks(student_id):
            raise StudentHasMarksError(
                f"Student {student.admission_id} has recorded marks and cannot be deleted",
                error_code="student_has_marks"
            )

        with self.transaction() as session:
            LatestExamSummary.query.filter_by(student_id=student_id).delete()
            session.delete(student)

    # ---------------------------------------------------------
    # Teachers & assignments
    # ---------------------------------------------------------

    @_guarded
    def get_teacher(self, teacher_id) -> Optional[Teacher]:
        return self.session.get(Teacher, teacher_id)

    @_guarded
    def get_teacher_by_code(self, teacher_code: str) -> Optional[Teacher]:
        return Teacher.query.filter_by(teacher_code=teacher_code).first()

    @_guarded
    def list_assignments(self, teacher_id) -> List[TeacherAssignment]:
        return (
            TeacherAssignment.query
            .filter_by(teacher_id=teacher_id)
            .order_by(TeacherAssignment.class_section.asc(), TeacherAssignment.subject.asc())
            .all()
        )

    def replace_assignments(self, teacher_id, pairs: Iterable[Tuple[str, str]]) -> List[TeacherAssignment]:
        """Delete every assignment of the teacher, then insert ``pairs``."""
        with self.transaction() as session:
            TeacherAssignment.query.filter_by(teacher_id=teacher_id).delete()
            rows = [
                TeacherAssignment(teacher_id=teacher_id, class_section=cs, subject=subject)
                for cs, subject in pairs
            ]
            session.add_all(rows)
        return rows

    # ---------------------------------------------------------
    # Subjects
    # ---------------------------------------------------------

    @_guarded
    def get_subject(self, subject_id) -> Optional[Subject]:
        return self.session.get(Subject, subject_id)

    @_guarded
    def subjects_by_names(self, names: Iterable[str]) -> List[Subject]:
        names = list(names)
        if not names:
            return []
        return Subject.query.filter(Subject.name.in_(names)).order_by(Subject.name.asc()).all()

    # ---------------------------------------------------------
    # Marks
    # ---------------------------------------------------------

    @_guarded
    def get_mark(self, mark_id) -> Optional[Mark]:
        return self.session.get(Mark, mark_id)

    @_guarded
    def marks_for_exam(self, student_id, exam_type: str, subject_ids=None) -> List[Mark]:
        q = Mark.query.filter_by(student_id=student_id, exam_type=exam_type)
        if subject_ids is not None:
            q = q.filter(Mark.subject_id.in_(list(subject_ids)))
        return q.all()

    @_guarded
    def marks_for_student(self, student_id) -> List[Mark]:
        return (
            Mark.query
            .filter_by(student_id=student_id)
            .order_by(Mark.created_at.desc())
            .all()
        )

    @_guarded
    def count_marks(self, student_id) -> int:
        return Mark.query.filter_by(student_id=student_id).count()

    @_guarded
    def stored_marks_obtained(self, mark_id) -> Optional[float]:
        """Read the persisted obtained value, bypassing the identity map."""
        return self.session.execute(
            db.select(Mark.marks_obtained).where(Mark.mark_id == mark_id)
        ).scalar_one_or_none()

    def insert_mark(self, **fields) -> Mark:
        with self.transaction() as session:
            mark = Mark(**fields)
            session.add(mark)
        return mark

    def update_mark(self, mark_id, history: Optional[dict] = None, **fields) -> Mark:
        """Update one mark row; when ``history`` is given, append it first.

        Both statements share a transaction, so a history row never exists
        without the change it records.
        """
        with self.transaction() as session:
            mark = session.get(Mark, mark_id)
            if mark is None:
                raise NotFoundError(f"Mark {mark_id} not found", error_code="mark_not_found")
            if history is not None:
                session.add(MarksHistory(mark_id=mark_id, **history))
            for key, value in fields.items():
                setattr(mark, key, value)
        return mark

    @_guarded
    def latest_mark_exam_type(self, student_id) -> Optional[str]:
        row = (
            Mark.query
            .with_entities(Mark.exam_type)
            .filter_by(student_id=student_id)
            .order_by(Mark.updated_at.desc(), Mark.mark_id.desc())
            .first()
        )
        return row[0] if row else None

    @_guarded
    def exam_types_with_results(self, student_id) -> List[str]:
        rows = (
            self.session.query(Mark.exam_type)
            .filter(Mark.student_id == student_id)
            .distinct()
            .all()
        )
        return [r[0] for r in rows]

    @_guarded
    def history_for_student(self, student_id, limit: int = 10, subject_ids=None) -> List[MarksHistory]:
        q = MarksHistory.query.filter_by(student_id=student_id)
        if subject_ids is not None:
            q = q.filter(MarksHistory.subject_id.in_(list(subject_ids)))
        return (
            q
            .order_by(MarksHistory.created_at.desc(), MarksHistory.history_id.desc())
            .limit(limit)
            .all()
        )

    @_guarded
    def history_for_mark(self, mark_id) -> List[MarksHistory]:
        return (
            MarksHistory.query
            .filter_by(mark_id=mark_id)
            .order_by(MarksHistory.history_id.asc())
            .all()
        )

    # ---------------------------------------------------------
    # Aggregates
    # ---------------------------------------------------------

    @_guarded
    def latest_exam_percentage(self, student_id) -> AggregateResult:
        """Call the server-side percentage function when the backend has it."""
        if not self.percentage_function:
            return AggregateResult(None)
        if self.session.get_bind().dialect.name != "postgresql":
            return AggregateResult(None)

        raw = self.session.execute(
            text(f"SELECT {self.percentage_function}(:student_id)"),
            {"student_id": student_id}
        ).scalar()
        return normalize_percentage(raw)

    @_guarded
    def latest_exam_summary(self, student_id) -> Optional[LatestExamSummary]:
        return self.session.get(LatestExamSummary, student_id)

    def refresh_latest_exam_summary(self, student_id) -> Optional[LatestExamSummary]:
        exam_type = self.latest_mark_exam_type(student_id)
        if exam_type is None:
            return None

        with self.transaction() as session:
            obtained, total = session.query(
                func.coalesce(func.sum(Mark.marks_obtained), 0),
                func.coalesce(func.sum(Mark.total_marks), 0)
            ).filter(
                Mark.student_id == student_id,
                Mark.exam_type == exam_type
            ).one()

            obtained = float(obtained or 0)
            total = float(total or 0)
            percentage = percent(obtained, total, places=2)

            summary = session.get(LatestExamSummary, student_id)
            if summary is None:
                summary = LatestExamSummary(student_id=student_id)
                session.add(summary)
            summary.exam_type = exam_type
            summary.obtained = obtained
            summary.total = total
            summary.percentage = percentage
            summary.refreshed_at = utcnow()
        return summary
