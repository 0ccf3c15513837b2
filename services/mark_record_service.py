"""
Mark entry for one student and one exam cycle.

The flow mirrors the marks screen: search a student by admission id, resolve
the subjects the caller may touch, load (or synthesise) one row per subject
for the chosen exam type, clamp edits, then save subject by subject with an
audit row for every changed obtained value.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from services.assignment_resolver import AssignmentResolver
from services.auth_service import Caller
from services.curriculum import (
    ExamType, exam_type_from_value, is_subject_applicable, max_marks, parse_class_number,
    subjects_for_class
)
from services.entity_store import EntityStore
from services.exceptions import (
    AcademicRecordsError, AuthorizationError, NotFoundError, ValidationError
)
from utils.clock import utcnow
from utils.numbers import percent

logger = logging.getLogger(__name__)

DENIED_SUBJECT_MESSAGE = "You do not have permission to save marks for this subject"


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    NOT_AUTHORIZED = "not_authorized"
    NO_PERMITTED_SUBJECTS = "no_permitted_subjects"
    INVALID_REQUEST = "invalid_request"


class SaveStatus(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class StudentLookup:
    status: LookupStatus
    admission_id: str
    student: object = None
    subjects: list = field(default_factory=list)
    message: str = ""

    @property
    def found(self):
        return self.status == LookupStatus.FOUND


@dataclass
class MarkEntry:
    subject_id: int
    subject_name: str
    marks_obtained: float
    total_marks: int
    remarks: str = ""
    mark_id: Optional[int] = None
    # Values as last read from the store, used to detect changes on save.
    stored_obtained: Optional[float] = None
    stored_remarks: str = ""

    @property
    def persisted(self):
        return self.mark_id is not None

    @property
    def percentage(self):
        return percent(self.marks_obtained, self.total_marks)

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "marks_obtained": self.marks_obtained,
            "total_marks": self.total_marks,
            "remarks": self.remarks,
            "mark_id": self.mark_id,
            "persisted": self.persisted,
            "percentage": self.percentage,
        }


@dataclass
class MarkSheet:
    student: object
    exam_type: ExamType
    subjects: list
    entries: List[MarkEntry] = field(default_factory=list)
    # Subjects edited by the caller that the student takes but the caller may not write.
    denied: Dict[int, str] = field(default_factory=dict)

    def entry_for(self, subject_id) -> MarkEntry:
        for entry in self.entries:
            if entry.subject_id == subject_id:
                return entry
        raise NotFoundError(f"Subject {subject_id} is not on this mark sheet", error_code="subject_not_on_sheet")

    def to_dict(self):
        return {
            "admission_id": self.student.admission_id,
            "student_name": self.student.name,
            "class_section": self.student.class_section,
            "exam_type": self.exam_type.value,
            "entries": [e.to_dict() for e in self.entries],
            "overall_percentage": overall_percentage(self),
        }


@dataclass
class SubjectOutcome:
    subject_id: int
    subject_name: str
    status: SaveStatus
    message: str = ""
    history_written: bool = False

    def to_dict(self):
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "status": self.status.value,
            "message": self.message,
            "history_written": self.history_written,
        }


@dataclass
class SaveReport:
    outcomes: List[SubjectOutcome] = field(default_factory=list)
    sheet: Optional[MarkSheet] = None

    @property
    def failed(self):
        return [o for o in self.outcomes if o.status == SaveStatus.FAILED]

    @property
    def succeeded(self):
        return [o for o in self.outcomes if o.status != SaveStatus.FAILED]

    @property
    def ok(self):
        return not self.failed


def clamp_marks(value, total):
    """Coerce an entered value into [0, total]; junk input counts as 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    if not math.isfinite(number):
        number = 0.0
    number = min(float(total), max(0.0, number))
    return int(number) if number.is_integer() else number


def overall_percentage(sheet: MarkSheet) -> int:
    obtained = sum(e.marks_obtained or 0 for e in sheet.entries)
    total = sum(e.total_marks or 0 for e in sheet.entries)
    return percent(obtained, total)


class MarkRecordService:

    def __init__(self, store: Optional[EntityStore] = None, resolver: Optional[AssignmentResolver] = None):
        self.store = store or EntityStore()
        self.resolver = resolver or AssignmentResolver(self.store)

    # ---------------------------------------------------------
    # 1-2. Search and subject resolution
    # ---------------------------------------------------------

    def search_student(self, caller: Caller, admission_id: str) -> StudentLookup:
        admission_id = (admission_id or "").strip()
        if not admission_id:
            return StudentLookup(LookupStatus.INVALID_REQUEST, admission_id, message="Please enter an admission ID")

        student = self.store.get_student_by_admission_id(admission_id)
        if student is None:
            return StudentLookup(
                LookupStatus.NOT_FOUND, admission_id,
                message="No student found with this admission ID"
            )

        if not (caller.is_admin or caller.is_teacher):
            return self._denied(admission_id)
        if not self.resolver.can_access_class_section(caller, student.class_section):
            return self._denied(admission_id)

        if student.class_section_id is None:
            self._link_class_section(student)

        scope = self.resolver.scope_for(caller)
        names = [
            rule.name for rule in subjects_for_class(student.class_name)
            if scope.allows_subject(rule.name)
        ]
        subjects = self.store.subjects_by_names(names)
        if not subjects:
            return StudentLookup(
                LookupStatus.NO_PERMITTED_SUBJECTS, admission_id, student=student,
                message="No subjects you are permitted to manage for this student"
            )

        return StudentLookup(LookupStatus.FOUND, admission_id, student=student, subjects=subjects)

    def _denied(self, admission_id):
        return StudentLookup(
            LookupStatus.NOT_AUTHORIZED, admission_id,
            message="You do not have permission to manage marks for this student"
        )

    def _link_class_section(self, student):
        class_number = parse_class_number(student.class_name)
        if class_number is None:
            return
        class_section = self.store.find_class_section(class_number, student.section)
        if class_section is not None:
            self.store.link_student_class_section(student, class_section)

    # ---------------------------------------------------------
    # 3. Load
    # ---------------------------------------------------------

    def load_marks(self, caller: Caller, lookup: StudentLookup, exam_type) -> MarkSheet:
        if lookup.status == LookupStatus.NOT_FOUND:
            raise NotFoundError(lookup.message, error_code="student_not_found")
        if not lookup.found:
            raise AuthorizationError(lookup.message or "Not authorized", error_code=lookup.status.value)

        exam = exam_type_from_value(exam_type)
        subjects = [
            s for s in lookup.subjects
            if self.resolver.can_access(caller, lookup.student, s.name)
        ]
        return self._build_sheet(lookup.student, subjects, exam)

    def _build_sheet(self, student, subjects, exam: ExamType) -> MarkSheet:
        rows = self.store.marks_for_exam(
            student.student_id, exam.value, [s.subject_id for s in subjects]
        )
        by_subject = {row.subject_id: row for row in rows}
        default_max = max_marks(student.class_name, exam)

        entries = []
        for subject in subjects:
            row = by_subject.get(subject.subject_id)
            if row is not None:
                obtained = clamp_marks(row.marks_obtained, row.total_marks)
                entries.append(MarkEntry(
                    subject_id=subject.subject_id,
                    subject_name=subject.name,
                    marks_obtained=obtained,
                    total_marks=row.total_marks,
                    remarks=row.remarks or "",
                    mark_id=row.mark_id,
                    stored_obtained=obtained,
                    stored_remarks=row.remarks or "",
                ))
            else:
                entries.append(MarkEntry(
                    subject_id=subject.subject_id,
                    subject_name=subject.name,
                    marks_obtained=0,
                    total_marks=default_max,
                ))
        return MarkSheet(student=student, exam_type=exam, subjects=list(subjects), entries=entries)

    # ---------------------------------------------------------
    # 4. Edit buffer
    # ---------------------------------------------------------

    def edit(self, sheet: MarkSheet, subject_id, marks_obtained=None, remarks=None) -> MarkEntry:
        entry = sheet.entry_for(subject_id)
        if marks_obtained is not None:
            entry.marks_obtained = clamp_marks(marks_obtained, entry.total_marks)
        if remarks is not None:
            entry.remarks = str(remarks)
        return entry

    def apply_edits(self, sheet: MarkSheet, edits: Iterable[dict]) -> MarkSheet:
        for item in edits or []:
            if not isinstance(item, dict) or "subject_id" not in item:
                raise ValidationError("Each entry needs a subject_id", error_code="invalid_entry")
            try:
                subject_id = int(item["subject_id"])
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid subject_id: {item['subject_id']!r}", error_code="invalid_entry")
            try:
                self.edit(sheet, subject_id, item.get("marks_obtained"), item.get("remarks"))
            except NotFoundError:
                self._reject_edit(sheet, subject_id)
        return sheet

    def _reject_edit(self, sheet: MarkSheet, subject_id):
        """Sort an edit for a subject missing from the sheet into denied or invalid."""
        subject = self.store.get_subject(subject_id)
        if subject is None:
            raise NotFoundError(f"Subject {subject_id} not found", error_code="subject_not_found")
        if not is_subject_applicable(subject.name, sheet.student.class_name):
            raise ValidationError(
                f"{subject.name} is not taught in class {sheet.student.class_name}",
                error_code="subject_not_applicable"
            )
        sheet.denied[subject_id] = subject.name

    # ---------------------------------------------------------
    # 5-6. Save and re-display
    # ---------------------------------------------------------

    def save(self, caller: Caller, sheet: MarkSheet, subject_ids: Optional[Iterable[int]] = None) -> SaveReport:
        """Persist the sheet one subject at a time.

        ``subject_ids`` limits the save to those rows, e.g. to retry only the
        subjects that failed last time.
        """
        wanted = set(subject_ids) if subject_ids is not None else None
        now = utcnow()
        report = SaveReport()

        for entry in sheet.entries:
            if wanted is not None and entry.subject_id not in wanted:
                continue
            report.outcomes.append(self._save_entry(caller, sheet, entry, now))

        for subject_id, subject_name in sheet.denied.items():
            if wanted is not None and subject_id not in wanted:
                continue
            report.outcomes.append(SubjectOutcome(
                subject_id, subject_name, SaveStatus.FAILED, DENIED_SUBJECT_MESSAGE
            ))

        student_id = sheet.student.student_id
        if report.succeeded:
            try:
                self.store.refresh_latest_exam_summary(student_id)
            except AcademicRecordsError as exc:
                logger.warning("Could not refresh exam summary for student %s: %s", student_id, exc)

        try:
            report.sheet = self._build_sheet(sheet.student, sheet.subjects, sheet.exam_type)
        except AcademicRecordsError as exc:
            logger.warning("Could not reload marks for student %s: %s", student_id, exc)

        if report.failed:
            logger.warning(
                "Saved marks for student %s (%s) with %d failed subject(s)",
                student_id, sheet.exam_type.value, len(report.failed)
            )
        return report

    def _save_entry(self, caller: Caller, sheet: MarkSheet, entry: MarkEntry, now) -> SubjectOutcome:
        outcome = SubjectOutcome(entry.subject_id, entry.subject_name, SaveStatus.FAILED)

        if not self.resolver.can_access(caller, sheet.student, entry.subject_name):
            outcome.message = DENIED_SUBJECT_MESSAGE
            return outcome

        obtained = clamp_marks(entry.marks_obtained, entry.total_marks)
        remarks = entry.remarks or ""
        student_id = sheet.student.student_id

        try:
            if entry.persisted:
                stored = self.store.stored_marks_obtained(entry.mark_id)
                if stored is None:
                    outcome.message = "Mark no longer exists; reload and try again"
                    return outcome

                changed = float(stored) != float(obtained)
                if not changed and remarks == (entry.stored_remarks or ""):
                    outcome.status = SaveStatus.UNCHANGED
                    return outcome

                history = None
                if changed:
                    history = {
                        "student_id": student_id,
                        "subject_id": entry.subject_id,
                        "exam_type": sheet.exam_type.value,
                        "old_marks": stored,
                        "new_marks": obtained,
                        "updated_by": caller.user_id,
                        "created_at": now,
                    }
                self.store.update_mark(
                    entry.mark_id,
                    history=history,
                    marks_obtained=obtained,
                    total_marks=entry.total_marks,
                    remarks=remarks,
                    updated_by=caller.user_id,
                    updated_at=now,
                )
                outcome.status = SaveStatus.UPDATED
                outcome.history_written = history is not None
                if changed:
                    logger.info(
                        "Mark %s (student %s, %s, %s) changed %s -> %s by user %s",
                        entry.mark_id, student_id, entry.subject_name,
                        sheet.exam_type.value, stored, obtained, caller.user_id
                    )
            else:
                mark = self.store.insert_mark(
                    student_id=student_id,
                    subject_id=entry.subject_id,
                    exam_type=sheet.exam_type.value,
                    marks_obtained=obtained,
                    total_marks=entry.total_marks,
                    remarks=remarks,
                    created_by=caller.user_id,
                    updated_by=caller.user_id,
                    created_at=now,
                    updated_at=now,
                )
                entry.mark_id = mark.mark_id
                outcome.status = SaveStatus.INSERTED
        except AcademicRecordsError as exc:
            logger.warning(
                "Saving %s for student %s failed: %s", entry.subject_name, student_id, exc.message
            )
            outcome.status = SaveStatus.FAILED
            outcome.message = exc.message
            return outcome

        entry.marks_obtained = obtained
        entry.stored_obtained = obtained
        entry.stored_remarks = remarks
        return outcome
