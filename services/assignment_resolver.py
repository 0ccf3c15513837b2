"""
Resolves which class-sections and subjects a teacher may act on.

A teacher's scope is two independent sets built from their assignment rows:
class-section labels and subject names. Access to (student, subject) needs
the student's class-section in the first set and the subject in the second,
not a matching assignment row. A teacher assigned Maths in 5-A and Science in
6-B is therefore also cleared for Science in 5-A.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from services.auth_service import Caller
from services.entity_store import EntityStore
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CLASS_SECTION_LABEL = re.compile(r"^(\d+)-([A-Z]{1,2})$")
MIN_CLASS = 1
MAX_CLASS = 12


@dataclass(frozen=True)
class TeacherScope:
    class_sections: FrozenSet[str] = frozenset()
    subjects: FrozenSet[str] = frozenset()
    unrestricted: bool = False

    def allows_class_section(self, label: str) -> bool:
        return self.unrestricted or normalize_class_section(label) in self.class_sections

    def allows_subject(self, subject: str) -> bool:
        return self.unrestricted or (subject or "").strip() in self.subjects


FULL_ACCESS = TeacherScope(unrestricted=True)
NO_ACCESS = TeacherScope()


def normalize_class_section(label: str) -> str:
    """'7 - b' -> '7-B'."""
    parts = [p.strip() for p in str(label or "").split("-", 1)]
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return str(label or "").strip().upper()
    return f"{parts[0]}-{parts[1].upper()}"


class AssignmentResolver:

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()
        self._cache: Dict[int, TeacherScope] = {}

    def scope_for(self, caller: Caller) -> TeacherScope:
        if caller.is_admin:
            return FULL_ACCESS
        if not caller.is_teacher or caller.teacher_id is None:
            return NO_ACCESS

        scope = self._cache.get(caller.teacher_id)
        if scope is None:
            rows = self.store.list_assignments(caller.teacher_id)
            scope = TeacherScope(
                class_sections=frozenset(normalize_class_section(r.class_section) for r in rows),
                subjects=frozenset(r.subject.strip() for r in rows),
            )
            self._cache[caller.teacher_id] = scope
        return scope

    def can_access_class_section(self, caller: Caller, label: str) -> bool:
        return self.scope_for(caller).allows_class_section(label)

    def can_access(self, caller: Caller, student, subject_name: str) -> bool:
        scope = self.scope_for(caller)
        return scope.allows_class_section(student.class_section) and scope.allows_subject(subject_name)

    def invalidate(self, teacher_id: Optional[int] = None):
        if teacher_id is None:
            self._cache.clear()
        else:
            self._cache.pop(teacher_id, None)

    def assignments_for(self, teacher_id) -> List:
        if not self.store.get_teacher(teacher_id):
            raise NotFoundError("Teacher not found", error_code="teacher_not_found")
        return self.store.list_assignments(teacher_id)

    def replace_assignments(self, teacher_id, pairs: Iterable[Tuple[str, str]]) -> List:
        """Replace the teacher's whole assignment set.

        Always delete-all-then-insert, never a diff, so no stale row survives
        an edit. Duplicate pairs collapse to one row. Labels must name a class
        from 1 to 12 and subjects must match a known subject exactly.
        """
        if not self.store.get_teacher(teacher_id):
            raise NotFoundError("Teacher not found", error_code="teacher_not_found")

        unique = []
        seen = set()
        for class_section, subject in pairs:
            label = normalize_class_section(class_section)
            subject = (subject or "").strip()
            match = CLASS_SECTION_LABEL.match(label)
            if not match or not subject or not MIN_CLASS <= int(match.group(1)) <= MAX_CLASS:
                raise ValidationError(
                    f"Invalid assignment ({class_section!r}, {subject!r})",
                    error_code="invalid_assignment"
                )
            if (label, subject) not in seen:
                seen.add((label, subject))
                unique.append((label, subject))

        known = {s.name for s in self.store.subjects_by_names({s for _, s in unique})}
        unknown = sorted({s for _, s in unique} - known)
        if unknown:
            raise ValidationError(
                f"Unknown subject(s): {', '.join(unknown)}",
                error_code="unknown_subject",
                details={"subjects": unknown}
            )

        rows = self.store.replace_assignments(teacher_id, unique)
        self.invalidate(teacher_id)
        logger.info("Replaced assignments for teacher %s with %d rows", teacher_id, len(rows))
        return rows
