import pytest

from extensions import db
from models import Mark, MarksHistory
from services.auth_service import Caller
from services.exceptions import AuthorizationError, NotFoundError, StoreUnavailableError, ValidationError
from services.mark_record_service import (
    LookupStatus, SaveStatus, clamp_marks, overall_percentage
)


@pytest.mark.parametrize("value, total, expected", [
    (50, 30, 30),
    (-5, 30, 0),
    ("abc", 30, 0),
    (None, 30, 0),
    ("12.5", 30, 12.5),
    ("18", 40, 18),
    (float("nan"), 40, 0),
])
def test_clamp_marks(value, total, expected):
    assert clamp_marks(value, total) == expected


def test_blank_admission_id_is_invalid(marks_service, admin_caller):
    lookup = marks_service.search_student(admin_caller, "   ")
    assert lookup.status == LookupStatus.INVALID_REQUEST


def test_not_found_is_distinct_from_not_authorized(marks_service, make_teacher, teacher_caller, make_student):
    t = make_teacher(assignments=[("7-A", "Maths")])
    caller = teacher_caller(t)
    make_student("ADM002", "7", "B")

    assert marks_service.search_student(caller, "NOPE").status == LookupStatus.NOT_FOUND

    denied = marks_service.search_student(caller, "ADM002")
    assert denied.status == LookupStatus.NOT_AUTHORIZED
    assert denied.student is None
    assert denied.subjects == []


def test_teacher_sees_only_assigned_subjects(marks_service, make_teacher, teacher_caller, make_student):
    t = make_teacher(assignments=[("7-A", "Maths")])
    make_student("ADM001", "7", "A")

    lookup = marks_service.search_student(teacher_caller(t), "ADM001")
    assert lookup.found
    assert [s.name for s in lookup.subjects] == ["Maths"]


def test_no_permitted_subjects(marks_service, make_teacher, teacher_caller, make_student):
    t = make_teacher(assignments=[("7-A", "AI")])
    make_student("ADM001", "7", "A")

    lookup = marks_service.search_student(teacher_caller(t), "ADM001")
    assert lookup.status == LookupStatus.NO_PERMITTED_SUBJECTS


def test_student_role_cannot_search(marks_service, make_student):
    student = make_student()
    caller = Caller(role="student", student_id=student.student_id)
    assert marks_service.search_student(caller, "ADM001").status == LookupStatus.NOT_AUTHORIZED


def test_admin_sees_full_curriculum(marks_service, admin_caller, make_student):
    make_student("ADM005", "5", "C")
    lookup = marks_service.search_student(admin_caller, "ADM005")
    assert {s.name for s in lookup.subjects} == {"Hindi", "English", "Maths", "EVS", "Computer"}


def test_search_links_class_section(marks_service, admin_caller, make_student):
    student = make_student("ADM001", "7", "b")
    assert student.class_section_id is None

    marks_service.search_student(admin_caller, "ADM001")
    assert student.class_section_id is not None
    assert student.class_section_row.label == "7-B"


def test_load_marks_rejects_failed_lookups(marks_service, make_teacher, teacher_caller, make_student):
    t = make_teacher(assignments=[("7-A", "Maths")])
    caller = teacher_caller(t)
    make_student("ADM002", "7", "B")

    with pytest.raises(NotFoundError):
        marks_service.load_marks(caller, marks_service.search_student(caller, "NOPE"), "PA1")
    with pytest.raises(AuthorizationError):
        marks_service.load_marks(caller, marks_service.search_student(caller, "ADM002"), "PA1")


def test_placeholders_use_exam_maximum(marks_service, admin_caller, make_student):
    make_student("ADM009", "9", "A")
    lookup = marks_service.search_student(admin_caller, "ADM009")
    sheet = marks_service.load_marks(admin_caller, lookup, "PA2")

    assert len(sheet.entries) == 6
    for entry in sheet.entries:
        assert entry.total_marks == 40
        assert entry.marks_obtained == 0
        assert not entry.persisted


def test_existing_row_keeps_its_stored_total(marks_service, admin_caller, make_student, make_mark):
    student = make_student("ADM001", "7", "A")
    make_mark(student, "Maths", "PA1", 42, 50)

    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    maths = next(e for e in sheet.entries if e.subject_name == "Maths")
    assert maths.total_marks == 50
    assert maths.marks_obtained == 42

    marks_service.edit(sheet, maths.subject_id, 45)
    assert maths.marks_obtained == 45


def test_edit_clamps_to_total(marks_service, admin_caller, make_student):
    make_student("ADM001", "7", "A")
    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    entry = sheet.entries[0]

    assert marks_service.edit(sheet, entry.subject_id, 50).marks_obtained == 30
    assert marks_service.edit(sheet, entry.subject_id, -1).marks_obtained == 0
    assert marks_service.edit(sheet, entry.subject_id, "x").marks_obtained == 0


def test_apply_edits_validates_subject_ids(marks_service, admin_caller, make_student):
    make_student("ADM001", "7", "A")
    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")

    with pytest.raises(ValidationError):
        marks_service.apply_edits(sheet, [{"marks_obtained": 3}])
    with pytest.raises(ValidationError):
        marks_service.apply_edits(sheet, [{"subject_id": "maths"}])
    with pytest.raises(NotFoundError):
        marks_service.apply_edits(sheet, [{"subject_id": 9999, "marks_obtained": 3}])


def _teacher_sheet(marks_service, make_teacher, teacher_caller, make_student, exam="PA1"):
    t = make_teacher(assignments=[("7-A", "Maths")])
    caller = teacher_caller(t)
    make_student("ADM001", "7", "A")
    lookup = marks_service.search_student(caller, "ADM001")
    return caller, marks_service.load_marks(caller, lookup, exam)


def test_insert_writes_no_history(marks_service, make_teacher, teacher_caller, make_student):
    caller, sheet = _teacher_sheet(marks_service, make_teacher, teacher_caller, make_student)
    marks_service.edit(sheet, sheet.entries[0].subject_id, 50)

    report = marks_service.save(caller, sheet)

    assert report.ok
    assert [o.status for o in report.outcomes] == [SaveStatus.INSERTED]
    mark = Mark.query.one()
    assert mark.marks_obtained == 30
    assert mark.total_marks == 30
    assert mark.created_by == caller.user_id
    assert MarksHistory.query.count() == 0
    assert report.sheet.entries[0].persisted


def test_change_writes_one_history_row(marks_service, make_teacher, teacher_caller, make_student, make_mark):
    t = make_teacher(assignments=[("7-A", "Maths")])
    caller = teacher_caller(t)
    student = make_student("ADM001", "7", "A")
    mark = make_mark(student, "Maths", "PA1", 20, 30)

    sheet = marks_service.load_marks(caller, marks_service.search_student(caller, "ADM001"), "PA1")
    marks_service.edit(sheet, sheet.entries[0].subject_id, 25)
    report = marks_service.save(caller, sheet)

    assert report.outcomes[0].status == SaveStatus.UPDATED
    assert report.outcomes[0].history_written
    history = MarksHistory.query.all()
    assert len(history) == 1
    assert (history[0].mark_id, history[0].old_marks, history[0].new_marks) == (mark.mark_id, 20, 25)
    assert history[0].updated_by == caller.user_id
    assert db.session.get(Mark, mark.mark_id).marks_obtained == 25

    # Saving the reloaded sheet again changes nothing.
    again = marks_service.save(caller, report.sheet)
    assert again.outcomes[0].status == SaveStatus.UNCHANGED
    assert MarksHistory.query.count() == 1


def test_unchanged_value_writes_nothing(marks_service, admin_caller, make_student, make_mark):
    student = make_student("ADM001", "7", "A")
    mark = make_mark(student, "Maths", "PA1", 20, 30, remarks="steady")
    before = mark.updated_at

    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    report = marks_service.save(admin_caller, sheet, subject_ids=[mark.subject_id])

    assert [o.status for o in report.outcomes] == [SaveStatus.UNCHANGED]
    assert MarksHistory.query.count() == 0
    assert db.session.get(Mark, mark.mark_id).updated_at == before


def test_remarks_only_change_updates_without_history(marks_service, admin_caller, make_student, make_mark):
    student = make_student("ADM001", "7", "A")
    mark = make_mark(student, "Maths", "PA1", 20, 30)

    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    marks_service.edit(sheet, mark.subject_id, remarks="Needs practice")
    report = marks_service.save(admin_caller, sheet, subject_ids=[mark.subject_id])

    assert report.outcomes[0].status == SaveStatus.UPDATED
    assert not report.outcomes[0].history_written
    assert MarksHistory.query.count() == 0
    assert db.session.get(Mark, mark.mark_id).remarks == "Needs practice"


def test_save_rechecks_authorization(marks_service, make_teacher, teacher_caller, make_student, resolver):
    caller, sheet = _teacher_sheet(marks_service, make_teacher, teacher_caller, make_student)
    resolver.replace_assignments(caller.teacher_id, [("8-A", "Maths")])

    report = marks_service.save(caller, sheet)
    assert report.outcomes[0].status == SaveStatus.FAILED
    assert Mark.query.count() == 0


def test_partial_failure_then_retry(marks_service, store, admin_caller, make_student, monkeypatch, subject):
    make_student("ADM001", "7", "A")
    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    science = subject("Science").subject_id
    for entry in sheet.entries:
        marks_service.edit(sheet, entry.subject_id, 20)

    original = store.insert_mark

    def flaky_insert(**fields):
        if fields["subject_id"] == science:
            raise StoreUnavailableError("connection reset", error_code="store_unavailable")
        return original(**fields)

    monkeypatch.setattr(store, "insert_mark", flaky_insert)
    report = marks_service.save(admin_caller, sheet)

    assert not report.ok
    assert [o.subject_id for o in report.failed] == [science]
    assert len(report.succeeded) == len(sheet.entries) - 1
    assert Mark.query.count() == len(sheet.entries) - 1
    assert not report.sheet.entry_for(science).persisted

    monkeypatch.setattr(store, "insert_mark", original)
    retry_sheet = report.sheet
    marks_service.edit(retry_sheet, science, 20)
    retry = marks_service.save(admin_caller, retry_sheet, subject_ids=[science])

    assert retry.ok
    assert [o.status for o in retry.outcomes] == [SaveStatus.INSERTED]
    assert Mark.query.count() == len(sheet.entries)


def test_failed_update_keeps_history_out(marks_service, store, admin_caller, make_student, make_mark, monkeypatch):
    student = make_student("ADM001", "7", "A")
    mark = make_mark(student, "Maths", "PA1", 20, 30)
    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")
    marks_service.edit(sheet, mark.subject_id, 28)

    def broken_update(mark_id, history=None, **fields):
        raise StoreUnavailableError("deadlock", error_code="store_unavailable")

    monkeypatch.setattr(store, "update_mark", broken_update)
    report = marks_service.save(admin_caller, sheet, subject_ids=[mark.subject_id])

    assert report.outcomes[0].status == SaveStatus.FAILED
    assert report.outcomes[0].message == "deadlock"
    assert MarksHistory.query.count() == 0
    assert db.session.get(Mark, mark.mark_id).marks_obtained == 20


def test_save_refreshes_summary_and_overall(marks_service, store, make_teacher, teacher_caller, make_student, subject):
    t = make_teacher(assignments=[("9-A", "Maths"), ("9-A", "Science")])
    caller = teacher_caller(t)
    student = make_student("ADM009", "9", "A")
    sheet = marks_service.load_marks(caller, marks_service.search_student(caller, "ADM009"), "PA2")
    marks_service.apply_edits(sheet, [
        {"subject_id": subject("Maths").subject_id, "marks_obtained": 18},
        {"subject_id": subject("Science").subject_id, "marks_obtained": 36},
    ])

    report = marks_service.save(caller, sheet)

    assert report.ok
    assert overall_percentage(report.sheet) == 68
    summary = store.latest_exam_summary(student.student_id)
    assert summary.exam_type == "PA2"
    assert summary.percentage == 67.5


def test_search_does_not_link_for_unauthorized_callers(marks_service, make_teacher, teacher_caller, make_student):
    t = make_teacher(assignments=[("8-A", "Maths")])
    student = make_student("ADM001", "7", "B")

    marks_service.search_student(Caller(role="student", student_id=student.student_id), "ADM001")
    marks_service.search_student(teacher_caller(t), "ADM001")

    assert student.class_section_id is None


def test_edit_for_unassigned_subject_fails_only_that_subject(
        marks_service, make_teacher, teacher_caller, make_student, subject):
    caller, sheet = _teacher_sheet(marks_service, make_teacher, teacher_caller, make_student)
    maths = subject("Maths").subject_id
    science = subject("Science").subject_id

    marks_service.apply_edits(sheet, [
        {"subject_id": maths, "marks_obtained": 10},
        {"subject_id": science, "marks_obtained": 10},
    ])
    report = marks_service.save(caller, sheet)

    outcomes = {o.subject_id: o for o in report.outcomes}
    assert outcomes[maths].status == SaveStatus.INSERTED
    assert outcomes[science].status == SaveStatus.FAILED
    assert "permission" in outcomes[science].message
    assert [m.subject_id for m in Mark.query.all()] == [maths]


def test_edit_for_subject_outside_curriculum_is_invalid(marks_service, admin_caller, make_student, subject):
    make_student("ADM001", "7", "A")
    sheet = marks_service.load_marks(admin_caller, marks_service.search_student(admin_caller, "ADM001"), "PA1")

    with pytest.raises(ValidationError) as exc:
        marks_service.apply_edits(sheet, [{"subject_id": subject("EVS").subject_id, "marks_obtained": 5}])
    assert exc.value.error_code == "subject_not_applicable"
