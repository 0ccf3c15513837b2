from flask import Blueprint, jsonify, request

from services.curriculum import EXAM_TYPES, exam_type_from_value
from services.mark_record_service import LookupStatus
from services.registry import current_caller, records
from utils.decorators import role_required

marks_bp = Blueprint("marks", __name__, url_prefix="/marks")

LOOKUP_HTTP_STATUS = {
    LookupStatus.FOUND: 200,
    LookupStatus.NOT_FOUND: 404,
    LookupStatus.NOT_AUTHORIZED: 403,
    LookupStatus.NO_PERMITTED_SUBJECTS: 403,
    LookupStatus.INVALID_REQUEST: 400,
}


def lookup_payload(lookup):
    payload = {
        "state": lookup.status.value,
        "admission_id": lookup.admission_id,
        "message": lookup.message,
        "subjects": [
            {"subject_id": s.subject_id, "name": s.name, "code": s.code}
            for s in lookup.subjects
        ],
    }
    if lookup.found:
        student = lookup.student
        payload["student"] = {
            "admission_id": student.admission_id,
            "name": student.name,
            "class_name": student.class_name,
            "section": student.section,
            "class_section": student.class_section,
        }
    return payload


def search_or_error(admission_id):
    lookup = records().marks.search_student(current_caller(), admission_id)
    if not lookup.found:
        return lookup, (jsonify(lookup_payload(lookup)), LOOKUP_HTTP_STATUS[lookup.status])
    return lookup, None


@marks_bp.route("/exam-types")
@role_required("admin", "teacher")
def exam_types():
    return jsonify({"exam_types": EXAM_TYPES})


@marks_bp.route("/search")
@role_required("admin", "teacher")
def search_student():
    lookup = records().marks.search_student(current_caller(), request.args.get("admission_id"))
    return jsonify(lookup_payload(lookup)), LOOKUP_HTTP_STATUS[lookup.status]


@marks_bp.route("/sheet")
@role_required("admin", "teacher")
def mark_sheet():
    exam_type = exam_type_from_value(request.args.get("exam_type") or EXAM_TYPES[0])

    lookup, error = search_or_error(request.args.get("admission_id"))
    if error:
        return error

    sheet = records().marks.load_marks(current_caller(), lookup, exam_type)
    return jsonify({"state": lookup.status.value, "sheet": sheet.to_dict()})


@marks_bp.route("/save", methods=["POST"])
@role_required("admin", "teacher")
def save_marks():
    data = request.get_json(silent=True) or {}
    entries = data.get("entries")
    if not isinstance(entries, list) or not entries:
        return jsonify({"error": "No mark entries provided"}), 400

    exam_type = exam_type_from_value(data.get("exam_type"))

    lookup, error = search_or_error(data.get("admission_id"))
    if error:
        return error

    service = records().marks
    caller = current_caller()
    sheet = service.load_marks(caller, lookup, exam_type)
    service.apply_edits(sheet, entries)

    subject_ids = data.get("subject_ids")
    if subject_ids is not None:
        try:
            subject_ids = [int(s) for s in subject_ids]
        except (TypeError, ValueError):
            return jsonify({"error": "subject_ids must be a list of integers"}), 400

    report = service.save(caller, sheet, subject_ids=subject_ids)

    body = {
        "status": "success" if report.ok else "partial",
        "outcomes": [o.to_dict() for o in report.outcomes],
        "failed_subject_ids": [o.subject_id for o in report.failed],
        "sheet": report.sheet.to_dict() if report.sheet else None,
    }
    return jsonify(body), (200 if report.ok else 207)
