from flask import Blueprint, jsonify, request

from services.registry import records
from utils.decorators import role_required

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def assignment_payload(teacher, rows):
    return {
        "teacher_code": teacher.teacher_code,
        "name": teacher.name,
        "assignments": [
            {"class_section": r.class_section, "subject": r.subject}
            for r in rows
        ],
        "class_sections": sorted({r.class_section for r in rows}),
        "subjects": sorted({r.subject for r in rows}),
    }


def find_teacher(teacher_code):
    return records().store.get_teacher_by_code(teacher_code)


@admin_bp.route("/teachers/<teacher_code>/assignments", methods=["GET"])
@role_required("admin")
def list_assignments(teacher_code):
    teacher = find_teacher(teacher_code)
    if not teacher:
        return jsonify({"error": "Teacher not found"}), 404

    rows = records().resolver.assignments_for(teacher.teacher_id)
    return jsonify(assignment_payload(teacher, rows))


@admin_bp.route("/teachers/<teacher_code>/assignments", methods=["PUT"])
@role_required("admin")
def replace_assignments(teacher_code):
    teacher = find_teacher(teacher_code)
    if not teacher:
        return jsonify({"error": "Teacher not found"}), 404

    data = request.get_json(silent=True) or {}
    items = data.get("assignments")
    if not isinstance(items, list):
        return jsonify({"error": "assignments must be a list"}), 400

    pairs = []
    for item in items:
        if not isinstance(item, dict):
            return jsonify({"error": "Each assignment needs class_section and subject"}), 400
        pairs.append((item.get("class_section"), item.get("subject")))

    # Replace-all: existing rows are deleted, then the full set is inserted.
    resolver = records().resolver
    resolver.replace_assignments(teacher.teacher_id, pairs)
    rows = resolver.assignments_for(teacher.teacher_id)
    return jsonify(assignment_payload(teacher, rows))


@admin_bp.route("/students/<admission_id>", methods=["DELETE"])
@role_required("admin")
def delete_student(admission_id):
    store = records().store
    student = store.get_student_by_admission_id(admission_id)
    if not student:
        return jsonify({"error": "Student not found"}), 404

    store.delete_student(student.student_id)
    return jsonify({"status": "deleted"})
