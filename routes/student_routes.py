from flask import Blueprint, jsonify

from services.registry import current_caller, records
from utils.decorators import role_required

student_bp = Blueprint("students", __name__, url_prefix="/students")


@student_bp.route("/me/report")
@role_required("student")
def my_report():
    caller = current_caller()
    if caller.student_id is None:
        return jsonify({"error": "This login is not linked to a student record"}), 404

    report = records().performance.student_report(caller.student_id)
    return jsonify(report.to_dict())


@student_bp.route("/<admission_id>/report")
@role_required("admin", "teacher")
def student_report(admission_id):
    services = records()
    student = services.store.get_student_by_admission_id(admission_id)
    if not student:
        return jsonify({"state": "not_found", "error": "Student not found"}), 404

    caller = current_caller()
    if not services.resolver.can_access_class_section(caller, student.class_section):
        return jsonify({
            "state": "not_authorized",
            "error": "You do not have permission to view this student's marks"
        }), 403

    scope = services.resolver.scope_for(caller)
    subject_names = None if scope.unrestricted else scope.subjects
    report = services.performance.student_report(student.student_id, subject_names=subject_names)
    return jsonify(report.to_dict())
