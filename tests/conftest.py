from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from config.config import TestConfig
from extensions import db as _db
from models import Mark, Role, Student, Subject, Teacher, TeacherAssignment, User
from services.assignment_resolver import AssignmentResolver
from services.auth_service import Caller
from services.entity_store import EntityStore
from services.mark_record_service import MarkRecordService
from services.performance_aggregator import PerformanceAggregator
from utils.seed_data import run_seed

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        run_seed()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return EntityStore(percentage_function=app.config["LATEST_PERCENTAGE_FUNCTION"])


@pytest.fixture
def resolver(store):
    return AssignmentResolver(store)


@pytest.fixture
def marks_service(store, resolver):
    return MarkRecordService(store, resolver)


@pytest.fixture
def aggregator(store):
    return PerformanceAggregator(store, history_limit=10)


@pytest.fixture
def subject(app):
    def _get(name):
        return Subject.query.filter_by(name=name).one()
    return _get


@pytest.fixture
def make_student(app):
    def _make(admission_id="ADM001", class_name="7", section="B", name="Asha Verma"):
        student = Student(admission_id=admission_id, name=name, class_name=class_name, section=section)
        _db.session.add(student)
        _db.session.commit()
        return student
    return _make


@pytest.fixture
def make_teacher(app):
    def _make(teacher_code="T001", assignments=(), name="R. Sharma"):
        teacher = Teacher(teacher_code=teacher_code, name=name, email=f"{teacher_code.lower()}@school.test")
        _db.session.add(teacher)
        _db.session.flush()
        for class_section, subject_name in assignments:
            _db.session.add(TeacherAssignment(
                teacher_id=teacher.teacher_id,
                class_section=class_section,
                subject=subject_name
            ))
        _db.session.commit()
        return teacher
    return _make


@pytest.fixture
def make_mark(app, subject):
    def _make(student, subject_name, exam_type, obtained, total, updated_at=None, remarks=None):
        when = updated_at or datetime(2026, 1, 10, 9, 0)
        mark = Mark(
            student_id=student.student_id,
            subject_id=subject(subject_name).subject_id,
            exam_type=exam_type,
            marks_obtained=obtained,
            total_marks=total,
            remarks=remarks,
            created_at=when,
            updated_at=when,
        )
        _db.session.add(mark)
        _db.session.commit()
        return mark
    return _make


@pytest.fixture
def make_user(app):
    def _make(username, role_name, teacher=None, student=None):
        role = Role.query.filter_by(role_name=role_name.upper()).one()
        user = User(
            username=username,
            password_hash=generate_password_hash(PASSWORD),
            role_id=role.role_id,
            teacher_id=teacher.teacher_id if teacher else None,
            student_id=student.student_id if student else None,
            is_active=True,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture
def admin_caller(make_user):
    user = make_user("admin@school.test", "admin")
    return Caller(role="admin", user_id=user.user_id)


@pytest.fixture
def teacher_caller(make_user):
    def _make(teacher):
        user = make_user(f"{teacher.teacher_code.lower()}-login", "teacher", teacher=teacher)
        return Caller(role="teacher", user_id=user.user_id, teacher_id=teacher.teacher_id)
    return _make


@pytest.fixture
def login(client):
    def _login(username):
        response = client.post("/login", json={"username": username, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return response
    return _login


@pytest.fixture
def later():
    def _later(minutes):
        return datetime(2026, 1, 10, 9, 0) + timedelta(minutes=minutes)
    return _later
