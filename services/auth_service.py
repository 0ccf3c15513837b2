from dataclasses import dataclass
from typing import Optional

from werkzeug.security import check_password_hash

from models.user import User

ADMIN = "admin"
TEACHER = "teacher"
STUDENT = "student"


@dataclass(frozen=True)
class Caller:
    """Identity passed explicitly into every records service call."""
    role: str
    user_id: Optional[int] = None
    teacher_id: Optional[int] = None
    student_id: Optional[int] = None

    @property
    def is_admin(self):
        return self.role == ADMIN

    @property
    def is_teacher(self):
        return self.role == TEACHER

    @property
    def is_student(self):
        return self.role == STUDENT


def authenticate_user(username: str, password: str):
    user = User.query.filter_by(username=username).first()

    if not user:
        return None

    if not check_password_hash(user.password_hash, password):
        return None

    if user.is_active is False:
        return None

    return user


def caller_from_user(user) -> Caller:
    role_name = user.role.role_name.lower() if getattr(user, "role", None) else ""
    return Caller(
        role=role_name,
        user_id=user.user_id,
        teacher_id=user.teacher_id,
        student_id=user.student_id,
    )
