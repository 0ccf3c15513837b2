from extensions import db
from flask_login import UserMixin


class User(UserMixin, db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role_id = db.Column(
        db.Integer,
        db.ForeignKey("roles.role_id"),
        nullable=False
    )

    # A login belongs to at most one teacher or one student record.
    teacher_id = db.Column(
        db.Integer,
        db.ForeignKey("teachers.teacher_id"),
        nullable=True
    )
    student_id = db.Column(
        db.Integer,
        db.ForeignKey("students.student_id"),
        nullable=True
    )

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    # Flask-Login looks for "id", but the column is "user_id".
    def get_id(self):
        return str(self.user_id)

    def __repr__(self):
        return f"<User {self.username}>"
