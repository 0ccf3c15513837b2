from extensions import db


class Teacher(db.Model):
    __tablename__ = "teachers"

    teacher_id = db.Column(db.Integer, primary_key=True)
    teacher_code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    assignments = db.relationship(
        "TeacherAssignment",
        backref="teacher",
        lazy=True,
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Teacher {self.teacher_code}>"
