from extensions import db


class TeacherAssignment(db.Model):
    __tablename__ = "teacher_class_sections"

    assignment_id = db.Column(db.Integer, primary_key=True)

    teacher_id = db.Column(
        db.Integer,
        db.ForeignKey("teachers.teacher_id"),
        nullable=False
    )

    class_section = db.Column(db.String(10), nullable=False)  # e.g. "7-B"
    subject = db.Column(db.String(50), nullable=False)
    allocated_at = db.Column(db.DateTime, server_default=db.func.now())

    __table_args__ = (
        db.UniqueConstraint(
            "teacher_id", "class_section", "subject",
            name="unique_teacher_class_section_subject"
        ),
    )

    def __repr__(self):
        return f"<TeacherAssignment teacher={self.teacher_id} {self.class_section}/{self.subject}>"
