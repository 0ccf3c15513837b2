from extensions import db


class Student(db.Model):
    __tablename__ = "students"

    student_id = db.Column(db.Integer, primary_key=True)
    admission_id = db.Column(db.String(30), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)

    # Free attributes as entered at enrollment, e.g. class_name="7", section="B"
    class_name = db.Column(db.String(20), nullable=False)
    section = db.Column(db.String(2), nullable=False)

    class_section_id = db.Column(
        db.Integer,
        db.ForeignKey("class_sections.class_section_id"),
        nullable=True
    )

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    marks = db.relationship("Mark", backref="student", lazy=True)

    @property
    def class_section(self):
        return f"{(self.class_name or '').strip()}-{(self.section or '').strip().upper()}"

    def __repr__(self):
        return f"<Student {self.admission_id}>"
