from extensions import db


class ClassSection(db.Model):
    __tablename__ = "class_sections"

    class_section_id = db.Column(db.Integer, primary_key=True)
    class_number = db.Column(db.Integer, nullable=False)
    section = db.Column(db.String(2), nullable=False)

    students = db.relationship("Student", backref="class_section_row", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("class_number", "section", name="unique_class_section"),
        db.CheckConstraint("class_number BETWEEN 1 AND 12", name="class_number_range"),
    )

    @property
    def label(self):
        return f"{self.class_number}-{self.section}"

    def __repr__(self):
        return f"<ClassSection {self.label}>"
