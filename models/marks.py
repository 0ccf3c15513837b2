from extensions import db
from utils.clock import utcnow


class Mark(db.Model):
    __tablename__ = "marks"

    mark_id = db.Column(db.Integer, primary_key=True)

    student_id = db.Column(
        db.Integer,
        db.ForeignKey("students.student_id"),
        nullable=False
    )

    subject_id = db.Column(
        db.Integer,
        db.ForeignKey("subjects.subject_id"),
        nullable=False
    )

    exam_type = db.Column(db.String(20), nullable=False)

    marks_obtained = db.Column(db.Float, nullable=False, default=0)
    # Frozen at write time; never recomputed from the curriculum rules.
    total_marks = db.Column(db.Integer, nullable=False)
    remarks = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    subject = db.relationship("Subject", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("student_id", "subject_id", "exam_type", name="unique_student_subject_exam"),
        db.CheckConstraint(
            "marks_obtained >= 0 AND marks_obtained <= total_marks",
            name="marks_within_total"
        ),
    )

    def __repr__(self):
        return f"<Mark student={self.student_id} subject={self.subject_id} {self.exam_type}>"


class MarksHistory(db.Model):
    __tablename__ = "marks_history"

    history_id = db.Column(db.Integer, primary_key=True)
    mark_id = db.Column(db.Integer, db.ForeignKey("marks.mark_id"), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey("students.student_id"), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey("subjects.subject_id"), nullable=False)
    exam_type = db.Column(db.String(20), nullable=False)
    old_marks = db.Column(db.Float, nullable=False)
    new_marks = db.Column(db.Float, nullable=False)
    updated_by = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<MarksHistory mark={self.mark_id} {self.old_marks}->{self.new_marks}>"


class LatestExamSummary(db.Model):
    __tablename__ = "student_latest_exam_summary"

    student_id = db.Column(
        db.Integer,
        db.ForeignKey("students.student_id"),
        primary_key=True
    )
    exam_type = db.Column(db.String(20), nullable=True)
    obtained = db.Column(db.Float, nullable=False, default=0)
    total = db.Column(db.Float, nullable=False, default=0)
    percentage = db.Column(db.Float, nullable=False, default=0)
    refreshed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<LatestExamSummary student={self.student_id} {self.percentage}%>"
