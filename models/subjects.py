# models/subjects.py
from extensions import db
from utils.clock import utcnow


class Subject(db.Model):
    __tablename__ = 'subjects'

    subject_id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(50), nullable=False, unique=True)
    code = db.Column(db.String(20), nullable=True, unique=True)

    # Inclusive class range, seeded from the curriculum rules
    applicable_from_class = db.Column(db.Integer, nullable=False)
    applicable_to_class = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f"<Subject {self.name}>"
