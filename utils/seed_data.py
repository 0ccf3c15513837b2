import logging

from extensions import db
from models.role import Role
from models.class_model import ClassSection
from models.subjects import Subject
from services.curriculum import SUBJECT_RULES

logger = logging.getLogger(__name__)

SECTIONS = ["A", "B", "C", "D"]


def seed_roles():
    roles = [
        {"role_id": 1, "role_name": "ADMIN"},
        {"role_id": 2, "role_name": "TEACHER"},
        {"role_id": 3, "role_name": "STUDENT"},
    ]

    for r in roles:
        existing = Role.query.filter(
            (Role.role_id == r["role_id"]) |
            (Role.role_name == r["role_name"])
        ).first()

        if not existing:
            db.session.add(
                Role(
                    role_id=r["role_id"],
                    role_name=r["role_name"]
                )
            )

    db.session.commit()
    logger.info("Roles verified (ADMIN=1, TEACHER=2, STUDENT=3)")


def seed_subjects():
    for rule in SUBJECT_RULES:
        subject = Subject.query.filter_by(name=rule.name).first()
        if not subject:
            db.session.add(
                Subject(
                    name=rule.name,
                    code=rule.code,
                    applicable_from_class=rule.from_class,
                    applicable_to_class=rule.to_class
                )
            )
        else:
            subject.code = rule.code
            subject.applicable_from_class = rule.from_class
            subject.applicable_to_class = rule.to_class

    db.session.commit()
    logger.info("Subjects seeded from curriculum rules")


def seed_class_sections():
    for class_number in range(1, 13):
        for section in SECTIONS:
            existing = ClassSection.query.filter_by(
                class_number=class_number,
                section=section
            ).first()
            if not existing:
                db.session.add(ClassSection(class_number=class_number, section=section))

    db.session.commit()
    logger.info("Class-sections seeded")


def run_seed():
    seed_roles()
    seed_subjects()
    seed_class_sections()
