"""academic records schema

Revision ID: 3a7d9c21b4e0
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3a7d9c21b4e0"
down_revision = None
branch_labels = None
depends_on = None


LATEST_EXAM_PERCENTAGE_FN = """
CREATE OR REPLACE FUNCTION get_latest_exam_percentage(p_student_id integer)
RETURNS numeric AS $$
    WITH latest AS (
        SELECT exam_type
        FROM marks
        WHERE student_id = p_student_id
        ORDER BY updated_at DESC, mark_id DESC
        LIMIT 1
    )
    SELECT CASE
        WHEN SUM(m.total_marks) > 0
            THEN ROUND(SUM(m.marks_obtained)::numeric / SUM(m.total_marks) * 100, 2)
        ELSE NULL
    END
    FROM marks m
    JOIN latest l ON m.exam_type = l.exam_type
    WHERE m.student_id = p_student_id;
$$ LANGUAGE sql STABLE;
"""


def upgrade():
    op.create_table(
        "roles",
        sa.Column("role_id", sa.Integer(), primary_key=True),
        sa.Column("role_name", sa.String(length=20), nullable=False, unique=True),
    )
    op.create_table(
        "teachers",
        sa.Column("teacher_id", sa.Integer(), primary_key=True),
        sa.Column("teacher_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=120), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
    )
    op.create_table(
        "class_sections",
        sa.Column("class_section_id", sa.Integer(), primary_key=True),
        sa.Column("class_number", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(length=2), nullable=False),
        sa.UniqueConstraint("class_number", "section", name="unique_class_section"),
        sa.CheckConstraint("class_number BETWEEN 1 AND 12", name="class_number_range"),
    )
    op.create_table(
        "students",
        sa.Column("student_id", sa.Integer(), primary_key=True),
        sa.Column("admission_id", sa.String(length=30), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("class_name", sa.String(length=20), nullable=False),
        sa.Column("section", sa.String(length=2), nullable=False),
        sa.Column("class_section_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["class_section_id"], ["class_sections.class_section_id"]),
    )
    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role_id", sa.Integer(), nullable=False),
        sa.Column("teacher_id", sa.Integer(), nullable=True),
        sa.Column("student_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["role_id"], ["roles.role_id"]),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.teacher_id"]),
        sa.ForeignKeyConstraint(["student_id"], ["students.student_id"]),
    )
    op.create_table(
        "subjects",
        sa.Column("subject_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(length=50), nullable=False, unique=True),
        sa.Column("code", sa.String(length=20), nullable=True, unique=True),
        sa.Column("applicable_from_class", sa.Integer(), nullable=False),
        sa.Column("applicable_to_class", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "teacher_class_sections",
        sa.Column("assignment_id", sa.Integer(), primary_key=True),
        sa.Column("teacher_id", sa.Integer(), nullable=False),
        sa.Column("class_section", sa.String(length=10), nullable=False),
        sa.Column("subject", sa.String(length=50), nullable=False),
        sa.Column("allocated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["teacher_id"], ["teachers.teacher_id"]),
        sa.UniqueConstraint("teacher_id", "class_section", "subject", name="unique_teacher_class_section_subject"),
    )
    op.create_table(
        "marks",
        sa.Column("mark_id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("exam_type", sa.String(length=20), nullable=False),
        sa.Column("marks_obtained", sa.Float(), nullable=False),
        sa.Column("total_marks", sa.Integer(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.student_id"]),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.subject_id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.user_id"]),
        sa.ForeignKeyConstraint(["updated_by"], ["users.user_id"]),
        sa.UniqueConstraint("student_id", "subject_id", "exam_type", name="unique_student_subject_exam"),
        sa.CheckConstraint("marks_obtained >= 0 AND marks_obtained <= total_marks", name="marks_within_total"),
    )
    op.create_index("ix_marks_student_updated", "marks", ["student_id", "updated_at"])
    op.create_table(
        "marks_history",
        sa.Column("history_id", sa.Integer(), primary_key=True),
        sa.Column("mark_id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("subject_id", sa.Integer(), nullable=False),
        sa.Column("exam_type", sa.String(length=20), nullable=False),
        sa.Column("old_marks", sa.Float(), nullable=False),
        sa.Column("new_marks", sa.Float(), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["mark_id"], ["marks.mark_id"]),
        sa.ForeignKeyConstraint(["student_id"], ["students.student_id"]),
        sa.ForeignKeyConstraint(["subject_id"], ["subjects.subject_id"]),
        sa.ForeignKeyConstraint(["updated_by"], ["users.user_id"]),
    )
    op.create_table(
        "student_latest_exam_summary",
        sa.Column("student_id", sa.Integer(), primary_key=True),
        sa.Column("exam_type", sa.String(length=20), nullable=True),
        sa.Column("obtained", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("percentage", sa.Float(), nullable=False),
        sa.Column("refreshed_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.student_id"]),
    )

    if op.get_bind().dialect.name == "postgresql":
        op.execute(LATEST_EXAM_PERCENTAGE_FN)


def downgrade():
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP FUNCTION IF EXISTS get_latest_exam_percentage(integer)")

    op.drop_table("student_latest_exam_summary")
    op.drop_table("marks_history")
    op.drop_index("ix_marks_student_updated", table_name="marks")
    op.drop_table("marks")
    op.drop_table("teacher_class_sections")
    op.drop_table("subjects")
    op.drop_table("users")
    op.drop_table("students")
    op.drop_table("class_sections")
    op.drop_table("teachers")
    op.drop_table("roles")
