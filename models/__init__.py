from .role import Role
from .user import User
from .teacher import Teacher
from .class_model import ClassSection
from .student import Student
from .subjects import Subject
from .teacher_assignment import TeacherAssignment
from .marks import Mark, MarksHistory, LatestExamSummary
__all__ = ["Role", "User", "Teacher", "ClassSection", "Student", "Subject", "TeacherAssignment", "Mark", "MarksHistory", "LatestExamSummary"]
