"""Read-only course structure snapshots used by progress tracking."""

from .models import (
    COURSES_TABLES_CQL,
    AssignmentSpec,
    CertificateSettings,
    CourseStructure,
    FinalTestQuestion,
    FinalTestSpec,
    LectureSpec,
    LectureType,
    ModuleSpec,
    QuestionType,
    QuizQuestion,
    QuizSpec,
)
from .service import CassandraCourseReader, CourseStructureReader


__all__ = [
    "COURSES_TABLES_CQL",
    "AssignmentSpec",
    "CassandraCourseReader",
    "CertificateSettings",
    "CourseStructure",
    "CourseStructureReader",
    "FinalTestQuestion",
    "FinalTestSpec",
    "LectureSpec",
    "LectureType",
    "ModuleSpec",
    "QuestionType",
    "QuizQuestion",
    "QuizSpec",
]
