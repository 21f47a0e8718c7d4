"""Learner progress tracking module.

Provides:
- Progress records with explicit module and course states
- Sequential module unlocking
- Quiz, assignment and final test grading
- Enrollment summaries reconciled from progress
"""

from .models import (
    PROGRESS_TABLES_CQL,
    CourseState,
    EnrollmentStatus,
    EnrollmentSummary,
    LectureProgress,
    ModuleProgress,
    ModuleState,
    ProgressRecord,
    TestAttempt,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseState",
    "EnrollmentStatus",
    "EnrollmentSummary",
    "LectureProgress",
    "ModuleProgress",
    "ModuleState",
    "ProgressRecord",
    "TestAttempt",
]
