"""Enrollment summary reconciler.

The summary is a projection of the progress record used by listings. It is
brought in line after every mutation and on every read:
- ``completion_percentage`` never regresses
- a completed course forces the summary to completed, permanently
"""

from datetime import datetime

from .models import EnrollmentStatus, EnrollmentSummary, ProgressRecord


def reconcile(
    summary: EnrollmentSummary, progress: ProgressRecord
) -> tuple[EnrollmentSummary, bool]:
    """Reconcile ``summary`` in place from ``progress``.

    Returns:
        The summary and whether any field changed
    """
    before = summary.to_dict()

    summary.completion_percentage = max(
        summary.completion_percentage, progress.overall_progress
    )
    if progress.is_completed:
        summary.is_completed = True
        summary.status = EnrollmentStatus.COMPLETED.value
        if summary.completed_at is None:
            summary.completed_at = progress.completed_at
    elif summary.is_completed:
        # Completion is permanent; a stale flag still implies completed status
        summary.status = EnrollmentStatus.COMPLETED.value

    summary.current_module_index = progress.current_module_index
    summary.current_lecture_index = progress.current_lecture_index
    summary.last_accessed_at = _latest(
        summary.last_accessed_at, progress.last_accessed_at
    )

    return summary, summary.to_dict() != before


def _latest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)
