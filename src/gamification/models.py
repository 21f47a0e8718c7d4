"""Gamification models.

Progress tracking emits reward events; this package is the single writer
that turns them into XP and badges. Every event carries a deterministic
``event_id`` so replays are deduplicated by the ``reward_events`` table.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class RewardEventType(str, Enum):
    """Reward triggering transitions."""

    LECTURE_COMPLETED = "lecture_completed"
    QUIZ_PASSED = "quiz_passed"
    FINAL_TEST_PASSED = "final_test_passed"
    COURSE_COMPLETED = "course_completed"
    FIRST_COURSE_COMPLETED = "first_course_completed"
    COURSE_MILESTONE = "course_milestone"


XP_REWARDS: dict[RewardEventType, int] = {
    RewardEventType.LECTURE_COMPLETED: 5,
    RewardEventType.QUIZ_PASSED: 10,
    RewardEventType.FINAL_TEST_PASSED: 25,
    RewardEventType.COURSE_COMPLETED: 100,
    RewardEventType.FIRST_COURSE_COMPLETED: 0,
    RewardEventType.COURSE_MILESTONE: 0,
}

# Completed course counts that grant a milestone badge
COURSE_MILESTONES = (5, 10, 25, 50, 100)

CERTIFICATE_BADGE = "Certificate Earner"
FIRST_COURSE_BADGE = "First Course Complete"

XP_PER_LEVEL = 100


def milestone_badge(count: int) -> str:
    return f"{count} Courses Complete"


def level_for(xp: int) -> int:
    return 1 + max(xp, 0) // XP_PER_LEVEL


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Deduplicacao por evento: INSERT ... IF NOT EXISTS
REWARD_EVENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.reward_events (
    learner_id UUID,
    event_id TEXT,
    event_type TEXT,
    course_id UUID,
    xp INT,
    badge TEXT,
    applied_at TIMESTAMP,
    PRIMARY KEY (learner_id, event_id)
)
"""

LEARNER_XP_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.learner_xp (
    learner_id UUID PRIMARY KEY,
    xp COUNTER
)
"""

LEARNER_BADGES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.learner_badges (
    learner_id UUID,
    badge TEXT,
    course_id UUID,
    awarded_at TIMESTAMP,
    PRIMARY KEY (learner_id, badge)
)
"""

LEARNER_COURSE_COMPLETIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.learner_course_completions (
    learner_id UUID,
    course_id UUID,
    completed_at TIMESTAMP,
    PRIMARY KEY (learner_id, course_id)
)
"""

GAMIFICATION_TABLES_CQL = [
    REWARD_EVENTS_TABLE_CQL,
    LEARNER_XP_TABLE_CQL,
    LEARNER_BADGES_TABLE_CQL,
    LEARNER_COURSE_COMPLETIONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class RewardEvent:
    """A qualifying transition of one learner.

    ``subject`` identifies what transitioned (lecture position, course, or
    milestone count) and makes ``event_id`` stable across replays.
    """

    event_type: RewardEventType
    learner_id: UUID
    course_id: UUID | None = None
    subject: str = ""
    badge: str | None = None

    @property
    def event_id(self) -> str:
        course = str(self.course_id) if self.course_id else "-"
        return f"{self.event_type.value}:{course}:{self.subject}"

    @property
    def xp(self) -> int:
        return XP_REWARDS[self.event_type]

    @classmethod
    def lecture_completed(
        cls, learner_id: UUID, course_id: UUID, module_index: int, lecture_index: int
    ) -> "RewardEvent":
        return cls(
            RewardEventType.LECTURE_COMPLETED,
            learner_id,
            course_id,
            f"{module_index}.{lecture_index}",
        )

    @classmethod
    def quiz_passed(
        cls, learner_id: UUID, course_id: UUID, module_index: int, lecture_index: int
    ) -> "RewardEvent":
        return cls(
            RewardEventType.QUIZ_PASSED,
            learner_id,
            course_id,
            f"{module_index}.{lecture_index}",
        )

    @classmethod
    def final_test_passed(cls, learner_id: UUID, course_id: UUID) -> "RewardEvent":
        return cls(RewardEventType.FINAL_TEST_PASSED, learner_id, course_id, "final")

    @classmethod
    def course_completed(
        cls, learner_id: UUID, course_id: UUID, with_certificate: bool
    ) -> "RewardEvent":
        return cls(
            RewardEventType.COURSE_COMPLETED,
            learner_id,
            course_id,
            "course",
            badge=CERTIFICATE_BADGE if with_certificate else None,
        )

    @classmethod
    def first_course_completed(cls, learner_id: UUID) -> "RewardEvent":
        return cls(
            RewardEventType.FIRST_COURSE_COMPLETED,
            learner_id,
            subject="first",
            badge=FIRST_COURSE_BADGE,
        )

    @classmethod
    def course_milestone(cls, learner_id: UUID, count: int) -> "RewardEvent":
        return cls(
            RewardEventType.COURSE_MILESTONE,
            learner_id,
            subject=str(count),
            badge=milestone_badge(count),
        )


class Badge:
    """Badge held by a learner."""

    def __init__(
        self,
        learner_id: UUID,
        badge: str,
        course_id: UUID | None = None,
        awarded_at: datetime | None = None,
    ):
        self.learner_id = learner_id
        self.badge = badge
        self.course_id = course_id
        self.awarded_at = awarded_at or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Badge":
        awarded_at = row.awarded_at
        if awarded_at is not None and awarded_at.tzinfo is None:
            awarded_at = awarded_at.replace(tzinfo=UTC)
        return cls(
            learner_id=row.learner_id,
            badge=row.badge,
            course_id=row.course_id,
            awarded_at=awarded_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "badge": self.badge,
            "course_id": self.course_id,
            "awarded_at": self.awarded_at,
        }

    def __repr__(self) -> str:
        return f"<Badge {self.badge!r} learner={self.learner_id}>"


@dataclass
class RewardProfile:
    """Accumulated rewards of a learner."""

    learner_id: UUID
    xp: int
    badges: list[Badge]
    completed_courses: int

    @property
    def level(self) -> int:
        return level_for(self.xp)
