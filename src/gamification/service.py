"""Reward application.

Single writer for XP and badges. Each event is recorded once by its
``event_id`` before any XP or badge is applied, so replays are no-ops.
Badges are also granted with ``IF NOT EXISTS`` on the badge name.
"""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from .models import COURSE_MILESTONES, RewardEvent, RewardProfile
from .store import RewardStore


logger = structlog.get_logger(__name__)


class RewardService:
    """Service applying reward events."""

    def __init__(self, store: RewardStore):
        self.store = store

    async def apply_reward(self, learner_id: UUID, event: RewardEvent) -> bool:
        """Apply an event once.

        Returns:
            False if the event was already applied
        """
        now = datetime.now(UTC)
        if not await self.store.record_event(event, now):
            logger.debug(
                "reward_event_duplicate",
                learner_id=str(learner_id),
                event_id=event.event_id,
            )
            return False

        if event.xp:
            await self.store.add_xp(learner_id, event.xp)
        if event.badge:
            granted = await self.store.grant_badge(
                learner_id, event.badge, event.course_id, now
            )
            if granted:
                logger.info(
                    "badge_awarded", learner_id=str(learner_id), badge=event.badge
                )

        logger.info(
            "reward_applied",
            learner_id=str(learner_id),
            event_type=event.event_type.value,
            event_id=event.event_id,
            xp=event.xp,
        )
        return True

    async def record_course_completion(
        self, learner_id: UUID, course_id: UUID, with_certificate: bool
    ) -> list[RewardEvent]:
        """Apply course completion rewards, first-course and milestone badges.

        Returns:
            Events applied by this call
        """
        applied: list[RewardEvent] = []
        completed = RewardEvent.course_completed(learner_id, course_id, with_certificate)
        if await self.apply_reward(learner_id, completed):
            applied.append(completed)

        if not await self.store.record_completion(
            learner_id, course_id, datetime.now(UTC)
        ):
            return applied

        count = await self.store.count_completions(learner_id)
        follow_ups: list[RewardEvent] = []
        if count == 1:
            follow_ups.append(RewardEvent.first_course_completed(learner_id))
        if count in COURSE_MILESTONES:
            follow_ups.append(RewardEvent.course_milestone(learner_id, count))
        for event in follow_ups:
            if await self.apply_reward(learner_id, event):
                applied.append(event)
        return applied

    async def get_profile(self, learner_id: UUID) -> RewardProfile:
        """Get XP, level, badges and completed course count."""
        xp = await self.store.get_xp(learner_id)
        badges = await self.store.list_badges(learner_id)
        completed = await self.store.count_completions(learner_id)
        return RewardProfile(
            learner_id=learner_id,
            xp=xp,
            badges=sorted(badges, key=lambda b: b.awarded_at),
            completed_courses=completed,
        )
