"""Reward profile endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

from src.auth.dependencies import CurrentUser

from .dependencies import RewardServiceDep


router = APIRouter(prefix="/v1/rewards", tags=["rewards"])


class BadgeResponse(BaseModel):
    badge: str
    course_id: str | None = None
    awarded_at: str


class RewardProfileResponse(BaseModel):
    """XP, level and badges of the current user."""

    xp: int
    level: int
    completed_courses: int
    badges: list[BadgeResponse]


@router.get("/me", response_model=RewardProfileResponse, summary="Get my rewards")
async def get_my_rewards(
    reward_service: RewardServiceDep,
    user: CurrentUser,
) -> RewardProfileResponse:
    profile = await reward_service.get_profile(user.id)
    return RewardProfileResponse(
        xp=profile.xp,
        level=profile.level,
        completed_courses=profile.completed_courses,
        badges=[
            BadgeResponse(
                badge=b.badge,
                course_id=str(b.course_id) if b.course_id else None,
                awarded_at=b.awarded_at.isoformat(),
            )
            for b in profile.badges
        ],
    )
