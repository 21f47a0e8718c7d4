"""FastAPI dependencies for rewards."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import RewardService


async def get_reward_service(request: Request) -> RewardService:
    """Get reward service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "reward_service") or not app_state.reward_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de recompensas nao disponivel",
        )
    return app_state.reward_service


RewardServiceDep = Annotated[RewardService, Depends(get_reward_service)]
