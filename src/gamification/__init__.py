"""Experience points and badges applied from reward events."""

from .models import (
    GAMIFICATION_TABLES_CQL,
    Badge,
    RewardEvent,
    RewardEventType,
    RewardProfile,
)


__all__ = [
    "GAMIFICATION_TABLES_CQL",
    "Badge",
    "RewardEvent",
    "RewardEventType",
    "RewardProfile",
]
