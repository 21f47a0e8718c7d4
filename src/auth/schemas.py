"""Authenticated user schema."""

from uuid import UUID

from pydantic import BaseModel, Field

from .permissions import UserRole


class CurrentUserModel(BaseModel):
    """User extracted from a validated access token."""

    id: UUID
    role: UserRole
    name: str = Field(default="", description="Display name from the token")
