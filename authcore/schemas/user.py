"""
User schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict


class UserSummary(BaseModel):
    """Public view of a user."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    full_name: str
    phone: str | None = None
    photo_url: str | None = None
    is_active: bool
    has_password: bool
    created_at: datetime
    last_login_at: datetime | None = None


class UserDetail(UserSummary):
    """Administrative view of a user."""
    roles: list[str] = []
    providers: list[str] = []
    active_sessions: int = 0
