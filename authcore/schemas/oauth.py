"""
OAuth connection schemas.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict


class ConnectionSummary(BaseModel):
    """Linked external identity, without provider tokens or ids."""
    model_config = ConfigDict(from_attributes=True)

    provider: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    linked_at: datetime


class AuthMethodsResponse(BaseModel):
    """Sign-in methods of an account."""
    has_password: bool
    providers: list[str]
    count: int
    can_remove_method: bool
