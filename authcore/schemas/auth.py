"""
Authentication schemas.
"""

from datetime import datetime
from pydantic import BaseModel

from .user import UserSummary


class SessionTokens(BaseModel):
    """Credentials of a new or renewed session."""
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str
    refresh_token_expires_at: datetime
    token_type: str = "bearer"
    user: UserSummary
