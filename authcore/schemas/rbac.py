"""
Role and permission schemas.
"""

from uuid import UUID
from pydantic import BaseModel, ConfigDict


class PermissionSummary(BaseModel):
    """Permission response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    resource: str
    action: str
    description: str | None = None


class RoleSummary(BaseModel):
    """Role response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    is_system: bool
    permissions: list[str] = []


class EffectivePermissionsResponse(BaseModel):
    """Resolved grants of a user."""
    roles: list[str]
    permissions: list[str]
