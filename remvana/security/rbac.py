"""Role-based access control (RBAC) for Remvana."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import ColumnElement, or_

from remvana.logging_config import get_logger

logger = get_logger(__name__)


class Role(StrEnum):
    """System roles ordered by privilege level."""

    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"
    TRAVELER = "traveler"


class Permission(StrEnum):
    """Granular permissions for system actions."""

    VIEW_ALL_TRIPS = "view_all_trips"
    BOOK_TRAVEL = "book_travel"
    MANAGE_PROPOSALS = "manage_proposals"
    MANAGE_TEMPLATES = "manage_templates"
    MANAGE_CARDS = "manage_cards"
    VIEW_SECURITY = "view_security"


ROLE_PERMISSIONS: dict[Role, set[Permission]] = {
    Role.ADMIN: set(Permission),
    Role.MANAGER: {
        Permission.VIEW_ALL_TRIPS,
        Permission.BOOK_TRAVEL,
        Permission.MANAGE_PROPOSALS,
        Permission.MANAGE_TEMPLATES,
        Permission.MANAGE_CARDS,
    },
    Role.AGENT: {
        Permission.BOOK_TRAVEL,
        Permission.MANAGE_PROPOSALS,
        Permission.MANAGE_TEMPLATES,
    },
    Role.TRAVELER: {
        Permission.BOOK_TRAVEL,
    },
}


class UserIdentity(BaseModel):
    """Represents a caller with their role, as forwarded by the gateway."""

    user_id: str
    role: Role = Role.TRAVELER
    organization_id: Optional[str] = None
    display_name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def has_permission(self, permission: Permission) -> bool:
        """Check if the user's role grants the given permission."""
        return permission in ROLE_PERMISSIONS.get(self.role, set())

    def require_permission(self, permission: Permission) -> None:
        """Raise if the user lacks the required permission."""
        if not self.has_permission(permission):
            logger.warning(
                "permission_denied",
                user_id=self.user_id,
                role=self.role,
                permission=permission,
            )
            raise PermissionError(
                f"User '{self.user_id}' with role '{self.role}' lacks permission '{permission}'"
            )

    def can_modify(self, owner_id: str) -> bool:
        """Only the owner or an admin may change a record."""
        return owner_id == self.user_id or self.is_admin

    def can_view(self, owner_id: str, organization_id: Optional[str] = None) -> bool:
        """Owners and admins; callers with VIEW_ALL_TRIPS for records in their own organization."""
        if self.can_modify(owner_id):
            return True
        return (
            self.has_permission(Permission.VIEW_ALL_TRIPS)
            and self.organization_id is not None
            and organization_id == self.organization_id
        )


def owner_scope(model: Any, user: UserIdentity) -> Optional[ColumnElement[bool]]:
    """WHERE clause limiting ``model`` rows to those ``user`` may view; None for admins."""
    if user.is_admin:
        return None
    clause = model.owner_id == user.user_id
    if user.has_permission(Permission.VIEW_ALL_TRIPS) and user.organization_id:
        clause = or_(clause, model.organization_id == user.organization_id)
    return clause
