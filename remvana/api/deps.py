"""Request-scoped dependencies: caller identity and role checks."""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException

from remvana.security.rbac import Permission, Role, UserIdentity


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default=Role.TRAVELER.value),
    x_organization_id: Optional[str] = Header(default=None),
    x_user_name: str = Header(default=""),
) -> UserIdentity:
    """Build the caller identity from headers set by the upstream gateway."""
    if not x_user_id:
        raise HTTPException(401, "Missing X-User-Id header")
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise HTTPException(400, f"Unknown role '{x_user_role}'")
    return UserIdentity(
        user_id=x_user_id,
        role=role,
        organization_id=x_organization_id or None,
        display_name=x_user_name,
    )


async def get_optional_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default=Role.TRAVELER.value),
    x_organization_id: Optional[str] = Header(default=None),
    x_user_name: str = Header(default=""),
) -> Optional[UserIdentity]:
    """Identity for endpoints that also serve anonymous callers."""
    if not x_user_id:
        return None
    return await get_current_user(x_user_id, x_user_role, x_organization_id, x_user_name)


def require_permission(permission: Permission) -> Callable:
    """Dependency factory that rejects callers lacking ``permission`` with 403."""

    async def _check(user: UserIdentity = Depends(get_current_user)) -> UserIdentity:
        if not user.has_permission(permission):
            raise HTTPException(403, f"Role '{user.role}' lacks permission '{permission}'")
        return user

    return _check


def require_org_permission(permission: Permission) -> Callable:
    """Like ``require_permission``; the caller must also belong to an organization (400 otherwise)."""
    check = require_permission(permission)

    async def _check(user: UserIdentity = Depends(check)) -> UserIdentity:
        if not user.organization_id:
            raise HTTPException(400, "Organization context required")
        return user

    return _check
