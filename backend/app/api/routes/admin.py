"""
Admin API Routes

Role management and per-user audit trail. Super admins only.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Query

from app.api.dependencies import (
    ActivityLogRepoDep,
    SessionDep,
    SuperAdminDep,
    UserRepoDep,
)
from app.domain.subscription import ActivityLogEntry, UpdateRoleRequest, User, UserRole
from app.infrastructure.exceptions import NotFoundError, PermissionDeniedError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

# Super admins are created by scripts/create_admin.py, never through the API.
ASSIGNABLE_ROLES = {UserRole.USER, UserRole.SUB_ADMIN}


@router.patch("/users/{user_id}/role", response_model=User)
async def update_user_role(
    user_id: UUID,
    request: UpdateRoleRequest,
    admin: SuperAdminDep,
    users: UserRepoDep,
    activity: ActivityLogRepoDep,
    session: SessionDep,
):
    """
    Grant or revoke sub-admin access.

    Admin roles bypass billing entirely, so this is the only way a
    role changes.
    """
    if request.role not in ASSIGNABLE_ROLES:
        raise PermissionDeniedError(f"Role '{request.role.value}' cannot be assigned")

    target = await users.get_user(user_id)
    if target is None:
        raise NotFoundError(f"User {user_id} not found", operation="update", table="users")
    if target.role == UserRole.SUPER_ADMIN:
        raise PermissionDeniedError("Super admin roles cannot be changed")

    updated = await users.update_role(user_id, request.role)
    await activity.record(
        user_id,
        "role_changed",
        {
            "from": target.role.value,
            "to": updated.role.value,
            "by": str(admin.user_id),
        },
    )
    await session.commit()

    logger.info(
        f"User {user_id} role changed {target.role.value} -> {updated.role.value} "
        f"by {admin.user_id}"
    )
    return updated


@router.get("/users/{user_id}/activity", response_model=list[ActivityLogEntry])
async def get_user_activity(
    user_id: UUID,
    admin: SuperAdminDep,
    users: UserRepoDep,
    activity: ActivityLogRepoDep,
    limit: int = Query(50, ge=1, le=200),
):
    """Most recent activity for a user, newest first."""
    if not await users.exists(user_id):
        raise NotFoundError(f"User {user_id} not found", operation="select", table="users")

    rows = await activity.list_for_user(user_id, limit=limit)
    return [ActivityLogEntry.model_validate(row) for row in rows]
