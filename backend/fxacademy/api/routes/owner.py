"""
Owner API routes for user and role management.

Listing users needs role_admin or view_finance. Changing a role needs
role_admin, and the assignment rules in RoleService decide which roles
the caller may hand out.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from fxacademy.api.dependencies import get_role_service
from fxacademy.constants.permissions import Permission
from fxacademy.platform.errors import AuthorizationError, NotFoundError, ValidationError, success_body
from fxacademy.platform.rbac import require_any_permission, require_permission
from fxacademy.platform.request_context import RequestContext, get_request_context
from fxacademy.services.profile_service import profile_to_dict
from fxacademy.services.role_service import (
    InvalidRoleError,
    RoleAssignmentError,
    RoleService,
    RoleTargetNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/owner", tags=["owner"])


class UpdateRoleRequest(BaseModel):
    role: str = Field(..., min_length=1, description="New role for the user")
    reason: Optional[str] = Field(None, max_length=500)


@router.get("/users")
@require_any_permission(Permission.ROLE_ADMIN, Permission.VIEW_FINANCE)
async def list_users(
    request: Request,
    search: Optional[str] = Query(None, max_length=100),
    role: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: Optional[RequestContext] = Depends(get_request_context),
    roles: RoleService = Depends(get_role_service),
):
    rows, total = roles.list_users(search=search, role=role, limit=limit, offset=offset)
    return success_body({
        "users": [profile_to_dict(profile) for profile in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@router.post("/users/{user_id}/role")
@require_permission(Permission.ROLE_ADMIN)
async def update_user_role(
    request: Request,
    user_id: str,
    body: UpdateRoleRequest,
    context: Optional[RequestContext] = Depends(get_request_context),
    roles: RoleService = Depends(get_role_service),
):
    """
    Change a user's role.

    The owner role can neither be granted nor taken away here.
    """
    try:
        profile = roles.update_role(context, user_id, body.role, reason=body.reason)
    except InvalidRoleError as e:
        raise ValidationError(str(e), code=e.code)
    except RoleTargetNotFoundError as e:
        raise NotFoundError(str(e))
    except RoleAssignmentError as e:
        raise AuthorizationError(str(e), code=e.code)

    return success_body(profile_to_dict(profile))
