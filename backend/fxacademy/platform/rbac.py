"""
Role-Based Access Control (RBAC) enforcement for API endpoints.

CRITICAL SECURITY REQUIREMENTS:
- RBAC MUST be enforced server-side for every protected endpoint
- UI permission gating is NOT security; treat it as UX only
- All permission checks MUST go through the guard evaluator

Decorated endpoints declare the caller context as a dependency; the
decorator evaluates the guard and, when the decision is not ALLOW,
returns the decision rendered as an envelope instead of calling the
endpoint.

Usage:
    from fxacademy.platform.rbac import require_permission

    @router.post("/owner/users/{user_id}/role")
    @require_permission(Permission.ROLE_ADMIN)
    async def update_role(
        request: Request,
        user_id: str,
        context: Optional[RequestContext] = Depends(get_request_context),
    ):
        ...
"""

import logging
from functools import wraps
from typing import Callable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from fxacademy.constants.permissions import Permission, Role
from fxacademy.platform.errors import error_body
from fxacademy.platform.guards import (
    AUTHENTICATED,
    GuardDecision,
    GuardOutcome,
    GuardReason,
    RouteRequirement,
    evaluate_access,
)
from fxacademy.platform.request_context import RequestContext

logger = logging.getLogger(__name__)

_DECISION_STATUS = {
    GuardReason.AUTHENTICATION_REQUIRED: (status.HTTP_401_UNAUTHORIZED, "Authentication required"),
    GuardReason.ONBOARDING_REQUIRED: (status.HTTP_403_FORBIDDEN, "Complete your profile to continue"),
    GuardReason.ROLE_MISMATCH: (status.HTTP_403_FORBIDDEN, "This area is not available for your role"),
    GuardReason.INSUFFICIENT_PERMISSION: (
        status.HTTP_403_FORBIDDEN,
        "You do not have permission to perform this action",
    ),
    GuardReason.PAYMENT_REQUIRED: (status.HTTP_402_PAYMENT_REQUIRED, "Payment required to access this content"),
}

_DECISION_CODES = {
    GuardReason.INSUFFICIENT_PERMISSION: "permission_denied",
}


def decision_response(decision: GuardDecision) -> JSONResponse:
    """Render a non-ALLOW decision as an error envelope."""
    if decision.outcome == GuardOutcome.ALLOW:
        raise ValueError("ALLOW decisions have no error response")

    status_code, message = _DECISION_STATUS.get(
        decision.reason,
        (status.HTTP_403_FORBIDDEN, "Access denied"),
    )
    return JSONResponse(
        status_code=status_code,
        content=error_body(
            _DECISION_CODES.get(decision.reason, decision.reason or "access_denied"),
            message,
            redirect=decision.target,
            paywall=decision.paywall.to_dict() if decision.paywall else None,
        ),
    )


def _find_request(args, kwargs) -> Optional[Request]:
    for arg in args:
        if isinstance(arg, Request):
            return arg
    return kwargs.get("request")


def _find_context(kwargs) -> Optional[RequestContext]:
    if "context" not in kwargs:
        raise ValueError("Guarded endpoints must declare a 'context' dependency")
    return kwargs["context"]


def require_access(requirement: RouteRequirement = AUTHENTICATED) -> Callable:
    """
    Decorator enforcing a RouteRequirement on an endpoint.

    Entitlement requirements need the resource and are evaluated inside
    the endpoint with evaluate_access() directly.
    """
    if requirement.require_entitlement:
        raise ValueError("Entitlement requirements are evaluated inside the endpoint")

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            context = _find_context(kwargs)
            request = _find_request(args, kwargs)
            path = request.url.path if request is not None else "/"

            decision = evaluate_access(context, requirement, target_path=path)
            if not decision.allowed:
                logger.warning(
                    "Access denied",
                    extra={
                        "user_id": context.user_id if context else None,
                        "role": context.role if context else None,
                        "reason": decision.reason,
                        "path": path,
                    },
                )
                return decision_response(decision)
            return await func(*args, **kwargs)
        return wrapper
    return decorator


def require_login(func: Callable) -> Callable:
    """
    Decorator for endpoints that need a signed-in caller, onboarded or not.

    Used by the onboarding and profile endpoints themselves.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        context = _find_context(kwargs)
        if context is None:
            request = _find_request(args, kwargs)
            path = request.url.path if request is not None else "/"
            logger.warning("Unauthenticated request", extra={"path": path})
            return decision_response(evaluate_access(None, target_path=path))
        return await func(*args, **kwargs)
    return wrapper


def require_authenticated(func: Callable) -> Callable:
    """Decorator for endpoints that only need a signed-in, onboarded caller."""
    return require_access(AUTHENTICATED)(func)


def require_permission(permission: Permission) -> Callable:
    """
    Decorator to require a specific permission for an endpoint.

    Usage:
        @router.get("/owner/users")
        @require_permission(Permission.ROLE_ADMIN)
        async def list_users(request: Request, context=Depends(get_request_context)):
            ...
    """
    return require_access(RouteRequirement(required_permissions=(permission,)))


def require_any_permission(*permissions: Permission) -> Callable:
    """Decorator to require any of the specified permissions."""
    return require_access(RouteRequirement(required_permissions=tuple(permissions)))


def require_role(*roles: Role) -> Callable:
    """
    Decorator to require one of the specified roles.

    A mismatch redirects the caller to their own landing page.
    """
    return require_access(RouteRequirement(required_roles=tuple(roles)))
