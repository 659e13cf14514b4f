"""
Request-scoped caller context.

A RequestContext is built once per request from the verified identity
and the caller's profile, then passed explicitly to guards, evaluators
and services. There is no global "current user".
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from fxacademy.auth.jwt import IdentityClaims
from fxacademy.constants.permissions import (
    Permission,
    Role,
    has_permission,
    landing_page_for,
    parse_role,
    permissions_for,
)
from fxacademy.database.session import get_db_session
from fxacademy.models.profile import Profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """
    Immutable caller context.

    role is the stored profile role. A caller whose profile does not
    exist yet is treated as a student with an incomplete profile.
    """
    user_id: str
    email: Optional[str]
    role: str = Role.STUDENT.value
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country: Optional[str] = None
    has_profile: bool = False

    @classmethod
    def from_identity(
        cls,
        identity: IdentityClaims,
        profile: Optional[Profile] = None,
    ) -> "RequestContext":
        if profile is None:
            return cls(user_id=identity.user_id, email=identity.email)
        return cls(
            user_id=profile.id,
            email=profile.email or identity.email,
            role=profile.role,
            first_name=profile.first_name,
            last_name=profile.last_name,
            country=profile.country,
            has_profile=True,
        )

    @property
    def is_onboarded(self) -> bool:
        return all(
            (value or "").strip()
            for value in (self.first_name, self.last_name, self.country)
        )

    @property
    def parsed_role(self) -> Optional[Role]:
        return parse_role(self.role)

    @property
    def permissions(self) -> FrozenSet[Permission]:
        return permissions_for(self.role)

    @property
    def landing_page(self) -> str:
        return landing_page_for(self.role)

    def has_permission(self, permission: Permission) -> bool:
        return has_permission(self.role, permission)


def get_identity(request: Request) -> Optional[IdentityClaims]:
    """Identity attached by AuthContextMiddleware, or None."""
    return getattr(request.state, "identity", None)


async def get_request_context(
    request: Request,
    db: Session = Depends(get_db_session),
) -> Optional[RequestContext]:
    """
    FastAPI dependency building the caller's context.

    Returns None for anonymous callers. Guards turn None into a login
    redirect, so routes never have to special-case it.
    """
    identity = get_identity(request)
    if identity is None:
        return None
    profile = db.get(Profile, identity.user_id)
    return RequestContext.from_identity(identity, profile)
