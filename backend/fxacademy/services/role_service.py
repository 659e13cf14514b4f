"""
Role assignment service.

Rules (see can_assign_role):
- The actor needs role_admin.
- owner can never be granted, and an owner can never be changed.
- Each actor role may only hand out the roles in ASSIGNABLE_ROLES.

Every change writes an append-only role_audit row.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from fxacademy.constants.permissions import Permission, Role, can_assign_role, parse_role
from fxacademy.models.audit import RoleAudit
from fxacademy.models.profile import Profile
from fxacademy.platform.request_context import RequestContext

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class RoleAssignmentError(Exception):
    """Role change rejected."""

    def __init__(self, message: str, code: str = "role_assignment_denied"):
        super().__init__(message)
        self.message = message
        self.code = code


class RoleTargetNotFoundError(RoleAssignmentError):
    def __init__(self, message: str):
        super().__init__(message, code="not_found")


class InvalidRoleError(RoleAssignmentError):
    def __init__(self, message: str):
        super().__init__(message, code="invalid_role")


class RoleService:
    """Changes user roles and lists users for administrators."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def update_role(
        self,
        actor: RequestContext,
        target_user_id: str,
        new_role: str,
        reason: Optional[str] = None,
    ) -> Profile:
        """
        Change a user's role.

        Raises:
            InvalidRoleError: new_role is not a known role
            RoleTargetNotFoundError: No such user
            RoleAssignmentError: Actor may not make this change
        """
        parsed = parse_role(new_role)
        if parsed is None:
            raise InvalidRoleError(f"Invalid role: {new_role}")

        if not actor.has_permission(Permission.ROLE_ADMIN):
            logger.warning(
                "Role change denied: missing role_admin",
                extra={"actor_id": actor.user_id, "role": actor.role, "target_id": target_user_id},
            )
            raise RoleAssignmentError("Insufficient permissions to assign roles")

        target = self.db.get(Profile, target_user_id)
        if target is None:
            raise RoleTargetNotFoundError(f"User not found: {target_user_id}")

        if parse_role(target.role) == Role.OWNER:
            logger.warning(
                "Role change denied: owner role is immutable",
                extra={"actor_id": actor.user_id, "target_id": target_user_id},
            )
            raise RoleAssignmentError("The owner role cannot be changed", code="owner_immutable")

        if not can_assign_role(actor.role, target.role, parsed):
            logger.warning(
                "Role change denied",
                extra={
                    "actor_id": actor.user_id,
                    "role": actor.role,
                    "target_id": target_user_id,
                    "new_role": parsed.value,
                },
            )
            raise RoleAssignmentError(f"You cannot assign the role '{parsed.value}'")

        old_role = target.role
        target.role = parsed.value
        self.db.add(RoleAudit(
            actor_id=actor.user_id,
            target_id=target.id,
            old_role=old_role,
            new_role=parsed.value,
            reason=reason,
        ))
        self.db.commit()
        self.db.refresh(target)

        logger.info(
            "Role updated",
            extra={
                "actor_id": actor.user_id,
                "target_id": target.id,
                "old_role": old_role,
                "new_role": parsed.value,
            },
        )
        return target

    def list_users(
        self,
        search: Optional[str] = None,
        role: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Profile], int]:
        """Page through profiles, newest first. Returns (rows, total)."""
        query = self.db.query(Profile)
        if role:
            query = query.filter(Profile.role == role.strip().lower())
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                Profile.email.ilike(pattern),
                Profile.first_name.ilike(pattern),
                Profile.last_name.ilike(pattern),
            ))
        total = query.count()
        rows = query.order_by(Profile.created_at.desc()).offset(max(offset, 0)).limit(
            min(max(limit, 1), MAX_PAGE_SIZE)
        ).all()
        return rows, total

    def promote_owner(self, email: str, reason: Optional[str] = None) -> Profile:
        """
        Give the owner role to an existing profile (operator script).

        The profile must exist, i.e. the user has signed in at least once.

        Raises:
            RoleTargetNotFoundError: No profile with that email
        """
        normalized = (email or "").strip().lower()
        target = self.db.query(Profile).filter(Profile.email == normalized).first()
        if target is None:
            raise RoleTargetNotFoundError(f"No profile with email {normalized}; the user must sign in first")

        old_role = target.role
        if parse_role(old_role) == Role.OWNER:
            logger.info("Profile is already owner", extra={"target_id": target.id})
            return target

        target.role = Role.OWNER.value
        self.db.add(RoleAudit(
            actor_id=None,
            target_id=target.id,
            old_role=old_role,
            new_role=Role.OWNER.value,
            reason=reason or "promoted by create_owner script",
        ))
        self.db.commit()
        self.db.refresh(target)

        logger.info(
            "Profile promoted to owner",
            extra={"target_id": target.id, "old_role": old_role},
        )
        return target
