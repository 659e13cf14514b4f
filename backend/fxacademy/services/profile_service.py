"""
Profile bootstrap and self-service updates.

The owner email allowlist (OWNER_EMAILS) is server-authoritative: an
allowlisted email always ends up with the owner role. Everyone else
keeps their existing role, and new profiles start as students.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from fxacademy.auth.jwt import IdentityClaims
from fxacademy.config.settings import Settings
from fxacademy.constants.permissions import Role
from fxacademy.models.profile import Profile
from fxacademy.platform.request_context import RequestContext

logger = logging.getLogger(__name__)

# Fields a user may change on their own profile
PERSONAL_FIELDS = ("first_name", "last_name", "country", "country_code", "phone")


class ProfileError(Exception):
    """Base exception for profile errors."""
    pass


class ProfileNotFoundError(ProfileError):
    pass


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def profile_to_dict(profile: Profile) -> dict:
    return {
        "id": profile.id,
        "email": profile.email,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "country": profile.country,
        "country_code": profile.country_code,
        "phone": profile.phone,
        "role": profile.role,
        "is_onboarded": profile.is_onboarded,
    }


class ProfileService:
    """Creates and updates user profiles."""

    def __init__(self, db_session: Session, settings: Settings):
        self.db = db_session
        self.settings = settings

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self.db.get(Profile, user_id)

    def _role_for(self, email: str, existing: Optional[Profile]) -> str:
        if self.settings.is_owner_email(email):
            return Role.OWNER.value
        if existing is not None and existing.role:
            return existing.role
        return Role.STUDENT.value

    def bootstrap(
        self,
        identity: IdentityClaims,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        country: Optional[str] = None,
        country_code: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Profile:
        """
        Ensure a profile exists for the identity and apply onboarding data.

        Only non-empty fields overwrite stored values.

        Raises:
            ProfileError: Identity has no email
        """
        if not identity.email:
            raise ProfileError("Identity has no email address")

        email = identity.email.strip().lower()
        profile = self.get_profile(identity.user_id)
        role = self._role_for(email, profile)
        created = profile is None

        if profile is None:
            profile = Profile(id=identity.user_id, email=email, role=role)
            self.db.add(profile)
        elif profile.role != role:
            logger.info(
                "Owner allowlist promoted profile",
                extra={"user_id": profile.id, "old_role": profile.role, "new_role": role},
            )
            profile.role = role

        updates = {
            "first_name": first_name,
            "last_name": last_name,
            "country": country,
            "country_code": country_code,
            "phone": phone,
        }
        for field, value in updates.items():
            value = _clean(value)
            if value is not None:
                setattr(profile, field, value)

        self.db.commit()
        self.db.refresh(profile)

        logger.info(
            "Profile created" if created else "Profile bootstrapped",
            extra={"user_id": profile.id, "role": profile.role, "is_onboarded": profile.is_onboarded},
        )
        return profile

    def ensure_profile(self, identity: IdentityClaims) -> Profile:
        """Create a bare profile if missing. Existing profiles are returned untouched."""
        profile = self.get_profile(identity.user_id)
        if profile is not None and (
            profile.role == Role.OWNER.value or not self.settings.is_owner_email(profile.email)
        ):
            return profile
        metadata = identity.user_metadata
        return self.bootstrap(
            identity,
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            country=metadata.get("country"),
            country_code=metadata.get("country_code"),
        )

    def update_own_profile(self, context: RequestContext, fields: Dict[str, Optional[str]]) -> Profile:
        """
        Update personal fields on the caller's own profile.

        Role and email are not personal fields and are ignored.

        Raises:
            ProfileNotFoundError: Caller has not bootstrapped a profile
        """
        profile = self.get_profile(context.user_id)
        if profile is None:
            raise ProfileNotFoundError("Complete onboarding before editing your profile")

        for field in PERSONAL_FIELDS:
            if field in fields:
                value = _clean(fields[field])
                if value is not None:
                    setattr(profile, field, value)

        self.db.commit()
        self.db.refresh(profile)
        logger.info("Profile updated", extra={"user_id": profile.id})
        return profile
