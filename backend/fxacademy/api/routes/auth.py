"""
Authentication API routes.

Register and login relay credentials to the identity provider (Supabase
Auth) and make sure a profile exists for the returned identity. Every
response carries the redirect the client should follow next:

- incomplete profile (non-admin roles) -> /onboarding
- otherwise -> the caller's role landing page (or a safe ?next= path)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field

from fxacademy.api.dependencies import get_auth_client, get_profile_service
from fxacademy.auth.jwt import IdentityClaims
from fxacademy.integrations.supabase.auth_client import (
    IdentityProviderError,
    IdentitySession,
    SupabaseAuthClient,
)
from fxacademy.models.profile import Profile
from fxacademy.platform.errors import AuthenticationError, ExternalServiceError, ValidationError, success_body
from fxacademy.platform.guards import post_login_redirect
from fxacademy.platform.rbac import require_login
from fxacademy.platform.request_context import (
    RequestContext,
    get_identity,
    get_request_context,
)
from fxacademy.services.profile_service import ProfileError, ProfileService, profile_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    country_code: Optional[str] = Field(None, max_length=8)
    phone: Optional[str] = Field(None, max_length=32)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    next: Optional[str] = Field(None, description="Path to return to after login")


class BootstrapRequest(BaseModel):
    """Onboarding details. Empty values leave stored fields unchanged."""
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    country_code: Optional[str] = Field(None, max_length=8)
    phone: Optional[str] = Field(None, max_length=32)
    next: Optional[str] = None


def _session_identity(session: IdentitySession, metadata: Optional[dict] = None) -> IdentityClaims:
    return IdentityClaims(user_id=session.user_id, email=session.email, user_metadata=metadata or {})


def _auth_payload(session: IdentitySession, profile: Profile, next_path: Optional[str] = None) -> dict:
    context = RequestContext.from_identity(_session_identity(session), profile)
    return {
        "session": session.to_dict(),
        "profile": profile_to_dict(profile),
        "redirect": post_login_redirect(context, next_path),
    }


@router.post("/register", status_code=201)
async def register(
    body: RegisterRequest,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Create an identity and its profile.

    Names and country given here are stored on the profile right away,
    so a complete registration skips onboarding.
    """
    metadata = {
        key: value
        for key, value in {
            "first_name": body.first_name,
            "last_name": body.last_name,
            "country": body.country,
            "country_code": body.country_code,
        }.items()
        if value
    }
    try:
        session = await auth_client.sign_up(body.email, body.password, metadata)
    except IdentityProviderError as e:
        logger.warning("Registration rejected", extra={"status_code": e.status_code})
        if e.status_code is not None and e.status_code < 500:
            raise ValidationError(e.message, code="registration_failed")
        raise ExternalServiceError("Identity provider unavailable")

    profile = profiles.bootstrap(
        _session_identity(session, metadata),
        first_name=body.first_name,
        last_name=body.last_name,
        country=body.country,
        country_code=body.country_code,
        phone=body.phone,
    )
    logger.info("User registered", extra={"user_id": profile.id, "role": profile.role})
    return success_body(_auth_payload(session, profile))


@router.post("/login")
async def login(
    body: LoginRequest,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Sign in and return the session plus where to go next."""
    try:
        session = await auth_client.sign_in_with_password(body.email, body.password)
    except IdentityProviderError as e:
        if e.status_code is not None and e.status_code < 500:
            logger.info("Login rejected", extra={"status_code": e.status_code})
            raise AuthenticationError("Invalid email or password", code="invalid_credentials")
        raise ExternalServiceError("Identity provider unavailable")

    profile = profiles.ensure_profile(_session_identity(session))
    logger.info("User logged in", extra={"user_id": profile.id, "role": profile.role})
    return success_body(_auth_payload(session, profile, body.next))


@router.post("/bootstrap")
@require_login
async def bootstrap(
    request: Request,
    body: BootstrapRequest,
    context: Optional[RequestContext] = Depends(get_request_context),
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Complete onboarding for the signed-in caller.

    Safe to call repeatedly. The owner allowlist is re-applied on every call.
    """
    identity = get_identity(request)
    try:
        profile = profiles.bootstrap(
            identity,
            first_name=body.first_name,
            last_name=body.last_name,
            country=body.country,
            country_code=body.country_code,
            phone=body.phone,
        )
    except ProfileError as e:
        raise ValidationError(str(e), code="profile_incomplete")

    updated = RequestContext.from_identity(identity, profile)
    return success_body({
        "profile": profile_to_dict(profile),
        "is_onboarded": profile.is_onboarded,
        "redirect": post_login_redirect(updated, body.next),
    })
