"""
Authentication middleware.

Reads the Bearer token, verifies it and attaches the identity to
request.state.identity. It never rejects a request itself: a missing or
invalid token leaves identity as None and the route guard turns that
into a login redirect. A request never proceeds with a partial identity.
"""

import logging
from typing import Optional

from fastapi import Request

from fxacademy.auth.jwt import IdentityClaims
from fxacademy.auth.supabase_verifier import IdentityVerificationError, SupabaseJWTVerifier

logger = logging.getLogger(__name__)


def _extract_bearer(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthContextMiddleware:
    """
    FastAPI HTTP middleware attaching the verified identity.

    The verifier is created lazily so the module imports without
    configuration; settings are validated in the app lifespan.
    """

    def __init__(self, verifier: Optional[SupabaseJWTVerifier] = None):
        self._verifier = verifier

    def _get_verifier(self) -> SupabaseJWTVerifier:
        if self._verifier is None:
            from fxacademy.config.settings import get_settings

            self._verifier = SupabaseJWTVerifier(get_settings().supabase_jwt_secret)
        return self._verifier

    def authenticate(self, request: Request) -> Optional[IdentityClaims]:
        token = _extract_bearer(request)
        if token is None:
            return None
        try:
            return self._get_verifier().verify(token)
        except IdentityVerificationError as e:
            logger.warning(
                "Rejected session token",
                extra={"path": request.url.path, "error_code": e.error_code},
            )
            return None

    async def __call__(self, request: Request, call_next):
        request.state.identity = self.authenticate(request)
        return await call_next(request)
