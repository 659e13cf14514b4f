"""
Supabase JWT verifier.

Supabase signs session tokens with the project's JWT secret (HS256) and
the audience "authenticated".

SECURITY:
- Every token MUST be verified against the project secret
- Expired tokens are rejected; a small leeway covers clock skew
- NO custom tokens are issued or accepted
"""

import logging
from typing import Optional

import jwt
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidTokenError,
    MissingRequiredClaimError,
)

from fxacademy.auth.jwt import IdentityClaims

logger = logging.getLogger(__name__)


class IdentityVerificationError(Exception):
    """Exception raised when token verification fails."""

    def __init__(self, message: str, error_code: str = "verification_failed"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class SupabaseJWTVerifier:
    """
    Verifies Supabase-issued session JWTs.

    Usage:
        verifier = SupabaseJWTVerifier(jwt_secret)
        identity = verifier.verify(token)
        identity.user_id
    """

    ALGORITHMS = ["HS256"]

    # Clock skew tolerance in seconds (for exp/iat validation)
    CLOCK_SKEW_SECONDS = 30

    def __init__(self, jwt_secret: str, audience: Optional[str] = "authenticated"):
        if not jwt_secret:
            raise ValueError("jwt_secret is required")
        self._secret = jwt_secret
        self._audience = audience

    def verify(self, token: str) -> IdentityClaims:
        """
        Verify a token and return the caller's identity.

        Raises:
            IdentityVerificationError: If verification fails
        """
        if not token:
            raise IdentityVerificationError("Token is required", error_code="missing_token")

        if token.startswith("Bearer "):
            token = token[7:]

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=self.ALGORITHMS,
                audience=self._audience,
                options={
                    "verify_aud": self._audience is not None,
                    "require": ["sub", "exp"],
                },
                leeway=self.CLOCK_SKEW_SECONDS,
            )
        except ExpiredSignatureError:
            logger.warning("Token has expired")
            raise IdentityVerificationError("Token has expired", error_code="token_expired")
        except InvalidAudienceError:
            logger.warning("Invalid token audience")
            raise IdentityVerificationError("Invalid token audience", error_code="invalid_audience")
        except MissingRequiredClaimError as e:
            logger.warning("Token missing claims", extra={"claim": e.claim})
            raise IdentityVerificationError(
                f"Missing required claim: {e.claim}",
                error_code="missing_claims",
            )
        except InvalidTokenError as e:
            logger.warning("Invalid token", extra={"error": str(e)})
            raise IdentityVerificationError(f"Invalid token: {e}", error_code="invalid_token")

        return IdentityClaims.from_payload(payload)
