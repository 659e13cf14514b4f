"""
Supabase Auth (GoTrue) REST client.

Used for the register and login endpoints. The identity provider owns
passwords and sessions; this service only relays credentials and reads
back { user id, email, access token }.

Documentation: https://supabase.com/docs/reference/api/auth
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Error returned by the identity provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class IdentitySession:
    """Authenticated identity returned on sign-up or sign-in."""
    user_id: str
    email: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
        }


def _error_message(body: Dict[str, Any], default: str) -> str:
    for key in ("msg", "error_description", "message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return default


class SupabaseAuthClient:
    """
    Thin async client for Supabase Auth password flows.

    SECURITY: Passwords are forwarded to the identity provider only and
    are never logged.
    """

    def __init__(self, supabase_url: str, anon_key: str):
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not anon_key:
            raise ValueError("anon_key is required")

        self.auth_url = f"{supabase_url.rstrip('/')}/auth/v1"
        self._client = httpx.AsyncClient(
            base_url=self.auth_url,
            timeout=httpx.Timeout(15.0, connect=5.0),
            headers={
                "Content-Type": "application/json",
                "apikey": anon_key,
            },
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _post(self, path: str, payload: dict, params: Optional[dict] = None) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload, params=params)
        except httpx.TimeoutException as e:
            logger.error("Identity provider timeout", extra={"path": path, "error": str(e)})
            raise IdentityProviderError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Identity provider request error", extra={"path": path, "error": str(e)})
            raise IdentityProviderError(f"Request failed: {e}")

        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}

        if response.status_code >= 400:
            logger.warning(
                "Identity provider rejected request",
                extra={"path": path, "status_code": response.status_code},
            )
            raise IdentityProviderError(
                _error_message(body, f"Identity provider error: {response.status_code}"),
                status_code=response.status_code,
            )
        return body

    @staticmethod
    def _session_from(body: Dict[str, Any], fallback_email: str) -> IdentitySession:
        user = body.get("user") or body
        user_id = user.get("id")
        if not user_id:
            raise IdentityProviderError("Identity provider response missing user id")
        return IdentitySession(
            user_id=str(user_id),
            email=(user.get("email") or fallback_email).strip().lower(),
            access_token=body.get("access_token"),
            refresh_token=body.get("refresh_token"),
            expires_in=body.get("expires_in"),
        )

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IdentitySession:
        """
        Register a new identity.

        access_token is None when the project requires email confirmation.
        """
        body = await self._post(
            "/signup",
            {"email": email, "password": password, "data": metadata or {}},
        )
        return self._session_from(body, email)

    async def sign_in_with_password(self, email: str, password: str) -> IdentitySession:
        """Exchange email and password for a session."""
        body = await self._post(
            "/token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
        )
        return self._session_from(body, email)
