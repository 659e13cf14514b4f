"""
Identity claims for Supabase-issued JWTs.

The identity provider is the authentication authority. This service
never issues tokens; it only reads verified ones.

JWT Claims Used:
- sub: user id (becomes the profile id)
- email: login email
- exp: Expiration timestamp
- role: Postgres role hint ("authenticated"), not the application role
- user_metadata: names captured at sign-up, if any
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class IdentityClaims:
    """Verified identity of the caller."""
    user_id: str
    email: Optional[str] = None
    role_hint: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "IdentityClaims":
        exp = payload.get("exp")
        metadata = payload.get("user_metadata")
        return cls(
            user_id=str(payload["sub"]),
            email=(payload.get("email") or None),
            role_hint=payload.get("role"),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
            user_metadata=metadata if isinstance(metadata, dict) else {},
        )
