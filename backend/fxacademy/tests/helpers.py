"""
Test helpers shared by unit and integration tests.

- FakeGateway: scripted stand-in for PaystackClient
- make_token: Supabase-style HS256 session tokens
- sign_webhook: Paystack webhook signature for a raw body
- context_for: RequestContext of a stored profile
"""

import hashlib
import hmac
import os
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import jwt

from fxacademy.auth.jwt import IdentityClaims
from fxacademy.integrations.paystack.client import (
    InitializedTransaction,
    PaystackAPIError,
    VerifiedTransaction,
)
from fxacademy.models.profile import Profile
from fxacademy.platform.request_context import RequestContext

JWT_SECRET = os.environ.get("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-123")
PAYSTACK_SECRET = os.environ.get("PAYSTACK_SECRET_KEY", "sk_test_secret")


def context_for(profile: Profile) -> RequestContext:
    return RequestContext.from_identity(
        IdentityClaims(user_id=profile.id, email=profile.email),
        profile,
    )


def make_token(
    user_id: str,
    email: Optional[str] = None,
    expires_in: int = 3600,
    secret: str = JWT_SECRET,
    audience: str = "authenticated",
    **extra,
) -> str:
    """Sign a Supabase-style access token."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
    }
    payload.update(extra)
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id: str, email: Optional[str] = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email=email)}"}


def sign_webhook(body: bytes, secret: str = PAYSTACK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


class FakeGateway:
    """
    Scripted PaystackClient replacement.

    transactions maps reference -> VerifiedTransaction (or an exception
    to raise). verify_calls records every verify_transaction call;
    on_verify, when set, runs before the scripted answer is returned.
    """

    def __init__(self):
        self.transactions = {}
        self.verify_calls = []
        self.initialized = []
        self.on_verify = None
        self.initialize_error = None

    def succeed(self, reference: str, amount_minor: int, currency: str = "USD"):
        self.transactions[reference] = VerifiedTransaction(
            reference=reference,
            status="success",
            amount_minor=amount_minor,
            currency=currency,
            gateway_response="Approved",
            paid_at=datetime.now(timezone.utc),
            raw={"reference": reference, "status": "success"},
        )

    def fail(self, reference: str, amount_minor: int, currency: str = "USD"):
        self.transactions[reference] = VerifiedTransaction(
            reference=reference,
            status="failed",
            amount_minor=amount_minor,
            currency=currency,
            gateway_response="Declined",
            raw={"reference": reference, "status": "failed"},
        )

    def error(self, reference: str, message: str = "Paystack API timeout"):
        self.transactions[reference] = PaystackAPIError(message, status_code=504)

    async def initialize_transaction(self, email, amount_minor, currency, metadata=None, callback_url=None, reference=None):
        if self.initialize_error is not None:
            raise self.initialize_error
        reference = reference or f"ref_{uuid.uuid4().hex[:12]}"
        self.initialized.append({
            "email": email,
            "amount_minor": amount_minor,
            "currency": currency,
            "metadata": metadata,
            "callback_url": callback_url,
            "reference": reference,
        })
        return InitializedTransaction(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            access_code=f"ac_{reference}",
            reference=reference,
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        self.verify_calls.append(reference)
        if self.on_verify is not None:
            self.on_verify(reference)
        result = self.transactions.get(reference)
        if result is None:
            raise PaystackAPIError("Transaction reference not found", status_code=404)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        pass
