"""
Tests for Supabase session token verification.
"""

import pytest

from fxacademy.auth.supabase_verifier import IdentityVerificationError, SupabaseJWTVerifier
from fxacademy.tests.helpers import JWT_SECRET, make_token


@pytest.fixture
def verifier():
    return SupabaseJWTVerifier(JWT_SECRET)


@pytest.mark.security
class TestSupabaseJWTVerifier:

    def test_valid_token(self, verifier):
        token = make_token("user-1", email="ama@academy.test", user_metadata={"first_name": "Ama"})
        identity = verifier.verify(token)
        assert identity.user_id == "user-1"
        assert identity.email == "ama@academy.test"
        assert identity.role_hint == "authenticated"
        assert identity.user_metadata == {"first_name": "Ama"}
        assert identity.expires_at is not None

    def test_bearer_prefix_accepted(self, verifier):
        assert verifier.verify("Bearer " + make_token("user-1")).user_id == "user-1"

    def test_expired_token(self, verifier):
        with pytest.raises(IdentityVerificationError) as exc_info:
            verifier.verify(make_token("user-1", expires_in=-120))
        assert exc_info.value.error_code == "token_expired"

    def test_clock_skew_tolerated(self, verifier):
        assert verifier.verify(make_token("user-1", expires_in=-5)).user_id == "user-1"

    def test_wrong_secret(self, verifier):
        with pytest.raises(IdentityVerificationError) as exc_info:
            verifier.verify(make_token("user-1", secret="another-secret-of-enough-length-456"))
        assert exc_info.value.error_code == "invalid_token"

    def test_wrong_audience(self, verifier):
        with pytest.raises(IdentityVerificationError) as exc_info:
            verifier.verify(make_token("user-1", audience="anon"))
        assert exc_info.value.error_code == "invalid_audience"

    @pytest.mark.parametrize("token", ["", "not-a-jwt"])
    def test_garbage_rejected(self, verifier, token):
        with pytest.raises(IdentityVerificationError):
            verifier.verify(token)

    def test_secret_required(self):
        with pytest.raises(ValueError):
            SupabaseJWTVerifier("")
