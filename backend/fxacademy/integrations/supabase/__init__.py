from fxacademy.integrations.supabase.auth_client import (
    IdentityProviderError,
    IdentitySession,
    SupabaseAuthClient,
)

__all__ = ["IdentityProviderError", "IdentitySession", "SupabaseAuthClient"]
