"""
Authentication for Supabase-issued session tokens.

- jwt: Identity claims extracted from verified tokens
- supabase_verifier: HS256 signature and expiry verification (PyJWT)
- middleware: Attaches the verified identity to request.state
"""
