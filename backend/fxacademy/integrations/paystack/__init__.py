from fxacademy.integrations.paystack.client import (
    InitializedTransaction,
    PaystackAPIError,
    PaystackClient,
    VerifiedTransaction,
    get_paystack_client,
    verify_webhook_signature,
)

__all__ = [
    "InitializedTransaction",
    "PaystackAPIError",
    "PaystackClient",
    "VerifiedTransaction",
    "get_paystack_client",
    "verify_webhook_signature",
]
