"""
Paystack API client for one-off card payments.

Only two gateway operations are used:
- POST /transaction/initialize -> authorization URL + reference
- GET  /transaction/verify/{reference} -> final transaction status

Webhooks are signed with HMAC-SHA512 of the raw body using the secret
key, hex encoded in the x-paystack-signature header.

Documentation: https://paystack.com/docs/api/transaction/
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

PAYSTACK_BASE_URL = "https://api.paystack.co"
SUCCESS_STATUS = "success"


class PaystackError(Exception):
    """Base exception for Paystack errors."""
    pass


class PaystackAPIError(PaystackError):
    """Error communicating with the Paystack API."""
    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


@dataclass
class InitializedTransaction:
    """Result of initializing a transaction."""
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class VerifiedTransaction:
    """Gateway view of a transaction."""
    status: str
    reference: str
    amount_minor: int
    currency: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    gateway_response: Optional[str] = None
    paid_at: Optional[datetime] = None
    customer_email: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == SUCCESS_STATUS


def _parse_metadata(value: Any) -> Dict[str, Any]:
    """Paystack echoes metadata as an object, a JSON string, or ''."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify a Paystack webhook signature.

    Args:
        raw_body: Raw request body bytes (exactly as received)
        signature: x-paystack-signature header value
        secret: Paystack secret key

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature or not secret:
        return False
    computed = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(computed, signature.strip().lower())


class PaystackClient:
    """
    Client for Paystack transaction operations.

    SECURITY: The secret key is sent only as a bearer token to Paystack.
    It must never be logged or returned to clients.
    """

    def __init__(self, secret_key: str, base_url: str = PAYSTACK_BASE_URL):
        """
        Initialize the client.

        Args:
            secret_key: Paystack secret key (sk_live_... / sk_test_...)
            base_url: API base URL
        """
        if not secret_key:
            raise ValueError("secret_key is required")

        self.base_url = base_url.rstrip("/")

        # HTTP client with appropriate timeouts
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(30.0, connect=10.0),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {secret_key}",
            },
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        """
        Call the Paystack API and return the `data` member.

        Raises:
            PaystackAPIError: If the API call fails
        """
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            logger.error("Paystack API timeout", extra={"path": path, "error": str(e)})
            raise PaystackAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Paystack API request error", extra={"path": path, "error": str(e)})
            raise PaystackAPIError(f"Request failed: {e}")

        if response.status_code == 401:
            logger.error("Paystack API authentication failed", extra={"status_code": 401})
            raise PaystackAPIError(
                "Authentication failed - secret key may be invalid",
                status_code=401,
            )

        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}

        if response.status_code == 404:
            raise PaystackAPIError(
                body.get("message") or "Transaction reference not found",
                status_code=404,
                response=body,
            )

        if response.status_code >= 400:
            logger.error("Paystack API error", extra={
                "path": path,
                "status_code": response.status_code,
                "response_text": response.text[:500],
            })
            raise PaystackAPIError(
                body.get("message") or f"Paystack API error: {response.status_code}",
                status_code=response.status_code,
                response=body,
            )

        if not body.get("status"):
            raise PaystackAPIError(
                body.get("message") or "Paystack request was not successful",
                status_code=response.status_code,
                response=body,
            )

        return body.get("data") or {}

    async def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        currency: str,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> InitializedTransaction:
        """
        Initialize a transaction and get the hosted checkout URL.

        Args:
            email: Customer email
            amount_minor: Amount in currency minor units
            currency: ISO 4217 code
            metadata: Echoed back on verify and webhooks
            callback_url: Where Paystack redirects after payment
            reference: Optional caller-chosen reference

        Returns:
            InitializedTransaction
        """
        payload: Dict[str, Any] = {
            "email": email,
            "amount": int(amount_minor),
            "currency": currency,
            "metadata": metadata or {},
        }
        if callback_url:
            payload["callback_url"] = callback_url
        if reference:
            payload["reference"] = reference

        data = await self._request("POST", "/transaction/initialize", payload)
        if not data.get("authorization_url") or not data.get("reference"):
            raise PaystackAPIError("Initialize response missing authorization_url or reference", response=data)

        logger.info(
            "Paystack transaction initialized",
            extra={"reference": data["reference"], "amount_minor": amount_minor, "currency": currency},
        )
        return InitializedTransaction(
            authorization_url=data["authorization_url"],
            reference=data["reference"],
            access_code=data.get("access_code"),
        )

    async def verify_transaction(self, reference: str) -> VerifiedTransaction:
        """
        Fetch the final status of a transaction.

        Raises:
            PaystackAPIError: If the API call fails or the reference is unknown
        """
        if not reference:
            raise ValueError("reference is required")

        data = await self._request("GET", f"/transaction/verify/{reference}")
        customer = data.get("customer") or {}
        return VerifiedTransaction(
            status=str(data.get("status") or "").lower(),
            reference=data.get("reference") or reference,
            amount_minor=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "").upper(),
            metadata=_parse_metadata(data.get("metadata")),
            gateway_response=data.get("gateway_response"),
            paid_at=_parse_timestamp(data.get("paid_at") or data.get("paidAt")),
            customer_email=customer.get("email") if isinstance(customer, dict) else None,
            raw=data,
        )


def get_paystack_client(secret_key: str, base_url: str = PAYSTACK_BASE_URL) -> PaystackClient:
    """
    Factory function to create a PaystackClient.

    Returns:
        Configured PaystackClient instance
    """
    return PaystackClient(secret_key, base_url)
