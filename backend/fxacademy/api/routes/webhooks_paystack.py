"""
Paystack webhook handler.

SECURITY: Every webhook MUST pass HMAC-SHA512 verification of the raw
body (x-paystack-signature header) before the payload is parsed.

Documentation: https://paystack.com/docs/payments/webhooks

Supported Events:
- charge.success: verified through the same path as the client callback
- subscription.disable, subscription.not_renew: cancel at period end
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from fxacademy.api.dependencies import get_app_settings, get_billing_service
from fxacademy.config.settings import Settings
from fxacademy.database.session import get_db_session
from fxacademy.integrations.paystack.client import verify_webhook_signature
from fxacademy.platform.errors import success_body
from fxacademy.services.billing_service import BillingService, FailureReason
from fxacademy.services.billing_webhook_handler import BillingWebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["webhooks"])


@router.post("/webhook")
async def handle_paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None, alias="x-paystack-signature"),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db_session),
    billing_service: BillingService = Depends(get_billing_service),
):
    """
    Handle incoming Paystack webhooks.

    Security:
    - Verifies the signature with PAYSTACK_WEBHOOK_SECRET (or the secret key)
    - Rejects requests with invalid or missing signatures
    - Does not require a session token (server-to-server)

    Transient verification failures answer 502 so Paystack redelivers.
    """
    webhook_secret = settings.webhook_secret
    if not webhook_secret:
        logger.error("Paystack webhook secret not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook handler not configured",
        )

    body = await request.body()

    if not verify_webhook_signature(body, x_paystack_signature, webhook_secret):
        logger.warning(
            "Paystack webhook signature verification failed",
            extra={"has_signature": bool(x_paystack_signature)},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_signature", "message": "Invalid webhook signature"},
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in webhook payload", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    if not isinstance(payload, dict) or not payload.get("event"):
        logger.warning("Missing event type in webhook payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing event type",
        )

    logger.info("Received Paystack webhook", extra={"event_type": payload.get("event")})

    handler = BillingWebhookHandler(db, billing_service)
    result = await handler.process(payload)

    logger.info(
        "Processed Paystack webhook",
        extra={
            "event_type": result.event_type,
            "reference": result.reference,
            "processed": result.processed,
            "skipped_reason": result.skipped_reason,
        },
    )

    if result.error == FailureReason.GATEWAY_ERROR:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": "gateway_error", "message": "Verification deferred, retry later"},
        )

    return success_body({
        "received": True,
        "processed": result.processed,
        "message": result.message,
        "event_type": result.event_type,
        "reference": result.reference,
        "outcome": result.outcome,
        "skipped_reason": result.skipped_reason,
    })
