"""
Billing webhook handler with idempotency support.

Processes Paystack webhooks with:
- Event deduplication on a unique event key
- charge.success routed through the same verify path as the client
- Subscription cancellation flags

Signature verification happens in the route before this handler runs.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fxacademy.models.payment_event import PaymentEvent
from fxacademy.models.profile import Profile
from fxacademy.services.billing_service import (
    BillingService,
    Failed,
    FailureReason,
    outcome_to_dict,
)

logger = logging.getLogger(__name__)


class WebhookEventType:
    """Paystack events this service acts on."""
    CHARGE_SUCCESS = "charge.success"
    SUBSCRIPTION_DISABLE = "subscription.disable"
    SUBSCRIPTION_NOT_RENEW = "subscription.not_renew"


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    event_type: Optional[str] = None
    reference: Optional[str] = None
    outcome: Optional[dict] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


def _payload_hash(payload: Dict[str, Any]) -> str:
    payload_str = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(payload_str.encode()).hexdigest()


class BillingWebhookHandler:
    """
    Handler for Paystack webhooks with idempotency.

    Ensures each event is processed exactly once using the event name
    plus the transaction reference (or gateway id) as the key.
    """

    def __init__(self, db_session: Session, billing_service: BillingService):
        """
        Initialize webhook handler.

        Args:
            db_session: Database session
            billing_service: Service used to verify charges
        """
        self.db = db_session
        self.billing = billing_service

    @staticmethod
    def event_key(payload: Dict[str, Any]) -> str:
        event = payload.get("event") or "unknown"
        data = payload.get("data") or {}
        identifier = data.get("reference") or data.get("subscription_code") or data.get("id")
        if identifier is None:
            identifier = _payload_hash(payload)
        return f"{event}:{identifier}"

    def _is_duplicate(self, event_key: str) -> bool:
        """Check if webhook event has already been processed."""
        existing = self.db.query(PaymentEvent).filter(
            PaymentEvent.event_key == event_key
        ).first()
        return existing is not None

    def _record_event(self, event_key: str, event_type: str, reference: Optional[str], payload: Dict[str, Any]) -> bool:
        """
        Record a processed event.

        Returns False when another delivery recorded it first.
        """
        self.db.add(PaymentEvent(
            event_key=event_key,
            event_type=event_type,
            reference=reference,
            payload_hash=_payload_hash(payload),
            processed_at=datetime.now(timezone.utc),
        ))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    async def _handle_charge_success(self, reference: Optional[str]) -> WebhookProcessingResult:
        if not reference:
            return WebhookProcessingResult(
                processed=False,
                message="charge.success without reference",
                event_type=WebhookEventType.CHARGE_SUCCESS,
                error="missing_reference",
            )

        outcome = await self.billing.verify(reference)
        result = WebhookProcessingResult(
            processed=not isinstance(outcome, Failed),
            message=f"Verification {outcome.kind}",
            event_type=WebhookEventType.CHARGE_SUCCESS,
            reference=reference,
            outcome=outcome_to_dict(outcome),
        )
        if isinstance(outcome, Failed):
            result.error = outcome.reason
        return result

    def _handle_subscription_cancel(self, event_type: str, data: Dict[str, Any]) -> WebhookProcessingResult:
        customer = data.get("customer") or {}
        email = (customer.get("email") or "").strip().lower()
        profile = None
        if email:
            profile = self.db.query(Profile).filter(Profile.email == email).first()
        if profile is None:
            return WebhookProcessingResult(
                processed=False,
                message="No profile for subscription customer",
                event_type=event_type,
                skipped_reason="unknown_customer",
            )

        updated = self.billing.subscriptions.mark_cancel_at_period_end(profile.id)
        self.db.commit()
        logger.info(
            "Subscription set to cancel at period end",
            extra={"user_id": profile.id, "event_type": event_type},
        )
        return WebhookProcessingResult(
            processed=updated,
            message="Subscription will not renew" if updated else "No subscription to cancel",
            event_type=event_type,
        )

    async def process(self, payload: Dict[str, Any]) -> WebhookProcessingResult:
        """
        Process a verified webhook payload.

        Transient verification failures (gateway errors) are not
        recorded, so the gateway's redelivery gets another attempt.
        """
        event_type = payload.get("event")
        data = payload.get("data") or {}
        reference = data.get("reference")
        event_key = self.event_key(payload)

        if self._is_duplicate(event_key):
            logger.info("Duplicate webhook skipped", extra={"event_key": event_key})
            return WebhookProcessingResult(
                processed=False,
                message="Duplicate event",
                event_type=event_type,
                reference=reference,
                skipped_reason="duplicate",
            )

        if event_type == WebhookEventType.CHARGE_SUCCESS:
            result = await self._handle_charge_success(reference)
            if result.error == FailureReason.GATEWAY_ERROR:
                return result
        elif event_type in (WebhookEventType.SUBSCRIPTION_DISABLE, WebhookEventType.SUBSCRIPTION_NOT_RENEW):
            result = self._handle_subscription_cancel(event_type, data)
        else:
            logger.info("Ignoring unhandled webhook event", extra={"event_type": event_type})
            result = WebhookProcessingResult(
                processed=False,
                message="Event ignored",
                event_type=event_type,
                reference=reference,
                skipped_reason="unhandled_event",
            )

        if not self._record_event(event_key, event_type or "unknown", reference, payload):
            logger.info("Webhook recorded concurrently", extra={"event_key": event_key})
        return result
