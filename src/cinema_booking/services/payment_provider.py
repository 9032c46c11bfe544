"""
Payment provider gateway

``PaymentProvider`` is the narrow interface the orchestrator talks to;
``StripePaymentProvider`` implements it with Stripe PaymentIntents. The Stripe
SDK is synchronous, so calls run in a worker thread.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import stripe

from cinema_booking.core.config import settings
from cinema_booking.core.exceptions import InvalidWebhookError, PaymentProviderError

logger = logging.getLogger(__name__)


class IntentOutcome(Enum):
    """Provider-reported result of a payment intent"""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PROCESSING = "PROCESSING"


@dataclass
class PaymentIntent:
    intent_id: str
    client_secret: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookEvent:
    intent_id: str
    outcome: IntentOutcome
    event_type: str


class PaymentProvider(ABC):
    """Interface to an external payment processor"""

    name = "provider"

    @abstractmethod
    async def create_intent(self, amount_cents: int, currency: str, metadata: Dict[str, Any]) -> PaymentIntent:
        """Open a payment intent; raises PaymentProviderError"""

    @abstractmethod
    async def retrieve_outcome(self, intent_id: str) -> IntentOutcome:
        """Poll the current outcome of an intent; raises PaymentProviderError"""

    @abstractmethod
    async def cancel_intent(self, intent_id: str):
        """Make an open intent unpayable; raises PaymentProviderError if it already succeeded"""

    def parse_webhook(self, payload: bytes, signature: str) -> Optional["WebhookEvent"]:
        raise PaymentProviderError(f"{self.name} does not deliver webhooks")


STRIPE_STATUS_OUTCOMES = {
    "succeeded": IntentOutcome.SUCCEEDED,
    "requires_payment_method": IntentOutcome.FAILED,
    "canceled": IntentOutcome.FAILED,
}

STRIPE_EVENT_OUTCOMES = {
    "payment_intent.succeeded": IntentOutcome.SUCCEEDED,
    "payment_intent.payment_failed": IntentOutcome.FAILED,
    "payment_intent.canceled": IntentOutcome.FAILED,
}


class StripePaymentProvider(PaymentProvider):
    """Stripe PaymentIntents"""

    name = "stripe"

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

    def _require_key(self):
        if not self.api_key:
            raise PaymentProviderError("Stripe is not configured (STRIPE_SECRET_KEY missing)")

    async def create_intent(self, amount_cents: int, currency: str, metadata: Dict[str, Any]) -> PaymentIntent:
        self._require_key()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.api_key,
                amount=amount_cents,
                currency=currency,
                metadata={key: str(value) for key, value in metadata.items()},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed: {e}")
            raise PaymentProviderError(f"Payment provider error: {e.user_message or e}") from e

        return PaymentIntent(intent_id=intent.id, client_secret=intent.client_secret, metadata=metadata)

    async def retrieve_outcome(self, intent_id: str) -> IntentOutcome:
        self._require_key()
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe intent lookup failed for {intent_id}: {e}")
            raise PaymentProviderError(f"Payment provider error: {e.user_message or e}") from e

        return STRIPE_STATUS_OUTCOMES.get(intent.status, IntentOutcome.PROCESSING)

    async def cancel_intent(self, intent_id: str):
        self._require_key()
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id, api_key=self.api_key)
            if intent.status == "canceled":
                return
            if intent.status == "succeeded":
                raise PaymentProviderError(f"Payment intent {intent_id} already succeeded and cannot be replaced")
            await asyncio.to_thread(stripe.PaymentIntent.cancel, intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe intent cancellation failed for {intent_id}: {e}")
            raise PaymentProviderError(f"Payment provider error: {e.user_message or e}") from e

    def parse_webhook(self, payload: bytes, signature: str) -> Optional[WebhookEvent]:
        """
        Verify and decode a webhook.

        Returns None for event types that do not settle a payment intent.
        """
        if not self.webhook_secret:
            raise PaymentProviderError("Stripe webhooks are not configured (STRIPE_WEBHOOK_SECRET missing)")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise InvalidWebhookError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise InvalidWebhookError("Invalid webhook signature") from e

        outcome = STRIPE_EVENT_OUTCOMES.get(event["type"])
        if outcome is None:
            logger.debug(f"Ignoring Stripe event {event['type']}")
            return None

        return WebhookEvent(
            intent_id=event["data"]["object"]["id"],
            outcome=outcome,
            event_type=event["type"],
        )
