"""
Stripe adapter.

Every call passes the secret key explicitly instead of setting the
module-level ``stripe.api_key``, and is attempted once: retrying is left to
whoever called the HTTP endpoint.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import stripe
import structlog

from elegance.core.config import Settings
from elegance.core.errors import GatewayError, InvalidSignature

logger = structlog.get_logger(__name__)

INTENT_SUCCEEDED = "succeeded"
EVENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_INTENT_FAILED = "payment_intent.payment_failed"


@dataclass(frozen=True)
class IntentRef:
    id: str
    client_secret: str
    amount: int
    currency: str


@dataclass(frozen=True)
class IntentStatus:
    id: str
    status: str
    amount: int
    currency: str


@dataclass(frozen=True)
class GatewayEvent:
    id: str
    type: str
    intent_id: Optional[str]


class PaymentGateway(Protocol):
    def create_intent(self, amount: int, description: str, metadata: Dict[str, str]) -> IntentRef: ...

    def get_intent(self, intent_id: str) -> IntentStatus: ...

    def cancel_intent(self, intent_id: str) -> IntentStatus: ...

    def verify_and_parse_event(self, payload: bytes, signature: Optional[str], secret: str) -> GatewayEvent: ...


class StripeGateway:
    def __init__(self, settings: Settings):
        self._api_key = settings.STRIPE_SECRET_KEY
        self._currency = settings.CURRENCY

    def _fail(self, op: str, error: stripe.StripeError) -> GatewayError:
        logger.error(
            "stripe_api_error",
            op=op,
            error_code=getattr(error, "code", None),
            error_message=str(error),
        )
        return GatewayError(f"Payment provider error: {error.user_message or str(error)}")

    def create_intent(self, amount: int, description: str, metadata: Dict[str, str]) -> IntentRef:
        logger.info("creating_payment_intent", amount=amount, currency=self._currency)
        try:
            pi = stripe.PaymentIntent.create(
                api_key=self._api_key,
                amount=amount,
                currency=self._currency,
                description=description,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            raise self._fail("create", e) from e
        logger.info("payment_intent_created", payment_intent_id=pi.id, status=pi.status)
        return IntentRef(id=pi.id, client_secret=pi.client_secret, amount=pi.amount, currency=pi.currency)

    def get_intent(self, intent_id: str) -> IntentStatus:
        try:
            pi = stripe.PaymentIntent.retrieve(intent_id, api_key=self._api_key)
        except stripe.StripeError as e:
            raise self._fail("retrieve", e) from e
        return _status(pi)

    def cancel_intent(self, intent_id: str) -> IntentStatus:
        try:
            pi = stripe.PaymentIntent.cancel(intent_id, api_key=self._api_key)
        except stripe.StripeError as e:
            raise self._fail("cancel", e) from e
        return _status(pi)

    def verify_and_parse_event(self, payload: bytes, signature: Optional[str], secret: str) -> GatewayEvent:
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(f"Webhook Error: {e}") from e
        except ValueError as e:
            raise InvalidSignature(f"Webhook Error: invalid payload ({e})") from e
        # signature already checked over the exact bytes; keep plain dicts from here on
        return _event(json.loads(payload))


def _status(pi: Any) -> IntentStatus:
    return IntentStatus(id=pi.id, status=pi.status, amount=pi.amount, currency=pi.currency)


def _event(event: Dict[str, Any]) -> GatewayEvent:
    obj = event.get("data", {}).get("object", {})
    intent_id = obj.get("id") if obj.get("object") == "payment_intent" else None
    return GatewayEvent(id=event.get("id", ""), type=event.get("type", ""), intent_id=intent_id)
