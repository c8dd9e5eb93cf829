import json
import logging
from typing import Any

import stripe

from venue_booking.config import get_settings
from venue_booking.domain.exceptions import (
    MissingSignatureError,
    PaymentProviderError,
    SignatureVerificationFailedError,
    ValidationError,
    WebhookSecretNotConfiguredError,
)

logger = logging.getLogger(__name__)


class StripeGateway:
    """
    Thin wrapper over the Stripe SDK.

    ``stripe_sdk`` may be swapped for a fake in tests; it only needs the
    ``PaymentIntent`` and ``WebhookSignature`` attributes used below.
    """

    def __init__(
        self,
        *,
        secret_key: str | None,
        webhook_secret: str | None,
        tolerance: int = 300,
        stripe_sdk: Any | None = None,
    ) -> None:
        self.stripe = stripe_sdk if stripe_sdk is not None else stripe
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_payment_intent(
        self,
        *,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str] | None = None,
        receipt_email: str | None = None,
    ) -> Any:
        self._configure()
        payload: dict[str, Any] = {
            "amount": amount_minor,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata or {},
        }
        if receipt_email:
            payload["receipt_email"] = receipt_email
        try:
            return self.stripe.PaymentIntent.create(**payload)
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent creation failed: %s", exc)
            raise PaymentProviderError("Payment provider rejected the request") from exc

    def retrieve_payment_intent(self, payment_intent_id: str) -> Any:
        self._configure()
        try:
            return self.stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as exc:
            logger.error("Stripe payment intent %s lookup failed: %s", payment_intent_id, exc)
            raise PaymentProviderError("Payment provider lookup failed") from exc

    def verify_webhook(self, payload: bytes, signature: str | None) -> dict:
        """Check the ``Stripe-Signature`` header and return the decoded event."""
        if not signature:
            raise MissingSignatureError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise WebhookSecretNotConfiguredError("Stripe webhook secret not configured")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as exc:
            raise ValidationError("Webhook payload is not valid UTF-8") from exc

        try:
            self.stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.webhook_secret,
                self.tolerance,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Stripe webhook signature rejected: %s", exc)
            raise SignatureVerificationFailedError("Invalid webhook signature") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise ValidationError("Webhook payload is not valid JSON") from exc
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        return event

    def _configure(self) -> None:
        if not self.secret_key:
            raise PaymentProviderError("Stripe secret key not configured")
        self.stripe.api_key = self.secret_key


def resolve_gateway(app_state: Any) -> StripeGateway:
    gateway = getattr(app_state, "payment_gateway", None)
    if gateway is None:
        settings = get_settings()
        gateway = StripeGateway(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance,
        )
        app_state.payment_gateway = gateway
    return gateway
