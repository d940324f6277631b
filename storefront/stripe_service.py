import logging

import stripe

from storefront.errors import PaymentProviderError

logger = logging.getLogger(__name__)


class StripeService:
    """Thin handle over the Stripe SDK bound to one secret key.

    The key is passed on every call instead of being set on the ``stripe``
    module, so several handles can coexist in one process.
    """

    def __init__(self, secret_key: str, webhook_secret: str = ""):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        if not self.configured:
            logger.warning("Stripe not initialized - no API key provided")

    @property
    def configured(self):
        return bool(self.secret_key)

    def _require_configured(self):
        if not self.configured:
            raise PaymentProviderError("Stripe is not configured")

    def create_payment_intent(self, amount: int, currency: str, description=None, metadata=None):
        self._require_configured()
        try:
            return stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=amount,
                currency=currency,
                description=description,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e)
            raise PaymentProviderError(f"Stripe error: {e.user_message or e}")

    def retrieve_payment_intent(self, payment_intent_id: str):
        self._require_configured()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.error("Stripe payment intent %s lookup failed: %s", payment_intent_id, e)
            raise PaymentProviderError(f"Stripe error: {e.user_message or e}")

    def construct_event(self, payload: bytes, signature: str):
        """Verify a webhook delivery; raises ValueError or SignatureVerificationError."""
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)


def intent_status(intent):
    """Collapse a PaymentIntent into succeeded / payment_failed / its raw status."""
    status = intent.status
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return "payment_failed"
    return status
