import json
from typing import Any, Dict, Optional, Tuple

import stripe
from fastapi import Request


class WebhookVerificationError(Exception):
    """Raised when an inbound webhook cannot be authenticated."""


class StripeGateway:
    """Thin wrapper around the Stripe SDK, built once at startup and injected into handlers."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str], tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    @property
    def checkout_enabled(self) -> bool:
        return bool(self.secret_key)

    @property
    def webhooks_enabled(self) -> bool:
        return bool(self.webhook_secret)

    def create_checkout_session(self, params: Dict[str, Any]) -> Tuple[str, str]:
        """Create a hosted Checkout session and return (session id, redirect url). Blocking."""
        session = stripe.checkout.Session.create(api_key=self.secret_key, **params)
        return session.id, session.url

    def verify_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Check the Stripe-Signature header against the raw body and return the event as a dict."""
        if not sig_header:
            raise WebhookVerificationError("No signatures found matching the expected signature for payload")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookVerificationError("Payload is not valid UTF-8")
        try:
            stripe.WebhookSignature.verify_header(text, sig_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(str(e)) from e
        try:
            event = json.loads(text)
        except ValueError:
            raise WebhookVerificationError("Invalid payload")
        if not isinstance(event, dict):
            raise WebhookVerificationError("Invalid payload")
        return event


async def get_stripe_gateway(request: Request) -> Optional[StripeGateway]:
    return getattr(request.app.state, "stripe_gateway", None)
