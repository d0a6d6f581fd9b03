from typing import Any

from pydantic import BaseModel


class CheckoutSessionRequest(BaseModel):
    # validated by the handler so a missing or malformed id maps to invalid-argument, not 422
    listingId: Any = None


class CheckoutSessionResponse(BaseModel):
    sessionId: str
    url: str


class WebhookAck(BaseModel):
    received: bool = True
