import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pymongo.errors import PyMongoError

from ..mongo import get_mongo_db
from ..schemas.payments import WebhookAck
from ..services.fulfillment import Outcome, fulfill_checkout, is_fulfilling_event, paid_session_from_event
from ..services.notify import send_sale_notifications, sendgrid_enabled
from ..services.stripe_gateway import StripeGateway, WebhookVerificationError, get_stripe_gateway

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


# POST only; FastAPI answers other methods with 405
@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background: BackgroundTasks,
    mdb=Depends(get_mongo_db),
    gateway: Optional[StripeGateway] = Depends(get_stripe_gateway),
):
    """Called by Stripe after payment completes."""
    if gateway is None or not gateway.webhooks_enabled:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Webhook not configured")

    # Verify against the raw body; re-serialized JSON would not match the signature
    body = await request.body()
    try:
        event = gateway.verify_event(body, request.headers.get("stripe-signature"))
    except WebhookVerificationError as e:
        logger.error("Webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    if not is_fulfilling_event(event):
        logger.info("Stripe event %s (%s) acknowledged without action", event.get("id"), event.get("type"))
        return WebhookAck()

    paid = paid_session_from_event(event)
    if paid is None:
        logger.error("No listingId in session metadata (event %s)", event.get("id"))
        raise HTTPException(status_code=400, detail="Missing listingId")

    if mdb is None:
        logger.error("Cannot fulfill session %s: MongoDB not available", paid.session_id)
        raise HTTPException(status_code=500, detail="Error updating listing")

    try:
        result = await fulfill_checkout(mdb, paid)
    except PyMongoError:
        logger.exception("Error updating listing %s for session %s", paid.listing_id, paid.session_id)
        raise HTTPException(status_code=500, detail="Error updating listing")

    if result.outcome is Outcome.FULFILLED and sendgrid_enabled():
        background.add_task(send_sale_notifications, result.listing, result.transaction or {})
    return WebhookAck()
