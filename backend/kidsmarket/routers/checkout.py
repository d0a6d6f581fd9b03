import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional
from urllib.parse import quote

import stripe
from fastapi import APIRouter, Body, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool

from ..auth import Caller, get_caller, require_caller
from ..config import checkout_currency, default_origin
from ..errors import failed_precondition, invalid_argument, not_found, permission_denied, unavailable
from ..mongo import LISTINGS, get_mongo_db
from ..schemas.payments import CheckoutSessionRequest, CheckoutSessionResponse
from ..services.stripe_gateway import StripeGateway, get_stripe_gateway

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def to_minor_units(price: Any) -> Optional[int]:
    """Convert a display price like 25.99 to integer cents, rounding half up."""
    if isinstance(price, bool):
        return None
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_session_params(listing_id: str, listing: Dict[str, Any], caller: Caller, unit_amount: int, origin: str) -> Dict[str, Any]:
    origin = origin.rstrip("/")
    return {
        "payment_method_types": ["card"],
        "mode": "payment",
        "line_items": [{
            "price_data": {
                "currency": checkout_currency(),
                "product_data": {
                    "name": listing.get("title") or "Listing",
                    "images": [listing["image"]] if listing.get("image") else [],
                },
                "unit_amount": unit_amount,
            },
            "quantity": 1,
        }],
        "client_reference_id": listing_id,
        "metadata": {
            "listingId": listing_id,
            "buyerId": caller.uid,
            "buyerEmail": caller.email or "",
            "sellerId": listing.get("sellerId") or "",
        },
        "success_url": f"{origin}?payment=success&listingId={quote(listing_id, safe='')}",
        "cancel_url": f"{origin}?payment=cancelled",
    }


@router.post("/session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: Optional[CheckoutSessionRequest] = Body(None),
    origin: Optional[str] = Header(None),
    caller: Optional[Caller] = Depends(get_caller),
    mdb=Depends(get_mongo_db),
    gateway: Optional[StripeGateway] = Depends(get_stripe_gateway),
):
    """
    Called by the storefront when a buyer clicks "Buy Now". Returns a Stripe-hosted
    checkout URL. Nothing is written here; the listing only changes once the
    webhook confirms payment, so two buyers may both hold valid sessions.
    """
    caller = require_caller(caller, "You must be logged in to buy items.")

    listing_id = payload.listingId if payload is not None else None
    if not isinstance(listing_id, str) or not listing_id.strip():
        raise invalid_argument("Listing ID is required.")
    listing_id = listing_id.strip()

    if mdb is None:
        raise HTTPException(status_code=503, detail="Checkout requires MongoDB")
    listing = await mdb[LISTINGS].find_one({"_id": listing_id})
    if not listing:
        raise not_found("Listing not found.")

    if listing.get("status") == "sold":
        raise failed_precondition("This item has already been sold.")
    # fulfillment only flips listings that are still available
    if listing.get("status") != "available":
        raise failed_precondition("This item is not available for purchase.")

    if listing.get("sellerId") == caller.uid:
        raise permission_denied("You cannot buy your own item.")

    unit_amount = to_minor_units(listing.get("price"))
    if not unit_amount or unit_amount <= 0:
        raise failed_precondition("This item has no valid price.")

    if gateway is None or not gateway.checkout_enabled:
        raise HTTPException(status_code=503, detail="Payments not configured")

    params = build_session_params(listing_id, listing, caller, unit_amount, origin or default_origin())
    try:
        session_id, url = await run_in_threadpool(gateway.create_checkout_session, params)
    except stripe.StripeError as e:
        logger.error("Stripe checkout session creation failed for listing %s: %s", listing_id, e)
        raise unavailable("Could not start checkout. Please try again.")

    logger.info("Checkout session %s created for listing %s by %s", session_id, listing_id, caller.uid)
    return CheckoutSessionResponse(sessionId=session_id, url=url)
