"""Fulfillment write for a paid Stripe Checkout session.

A listing is flipped to ``sold`` by a single conditional update that only
matches while the listing is still ``available``; that update is the point
where concurrent or redelivered confirmations serialize. The transaction row
is keyed by the checkout session id, so writing it again is a no-op.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..mongo import LISTINGS, PAYMENT_CONFLICTS, TRANSACTIONS

logger = logging.getLogger("uvicorn.error")

FULFILLING_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


class Outcome(str, Enum):
    FULFILLED = "fulfilled"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"


@dataclass
class FulfillmentResult:
    outcome: Outcome
    listing: Optional[Dict[str, Any]] = None
    transaction: Optional[Dict[str, Any]] = None


@dataclass
class PaidSession:
    """The fields of a checkout session the fulfillment write needs."""

    session_id: str
    listing_id: str
    buyer_id: Optional[str]
    buyer_email: str
    seller_id: Optional[str]
    payment_intent_id: Optional[str]
    amount_total: Optional[int]
    currency: Optional[str]
    shipping: Optional[Dict[str, Any]] = None

    @property
    def amount(self) -> Optional[float]:
        if self.amount_total is None:
            return None
        return float(minor_to_major(self.amount_total))


def minor_to_major(amount: int) -> Decimal:
    return Decimal(int(amount)) / Decimal(100)


def is_fulfilling_event(event: Dict[str, Any]) -> bool:
    etype = event.get("type")
    if etype not in FULFILLING_EVENTS:
        return False
    session = (event.get("data") or {}).get("object") or {}
    # delayed payment methods complete the session before the money arrives
    if etype == "checkout.session.completed" and session.get("payment_status") == "unpaid":
        return False
    return True


def _shipping_from_session(session: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    details = session.get("shipping_details")
    if not details:
        details = (session.get("collected_information") or {}).get("shipping_details")
    cost = session.get("shipping_cost") or {}
    if not details and not cost:
        return None
    shipping: Dict[str, Any] = {}
    if details:
        shipping["name"] = details.get("name")
        shipping["address"] = details.get("address")
    if cost.get("amount_total") is not None:
        shipping["cost"] = float(minor_to_major(cost["amount_total"]))
    return shipping


def paid_session_from_event(event: Dict[str, Any]) -> Optional[PaidSession]:
    """Extract the embedded checkout metadata. Returns None when listingId is missing."""
    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    listing_id = metadata.get("listingId")
    if not listing_id:
        return None
    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    return PaidSession(
        session_id=session.get("id"),
        listing_id=str(listing_id),
        buyer_id=metadata.get("buyerId"),
        buyer_email=metadata.get("buyerEmail") or "",
        seller_id=metadata.get("sellerId"),
        payment_intent_id=payment_intent,
        amount_total=session.get("amount_total"),
        currency=session.get("currency"),
        shipping=_shipping_from_session(session),
    )


async def _record_transaction(mdb, paid: PaidSession, listing: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    doc = {
        "_id": uuid4().hex,
        "listingId": paid.listing_id,
        "listingTitle": listing.get("title"),
        "buyerId": paid.buyer_id,
        "buyerEmail": paid.buyer_email,
        "sellerId": paid.seller_id or listing.get("sellerId"),
        "amount": paid.amount,
        "currency": paid.currency,
        "stripeSessionId": paid.session_id,
        "stripePaymentIntentId": paid.payment_intent_id,
        "createdAt": now,
    }
    if paid.shipping:
        doc["shipping"] = paid.shipping
    coll = mdb[TRANSACTIONS]
    try:
        await coll.update_one({"stripeSessionId": paid.session_id}, {"$setOnInsert": doc}, upsert=True)
    except DuplicateKeyError:
        # a concurrent delivery of the same event inserted it first
        pass
    return await coll.find_one({"stripeSessionId": paid.session_id})


async def _record_conflict(mdb, paid: PaidSession, reason: str, now: datetime) -> None:
    doc = {
        "listingId": paid.listing_id,
        "buyerId": paid.buyer_id,
        "buyerEmail": paid.buyer_email,
        "sellerId": paid.seller_id,
        "amount": paid.amount,
        "currency": paid.currency,
        "stripeSessionId": paid.session_id,
        "stripePaymentIntentId": paid.payment_intent_id,
        "reason": reason,
        "createdAt": now,
    }
    try:
        await mdb[PAYMENT_CONFLICTS].update_one({"stripeSessionId": paid.session_id}, {"$setOnInsert": doc}, upsert=True)
    except DuplicateKeyError:
        pass


async def fulfill_checkout(mdb, paid: PaidSession, now: Optional[datetime] = None) -> FulfillmentResult:
    """Mark the listing sold and append its transaction, at most once per listing.

    Database errors propagate so the webhook can answer 500 and let Stripe retry.
    """
    now = now or datetime.now(timezone.utc)
    listings = mdb[LISTINGS]
    sold = await listings.find_one_and_update(
        {"_id": paid.listing_id, "status": "available"},
        {"$set": {
            "status": "sold",
            "buyerId": paid.buyer_id,
            "buyerEmail": paid.buyer_email,
            "soldAt": now,
            "stripeSessionId": paid.session_id,
            "stripePaymentIntentId": paid.payment_intent_id,
        }},
        return_document=ReturnDocument.AFTER,
    )
    if sold is not None:
        txn = await _record_transaction(mdb, paid, sold, now)
        logger.info("Listing %s marked as sold (session %s)", paid.listing_id, paid.session_id)
        return FulfillmentResult(Outcome.FULFILLED, listing=sold, transaction=txn)

    current = await listings.find_one({"_id": paid.listing_id})
    if current is not None and current.get("stripeSessionId") == paid.session_id:
        # redelivery; also repairs a previous attempt that died before the insert
        txn = await _record_transaction(mdb, paid, current, now)
        logger.info("Checkout session %s already fulfilled for listing %s", paid.session_id, paid.listing_id)
        return FulfillmentResult(Outcome.DUPLICATE, listing=current, transaction=txn)

    if current is None:
        reason = "listing_missing"
    elif current.get("status") == "sold":
        reason = "already_sold"
    else:
        reason = "not_available"
    await _record_conflict(mdb, paid, reason, now)
    logger.warning(
        "Payment conflict for listing %s: session %s paid but listing is %s; refund required",
        paid.listing_id, paid.session_id, reason.replace("_", " ").replace("listing ", ""),
    )
    return FulfillmentResult(Outcome.CONFLICT, listing=current)
