import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from kidsmarket.main import app
from kidsmarket.mongo import ensure_indexes, get_mongo_db
from kidsmarket.services.stripe_gateway import StripeGateway, get_stripe_gateway

WEBHOOK_SECRET = "whsec_test_secret"


class AsyncMockCursor:
    """Async iteration over a mongomock cursor, shaped like Motor's cursor."""

    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def limit(self, n):
        self._cursor = self._cursor.limit(n)
        return self

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return next(self._cursor)
        except StopIteration:
            raise StopAsyncIteration


class AsyncMockCollection:
    def __init__(self, coll):
        self._coll = coll

    def find(self, *args, **kwargs):
        return AsyncMockCursor(self._coll.find(*args, **kwargs))

    def __getattr__(self, name):
        method = getattr(self._coll, name)

        async def call(*args, **kwargs):
            return method(*args, **kwargs)

        return call


class AsyncMockDatabase:
    """The subset of AsyncIOMotorDatabase the app uses, backed by mongomock."""

    def __init__(self, db):
        self._db = db

    def __getitem__(self, name):
        return AsyncMockCollection(self._db[name])

    def get_collection(self, name):
        return self[name]

    async def command(self, *args, **kwargs):
        return self._db.command(*args, **kwargs)


class FakeStripeGateway(StripeGateway):
    """Records checkout params instead of calling Stripe; webhook verification stays real."""

    def __init__(self, secret_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET):
        super().__init__(secret_key, webhook_secret)
        self.created = []

    def create_checkout_session(self, params):
        self.created.append(params)
        sid = f"cs_test_{len(self.created)}"
        return sid, f"https://checkout.stripe.com/c/pay/{sid}"


def run(coro):
    return asyncio.run(coro)


def as_user(uid, email=None):
    return {"X-User-Id": uid, "X-User-Email": email or f"{uid.lower()}@example.com"}


def seed_listing(mdb, listing_id="L1", **fields):
    doc = {
        "_id": listing_id,
        "title": "Wooden train set",
        "price": 25.99,
        "category": "toys",
        "condition": "Like New",
        "age": "3-5",
        "location": "Berlin",
        "description": "Complete set",
        "image": "https://img.example.com/train.jpg",
        "seller": "s1@example.com",
        "sellerId": "S1",
        "status": "available",
        "createdAt": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    doc.update(fields)
    run(mdb["listings"].insert_one(doc))
    return doc


def sign(payload: bytes, secret=WEBHOOK_SECRET, timestamp=None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def checkout_event(
    session_id="cs_test_1",
    listing_id="L1",
    buyer_id="B1",
    buyer_email="b@x.com",
    seller_id="S1",
    amount_total=2599,
    currency="eur",
    event_type="checkout.session.completed",
    **session_fields,
):
    metadata = {"buyerId": buyer_id, "buyerEmail": buyer_email, "sellerId": seller_id}
    if listing_id is not None:
        metadata["listingId"] = listing_id
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_intent": f"pi_{session_id}",
        "payment_status": "paid",
        "amount_total": amount_total,
        "currency": currency,
        "metadata": metadata,
    }
    session.update(session_fields)
    return {"id": f"evt_{session_id}", "object": "event", "type": event_type, "data": {"object": session}}


def post_event(client, event, secret=WEBHOOK_SECRET):
    body = json.dumps(event).encode("utf-8")
    return client.post(
        "/payments/webhook",
        content=body,
        headers={"Stripe-Signature": sign(body, secret), "Content-Type": "application/json"},
    )


@pytest.fixture
def mdb():
    db = AsyncMockDatabase(mongomock.MongoClient()["kidsmarket_test"])
    run(ensure_indexes(db))
    return db


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def client(mdb, gateway, monkeypatch):
    monkeypatch.setenv("DEV_MODE", "true")
    app.dependency_overrides[get_mongo_db] = lambda: mdb
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
