import os
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

MONGODB_URI = os.getenv("MONGODB_URI")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "kidsmarket")

LISTINGS = "listings"
TRANSACTIONS = "transactions"
PAYMENT_CONFLICTS = "payment_conflicts"

# Allow disabling Mongo for local/dev runs by setting MONGO_ENABLED=false
_MONGO_ENABLED = os.getenv("MONGO_ENABLED", "true").lower() in {"1", "true", "yes"}


def create_mongo_client() -> Optional[AsyncIOMotorClient]:
    """Build the process-wide Motor client, or None when Mongo is not configured."""
    if not (MONGODB_URI and _MONGO_ENABLED):
        return None
    return AsyncIOMotorClient(MONGODB_URI)


async def get_mongo_db(request: Request) -> Optional[AsyncIOMotorDatabase]:
    return getattr(request.app.state, "mongo_db", None)


async def ensure_indexes(mdb) -> None:
    await mdb[LISTINGS].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    await mdb[LISTINGS].create_index("sellerId")
    # One transaction per checkout session; redelivered webhooks hit this key
    await mdb[TRANSACTIONS].create_index("stripeSessionId", unique=True)
    await mdb[TRANSACTIONS].create_index([("buyerId", ASCENDING), ("createdAt", DESCENDING)])
    await mdb[TRANSACTIONS].create_index([("sellerId", ASCENDING), ("createdAt", DESCENDING)])
    await mdb[PAYMENT_CONFLICTS].create_index("stripeSessionId", unique=True)
