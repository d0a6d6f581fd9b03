import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pymongo import DESCENDING, ReturnDocument

from ..auth import Caller, get_caller, require_caller
from ..config import DEFAULT_LISTING_IMAGE
from ..errors import failed_precondition, not_found, permission_denied
from ..mongo import LISTINGS, get_mongo_db
from ..schemas.listings import Listing, ListingCreate, ListingUpdate

router = APIRouter()


def listing_from_doc(d: Dict[str, Any]) -> Listing:
    d = dict(d)
    d["id"] = str(d.pop("_id"))
    price = d.get("price")
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        d["displayPrice"] = f"{price:.2f}"
    else:
        d["price"] = None
    return Listing(**d)


def _require_db(mdb):
    if mdb is None:
        raise HTTPException(status_code=503, detail="Listings require MongoDB")
    return mdb


@router.get("/", response_model=List[Listing])
async def list_listings(
    category: Optional[str] = None,
    q: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    mdb=Depends(get_mongo_db),
):
    mdb = _require_db(mdb)
    query: Dict[str, Any] = {}
    if category and category != "all":
        query["category"] = category
    if status:
        query["status"] = status
    if q:
        pattern = re.compile(re.escape(q.strip()), re.IGNORECASE)
        query["$or"] = [{"title": pattern}, {"category": pattern}]
    docs = []
    async for d in mdb[LISTINGS].find(query).sort("createdAt", DESCENDING).limit(limit):
        docs.append(listing_from_doc(d))
    return docs


@router.get("/{listing_id}", response_model=Listing)
async def get_listing(listing_id: str, mdb=Depends(get_mongo_db)):
    mdb = _require_db(mdb)
    doc = await mdb[LISTINGS].find_one({"_id": listing_id})
    if not doc:
        raise not_found("Listing not found.")
    return listing_from_doc(doc)


@router.post("/", response_model=Listing, status_code=201)
async def create_listing(payload: ListingCreate, caller: Optional[Caller] = Depends(get_caller), mdb=Depends(get_mongo_db)):
    caller = require_caller(caller, "You must be logged in to sell items.")
    mdb = _require_db(mdb)
    doc = payload.model_dump()
    doc.update({
        "_id": uuid4().hex,
        "image": payload.image or DEFAULT_LISTING_IMAGE,
        "seller": caller.email or caller.uid,
        "sellerId": caller.uid,
        "status": "available",
        "createdAt": datetime.now(timezone.utc),
    })
    await mdb[LISTINGS].insert_one(doc)
    return listing_from_doc(doc)


async def _owned_available(mdb, listing_id: str, caller: Caller) -> Dict[str, Any]:
    """Explain why a guarded owner write matched nothing."""
    doc = await mdb[LISTINGS].find_one({"_id": listing_id})
    if not doc:
        raise not_found("Listing not found.")
    if doc.get("sellerId") != caller.uid:
        raise permission_denied("You can only change your own listings.")
    if doc.get("status") == "sold":
        raise failed_precondition("Sold listings can no longer be changed.")
    return doc


@router.patch("/{listing_id}", response_model=Listing)
async def update_listing(listing_id: str, payload: ListingUpdate, caller: Optional[Caller] = Depends(get_caller), mdb=Depends(get_mongo_db)):
    caller = require_caller(caller)
    mdb = _require_db(mdb)
    changes = payload.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        return listing_from_doc(await _owned_available(mdb, listing_id, caller))
    changes["updatedAt"] = datetime.now(timezone.utc)
    # guard on owner and status so an edit cannot land on a listing sold meanwhile
    doc = await mdb[LISTINGS].find_one_and_update(
        {"_id": listing_id, "sellerId": caller.uid, "status": "available"},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        await _owned_available(mdb, listing_id, caller)
        raise failed_precondition("Listing is no longer available.")
    return listing_from_doc(doc)


@router.delete("/{listing_id}", status_code=204)
async def delete_listing(listing_id: str, caller: Optional[Caller] = Depends(get_caller), mdb=Depends(get_mongo_db)):
    caller = require_caller(caller)
    mdb = _require_db(mdb)
    res = await mdb[LISTINGS].delete_one({"_id": listing_id, "sellerId": caller.uid, "status": "available"})
    if res.deleted_count == 0:
        await _owned_available(mdb, listing_id, caller)
        raise failed_precondition("Listing is no longer available.")
    return Response(status_code=204)
