from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pymongo import DESCENDING

from ..auth import Caller, get_caller, require_caller
from ..mongo import TRANSACTIONS, get_mongo_db
from ..schemas.transactions import Transaction

router = APIRouter()


def transaction_from_doc(d: Dict[str, Any]) -> Transaction:
    d = dict(d)
    d["id"] = str(d.pop("_id"))
    return Transaction(**d)


async def _history(mdb, field: str, uid: str, limit: int) -> List[Transaction]:
    if mdb is None:
        raise HTTPException(status_code=503, detail="Transactions require MongoDB")
    out = []
    async for d in mdb[TRANSACTIONS].find({field: uid}).sort("createdAt", DESCENDING).limit(limit):
        out.append(transaction_from_doc(d))
    return out


@router.get("/purchases", response_model=List[Transaction])
async def my_purchases(limit: int = Query(100, ge=1, le=500), caller: Optional[Caller] = Depends(get_caller), mdb=Depends(get_mongo_db)):
    caller = require_caller(caller)
    return await _history(mdb, "buyerId", caller.uid, limit)


@router.get("/sales", response_model=List[Transaction])
async def my_sales(limit: int = Query(100, ge=1, le=500), caller: Optional[Caller] = Depends(get_caller), mdb=Depends(get_mongo_db)):
    caller = require_caller(caller)
    return await _history(mdb, "sellerId", caller.uid, limit)
