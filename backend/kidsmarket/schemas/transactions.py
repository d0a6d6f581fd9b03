from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class Shipping(BaseModel):
    name: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    cost: Optional[float] = None


class Transaction(BaseModel):
    id: str
    listingId: str
    listingTitle: Optional[str] = None
    buyerId: Optional[str] = None
    buyerEmail: Optional[str] = None
    sellerId: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    shipping: Optional[Shipping] = None
    stripeSessionId: str
    stripePaymentIntentId: Optional[str] = None
    createdAt: Optional[datetime] = None
