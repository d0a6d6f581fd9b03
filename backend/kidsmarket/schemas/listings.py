from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Category = Literal["toys", "clothes", "accessories"]
Condition = Literal["Like New", "Excellent", "Good", "Fair"]


class ListingBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    price: float = Field(gt=0)
    category: Category = "toys"
    condition: Condition = "Like New"
    age: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = ""
    image: Optional[str] = None


class ListingCreate(ListingBase):
    pass


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[float] = Field(default=None, gt=0)
    category: Optional[Category] = None
    condition: Optional[Condition] = None
    age: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None


class Listing(BaseModel):
    """Listing as stored. Seed and legacy documents are read back without the write-side rules."""

    id: str
    title: Optional[str] = None
    price: Optional[float] = None
    displayPrice: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    age: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    seller: Optional[str] = None
    sellerId: Optional[str] = None
    status: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    buyerId: Optional[str] = None
    buyerEmail: Optional[str] = None
    soldAt: Optional[datetime] = None
    stripeSessionId: Optional[str] = None
    stripePaymentIntentId: Optional[str] = None
