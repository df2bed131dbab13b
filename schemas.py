"""
Database Schemas for HomeHero

Each Pydantic model describes the documents stored in one MongoDB collection.
Handlers build documents through these models so server-set fields and
defaults are applied in one place.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, EmailStr, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """
    Platform users, keyed by email. Any extra profile fields sent by the
    client (name, photoURL, role, ...) are stored as-is.
    Collection: "users"
    """
    model_config = ConfigDict(extra="allow")

    email: str = Field(..., description="Natural key, taken from the URL path")
    lastLogin: datetime = Field(default_factory=_now, description="Set on every write")


class Service(BaseModel):
    """
    Home services offered by providers.
    Collection: "services"
    """
    name: str
    category: str
    price: float
    description: str
    image: str = Field(..., description="Image URL")
    provider_name: str
    provider_email: EmailStr
    created_at: datetime = Field(default_factory=_now)
    rating: float = 0
    totalReviews: int = 0
    reviews: List[Dict[str, Any]] = Field(default_factory=list)


class Booking(BaseModel):
    """
    A customer's booking of a service. ``serviceId`` and ``userEmail`` are
    plain references; nothing checks that the targets exist.
    Collection: "bookings"
    """
    serviceId: str
    bookingDate: str = Field(..., description="Date as sent by the client")
    price: float
    userEmail: EmailStr
    created_at: datetime = Field(default_factory=_now)
