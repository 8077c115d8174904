from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import Event
from services.normalize import as_utc


class CamelModel(BaseModel):
    """Base for API payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------- Preferences & interactions ----------


class LocationPreference(CamelModel):
    name: str
    latitude: str
    longitude: str


class UserPreferences(CamelModel):
    """Categories and locations are kept unique, first occurrence wins."""

    categories: List[int] = Field(default_factory=list)
    locations: List[LocationPreference] = Field(default_factory=list)

    @field_validator("categories")
    @classmethod
    def unique_categories(cls, v: List[int]) -> List[int]:
        return list(dict.fromkeys(v))

    @field_validator("locations")
    @classmethod
    def unique_locations(cls, v: List[LocationPreference]) -> List[LocationPreference]:
        seen = set()
        out = []
        for loc in v:
            key = (loc.latitude, loc.longitude)
            if key not in seen:
                seen.add(key)
                out.append(loc)
        return out


class BookingRecord(CamelModel):
    event_id: int
    status: str = "confirmed"


@dataclass
class InteractionHistory:
    """Request-scoped view of what a user has done so far."""

    liked_event_ids: List[int] = field(default_factory=list)
    saved_event_ids: List[int] = field(default_factory=list)
    bookings: List[BookingRecord] = field(default_factory=list)
    followed_user_ids: List[int] = field(default_factory=list)
    # events referenced by likes/saves/bookings, keyed by id
    events: Dict[int, Event] = field(default_factory=dict)


# ---------- Search ----------


class FilterCriteria(CamelModel):
    query: Optional[str] = None
    category_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_free: Optional[bool] = None
    is_virtual: Optional[bool] = None
    is_hybrid: Optional[bool] = None
    max_price: Optional[float] = None


# ---------- Events ----------


class EventCreate(CamelModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    category_id: Optional[int] = None
    address: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    is_public: bool = True
    is_free: bool = True
    price: Optional[float] = Field(default=None, ge=0)
    is_virtual: bool = False
    is_hybrid: bool = False


class EventOut(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    category_id: Optional[int] = None
    address: Optional[str] = None
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    created_by_id: Optional[int] = None
    is_public: bool = True
    is_free: bool = True
    price: Optional[float] = None
    is_virtual: bool = False
    is_hybrid: bool = False
    like_count: int = 0
    save_count: int = 0
    attendee_count: int = 0
    delete_requested_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "delete_requested_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)


class CategoryOut(CamelModel):
    id: int
    name: str
    icon: str


class BookingCreate(CamelModel):
    number_of_tickets: int = Field(1, ge=1)
    status: str = Field("confirmed", pattern="^(confirmed|pending|cancelled)$")


class BookingStatusUpdate(CamelModel):
    status: str


class BookingOut(CamelModel):
    id: int
    event_id: int
    user_id: int
    number_of_tickets: int
    status: str


# ---------- Users ----------


class UserCreate(CamelModel):
    username: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    email: Optional[str] = None
    preferences: Optional[UserPreferences] = None


class UserOut(CamelModel):
    id: int
    username: str
    display_name: Optional[str] = None


class StatusOut(BaseModel):
    ok: bool = True
    debug: Optional[Dict[str, Any]] = None
