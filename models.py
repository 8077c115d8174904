from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True)
    display_name: Optional[str] = None
    email: Optional[str] = None
    # {"categories": [int], "locations": [{"name", "latitude", "longitude"}]}
    preferences: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON)
    )
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    icon: str = "calendar"


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    category_id: Optional[int] = Field(default=None, index=True)
    address: Optional[str] = None
    latitude: Optional[str] = None  # kept as text, matched by prefix
    longitude: Optional[str] = None
    created_by_id: Optional[int] = Field(default=None, index=True)
    is_public: bool = True
    is_deleted: bool = False
    # set by a delete request; the event is purged once the grace period ends
    delete_requested_at: Optional[datetime] = None
    is_free: bool = True
    price: Optional[float] = None
    is_virtual: bool = False
    is_hybrid: bool = False
    like_count: int = 0
    save_count: int = 0
    attendee_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


class EventLike(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(index=True)
    user_id: int = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class SavedEvent(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(index=True)
    user_id: int = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class Booking(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(index=True)
    user_id: int = Field(index=True)
    number_of_tickets: int = 1
    status: str = "confirmed"  # confirmed, cancelled, pending
    created_at: datetime = Field(default_factory=_utcnow)


class Follower(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    follower_id: int = Field(index=True)
    followed_id: int = Field(index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class HttpMetric(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    ts: datetime = Field(default_factory=_utcnow)
    route: str
    method: str
    status: int
    duration_ms: int
