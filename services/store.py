"""
Typed data access for events, users and their interactions.

Two interchangeable backends implement ``EventStore``:

    MemoryEventStore  plain dicts, sequential ids; good for tests and demos
    SqlEventStore     SQLModel sessions over ``settings.database_url``

``get_store()`` hands out the process-wide instance picked by
``settings.storage_backend``.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from config import settings
from db import init_db, session_scope
from models import Booking, Category, Event, EventLike, Follower, SavedEvent, User
from schemas import BookingRecord, UserPreferences
from services.normalize import as_utc, utcnow

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"


class StoreError(RuntimeError):
    """The backing store could not serve the request."""


class EventStore(Protocol):
    # ---- reads ----
    def get_event(self, event_id: int) -> Optional[Event]: ...
    def get_public_events(self) -> List[Event]: ...
    def get_public_future_events(self, now: Optional[datetime] = None) -> List[Event]: ...
    def get_events_by_ids(self, ids: Iterable[int]) -> List[Event]: ...
    def get_events_by_category(self, category_id: int) -> List[Event]: ...
    def get_categories(self) -> List[Category]: ...
    def get_user(self, user_id: int) -> Optional[User]: ...
    def get_user_preferences(self, user_id: int) -> Optional[UserPreferences]: ...
    def get_liked_event_ids(self, user_id: int) -> List[int]: ...
    def get_saved_event_ids(self, user_id: int) -> List[int]: ...
    def get_liked_events(self, user_id: int) -> List[Event]: ...
    def get_saved_events(self, user_id: int) -> List[Event]: ...
    def get_booking(self, booking_id: int) -> Optional[Booking]: ...
    def get_bookings(self, user_id: int) -> List[Booking]: ...
    def get_bookings_for_user(self, user_id: int) -> List[BookingRecord]: ...
    def get_followed_user_ids(self, user_id: int) -> List[int]: ...

    # ---- writes ----
    def create_user(self, user: User) -> User: ...
    def create_category(self, category: Category) -> Category: ...
    def create_event(self, event: Event) -> Event: ...
    def request_delete_event(self, event_id: int, at: Optional[datetime] = None) -> Optional[Event]: ...
    def cancel_delete_event(self, event_id: int) -> Optional[Event]: ...
    def delete_event(self, event_id: int) -> Optional[Event]: ...
    def purge_deleted_events(self, requested_before: datetime) -> List[int]: ...
    def update_user_preferences(
        self, user_id: int, preferences: UserPreferences
    ) -> Optional[UserPreferences]: ...
    def like_event(self, user_id: int, event_id: int) -> Optional[Event]: ...
    def unlike_event(self, user_id: int, event_id: int) -> Optional[Event]: ...
    def save_event(self, user_id: int, event_id: int) -> Optional[Event]: ...
    def unsave_event(self, user_id: int, event_id: int) -> Optional[Event]: ...
    def create_booking(self, booking: Booking) -> Optional[Booking]: ...
    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]: ...
    def follow_user(self, follower_id: int, followed_id: int) -> Optional[Follower]: ...
    def unfollow_user(self, follower_id: int, followed_id: int) -> bool: ...


def _visible(e: Event) -> bool:
    return bool(e.is_public) and not e.is_deleted


def _prefs_from_json(raw: Optional[Dict[str, Any]]) -> Optional[UserPreferences]:
    if raw is None:
        return None
    return UserPreferences.model_validate(raw)


def _prefs_to_json(prefs: UserPreferences) -> Dict[str, Any]:
    return prefs.model_dump(mode="json")


def _attendee_delta(booking: Booking, old_status: str, new_status: str) -> int:
    if old_status != CONFIRMED and new_status == CONFIRMED:
        return booking.number_of_tickets
    if old_status == CONFIRMED and new_status != CONFIRMED:
        return -booking.number_of_tickets
    return 0


# ---------- In-memory ----------


class MemoryEventStore:
    """
    Every read copies under the lock: FastAPI runs sync endpoints on a
    threadpool, so writers may be mutating the dicts at the same time.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._categories: Dict[int, Category] = {}
        self._events: Dict[int, Event] = {}
        self._likes: Dict[int, EventLike] = {}
        self._saved: Dict[int, SavedEvent] = {}
        self._bookings: Dict[int, Booking] = {}
        self._followers: Dict[int, Follower] = {}
        self._ids: Dict[str, int] = {}

    def _next_id(self, kind: str) -> int:
        self._ids[kind] = self._ids.get(kind, 0) + 1
        return self._ids[kind]

    def _values(self, table: Dict[int, Any]) -> List[Any]:
        with self._lock:
            return list(table.values())

    # ---- reads ----

    def get_event(self, event_id: int) -> Optional[Event]:
        with self._lock:
            return self._events.get(event_id)

    def get_public_events(self) -> List[Event]:
        return [e for e in self._values(self._events) if _visible(e)]

    def get_public_future_events(self, now: Optional[datetime] = None) -> List[Event]:
        now = as_utc(now) if now is not None else utcnow()
        return [e for e in self.get_public_events() if as_utc(e.start_date) > now]

    def get_events_by_ids(self, ids: Iterable[int]) -> List[Event]:
        with self._lock:
            return [self._events[i] for i in ids if i in self._events]

    def get_events_by_category(self, category_id: int) -> List[Event]:
        return [e for e in self.get_public_events() if e.category_id == category_id]

    def get_categories(self) -> List[Category]:
        return self._values(self._categories)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
        if user is None or user.is_deleted:
            return None
        return user

    def get_user_preferences(self, user_id: int) -> Optional[UserPreferences]:
        user = self.get_user(user_id)
        return _prefs_from_json(user.preferences) if user else None

    def get_liked_event_ids(self, user_id: int) -> List[int]:
        return [l.event_id for l in self._values(self._likes) if l.user_id == user_id]

    def get_saved_event_ids(self, user_id: int) -> List[int]:
        return [s.event_id for s in self._values(self._saved) if s.user_id == user_id]

    def get_liked_events(self, user_id: int) -> List[Event]:
        return self.get_events_by_ids(self.get_liked_event_ids(user_id))

    def get_saved_events(self, user_id: int) -> List[Event]:
        return self.get_events_by_ids(self.get_saved_event_ids(user_id))

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    def get_bookings(self, user_id: int) -> List[Booking]:
        return [b for b in self._values(self._bookings) if b.user_id == user_id]

    def get_bookings_for_user(self, user_id: int) -> List[BookingRecord]:
        return [
            BookingRecord(event_id=b.event_id, status=b.status)
            for b in self.get_bookings(user_id)
        ]

    def get_followed_user_ids(self, user_id: int) -> List[int]:
        return [
            f.followed_id for f in self._values(self._followers)
            if f.follower_id == user_id
        ]

    # ---- writes ----

    def create_user(self, user: User) -> User:
        with self._lock:
            user.id = self._next_id("user")
            self._users[user.id] = user
            return user

    def create_category(self, category: Category) -> Category:
        with self._lock:
            category.id = self._next_id("category")
            self._categories[category.id] = category
            return category

    def create_event(self, event: Event) -> Event:
        with self._lock:
            event.id = self._next_id("event")
            self._events[event.id] = event
            return event

    def _live_event(self, event_id: int) -> Optional[Event]:
        event = self._events.get(event_id)
        if event is None or event.is_deleted:
            return None
        return event

    def request_delete_event(self, event_id: int, at: Optional[datetime] = None) -> Optional[Event]:
        with self._lock:
            event = self._live_event(event_id)
            if event is not None:
                event.delete_requested_at = as_utc(at) if at is not None else utcnow()
            return event

    def cancel_delete_event(self, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._live_event(event_id)
            if event is not None:
                event.delete_requested_at = None
            return event

    def delete_event(self, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._events.get(event_id)
            if event is not None:
                event.is_deleted = True
            return event

    def purge_deleted_events(self, requested_before: datetime) -> List[int]:
        cutoff = as_utc(requested_before)
        purged: List[int] = []
        with self._lock:
            for event in self._events.values():
                requested = as_utc(event.delete_requested_at)
                if not event.is_deleted and requested is not None and requested <= cutoff:
                    event.is_deleted = True
                    purged.append(event.id)
        return purged

    def update_user_preferences(
        self, user_id: int, preferences: UserPreferences
    ) -> Optional[UserPreferences]:
        with self._lock:
            user = self.get_user(user_id)
            if user is None:
                return None
            user.preferences = _prefs_to_json(preferences)
            return _prefs_from_json(user.preferences)

    def _find_like(self, user_id: int, event_id: int) -> Optional[int]:
        for key, l in self._likes.items():
            if l.user_id == user_id and l.event_id == event_id:
                return key
        return None

    def _find_saved(self, user_id: int, event_id: int) -> Optional[int]:
        for key, s in self._saved.items():
            if s.user_id == user_id and s.event_id == event_id:
                return key
        return None

    def like_event(self, user_id: int, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                return None
            if self._find_like(user_id, event_id) is None:
                like_id = self._next_id("like")
                self._likes[like_id] = EventLike(id=like_id, user_id=user_id, event_id=event_id)
                event.like_count = (event.like_count or 0) + 1
            return event

    def unlike_event(self, user_id: int, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                return None
            key = self._find_like(user_id, event_id)
            if key is not None:
                del self._likes[key]
                event.like_count = max(0, (event.like_count or 0) - 1)
            return event

    def save_event(self, user_id: int, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                return None
            if self._find_saved(user_id, event_id) is None:
                saved_id = self._next_id("saved")
                self._saved[saved_id] = SavedEvent(id=saved_id, user_id=user_id, event_id=event_id)
                event.save_count = (event.save_count or 0) + 1
            return event

    def unsave_event(self, user_id: int, event_id: int) -> Optional[Event]:
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                return None
            key = self._find_saved(user_id, event_id)
            if key is not None:
                del self._saved[key]
                event.save_count = max(0, (event.save_count or 0) - 1)
            return event

    def create_booking(self, booking: Booking) -> Optional[Booking]:
        with self._lock:
            event = self._events.get(booking.event_id)
            if event is None:
                return None
            booking.id = self._next_id("booking")
            self._bookings[booking.id] = booking
            if booking.status == CONFIRMED:
                event.attendee_count = (event.attendee_count or 0) + booking.number_of_tickets
            return booking

    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None:
                return None
            delta = _attendee_delta(booking, booking.status, status)
            booking.status = status
            event = self._events.get(booking.event_id)
            if event is not None and delta:
                event.attendee_count = max(0, (event.attendee_count or 0) + delta)
            return booking

    def follow_user(self, follower_id: int, followed_id: int) -> Optional[Follower]:
        with self._lock:
            if self.get_user(followed_id) is None:
                return None
            for f in self._followers.values():
                if f.follower_id == follower_id and f.followed_id == followed_id:
                    return f
            fid = self._next_id("follower")
            f = Follower(id=fid, follower_id=follower_id, followed_id=followed_id)
            self._followers[fid] = f
            return f

    def unfollow_user(self, follower_id: int, followed_id: int) -> bool:
        with self._lock:
            for key, f in list(self._followers.items()):
                if f.follower_id == follower_id and f.followed_id == followed_id:
                    del self._followers[key]
                    return True
            return False


# ---------- SQL ----------


class SqlEventStore:
    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        self._engine = engine or init_db(url)

    def _run(self, fn):
        try:
            with session_scope(self._engine) as session:
                return fn(session)
        except SQLAlchemyError as exc:
            logger.exception("event store query failed")
            raise StoreError(str(exc)) from exc

    # ---- reads ----

    def get_event(self, event_id: int) -> Optional[Event]:
        return self._run(lambda s: s.get(Event, event_id))

    def get_public_events(self) -> List[Event]:
        stmt = select(Event).where(Event.is_public == True, Event.is_deleted == False)  # noqa: E712
        return self._run(lambda s: list(s.exec(stmt).all()))

    def get_public_future_events(self, now: Optional[datetime] = None) -> List[Event]:
        now = as_utc(now) if now is not None else utcnow()
        # timezone handling differs per dialect; compare in Python
        return [e for e in self.get_public_events() if as_utc(e.start_date) > now]

    def get_events_by_ids(self, ids: Iterable[int]) -> List[Event]:
        ids = list(ids)
        if not ids:
            return []
        stmt = select(Event).where(col(Event.id).in_(ids))
        return self._run(lambda s: list(s.exec(stmt).all()))

    def get_events_by_category(self, category_id: int) -> List[Event]:
        return [e for e in self.get_public_events() if e.category_id == category_id]

    def get_categories(self) -> List[Category]:
        return self._run(lambda s: list(s.exec(select(Category)).all()))

    def get_user(self, user_id: int) -> Optional[User]:
        user = self._run(lambda s: s.get(User, user_id))
        if user is None or user.is_deleted:
            return None
        return user

    def get_user_preferences(self, user_id: int) -> Optional[UserPreferences]:
        user = self.get_user(user_id)
        return _prefs_from_json(user.preferences) if user else None

    def get_liked_event_ids(self, user_id: int) -> List[int]:
        stmt = select(EventLike.event_id).where(EventLike.user_id == user_id)
        return self._run(lambda s: list(s.exec(stmt).all()))

    def get_saved_event_ids(self, user_id: int) -> List[int]:
        stmt = select(SavedEvent.event_id).where(SavedEvent.user_id == user_id)
        return self._run(lambda s: list(s.exec(stmt).all()))

    def get_liked_events(self, user_id: int) -> List[Event]:
        return self.get_events_by_ids(self.get_liked_event_ids(user_id))

    def get_saved_events(self, user_id: int) -> List[Event]:
        return self.get_events_by_ids(self.get_saved_event_ids(user_id))

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self._run(lambda s: s.get(Booking, booking_id))

    def get_bookings(self, user_id: int) -> List[Booking]:
        stmt = select(Booking).where(Booking.user_id == user_id)
        return self._run(lambda s: list(s.exec(stmt).all()))

    def get_bookings_for_user(self, user_id: int) -> List[BookingRecord]:
        return [
            BookingRecord(event_id=b.event_id, status=b.status)
            for b in self.get_bookings(user_id)
        ]

    def get_followed_user_ids(self, user_id: int) -> List[int]:
        stmt = select(Follower.followed_id).where(Follower.follower_id == user_id)
        return self._run(lambda s: list(s.exec(stmt).all()))

    # ---- writes ----

    def _add(self, obj):
        def op(s):
            s.add(obj)
            s.flush()
            s.refresh(obj)
            return obj

        return self._run(op)

    def create_user(self, user: User) -> User:
        return self._add(user)

    def create_category(self, category: Category) -> Category:
        return self._add(category)

    def create_event(self, event: Event) -> Event:
        return self._add(event)

    def _update_event(self, event_id: int, change, *, live_only: bool = True) -> Optional[Event]:
        def op(s):
            event = s.get(Event, event_id)
            if event is None or (live_only and event.is_deleted):
                return None
            change(event)
            s.add(event)
            s.flush()
            s.refresh(event)
            return event

        return self._run(op)

    def request_delete_event(self, event_id: int, at: Optional[datetime] = None) -> Optional[Event]:
        when = as_utc(at) if at is not None else utcnow()
        return self._update_event(
            event_id, lambda e: setattr(e, "delete_requested_at", when)
        )

    def cancel_delete_event(self, event_id: int) -> Optional[Event]:
        return self._update_event(
            event_id, lambda e: setattr(e, "delete_requested_at", None)
        )

    def delete_event(self, event_id: int) -> Optional[Event]:
        return self._update_event(
            event_id, lambda e: setattr(e, "is_deleted", True), live_only=False
        )

    def purge_deleted_events(self, requested_before: datetime) -> List[int]:
        cutoff = as_utc(requested_before)

        def op(s):
            pending = s.exec(
                select(Event).where(
                    Event.is_deleted == False,  # noqa: E712
                    col(Event.delete_requested_at).is_not(None),
                )
            ).all()
            purged = []
            for event in pending:
                if as_utc(event.delete_requested_at) <= cutoff:
                    event.is_deleted = True
                    s.add(event)
                    purged.append(event.id)
            return purged

        return self._run(op)

    def update_user_preferences(
        self, user_id: int, preferences: UserPreferences
    ) -> Optional[UserPreferences]:
        def op(s):
            user = s.get(User, user_id)
            if user is None or user.is_deleted:
                return None
            user.preferences = _prefs_to_json(preferences)
            s.add(user)
            return _prefs_from_json(user.preferences)

        return self._run(op)

    def _toggle(self, link_cls, counter: str, user_id: int, event_id: int, on: bool):
        def op(s):
            event = s.get(Event, event_id)
            if event is None:
                return None
            existing = s.exec(
                select(link_cls).where(
                    link_cls.user_id == user_id, link_cls.event_id == event_id
                )
            ).first()
            current = getattr(event, counter) or 0
            if on and existing is None:
                s.add(link_cls(user_id=user_id, event_id=event_id))
                setattr(event, counter, current + 1)
            elif not on and existing is not None:
                s.delete(existing)
                setattr(event, counter, max(0, current - 1))
            s.add(event)
            s.flush()
            s.refresh(event)
            return event

        return self._run(op)

    def like_event(self, user_id: int, event_id: int) -> Optional[Event]:
        return self._toggle(EventLike, "like_count", user_id, event_id, True)

    def unlike_event(self, user_id: int, event_id: int) -> Optional[Event]:
        return self._toggle(EventLike, "like_count", user_id, event_id, False)

    def save_event(self, user_id: int, event_id: int) -> Optional[Event]:
        return self._toggle(SavedEvent, "save_count", user_id, event_id, True)

    def unsave_event(self, user_id: int, event_id: int) -> Optional[Event]:
        return self._toggle(SavedEvent, "save_count", user_id, event_id, False)

    def create_booking(self, booking: Booking) -> Optional[Booking]:
        def op(s):
            event = s.get(Event, booking.event_id)
            if event is None:
                return None
            s.add(booking)
            if booking.status == CONFIRMED:
                event.attendee_count = (event.attendee_count or 0) + booking.number_of_tickets
                s.add(event)
            s.flush()
            s.refresh(booking)
            return booking

        return self._run(op)

    def update_booking_status(self, booking_id: int, status: str) -> Optional[Booking]:
        def op(s):
            booking = s.get(Booking, booking_id)
            if booking is None:
                return None
            delta = _attendee_delta(booking, booking.status, status)
            booking.status = status
            s.add(booking)
            event = s.get(Event, booking.event_id)
            if event is not None and delta:
                event.attendee_count = max(0, (event.attendee_count or 0) + delta)
                s.add(event)
            s.flush()
            s.refresh(booking)
            return booking

        return self._run(op)

    def follow_user(self, follower_id: int, followed_id: int) -> Optional[Follower]:
        def op(s):
            target = s.get(User, followed_id)
            if target is None or target.is_deleted:
                return None
            existing = s.exec(
                select(Follower).where(
                    Follower.follower_id == follower_id,
                    Follower.followed_id == followed_id,
                )
            ).first()
            if existing is not None:
                return existing
            f = Follower(follower_id=follower_id, followed_id=followed_id)
            s.add(f)
            s.flush()
            s.refresh(f)
            return f

        return self._run(op)

    def unfollow_user(self, follower_id: int, followed_id: int) -> bool:
        def op(s):
            existing = s.exec(
                select(Follower).where(
                    Follower.follower_id == follower_id,
                    Follower.followed_id == followed_id,
                )
            ).first()
            if existing is None:
                return False
            s.delete(existing)
            return True

        return self._run(op)


# ---------- Selection ----------

_STORE: Optional[EventStore] = None
_STORE_LOCK = threading.Lock()


def build_store(backend: Optional[str] = None, url: Optional[str] = None) -> EventStore:
    backend = (backend or settings.storage_backend).strip().lower()
    if backend == "memory":
        return MemoryEventStore()
    if backend == "sql":
        return SqlEventStore(url=url)
    raise ValueError(f"unknown storage backend: {backend!r}")


def get_store() -> EventStore:
    """FastAPI dependency: the shared store, created and seeded on first use."""
    global _STORE
    if _STORE is None:
        with _STORE_LOCK:
            if _STORE is None:
                store = build_store()
                if settings.seed_demo_data:
                    from services.seed import seed_if_empty

                    seed_if_empty(store)
                _STORE = store
                logger.info("event store ready backend=%s", settings.storage_backend)
    return _STORE
