from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from models import Booking, Event
from routers.auth import get_current_user_id
from routers.errors import call_store
from schemas import BookingCreate, BookingOut, BookingStatusUpdate, EventOut
from services.search import filter_events, is_visible
from services.store import EventStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["interactions"])

BOOKING_STATUSES = ("confirmed", "pending", "cancelled")


def _visible_event(store: EventStore, event_id: int) -> Event:
    event = call_store("events.get", store.get_event, event_id)
    if event is None or not is_visible(event):
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _counts(event: Optional[Event]) -> Dict[str, Any]:
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return {
        "ok": True,
        "eventId": event.id,
        "likeCount": event.like_count,
        "saveCount": event.save_count,
    }


# ---------- Likes & saves ----------


@router.post("/events/{event_id}/like")
def like(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    _visible_event(store, event_id)
    return _counts(call_store("events.like", store.like_event, user_id, event_id))


@router.delete("/events/{event_id}/like")
def unlike(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    return _counts(call_store("events.unlike", store.unlike_event, user_id, event_id))


@router.post("/events/{event_id}/save")
def save(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    _visible_event(store, event_id)
    return _counts(call_store("events.save", store.save_event, user_id, event_id))


@router.delete("/events/{event_id}/save")
def unsave(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    return _counts(call_store("events.unsave", store.unsave_event, user_id, event_id))


@router.get("/user/liked-events", response_model=List[EventOut])
def liked_events(
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> List[EventOut]:
    events = call_store("user.liked_events", store.get_liked_events, user_id)
    return [EventOut.model_validate(e) for e in filter_events(events)]


@router.get("/user/saved-events", response_model=List[EventOut])
def saved_events(
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> List[EventOut]:
    events = call_store("user.saved_events", store.get_saved_events, user_id)
    return [EventOut.model_validate(e) for e in filter_events(events)]


# ---------- Bookings ----------


@router.post("/events/{event_id}/bookings", response_model=BookingOut, status_code=201)
def book(
    event_id: int,
    body: Optional[BookingCreate] = None,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> BookingOut:
    _visible_event(store, event_id)
    body = body or BookingCreate()
    booking = call_store(
        "bookings.create",
        store.create_booking,
        Booking(
            event_id=event_id,
            user_id=user_id,
            number_of_tickets=body.number_of_tickets,
            status=body.status,
        ),
    )
    if booking is None:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("booking id=%s event=%s user=%s", booking.id, event_id, user_id)
    return BookingOut.model_validate(booking)


@router.get("/bookings/user", response_model=List[BookingOut])
def my_bookings(
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> List[BookingOut]:
    bookings = call_store("bookings.list", store.get_bookings, user_id)
    return [BookingOut.model_validate(b) for b in bookings]


@router.post("/bookings/{booking_id}/status", response_model=BookingOut)
def update_booking_status(
    booking_id: int,
    body: BookingStatusUpdate,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> BookingOut:
    """
    Move a booking between confirmed, pending and cancelled. The attendee
    count of the event follows tickets into and out of ``confirmed``.
    Allowed for the booker and for the event's creator.
    """
    if body.status not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    booking = call_store("bookings.get", store.get_booking, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.user_id != user_id:
        event = call_store("events.get", store.get_event, booking.event_id)
        if event is None or event.created_by_id != user_id:
            raise HTTPException(status_code=403, detail="Not authorized to modify this booking")

    updated = call_store("bookings.status", store.update_booking_status, booking_id, body.status)
    if updated is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    logger.info("booking id=%s status=%s by user=%s", booking_id, body.status, user_id)
    return BookingOut.model_validate(updated)


# ---------- Follows ----------


@router.post("/users/{followed_id}/follow")
def follow(
    followed_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    if followed_id == user_id:
        raise HTTPException(status_code=400, detail="Cannot follow yourself")
    f = call_store("users.follow", store.follow_user, user_id, followed_id)
    if f is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"ok": True, "followerId": f.follower_id, "followedId": f.followed_id}


@router.delete("/follow/{followed_id}", status_code=204)
def unfollow(
    followed_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Response:
    if not call_store("users.unfollow", store.unfollow_user, user_id, followed_id):
        raise HTTPException(status_code=404, detail="Not following this user")
    return Response(status_code=204)
