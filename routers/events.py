from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from config import settings
from models import Event
from routers.auth import get_current_user_id
from routers.errors import internal_error
from schemas import CategoryOut, EventCreate, EventOut, FilterCriteria
from services.normalize import as_utc
from services.recommend import recommend_for_user
from services.search import filter_events, is_visible
from services.store import EventStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["events"])


def _out(events: Iterable[Event]) -> List[EventOut]:
    return [EventOut.model_validate(e) for e in events]


# ---------- Search ----------


@router.get("/search/events", response_model=List[EventOut])
def search_events(
    *,
    query: Optional[str] = Query(None, description="Substring of title or description"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    is_free: Optional[bool] = Query(None, alias="isFree"),
    is_virtual: Optional[bool] = Query(None, alias="isVirtual"),
    is_hybrid: Optional[bool] = Query(None, alias="isHybrid"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    limit: int = Query(settings.default_search_limit, ge=1, le=settings.max_search_limit),
    offset: int = Query(0, ge=0),
    store: EventStore = Depends(get_store),
) -> List[EventOut]:
    """
    Advanced search over public events.

    - Query-string values are coerced by FastAPI (bad numbers/dates → 422).
    - ``isFree=false`` and friends mean "no constraint", same as omitting them.
    - Results are soonest first, then paged with ``offset``/``limit``.
    """
    criteria = FilterCriteria(
        query=query,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        is_free=is_free,
        is_virtual=is_virtual,
        is_hybrid=is_hybrid,
        max_price=max_price,
    )
    try:
        events = filter_events(
            store.get_public_events(), criteria, limit=limit, offset=offset
        )
    except Exception:
        raise internal_error("events.search")
    return _out(events)


# ---------- Recommendations ----------


@router.get("/events/recommended", response_model=List[EventOut])
def recommended_events(
    limit: int = Query(settings.default_recommend_limit, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> List[EventOut]:
    try:
        events = recommend_for_user(
            store,
            user_id,
            limit,
            location_prefix_length=settings.location_prefix_length,
        )
    except Exception:
        raise internal_error("events.recommended")
    return _out(events)


# ---------- Listing ----------


@router.get("/events", response_model=List[EventOut])
def list_events(store: EventStore = Depends(get_store)) -> List[EventOut]:
    try:
        return _out(filter_events(store.get_public_events()))
    except Exception:
        raise internal_error("events.list")


@router.get("/events/upcoming", response_model=List[EventOut])
def upcoming_events(store: EventStore = Depends(get_store)) -> List[EventOut]:
    try:
        return _out(filter_events(store.get_public_future_events()))
    except Exception:
        raise internal_error("events.upcoming")


@router.get("/events/category/{category_id}", response_model=List[EventOut])
def events_by_category(
    category_id: int, store: EventStore = Depends(get_store)
) -> List[EventOut]:
    try:
        return _out(filter_events(store.get_events_by_category(category_id)))
    except Exception:
        raise internal_error("events.by_category")


@router.get("/events/{event_id}", response_model=EventOut)
def get_event(event_id: int, store: EventStore = Depends(get_store)) -> EventOut:
    try:
        event = store.get_event(event_id)
    except Exception:
        raise internal_error("events.get")
    if event is None or not is_visible(event):
        raise HTTPException(status_code=404, detail="Event not found")
    return EventOut.model_validate(event)


@router.post("/events", response_model=EventOut, status_code=201)
def create_event(
    body: EventCreate,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> EventOut:
    if not body.is_free and body.price is None:
        raise HTTPException(status_code=422, detail="price is required for paid events")
    if body.end_date is not None and as_utc(body.end_date) < as_utc(body.start_date):
        raise HTTPException(status_code=422, detail="endDate must not be before startDate")

    data = body.model_dump()
    data["start_date"] = as_utc(body.start_date)
    data["end_date"] = as_utc(body.end_date)
    try:
        event = store.create_event(Event(**data, created_by_id=user_id))
    except Exception:
        raise internal_error("events.create")
    logger.info("event created id=%s by user=%s", event.id, user_id)
    return EventOut.model_validate(event)


# ---------- Deletion ----------


def _own_event(store: EventStore, event_id: int, user_id: int) -> Event:
    try:
        event = store.get_event(event_id)
    except Exception:
        raise internal_error("events.get")
    if event is None or event.is_deleted:
        raise HTTPException(status_code=404, detail="Event not found")
    if event.created_by_id != user_id:
        raise HTTPException(status_code=403, detail="Not authorized to modify this event")
    return event


@router.post("/events/{event_id}/delete-request")
def request_delete(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    """
    Schedule the event for deletion after ``settings.delete_grace_hours``.
    With no grace period the event is deleted straight away.
    """
    _own_event(store, event_id, user_id)
    hours = settings.delete_grace_hours
    try:
        if hours <= 0:
            event = store.delete_event(event_id)
        else:
            event = store.request_delete_event(event_id)
    except Exception:
        raise internal_error("events.delete_request")
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("delete requested event=%s by user=%s grace_h=%s", event_id, user_id, hours)
    message = "Event deleted" if hours <= 0 else f"Event will be deleted in {hours} hours"
    return {
        "ok": True,
        "message": message,
        "event": EventOut.model_validate(event).model_dump(by_alias=True, mode="json"),
    }


@router.post("/events/{event_id}/cancel-delete")
def cancel_delete(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    _own_event(store, event_id, user_id)
    try:
        event = store.cancel_delete_event(event_id)
    except Exception:
        raise internal_error("events.cancel_delete")
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    logger.info("delete cancelled event=%s by user=%s", event_id, user_id)
    return {
        "ok": True,
        "message": "Event deletion cancelled",
        "event": EventOut.model_validate(event).model_dump(by_alias=True, mode="json"),
    }


@router.get("/categories", response_model=List[CategoryOut])
def list_categories(store: EventStore = Depends(get_store)) -> List[CategoryOut]:
    try:
        return [CategoryOut.model_validate(c) for c in store.get_categories()]
    except Exception:
        raise internal_error("categories.list")
