from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Set

from models import Event
from schemas import InteractionHistory, LocationPreference, UserPreferences
from services.normalize import as_utc, utcnow
from services.search import is_visible

if TYPE_CHECKING:
    from services.store import EventStore

logger = logging.getLogger(__name__)

# additive weights
DECLARED_CATEGORY = 10.0
INTERACTION_CATEGORY = 8.0
NEARBY_LOCATION = 5.0
PER_LIKE = 0.5
PER_ATTENDEE = 0.3
VIRTUAL_AFFINITY = 3.0
FOLLOWED_CREATOR = 7.0

DEFAULT_LIMIT = 10
LOCATION_PREFIX_LENGTH = 4


def is_candidate(event: Event, now: datetime) -> bool:
    if not is_visible(event):
        return False
    start = as_utc(event.start_date)
    return start is not None and start > now


def interaction_categories(history: InteractionHistory) -> Set[int]:
    """Categories of every liked, saved or booked event (any booking status)."""
    ids: List[int] = list(history.liked_event_ids) + list(history.saved_event_ids)
    ids.extend(b.event_id for b in history.bookings)
    cats: Set[int] = set()
    for eid in ids:
        ev = history.events.get(eid)
        if ev is not None and ev.category_id is not None:
            cats.add(ev.category_id)
    return cats


def has_virtual_booking(history: InteractionHistory) -> bool:
    for b in history.bookings:
        ev = history.events.get(b.event_id)
        if ev is not None and ev.is_virtual:
            return True
    return False


def _prefix(value: Optional[str], n: int) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    return value[:n] if value else None


def matches_location(
    event: Event,
    locations: Iterable[LocationPreference],
    prefix_length: int = LOCATION_PREFIX_LENGTH,
) -> bool:
    """
    Coarse proximity: the leading ``prefix_length`` characters of both the
    latitude and longitude strings must be equal. No distance is computed.
    """
    lat = _prefix(event.latitude, prefix_length)
    lon = _prefix(event.longitude, prefix_length)
    if lat is None or lon is None:
        return False
    for loc in locations:
        if (
            _prefix(loc.latitude, prefix_length) == lat
            and _prefix(loc.longitude, prefix_length) == lon
        ):
            return True
    return False


def score_event(
    event: Event,
    preferences: UserPreferences,
    *,
    interaction_cats: Set[int],
    followed_user_ids: Set[int],
    virtual_affinity: bool,
    location_prefix_length: int = LOCATION_PREFIX_LENGTH,
) -> float:
    score = 0.0

    if event.category_id is not None:
        if event.category_id in preferences.categories:
            score += DECLARED_CATEGORY
        if event.category_id in interaction_cats:
            score += INTERACTION_CATEGORY

    if not event.is_virtual and preferences.locations:
        if matches_location(event, preferences.locations, location_prefix_length):
            score += NEARBY_LOCATION

    score += (event.like_count or 0) * PER_LIKE
    score += (event.attendee_count or 0) * PER_ATTENDEE

    if event.is_virtual and virtual_affinity:
        score += VIRTUAL_AFFINITY

    if event.created_by_id is not None and event.created_by_id in followed_user_ids:
        score += FOLLOWED_CREATOR

    return score


def recommend(
    user_id: int,
    preferences: Optional[UserPreferences],
    history: Optional[InteractionHistory],
    candidate_events: Sequence[Event],
    limit: int = DEFAULT_LIMIT,
    *,
    now: Optional[datetime] = None,
    location_prefix_length: int = LOCATION_PREFIX_LENGTH,
) -> List[Event]:
    now = as_utc(now) if now is not None else utcnow()
    candidates = [e for e in candidate_events if is_candidate(e, now)]

    if preferences is None:
        logger.debug("user=%s has no preferences, popularity fallback", user_id)
        ranked = sorted(candidates, key=lambda e: e.like_count or 0, reverse=True)
        return ranked[:limit]

    history = history or InteractionHistory()
    cats = interaction_categories(history)
    followed = set(history.followed_user_ids)
    virtual_affinity = has_virtual_booking(history)

    scored = [
        (
            score_event(
                e,
                preferences,
                interaction_cats=cats,
                followed_user_ids=followed,
                virtual_affinity=virtual_affinity,
                location_prefix_length=location_prefix_length,
            ),
            e,
        )
        for e in candidates
    ]
    # stable: equal scores keep candidate order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    out = [e for _, e in scored[:limit]]
    logger.debug(
        "user=%s candidates=%d returned=%d", user_id, len(candidates), len(out)
    )
    return out


def recommend_for_user(
    store: "EventStore",
    user_id: int,
    limit: int = DEFAULT_LIMIT,
    *,
    now: Optional[datetime] = None,
    location_prefix_length: int = LOCATION_PREFIX_LENGTH,
) -> List[Event]:
    """
    Pull everything the scorer needs from the store, then rank. Store errors
    are not caught here.
    """
    now = as_utc(now) if now is not None else utcnow()
    candidates = store.get_public_future_events(now=now)
    preferences = store.get_user_preferences(user_id)

    liked = store.get_liked_event_ids(user_id)
    saved = store.get_saved_event_ids(user_id)
    bookings = store.get_bookings_for_user(user_id)
    followed = store.get_followed_user_ids(user_id)

    wanted = set(liked) | set(saved) | {b.event_id for b in bookings}
    events = {e.id: e for e in store.get_events_by_ids(wanted)} if wanted else {}

    history = InteractionHistory(
        liked_event_ids=liked,
        saved_event_ids=saved,
        bookings=bookings,
        followed_user_ids=followed,
        events=events,
    )
    return recommend(
        user_id,
        preferences,
        history,
        candidates,
        limit,
        now=now,
        location_prefix_length=location_prefix_length,
    )
