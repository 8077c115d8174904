from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from models import Category, Event, User
from schemas import LocationPreference, UserPreferences

logger = logging.getLogger(__name__)

CATEGORIES = [
    ("Music", "music"),
    ("Tech", "cpu"),
    ("Food", "utensils"),
    ("Sports", "trophy"),
]


def seed_if_empty(store, *, now: Optional[datetime] = None) -> bool:
    """
    Give a fresh store a couple of predictable users, categories and events.
    Does nothing when categories already exist.
    """
    if store.get_categories():
        return False

    start = now or datetime.now(timezone.utc)
    cats = {
        name: store.create_category(Category(name=name, icon=icon))
        for name, icon in CATEGORIES
    }

    host = store.create_user(User(username="lagos-events", display_name="Lagos Events"))
    demo = store.create_user(User(username="demo", display_name="Demo User"))
    store.update_user_preferences(
        demo.id,
        UserPreferences(
            categories=[cats["Music"].id],
            locations=[
                LocationPreference(name="Lagos", latitude="6.5244", longitude="3.3792")
            ],
        ),
    )

    store.create_event(Event(
        title="Lagos Street Food Festival",
        description="Open-air food stalls and live cooking.",
        start_date=start + timedelta(days=3, hours=18),
        category_id=cats["Food"].id,
        address="Tafawa Balewa Square",
        latitude="6.4488", longitude="3.3958",
        created_by_id=host.id,
        is_free=True,
        like_count=12, attendee_count=40,
    ))
    store.create_event(Event(
        title="Live Jazz Night",
        description="Quartet session at the old town club.",
        start_date=start + timedelta(days=7, hours=20),
        category_id=cats["Music"].id,
        address="Freedom Park",
        latitude="6.5244", longitude="3.3792",
        created_by_id=host.id,
        is_free=False, price=15.0,
        like_count=30, attendee_count=25,
    ))
    store.create_event(Event(
        title="Python Meetup (online)",
        description="Lightning talks, remote friendly.",
        start_date=start + timedelta(days=10, hours=17),
        category_id=cats["Tech"].id,
        created_by_id=host.id,
        is_free=True, is_virtual=True,
        like_count=8, attendee_count=60,
    ))
    logger.info("seeded demo data into %s", type(store).__name__)
    return True
