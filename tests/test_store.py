import threading
from datetime import timedelta

import pytest

from conftest import NOW, make_event
from models import Booking, Category, User
from schemas import LocationPreference, UserPreferences
from services.store import MemoryEventStore, SqlEventStore, StoreError, build_store


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_url):
    if request.param == "memory":
        return MemoryEventStore()
    return SqlEventStore(url=sql_url)


def test_public_and_future_views(any_store):
    s = any_store
    past = s.create_event(make_event(days=-1))
    soon = s.create_event(make_event(days=1))
    hidden = s.create_event(make_event(days=2, is_public=False))
    gone = s.create_event(make_event(days=3, is_deleted=True))

    public_ids = {e.id for e in s.get_public_events()}
    assert public_ids == {past.id, soon.id}
    assert hidden.id not in public_ids and gone.id not in public_ids
    assert [e.id for e in s.get_public_future_events(now=NOW)] == [soon.id]


def test_events_by_ids_and_category(any_store):
    s = any_store
    a = s.create_event(make_event(category_id=1))
    b = s.create_event(make_event(category_id=2))
    s.create_event(make_event(category_id=1, is_deleted=True))

    assert {e.id for e in s.get_events_by_ids([a.id, b.id, 999])} == {a.id, b.id}
    assert [e.id for e in s.get_events_by_category(1)] == [a.id]
    assert s.get_events_by_ids([]) == []


def test_preferences_round_trip(any_store):
    s = any_store
    user = s.create_user(User(username="ada"))
    assert s.get_user_preferences(user.id) is None

    prefs = UserPreferences(
        categories=[1, 3],
        locations=[LocationPreference(name="Home", latitude="6.52", longitude="3.37")],
    )
    saved = s.update_user_preferences(user.id, prefs)
    assert saved == prefs
    assert s.get_user_preferences(user.id) == prefs
    assert s.update_user_preferences(12345, prefs) is None


def test_like_and_save_are_idempotent_and_counted(any_store):
    s = any_store
    user = s.create_user(User(username="ada"))
    ev = s.create_event(make_event())

    s.like_event(user.id, ev.id)
    assert s.like_event(user.id, ev.id).like_count == 1
    assert s.get_liked_event_ids(user.id) == [ev.id]
    assert s.unlike_event(user.id, ev.id).like_count == 0
    assert s.unlike_event(user.id, ev.id).like_count == 0
    assert s.get_liked_event_ids(user.id) == []

    s.save_event(user.id, ev.id)
    assert s.save_event(user.id, ev.id).save_count == 1
    assert s.get_saved_event_ids(user.id) == [ev.id]
    assert s.unsave_event(user.id, ev.id).save_count == 0

    assert s.like_event(user.id, 999) is None


def test_bookings_update_attendees_only_when_confirmed(any_store):
    s = any_store
    user = s.create_user(User(username="ada"))
    ev = s.create_event(make_event())

    s.create_booking(Booking(event_id=ev.id, user_id=user.id, number_of_tickets=3))
    s.create_booking(Booking(event_id=ev.id, user_id=user.id, status="pending"))
    assert s.get_event(ev.id).attendee_count == 3
    statuses = sorted(b.status for b in s.get_bookings_for_user(user.id))
    assert statuses == ["confirmed", "pending"]
    assert s.create_booking(Booking(event_id=999, user_id=user.id)) is None


def test_follow(any_store):
    s = any_store
    a = s.create_user(User(username="a"))
    b = s.create_user(User(username="b"))
    s.follow_user(a.id, b.id)
    s.follow_user(a.id, b.id)
    assert s.get_followed_user_ids(a.id) == [b.id]
    assert s.get_followed_user_ids(b.id) == []
    assert s.follow_user(a.id, 999) is None


def test_categories(any_store):
    s = any_store
    s.create_category(Category(name="Music"))
    assert [c.name for c in s.get_categories()] == ["Music"]


def test_sql_dates_come_back_comparable(sql_url):
    s = SqlEventStore(url=sql_url)
    ev = s.create_event(make_event(days=2))
    back = s.get_event(ev.id)
    assert back.start_date.replace(tzinfo=None) == (NOW + timedelta(days=2)).replace(tzinfo=None)


def test_sql_errors_surface_as_store_error(sql_url):
    s = SqlEventStore(url=sql_url)
    s.create_category(Category(name="Music"))
    with pytest.raises(StoreError):
        s.create_category(Category(name="Music"))


def test_build_store_rejects_unknown_backend():
    assert isinstance(build_store("memory"), MemoryEventStore)
    with pytest.raises(ValueError):
        build_store("mongo")


def test_seed_only_fills_an_empty_store(any_store):
    from services.seed import seed_if_empty

    assert seed_if_empty(any_store, now=NOW) is True
    assert seed_if_empty(any_store, now=NOW) is False
    assert len(any_store.get_public_future_events(now=NOW)) == 3
    demo = next(
        uid for uid in (1, 2)
        if any_store.get_user_preferences(uid) is not None
    )
    assert any_store.get_user_preferences(demo).locations[0].name == "Lagos"


def test_memory_reads_are_safe_while_writing():
    s = MemoryEventStore()
    user = s.create_user(User(username="ada"))
    done = threading.Event()
    errors = []

    def write():
        try:
            for _ in range(2000):
                ev = s.create_event(make_event())
                s.like_event(user.id, ev.id)
                s.create_booking(Booking(event_id=ev.id, user_id=user.id))
        finally:
            done.set()

    def read():
        try:
            while not done.is_set():
                s.get_public_events()
                s.get_public_future_events(now=NOW)
                s.get_liked_event_ids(user.id)
                s.get_bookings_for_user(user.id)
        except Exception as exc:
            errors.append(exc)

    readers = [threading.Thread(target=read) for _ in range(4)]
    writer = threading.Thread(target=write)
    for t in readers:
        t.start()
    writer.start()
    writer.join()
    for t in readers:
        t.join()

    assert errors == []
    assert len(s.get_public_events()) == 2000


def test_delete_request_then_purge(any_store):
    s = any_store
    keep = s.create_event(make_event())
    cancelled = s.create_event(make_event())
    doomed = s.create_event(make_event())

    assert s.request_delete_event(doomed.id, at=NOW).delete_requested_at is not None
    s.request_delete_event(cancelled.id, at=NOW)
    assert s.cancel_delete_event(cancelled.id).delete_requested_at is None

    # still inside the grace period
    assert s.purge_deleted_events(NOW - timedelta(hours=1)) == []
    assert s.purge_deleted_events(NOW + timedelta(hours=72)) == [doomed.id]
    assert s.purge_deleted_events(NOW + timedelta(hours=72)) == []

    assert {e.id for e in s.get_public_events()} == {keep.id, cancelled.id}
    assert s.request_delete_event(doomed.id) is None
    assert s.cancel_delete_event(999) is None


def test_delete_event_is_soft(any_store):
    s = any_store
    ev = s.create_event(make_event())
    assert s.delete_event(ev.id).is_deleted is True
    assert s.get_event(ev.id) is not None
    assert s.get_public_events() == []
    assert s.delete_event(999) is None


def test_booking_status_moves_attendees(any_store):
    s = any_store
    user = s.create_user(User(username="ada"))
    ev = s.create_event(make_event())
    booking = s.create_booking(Booking(event_id=ev.id, user_id=user.id, number_of_tickets=3))
    assert s.get_event(ev.id).attendee_count == 3

    assert s.update_booking_status(booking.id, "cancelled").status == "cancelled"
    assert s.get_event(ev.id).attendee_count == 0
    s.update_booking_status(booking.id, "pending")
    assert s.get_event(ev.id).attendee_count == 0
    s.update_booking_status(booking.id, "confirmed")
    s.update_booking_status(booking.id, "confirmed")
    assert s.get_event(ev.id).attendee_count == 3

    assert s.get_booking(booking.id).status == "confirmed"
    assert [b.id for b in s.get_bookings(user.id)] == [booking.id]
    assert s.update_booking_status(999, "confirmed") is None


def test_liked_and_saved_event_listings(any_store):
    s = any_store
    user = s.create_user(User(username="ada"))
    a = s.create_event(make_event(days=1))
    b = s.create_event(make_event(days=2))
    s.like_event(user.id, a.id)
    s.save_event(user.id, b.id)

    assert [e.id for e in s.get_liked_events(user.id)] == [a.id]
    assert [e.id for e in s.get_saved_events(user.id)] == [b.id]
    assert s.get_liked_events(999) == []


def test_unfollow(any_store):
    s = any_store
    a = s.create_user(User(username="a"))
    b = s.create_user(User(username="b"))
    s.follow_user(a.id, b.id)
    assert s.unfollow_user(a.id, b.id) is True
    assert s.get_followed_user_ids(a.id) == []
    assert s.unfollow_user(a.id, b.id) is False
