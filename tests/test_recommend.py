from datetime import timedelta

import pytest

from conftest import NOW, make_event
from models import Booking, Event, User
from schemas import BookingRecord, InteractionHistory, LocationPreference, UserPreferences
from services.recommend import (
    interaction_categories,
    matches_location,
    recommend,
    recommend_for_user,
    score_event,
)


def _ids(events):
    return [e.id for e in events]


def _score(event, prefs, history=None):
    history = history or InteractionHistory()
    return score_event(
        event,
        prefs,
        interaction_cats=interaction_categories(history),
        followed_user_ids=set(history.followed_user_ids),
        virtual_affinity=any(
            history.events.get(b.event_id) is not None
            and history.events[b.event_id].is_virtual
            for b in history.bookings
        ),
    )


def test_concrete_scenario():
    a = make_event(1, category_id=1, is_virtual=True, like_count=10, attendee_count=5)
    b = make_event(2, category_id=2, like_count=100, attendee_count=50)
    prefs = UserPreferences(categories=[1])

    assert _score(a, prefs) == pytest.approx(16.5)
    assert _score(b, prefs) == pytest.approx(65.0)
    assert _ids(recommend(7, prefs, InteractionHistory(), [a, b], now=NOW)) == [2, 1]


def test_no_preferences_falls_back_to_popularity():
    events = [make_event(i, like_count=likes) for i, likes in [(1, 5), (2, 50), (3, 20), (4, 1)]]
    out = recommend(7, None, InteractionHistory(), events, limit=3, now=NOW)
    assert _ids(out) == [2, 3, 1]


def test_fallback_ignores_interactions():
    fav = make_event(1, category_id=9, like_count=1)
    pop = make_event(2, like_count=3)
    history = InteractionHistory(liked_event_ids=[1], events={1: fav})
    assert _ids(recommend(7, None, history, [fav, pop], now=NOW)) == [2, 1]


def test_empty_preferences_still_scores():
    followed = make_event(1, created_by_id=42, like_count=0)
    popular = make_event(2, like_count=10)
    history = InteractionHistory(followed_user_ids=[42])
    out = recommend(7, UserPreferences(), history, [popular, followed], now=NOW)
    assert _ids(out) == [1, 2]


def test_declared_category_adds_exactly_ten():
    e = make_event(1, category_id=3, like_count=4, attendee_count=10)
    before = _score(e, UserPreferences())
    after = _score(e, UserPreferences(categories=[3]))
    assert after - before == pytest.approx(10.0)


def test_interaction_categories_from_likes_saves_and_any_booking():
    past = {
        1: make_event(1, days=-30, category_id=11),
        2: make_event(2, days=-20, category_id=12),
        3: make_event(3, days=-10, category_id=13),
        4: make_event(4, days=-5, category_id=None),
    }
    history = InteractionHistory(
        liked_event_ids=[1],
        saved_event_ids=[2, 4],
        bookings=[BookingRecord(event_id=3, status="cancelled")],
        events=past,
    )
    assert interaction_categories(history) == {11, 12, 13}


def test_interaction_category_adds_eight():
    liked = make_event(1, days=-3, category_id=5)
    cand = make_event(2, category_id=5)
    history = InteractionHistory(liked_event_ids=[1], events={1: liked})
    assert _score(cand, UserPreferences(), history) == pytest.approx(8.0)


def test_declared_and_interaction_category_stack():
    liked = make_event(1, days=-3, category_id=5)
    cand = make_event(2, category_id=5)
    history = InteractionHistory(liked_event_ids=[1], events={1: liked})
    assert _score(cand, UserPreferences(categories=[5]), history) == pytest.approx(18.0)


def test_location_prefix_match_for_physical_events_only():
    prefs = UserPreferences(
        locations=[LocationPreference(name="Lagos", latitude="6.5244", longitude="3.3792")]
    )
    near = make_event(1, latitude="6.5210", longitude="3.3755")
    far = make_event(2, latitude="6.4488", longitude="3.3958")
    online = make_event(3, latitude="6.5244", longitude="3.3792", is_virtual=True)
    no_coords = make_event(4)

    assert _score(near, prefs) == pytest.approx(5.0)
    assert _score(far, prefs) == 0
    assert _score(online, prefs) == 0
    assert _score(no_coords, prefs) == 0


def test_location_prefix_length_is_configurable():
    loc = [LocationPreference(name="x", latitude="40.7128", longitude="-74.0060")]
    event = make_event(1, latitude="40.7300", longitude="-74.0100")
    assert matches_location(event, loc, prefix_length=4)
    assert not matches_location(event, loc, prefix_length=5)


def test_virtual_bonus_needs_a_virtual_booking():
    booked = make_event(1, days=-2, is_virtual=True)
    cand = make_event(2, is_virtual=True)
    with_booking = InteractionHistory(
        bookings=[BookingRecord(event_id=1, status="confirmed")], events={1: booked}
    )
    assert _score(cand, UserPreferences(), with_booking) == pytest.approx(3.0)
    assert _score(cand, UserPreferences()) == 0

    physical = make_event(3)
    assert _score(physical, UserPreferences(), with_booking) == 0


def test_followed_creator_adds_seven():
    cand = make_event(1, created_by_id=99)
    history = InteractionHistory(followed_user_ids=[99])
    assert _score(cand, UserPreferences(), history) == pytest.approx(7.0)


def test_past_events_are_never_recommended():
    past = make_event(1, days=-1, category_id=1, like_count=10_000)
    future = make_event(2, days=1)
    prefs = UserPreferences(categories=[1])
    assert _ids(recommend(7, prefs, InteractionHistory(), [past, future], now=NOW)) == [2]
    assert _ids(recommend(7, None, InteractionHistory(), [past, future], now=NOW)) == [2]


def test_event_starting_now_is_not_future():
    assert recommend(7, None, None, [make_event(1, start_date=NOW)], now=NOW) == []


@pytest.mark.parametrize("prefs", [None, UserPreferences(categories=[1])])
def test_private_and_deleted_are_never_recommended(prefs):
    events = [
        make_event(1, category_id=1, like_count=500, is_public=False),
        make_event(2, category_id=1, like_count=500, is_deleted=True),
        make_event(3, like_count=1),
    ]
    assert _ids(recommend(7, prefs, InteractionHistory(), events, now=NOW)) == [3]


def test_ties_keep_candidate_order():
    events = [make_event(i, like_count=2) for i in (5, 3, 4)]
    out = recommend(7, UserPreferences(), InteractionHistory(), events, now=NOW)
    assert _ids(out) == [5, 3, 4]


def test_limit_truncates():
    events = [make_event(i, like_count=i) for i in range(1, 21)]
    out = recommend(7, UserPreferences(), InteractionHistory(), events, now=NOW)
    assert len(out) == 10
    assert _ids(out)[0] == 20
    assert len(recommend(7, UserPreferences(), None, events, limit=3, now=NOW)) == 3


# ---------- recommend_for_user ----------


def _seeded(store):
    me = store.create_user(User(username="me"))
    host = store.create_user(User(username="host"))
    past_virtual = store.create_event(make_event(days=-10, category_id=4, is_virtual=True))
    online = store.create_event(make_event(days=3, is_virtual=True))
    hosted = store.create_event(make_event(days=4, created_by_id=host.id))
    music = store.create_event(make_event(days=5, category_id=4))
    plain = store.create_event(make_event(days=6, like_count=2))
    return me, host, past_virtual, online, hosted, music, plain


def test_recommend_for_user_uses_store_history(store):
    me, host, past_virtual, online, hosted, music, plain = _seeded(store)
    store.update_user_preferences(me.id, UserPreferences())
    store.create_booking(Booking(event_id=past_virtual.id, user_id=me.id))
    store.follow_user(me.id, host.id)

    out = recommend_for_user(store, me.id, now=NOW)
    # music: +8 (booked category); hosted: +7 (followed); online: +3; plain: 2*0.5
    assert _ids(out) == [music.id, hosted.id, online.id, plain.id]


def test_recommend_for_user_without_preferences(store):
    me, *_ = _seeded(store)
    out = recommend_for_user(store, me.id, limit=1, now=NOW)
    assert len(out) == 1
    assert out[0].like_count == 2


class _BrokenStore:
    def get_public_future_events(self, now=None):
        raise ConnectionError("store unreachable")


def test_recommend_for_user_propagates_store_failures():
    with pytest.raises(ConnectionError):
        recommend_for_user(_BrokenStore(), 1, now=NOW)
