"""
Declarative event search.

Every supplied criterion narrows the result (sequential AND); an absent
criterion, or a ``False`` flag, places no constraint on that dimension.
"""
from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from models import Event
from schemas import FilterCriteria
from services.normalize import as_utc

Predicate = Callable[[Event], bool]


def is_visible(event: Event) -> bool:
    return bool(event.is_public) and not event.is_deleted


def within_price(event: Event, max_price: float) -> bool:
    if event.is_free:
        return True
    # a priced event that never got a price can't be compared
    if event.price is None:
        return False
    return event.price <= max_price


def _text_match(needle: str) -> Predicate:
    needle = needle.lower()

    def pred(e: Event) -> bool:
        if needle in (e.title or "").lower():
            return True
        return e.description is not None and needle in e.description.lower()

    return pred


def build_predicates(criteria: FilterCriteria) -> List[Predicate]:
    preds: List[Predicate] = []

    # matched literally, whitespace included
    if criteria.query:
        preds.append(_text_match(criteria.query))

    if criteria.category_id is not None:
        cid = criteria.category_id
        preds.append(lambda e: e.category_id == cid)

    start = as_utc(criteria.start_date)
    if start is not None:
        preds.append(lambda e: as_utc(e.start_date) >= start)

    end = as_utc(criteria.end_date)
    if end is not None:
        preds.append(lambda e: as_utc(e.start_date) <= end)

    if criteria.is_free:
        preds.append(lambda e: bool(e.is_free))
    if criteria.is_virtual:
        preds.append(lambda e: bool(e.is_virtual))
    if criteria.is_hybrid:
        preds.append(lambda e: bool(e.is_hybrid))

    if criteria.max_price is not None:
        ceiling = criteria.max_price
        preds.append(lambda e: within_price(e, ceiling))

    return preds


def filter_events(
    all_events: Iterable[Event],
    criteria: Optional[FilterCriteria] = None,
    *,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Event]:
    """
    Public, non-deleted events matching every supplied criterion, soonest
    first. ``offset``/``limit`` slice the sorted list when a limit is given.
    """
    preds = build_predicates(criteria or FilterCriteria())

    matched = [
        e for e in all_events
        if is_visible(e) and all(p(e) for p in preds)
    ]
    # sorted() is stable: equal start dates keep their input order
    matched = sorted(matched, key=lambda e: as_utc(e.start_date))

    if limit is None:
        return matched[offset:] if offset else matched
    return matched[offset:offset + limit]
