"""
Service package marker.

Intentionally empty to avoid heavy imports at package import time.
Import the concrete modules directly, e.g.:

    from services.search import filter_events
    from services.recommend import recommend, recommend_for_user
    from services.store import get_store, MemoryEventStore, SqlEventStore
"""
__all__: list[str] = []
