from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from routers.auth import get_current_user_id
from routers.errors import call_store
from schemas import UserPreferences
from services.store import EventStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/user", tags=["preferences"])


@router.get("/preferences")
def get_preferences(
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    """
    Stored preferences, or ``{}`` for a user who never set any (which also
    puts them on the popularity fallback for recommendations).
    """
    if call_store("users.get", store.get_user, user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    prefs = call_store("preferences.get", store.get_user_preferences, user_id)
    if prefs is None:
        return {}
    return prefs.model_dump(by_alias=True)


@router.put("/preferences")
def put_preferences(
    prefs: UserPreferences,
    user_id: int = Depends(get_current_user_id),
    store: EventStore = Depends(get_store),
) -> Dict[str, Any]:
    # UserPreferences has already dropped duplicate categories and locations
    saved = call_store("preferences.update", store.update_user_preferences, user_id, prefs)
    if saved is None:
        raise HTTPException(status_code=404, detail="User not found")
    logger.info(
        "preferences updated user=%s categories=%d locations=%d",
        user_id, len(saved.categories), len(saved.locations),
    )
    return saved.model_dump(by_alias=True)
