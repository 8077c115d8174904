from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import List, Optional

from config import settings
from services.normalize import utcnow
from services.store import EventStore, get_store

logger = logging.getLogger(__name__)


def purge_once(
    store: EventStore,
    now: Optional[datetime] = None,
    grace_hours: Optional[int] = None,
) -> List[int]:
    """Soft-delete every event whose delete request is older than the grace period."""
    now = now or utcnow()
    hours = settings.delete_grace_hours if grace_hours is None else grace_hours
    purged = store.purge_deleted_events(now - timedelta(hours=hours))
    if purged:
        logger.info("purged events ids=%s", purged)
    return purged


def _tick(interval: int) -> None:
    while True:
        try:
            purge_once(get_store())
        except Exception:
            logger.exception("event purge failed")
        time.sleep(interval)


def start_background_purger(interval: Optional[int] = None) -> Optional[threading.Thread]:
    interval = settings.purge_interval_seconds if interval is None else interval
    if interval <= 0:
        return None
    t = threading.Thread(target=_tick, args=(interval,), daemon=True)
    t.start()
    return t
