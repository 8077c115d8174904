import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# must run before config is imported anywhere
_TMP = Path(tempfile.mkdtemp(prefix="lorgx-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["PURGE_INTERVAL_SECONDS"] = "0"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from models import Event  # noqa: E402
from services.store import MemoryEventStore, get_store  # noqa: E402

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_event(id=None, *, days=1, **kw) -> Event:
    """Event starting ``days`` after NOW; keyword overrides any column."""
    kw.setdefault("title", f"Event {id}")
    kw.setdefault("start_date", NOW + timedelta(days=days))
    return Event(id=id, **kw)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return MemoryEventStore()


@pytest.fixture
def client(store):
    from main import app

    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sql_url(tmp_path):
    return f"sqlite:///{tmp_path / 'store.db'}"
