from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from config import settings

_ENGINES: dict[str, Engine] = {}


def get_engine(url: Optional[str] = None) -> Engine:
    url = url or settings.database_url
    engine = _ENGINES.get(url)
    if engine is None:
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        engine = create_engine(url, connect_args=connect_args)
        _ENGINES[url] = engine
    return engine


def init_db(url: Optional[str] = None) -> Engine:
    url = url or settings.database_url
    if url.startswith("sqlite:///"):
        Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(url)
    # table classes register on SQLModel.metadata at import time
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    return engine


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
