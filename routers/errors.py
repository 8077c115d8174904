from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from fastapi import HTTPException

logger = logging.getLogger("routers")

T = TypeVar("T")

INTERNAL_ERROR = "Internal server error"


def internal_error(op: str) -> HTTPException:
    """
    Log the active exception with its traceback and hand back a 500 whose
    detail carries nothing from it. Call from inside an ``except`` block.
    """
    logger.exception("%s failed", op)
    return HTTPException(status_code=500, detail=INTERNAL_ERROR)


def call_store(op: str, fn: Callable[..., T], *args: Any) -> T:
    """Run one store call; any failure becomes a logged 500."""
    try:
        return fn(*args)
    except Exception:
        raise internal_error(op)
