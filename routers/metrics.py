from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter

from services import metrics as _metrics_impl

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("")
def get_metrics() -> Dict[str, Any]:
    try:
        return {"ok": True, "metrics": _metrics_impl.snapshot()}
    except Exception:
        logger.exception("metrics snapshot failed")
        return {"ok": False, "error": "metrics unavailable"}
