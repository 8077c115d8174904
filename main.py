from __future__ import annotations

import logging
import time as _t
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from middleware import MetricsMiddleware
from routers import (
    auth as auth_router,
    events as events_router,
    interactions as interactions_router,
    metrics as metrics_router,
    preferences as preferences_router,
)
from services.metrics import init_metrics_tables
from services.purge import start_background_purger
from services.store import get_store

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_log = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_metrics_tables()
    get_store()
    start_background_purger()
    _log.info("lorgx-events up env=%s backend=%s", settings.app_env, settings.storage_backend)
    yield


app = FastAPI(title="lorgx-events-api", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics
app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = _t.perf_counter()  # monotonic for durations
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        dur_ms = int((_t.perf_counter() - start) * 1000)
        status = getattr(response, "status_code", "-")
        _log.info(
            "path=%s status=%s dur_ms=%s ua=%s",
            request.url.path,
            status,
            dur_ms,
            request.headers.get("user-agent", "-"),
        )

# Routers
app.include_router(events_router.router)
app.include_router(preferences_router.router)
app.include_router(interactions_router.router)
app.include_router(auth_router.router)
app.include_router(metrics_router.router)


@app.get("/ping")
def ping():
    return {"ok": True, "ts": _t.time()}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/")
def root():
    return {"ok": True, "service": "lorgx-events-api"}
