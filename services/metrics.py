from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import case, func
from sqlmodel import Session, select

from db import get_engine, init_db
from models import HttpMetric


def init_metrics_tables() -> None:
    init_db()


def log_http(route: str, method: str, status: int, duration_ms: int) -> None:
    with Session(get_engine()) as session:
        session.add(
            HttpMetric(
                route=route,
                method=method,
                status=int(status),
                duration_ms=int(duration_ms),
            )
        )
        session.commit()


def _status_buckets():
    s = HttpMetric.status
    return (
        func.sum(case((s.between(200, 299), 1), else_=0)).label("s2xx"),
        func.sum(case((s.between(400, 499), 1), else_=0)).label("s4xx"),
        func.sum(case((s >= 500, 1), else_=0)).label("s5xx"),
    )


def summary_http(limit_routes: int = 50) -> Dict[str, Any]:
    """
    Returns aggregate per-route metrics + totals.
    """
    requests = func.count(HttpMetric.id).label("requests")
    avg_ms = func.avg(HttpMetric.duration_ms).label("avg_ms")

    with Session(get_engine()) as session:
        totals = session.exec(select(requests, avg_ms, *_status_buckets())).one()
        rows = session.exec(
            select(HttpMetric.route, requests, avg_ms, *_status_buckets())
            .group_by(HttpMetric.route)
            .order_by(requests.desc())
            .limit(limit_routes)
        ).all()

    def _pack(r) -> Dict[str, Any]:
        return dict(
            requests=r.requests or 0,
            avg_ms=round(r.avg_ms or 0, 1),
            s2xx=r.s2xx or 0,
            s4xx=r.s4xx or 0,
            s5xx=r.s5xx or 0,
        )

    return dict(
        totals=_pack(totals),
        routes=[dict(route=r.route, **_pack(r)) for r in rows],
    )


def timeline_http(last_n: int = 300) -> List[Dict[str, Any]]:
    """
    Recent rolling window: timestamp + duration & status. Good for charts.
    """
    with Session(get_engine()) as session:
        rows = session.exec(
            select(HttpMetric).order_by(HttpMetric.id.desc()).limit(last_n)
        ).all()

    return [
        dict(
            ts=r.ts.isoformat() if r.ts else None,
            route=r.route,
            status=r.status,
            duration_ms=r.duration_ms,
        )
        for r in reversed(rows)
    ]


def snapshot() -> Dict[str, Any]:
    return {"http": summary_http(), "recent": timeline_http(last_n=50)}
