from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pricewatch.database.connection import get_db
from pricewatch.dependencies.services import get_scheduler
from pricewatch.models.price_alert import PriceAlert
from pricewatch.models.token_price import TokenPrice
from pricewatch.schemas.system import HealthCheckResponse, SystemMetricsResponse
from pricewatch.services.scheduler_service import Scheduler

router = APIRouter(tags=["System"])
log = structlog.get_logger("system")


def _uptime(request: Request, now: datetime) -> float:
    start_time = getattr(request.app.state, "start_time", now)
    return (now - start_time).total_seconds()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(
    request: Request,
    db: Session = Depends(get_db),
    scheduler: Optional[Scheduler] = Depends(get_scheduler),
):
    """
    Lightweight public health check.
    Returns ok + DB connectivity check (SELECT 1).
    """
    now = datetime.now(timezone.utc)

    db_ok = True
    extra = {}
    try:
        db.execute(select(1))
    except SQLAlchemyError as e:
        db_ok = False
        extra["db_error"] = str(e)
        log.warning("health_db_check_failed", err=str(e))

    if scheduler is not None:
        extra["scheduler_running"] = scheduler.running

    return HealthCheckResponse(
        status="ok" if db_ok else "degraded",
        now=now,
        uptime_seconds=_uptime(request, now),
        db_ok=db_ok,
        extra=extra or None,
    )


@router.get("/metrics", response_model=SystemMetricsResponse)
def system_metrics(
    request: Request,
    db: Session = Depends(get_db),
    scheduler: Optional[Scheduler] = Depends(get_scheduler),
):
    """
    In-process request counters (MetricsMiddleware), scheduler counters and
    a few DB-derived numbers.
    """
    now = datetime.now(timezone.utc)

    metrics = getattr(request.app.state, "metrics", None) or {}
    requests_count = int(metrics.get("requests", 0))
    total_response_ms = float(metrics.get("total_response_ms", 0.0))
    avg_response_ms = (total_response_ms / requests_count) if requests_count > 0 else None

    samples_last_24h = (
        db.query(func.count())
        .select_from(TokenPrice)
        .filter(TokenPrice.last_update >= now - timedelta(hours=24))
        .scalar()
    ) or 0
    active_alerts = (
        db.query(func.count())
        .select_from(PriceAlert)
        .filter(PriceAlert.triggered.is_(False))
        .scalar()
    ) or 0
    triggered_alerts = (
        db.query(func.count())
        .select_from(PriceAlert)
        .filter(PriceAlert.triggered.is_(True))
        .scalar()
    ) or 0

    return SystemMetricsResponse(
        uptime_seconds=_uptime(request, now),
        now=now,
        requests_count=requests_count,
        avg_response_ms=avg_response_ms,
        samples_last_24h=int(samples_last_24h),
        active_alerts=int(active_alerts),
        triggered_alerts=int(triggered_alerts),
        scheduler=scheduler.stats() if scheduler is not None else None,
    )
