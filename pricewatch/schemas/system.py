from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class HealthCheckResponse(BaseModel):
    status: str
    now: datetime
    uptime_seconds: float
    db_ok: bool
    extra: Optional[Dict[str, Any]] = None


class SchedulerStats(BaseModel):
    running: bool
    interval_seconds: float
    ticks: int
    completed: int
    failed: int
    skipped: int
    last_completed_at: Optional[datetime] = None


class SystemMetricsResponse(BaseModel):
    uptime_seconds: float
    now: datetime

    # middleware counters
    requests_count: int
    avg_response_ms: Optional[float] = None

    # DB metrics
    samples_last_24h: int
    active_alerts: int
    triggered_alerts: int

    scheduler: Optional[SchedulerStats] = None
