from typing import Optional

from fastapi import HTTPException, Request, status

from pricewatch.services.alert_store import AlertStore
from pricewatch.services.price_source import PriceSource
from pricewatch.services.price_store import PriceStore
from pricewatch.services.scheduler_service import Scheduler


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialised",
        )
    return value


def get_price_store(request: Request) -> PriceStore:
    return _state(request, "price_store")


def get_alert_store(request: Request) -> AlertStore:
    return _state(request, "alert_store")


def get_price_source(request: Request) -> PriceSource:
    return _state(request, "price_source")


def get_scheduler(request: Request) -> Optional[Scheduler]:
    return getattr(request.app.state, "scheduler", None)
