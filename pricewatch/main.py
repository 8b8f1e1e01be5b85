from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI
from sqlalchemy.engine import Engine

from pricewatch.core.config import settings
from pricewatch.core.logging_config import configure_logging
from pricewatch.database.connection import Base, create_db_engine, create_session_factory
from pricewatch.middleware.metrics import MetricsMiddleware
from pricewatch.models import price_alert, token_price  # noqa: F401  (register tables)
from pricewatch.routes import system
from pricewatch.routes.alerts import router as alerts_router
from pricewatch.routes.prices import router as prices_router
from pricewatch.routes.swap import router as swap_router
from pricewatch.services.alert_matcher import AlertMatcher
from pricewatch.services.alert_store import AlertStore
from pricewatch.services.change_detector import ChangeDetector
from pricewatch.services.notifier import Notifier, build_notifier
from pricewatch.services.price_source import HttpPriceSource, PriceSource
from pricewatch.services.price_store import PriceStore
from pricewatch.services.scheduler_service import PriceCycle, Scheduler

log = structlog.get_logger("pricewatch")


def create_app(
    engine: Optional[Engine] = None,
    price_source: Optional[PriceSource] = None,
    notifier: Optional[Notifier] = None,
    run_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the API. The lifespan owns every long-lived handle: DB engine,
    stores, price client, notifier and the Scheduler.
    """
    run_scheduler = settings.SCHEDULER_ENABLED if run_scheduler is None else run_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()

        db_engine = engine or create_db_engine()
        Base.metadata.create_all(bind=db_engine)
        session_factory = create_session_factory(db_engine)

        source = price_source or HttpPriceSource()
        sender = notifier or build_notifier()

        price_store = PriceStore(session_factory)
        alert_store = AlertStore(session_factory)
        cycle = PriceCycle(
            price_source=source,
            price_store=price_store,
            change_detector=ChangeDetector(price_store, sender),
            alert_matcher=AlertMatcher(alert_store, sender),
        )
        scheduler = Scheduler(cycle)

        app.state.start_time = datetime.now(timezone.utc)
        app.state.metrics = {"requests": 0, "total_response_ms": 0.0}
        app.state.session_factory = session_factory
        app.state.price_store = price_store
        app.state.alert_store = alert_store
        app.state.price_source = source
        app.state.scheduler = scheduler

        if run_scheduler:
            scheduler.start()
        log.info("startup_complete", scheduler=run_scheduler)

        try:
            yield
        finally:
            await scheduler.stop()
            if price_source is None:
                await source.aclose()
            if engine is None:
                db_engine.dispose()
            log.info("shutdown_complete")

    app = FastAPI(title="Token Price Tracker & Alerts", lifespan=lifespan)
    app.add_middleware(MetricsMiddleware)

    app.include_router(prices_router)
    app.include_router(alerts_router)
    app.include_router(swap_router)
    app.include_router(system.router)

    @app.get("/", tags=["System"])
    def index():
        return {
            "message": "Price tracker API",
            "endpoints": {
                "GET /prices/hourly": "Hourly average prices for the last 24 hours",
                "POST /alerts": "Set price alert with body: { token, target_price, email }",
                "GET /alerts/{alert_id}": "Look up an alert",
                "GET /swap-rate?amount=": "ETH -> BTC swap quote",
            },
        }

    return app


app = create_app()
