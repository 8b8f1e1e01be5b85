import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Collects in-process request metrics on app.state.metrics:
      - total requests
      - total response time (ms)
    NOTE: do NOT touch app.state in __init__; it may not exist yet while the middleware stack builds.
    """

    def __init__(self, app, dispatch: Callable = None):
        super().__init__(app, dispatch=dispatch)

    async def dispatch(self, request: Request, call_next):
        metrics = getattr(request.app.state, "metrics", None)
        if metrics is None:
            # lifespan not run (e.g. bare TestClient without context manager)
            metrics = request.app.state.metrics = {"requests": 0, "total_response_ms": 0.0}

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        # single-process counters
        metrics["requests"] = metrics.get("requests", 0) + 1
        metrics["total_response_ms"] = metrics.get("total_response_ms", 0.0) + elapsed_ms

        return response
