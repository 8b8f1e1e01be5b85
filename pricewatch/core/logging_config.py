import logging
import sys

import structlog

from pricewatch.core.config import settings


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """
    Route stdlib logging and structlog through the same console/JSON renderer.
    Safe to call more than once (tests, reloads).
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    json_logs = settings.LOG_JSON if json_logs is None else json_logs
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats exc_info itself
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
