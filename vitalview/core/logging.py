import logging
import logging.config
import sys
from typing import Any, Dict, Iterable, List

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration

from vitalview.core.config import settings

# Third-party loggers that get their own handler at a fixed level
LIBRARY_LOGGERS: Dict[str, str] = {
    "uvicorn": "INFO",
    "uvicorn.error": "INFO",
    "uvicorn.access": "INFO",
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "pymongo": "WARNING",
    "PIL": "INFO",
    "aiosmtplib": "WARNING",
}


def _add_service(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    return event_dict


def _library_loggers(names: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    return {
        name: {"handlers": ["default"], "level": LIBRARY_LOGGERS[name], "propagate": False}
        for name in names
    }


def init_sentry() -> None:
    if not settings.SENTRY_DSN:
        return
    # Error-level records (alert_delivery_failed, vital persist failures) become events
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=1.0 if settings.ENVIRONMENT == "local" else 0.1,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
    )


def setup_logging() -> None:
    """
    Configure structlog and route stdlib logging through it.

    Console rendering for local/dev, JSON lines everywhere else. Sentry is
    initialised first when a DSN is configured.
    """
    init_sentry()

    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    render_chain: List[structlog.types.Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if settings.ENVIRONMENT in ["local", "dev"]:
        render_chain.append(structlog.dev.ConsoleRenderer())
    else:
        render_chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": render_chain,
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "level": settings.LOG_LEVEL,
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "default",
            },
        },
        "loggers": {
            "": {"handlers": ["default"], "level": settings.LOG_LEVEL, "propagate": True},
            **_library_loggers(LIBRARY_LOGGERS),
        },
    }

    logging.config.dictConfig(logging_config)
