import sys
import structlog
import logging
from cloudoptimizer.core.config import get_settings


def secret_redactor(logger, method_name, event_dict):
    """
    Redact credentials and tokens from logs before rendering.
    Forecast backend keys and connection strings must never reach log sinks.
    """
    sensitive_fields = {
        "api_key", "token", "secret", "password", "authorization",
        "endpoint_key", "forecast_endpoint_key", "redis_url"
    }

    for field in sensitive_fields:
        if field in event_dict:
            event_dict[field] = "[REDACTED]"

    for container in ["metadata", "payload", "details", "headers"]:
        if container in event_dict and isinstance(event_dict[container], dict):
            for field in sensitive_fields:
                if field in event_dict[container]:
                    event_dict[container][field] = "[REDACTED]"

    return event_dict


def setup_logging():
    settings = get_settings()

    if settings.DEBUG:
        renderer = structlog.dev.ConsoleRenderer()
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        min_level = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        secret_redactor,
        renderer
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route library logs (sqlalchemy, apscheduler, httpx) to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=min_level,
    )
