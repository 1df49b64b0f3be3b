"""
Logging configuration
=====================
Centralized structlog setup shared by the API process and the sync thread.
"""

import logging
import sys
from typing import Any, Dict

import structlog
from structlog.types import EventDict, Processor

SENSITIVE_KEYS = {
    "password",
    "password_hash",
    "encryption_key",
    "secret",
    "token",
    "authorization",
    "api_key",
}


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = "notice-backend"
    return event_dict


def redact_sensitive(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact key material and credentials from log entries.

    Staged notices carry the document encryption key, which must never
    reach a log sink.
    """

    def _redact(d: Dict[str, Any]) -> Dict[str, Any]:
        cleaned = {}
        for key, value in d.items():
            if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
                cleaned[key] = "***REDACTED***"
            elif isinstance(value, dict):
                cleaned[key] = _redact(value)
            else:
                cleaned[key] = value
        return cleaned

    return _redact(event_dict)


def configure_logging(environment: str = "development") -> None:
    """
    Configure structlog for the application.

    Args:
        environment: "development" for console output, "production" for JSON
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_sensitive,
    ]

    if environment == "production":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.INFO,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
