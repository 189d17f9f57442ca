import logging
import sys
from typing import Any, Dict, Optional

from agora.core.analytics import (
    capture_exception as posthog_capture_exception,
    track_event as posthog_track_event,
    initialize_posthog,
)

# extra={...} keys the services attach; rendered after the message
CONTEXT_FIELDS = (
    "challenge_id",
    "participant_id",
    "metric_count",
    "code",
    "error",
    "retry_count",
)


def _record_context(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class _ContextFormatter(logging.Formatter):
    """Appends challenge/participant context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _record_context(record)
        if context:
            line += " | " + " ".join(f"{key}={value}" for key, value in context.items())
        return line


class _PostHogErrorHandler(logging.Handler):
    """Forwards ERROR/CRITICAL records to PostHog."""

    def __init__(self, level: int = logging.ERROR) -> None:
        super().__init__(level=level)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            properties = {
                "logger_name": record.name,
                "level": record.levelname,
                "message": record.getMessage(),
                "module": record.module,
                "funcName": record.funcName,
                "lineno": record.lineno,
                **_record_context(record),
            }
            distinct_id = properties.get("challenge_id") or "server"

            if record.exc_info:
                _, exc_value, _ = record.exc_info
                exc: Optional[Exception] = (
                    exc_value
                    if isinstance(exc_value, Exception)
                    else Exception(record.getMessage())
                )
                posthog_capture_exception(exc, distinct_id=distinct_id, properties=properties)
            else:
                posthog_track_event(distinct_id, "server_log_error", properties=properties)
        except Exception:
            self.handleError(record)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger("agora.api")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    logger.propagate = False

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        _ContextFormatter(
            fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(handler)

    if initialize_posthog() is not None:
        logger.addHandler(_PostHogErrorHandler())

    return logger


logger = _configure_logger()
