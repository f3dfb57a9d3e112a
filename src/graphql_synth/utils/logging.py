"""Logging for the GraphQL synthesis service.

Every record carries the HTTP request id and, while the operation pipeline
runs, the name of the current pipeline stage. Both live in context variables
so they follow a request across awaits and worker threads started with
``asyncio.to_thread`` (which copies the context).
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

from graphql_synth.config import Settings, get_settings

ROOT_LOGGER_NAME = "graphql_synth"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
pipeline_stage_var: ContextVar[Optional[str]] = ContextVar("pipeline_stage", default=None)

# Attributes every LogRecord has; anything else on a record came from ``extra``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "extra_fields", "request_id", "stage"}

# Marks the handler installed by setup_logging so repeated calls are no-ops
_HANDLER_NAME = "graphql_synth.console"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id
        stage = pipeline_stage_var.get()
        if stage:
            log_data["stage"] = stage

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(getattr(record, "extra_fields", None) or {})
        log_data.update(
            {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        )
        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Human-readable lines for development: ``[request_id|stage]`` after the level."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s%(stage)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = request_id_var.get() or "-"
        stage = pipeline_stage_var.get()
        record.stage = f"|{stage}" if stage else ""
        return super().format(record)


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Attach a stdout handler to the ``graphql_synth`` logger tree (once)."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        return logger

    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if settings.is_production else StandardFormatter())

    logger.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False

    # Provider SDKs log every HTTP call at INFO
    quiet = logging.INFO if settings.debug else logging.WARNING
    for name in ("litellm", "LiteLLM", "openai", "httpx", "qdrant_client"):
        logging.getLogger(name).setLevel(quiet)
    for name in ("uvicorn", "uvicorn.access", "fastapi"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(
        f"Logging configured: level={settings.log_level}, "
        f"format={'JSON' if settings.is_production else 'Standard'}"
    )
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger under the ``graphql_synth`` tree."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


@contextmanager
def pipeline_stage(stage: str) -> Iterator[None]:
    """Tag log records with ``stage`` and log how long the stage took.

    The duration is logged even when the stage raises; the exception is
    not handled here.
    """
    token = pipeline_stage_var.set(stage)
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        get_logger("pipeline").debug(
            f"Stage {stage} finished in {duration_ms:.1f}ms",
            extra={"extra_fields": {"duration_ms": round(duration_ms, 1)}},
        )
        pipeline_stage_var.reset(token)


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **kwargs: Any,
) -> None:
    """Log one HTTP request with its status and duration."""
    get_logger("http").info(
        f"{method} {path} - {status_code} - {duration_ms:.2f}ms",
        extra={
            "extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(duration_ms, 2),
                **kwargs,
            }
        },
    )


def log_error(
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> None:
    """Log an exception with its traceback and request context."""
    extra_fields = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
        **kwargs,
    }
    # Service exceptions carry a machine-readable code
    code = getattr(error, "code", None)
    if code:
        extra_fields["error_code"] = code
    get_logger("error").error(
        f"Error: {type(error).__name__}: {error}",
        exc_info=error,
        extra={"extra_fields": extra_fields},
    )
