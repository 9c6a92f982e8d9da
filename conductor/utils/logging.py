"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import re
import sys

import structlog

_SECRET_RE = re.compile(
    r"(token|key|secret|password|authorization)[\"']?\s*[:=]\s*[\"']?[\w\-\.]+",
    re.IGNORECASE,
)
# E.164-ish sender ids; keep the last four digits for correlation
_PHONE_RE = re.compile(r"\+?\d{6,11}(\d{4})\b")

_NOISY_LOGGERS = ("anthropic", "httpx", "httpcore", "aiosqlite")


def redact(value: str) -> str:
    value = _SECRET_RE.sub(r"\1=***REDACTED***", value)
    return _PHONE_RE.sub(r"***\1", value)


def _redact_processor(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if key == "event" or not isinstance(value, str):
            continue
        event_dict[key] = redact(value)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog on top of stdlib logging, console or JSON rendered."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if numeric_level <= logging.DEBUG:
        print(
            "WARNING: DEBUG logging is enabled. Prompts, step outputs and user "
            "facts may appear in logs.",
            file=sys.stderr,
        )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _redact_processor,
    ]

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
