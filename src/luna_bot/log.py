"""structlog setup shared by the bot process and the CLI."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Event keys whose values must never reach the log stream.
SECRET_KEYS = frozenset({"api_key", "token", "secret"})

# Libraries that log through stdlib logging.
_NOISY_LOGGERS = ("discord", "httpx", "apscheduler")


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        event_dict[key] = f"...{str(value)[-4:]}" if value else value
    return event_dict


def setup_logging(level: str = "INFO", fmt: str = "console") -> None:
    """Configure structlog once per process.

    ``fmt`` is ``"console"`` for coloured dev output or ``"json"`` for one
    object per line.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        redact_secrets,
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.processors.StackInfoRenderer(), structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
