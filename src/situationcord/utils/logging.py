"""structlog setup for the pipeline.

Every entry carries the service name and version plus whatever per-message
context the pipeline has bound. Secrets are redacted from all fields before
the entry is rendered as JSON or for the console. Output always goes to
stderr and can be copied to a file.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Any

import structlog

from situationcord._version import __version__
from situationcord.utils.security import SecretRedactor

SERVICE_NAME = "situationcord"

EventDict = MutableMapping[str, Any]


class LogFormat(StrEnum):
    """Rendering of log entries."""

    JSON = "json"
    CONSOLE = "console"


@lru_cache(maxsize=1)
def _redactor() -> SecretRedactor:
    return SecretRedactor(placeholder="[REDACTED]")


def sanitize_log_value(value: Any) -> Any:
    """Redact secrets from strings, descending into dicts, lists and tuples."""
    if isinstance(value, str):
        return _redactor().redact(value)
    if isinstance(value, dict):
        return {key: sanitize_log_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(item) for item in value)
    return value


def secret_sanitizer(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Processor: redact every field of the entry."""
    return {key: sanitize_log_value(value) for key, value in event_dict.items()}


def add_service_info(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Processor: tag the entry with service name and version."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _resolve_level(level: str) -> int:
    levels = logging.getLevelNamesMapping()
    name = level.upper()
    if name not in levels:
        raise ValueError(f"Unknown log level: {level}")
    return levels[name]


def _renderer(log_format: LogFormat) -> Any:
    if log_format is LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True, exception_formatter=structlog.dev.plain_traceback
    )


def configure_logging(
    level: str = "INFO",
    log_format: LogFormat | str = LogFormat.JSON,
    file_path: Path | str | None = None,
) -> None:
    """Install the structlog pipeline and the stdlib handlers behind it.

    Safe to call again once the config file is loaded; the new settings
    replace the old ones.

    Args:
        level: Standard level name, case-insensitive
        log_format: ``json`` or ``console``
        file_path: Also append entries to this file; an unwritable path
            leaves console output only

    Raises:
        ValueError: For an unknown level or format
    """
    numeric_level = _resolve_level(level)
    log_format = LogFormat(str(log_format).lower())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_info,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            secret_sanitizer,
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: OSError | None = None
    if file_path:
        path = Path(file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(path))
        except OSError as e:
            file_error = e

    logging.basicConfig(format="%(message)s", level=numeric_level, handlers=handlers, force=True)

    if file_error is not None:
        structlog.get_logger().warning(
            "log_file_unavailable", path=str(file_path), error=str(file_error)
        )


def bind_context(**kwargs: Any) -> None:
    """Attach fields (e.g. ``message_id``) to every entry logged in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
