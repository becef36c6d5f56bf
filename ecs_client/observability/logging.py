"""Structured logging configuration and the per-client log callback bridge."""

import logging
import sys
from collections.abc import Callable
from typing import Any, TextIO

import structlog

from ecs_client.models import LogLevel


LogCallback = Callable[[LogLevel, str], None]

_METHOD_LEVELS: dict[str, LogLevel | None] = {
    "debug": None,
    "info": LogLevel.INFORMATION,
    "warning": LogLevel.WARNING,
    "error": LogLevel.ERROR,
    "critical": LogLevel.CRITICAL,
}


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Route client log events through structlog.

    Only the CLI calls this; library users keep their own configuration
    and may add a log callback per client instead.

    Args:
        level: Minimum level to emit.
        output: Stream receiving rendered events.
        json_format: Render JSON lines instead of console output.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )


def format_log_message(event: str, fields: dict[str, Any]) -> str:
    """Render an event and its fields as a single line for callbacks."""
    if not fields:
        return event
    rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
    return f"{event} {rendered}"


class ClientLogger:
    """Structlog logger that also forwards to a client's log callback.

    Events below ``min_level`` (or every event when the level is NONE)
    are only written to structlog. Debug events are never forwarded.
    """

    def __init__(
        self,
        log: Any,
        callback: LogCallback | None = None,
        min_level: LogLevel = LogLevel.NONE,
    ) -> None:
        self._log = log
        self._callback = callback
        self._min_level = min_level

    def bind(self, **fields: Any) -> "ClientLogger":
        """Return a logger with extra context bound."""
        return ClientLogger(self._log.bind(**fields), self._callback, self._min_level)

    def debug(self, event: str, **fields: Any) -> None:
        self._emit("debug", event, fields)

    def info(self, event: str, **fields: Any) -> None:
        self._emit("info", event, fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit("warning", event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit("error", event, fields)

    def critical(self, event: str, **fields: Any) -> None:
        self._emit("critical", event, fields)

    def _emit(self, method: str, event: str, fields: dict[str, Any]) -> None:
        getattr(self._log, method)(event, **fields)

        level = _METHOD_LEVELS[method]
        if (
            self._callback is None
            or level is None
            or self._min_level == LogLevel.NONE
            or level < self._min_level
        ):
            return

        try:
            self._callback(level, format_log_message(event, fields))
        except Exception as exc:  # noqa: BLE001
            self._log.warning("log_callback_failed", error=str(exc))
