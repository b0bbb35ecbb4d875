"""Structured logging sink used by the client."""

from __future__ import annotations

from typing import Any, Protocol

import structlog


class Logger(Protocol):
    """Leveled, field-annotated sink; structlog bound loggers satisfy it."""

    def bind(self, **fields: Any) -> "Logger": ...

    def debug(self, event: str, **fields: Any) -> Any: ...

    def info(self, event: str, **fields: Any) -> Any: ...

    def warning(self, event: str, **fields: Any) -> Any: ...

    def error(self, event: str, **fields: Any) -> Any: ...


def _discard(_logger: Any, _method: str, _event: Any) -> Any:
    raise structlog.DropEvent


def null_logger() -> Logger:
    """Return a logger that drops every event."""
    return structlog.wrap_logger(
        structlog.ReturnLogger(), processors=[_discard]
    )

