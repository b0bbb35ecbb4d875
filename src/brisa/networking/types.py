"""Shared value types for the brisa networking layer."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Mapping, Protocol, TypeVar, Union

import requests

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value and request metadata."""

    value: T
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err(Generic[E]):
    """Failed outcome carrying a classified error and request metadata."""

    error: E
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Ok[T], Err[E]]

Send = Callable[[requests.PreparedRequest], requests.Response]
# Wraps one network attempt: receives the attempt request and the send call.
AttemptHook = Callable[[requests.PreparedRequest, Send], requests.Response]


@dataclass
class CallContext:
    """Per-call state threaded through every transport link.

    ``deadline`` is an absolute ``time.monotonic()`` timestamp supplied by the
    caller; the earlier of it and ``timeout_seconds`` bounds each attempt.
    ``attempts`` counts requests handed to the raw transport and
    ``attempt_hooks`` wrap each of those sends, outermost first.
    """

    timeout_seconds: float
    deadline: float | None = None
    attempts: int = 0
    attempt_hooks: list[AttemptHook] = field(default_factory=list)

    def remaining(self) -> float:
        """Return the timeout for the next attempt (<= 0 once expired)."""
        if self.deadline is None:
            return self.timeout_seconds
        return min(self.timeout_seconds, self.deadline - time.monotonic())

    def has_time_for(self, delay_seconds: float) -> bool:
        """Return True when sleeping ``delay_seconds`` keeps the deadline."""
        if self.deadline is None:
            return True
        return time.monotonic() + delay_seconds < self.deadline


class Transport(Protocol):
    """Raw network transport terminating every chain."""

    def send(
        self, request: requests.PreparedRequest, *, timeout: float | None
    ) -> requests.Response: ...


class Executor(Protocol):
    """Anything able to execute a prepared request for a call."""

    def send(
        self, request: requests.PreparedRequest, context: CallContext
    ) -> requests.Response: ...
