"""Composable transport chain wrapped around the raw network transport.

A chain is an ordered list of middlewares terminated by exactly one raw
transport. The first middleware is the outermost wrapper, so the order at
the call site reads outermost to innermost::

    chain = TransportChain(
        [HeadersMiddleware(headers), LoggingMiddleware(logger, debug)],
        SessionTransport(requests.Session()),
    )
    response = chain.send(prepared_request, context)

Chains are built once per client and shared read-only across requests.
"""

from __future__ import annotations

import functools
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Sequence

import requests

from .config import HttpClientConfig
from .log import Logger
from .types import CallContext, Send, Transport

Handler = Callable[[requests.PreparedRequest, CallContext], requests.Response]


def buffer_body(request: requests.PreparedRequest) -> bytes:
    """Read the request body into memory and put it back as bytes.

    Streams and iterables can only be read once; after this call the body is
    a bytes object every downstream consumer can read again.
    """
    body = request.body
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        data = body.encode("utf-8")
    elif hasattr(body, "read"):
        chunk = body.read()
        data = chunk.encode("utf-8") if isinstance(chunk, str) else chunk
    else:
        data = b"".join(
            part.encode("utf-8") if isinstance(part, str) else part
            for part in body
        )
    request.body = data
    request.headers.pop("Transfer-Encoding", None)
    request.headers["Content-Length"] = str(len(data))
    return data


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _format_header_block(start_line: str, headers: Mapping[str, str]) -> str:
    lines = [start_line]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    return "\r\n".join(lines) + "\r\n\r\n"


class Middleware(ABC):
    """One link of the chain: observe or alter a request and its response."""

    @abstractmethod
    def handle(
        self,
        request: requests.PreparedRequest,
        context: CallContext,
        call_next: Handler,
    ) -> requests.Response:
        """Process ``request`` and delegate to ``call_next``."""


class HeadersMiddleware(Middleware):
    """Inject default headers the request does not already carry."""

    def __init__(self, headers: Mapping[str, str]) -> None:
        self._headers = tuple(headers.items())

    def handle(
        self,
        request: requests.PreparedRequest,
        context: CallContext,
        call_next: Handler,
    ) -> requests.Response:
        for name, value in self._headers:
            # PreparedRequest.headers is case-insensitive.
            if not request.headers.get(name):
                request.headers[name] = value
        return call_next(request, context)


class LoggingMiddleware(Middleware):
    """Log requests and responses when debug mode is on.

    Records are written per network attempt: the link registers an attempt
    hook on the call context, and the terminal runs it around every send,
    so attempts re-issued by inner links are each logged.
    """

    def __init__(self, logger: Logger, debug: bool) -> None:
        self._logger = logger
        self._debug = debug

    def handle(
        self,
        request: requests.PreparedRequest,
        context: CallContext,
        call_next: Handler,
    ) -> requests.Response:
        if not self._debug:
            return call_next(request, context)

        context.attempt_hooks.append(self._observe_attempt)
        try:
            return call_next(request, context)
        finally:
            context.attempt_hooks.remove(self._observe_attempt)

    def _observe_attempt(
        self, request: requests.PreparedRequest, send: Send
    ) -> requests.Response:
        start = time.monotonic()
        body = buffer_body(request)
        try:
            response = send(request)
        finally:
            # Logged even when the attempt failed.
            self._log_request(request, body, start)
        self._log_response(response)
        return response

    def _log_request(
        self, request: requests.PreparedRequest, body: bytes, start: float
    ) -> None:
        fields: dict[str, Any] = {
            "method": request.method,
            "url": request.url,
            "headers": _format_header_block(
                f"{request.method} {request.path_url} HTTP/1.1",
                request.headers,
            ),
            "duration_s": time.monotonic() - start,
        }
        if body:
            fields["body"] = _decode(body)
        self._logger.bind(**fields).debug("HTTP request")

    def _log_response(self, response: requests.Response) -> None:
        # Response.content caches the body, so the caller can read it again.
        body = response.content or b""
        fields: dict[str, Any] = {
            "status": response.status_code,
            "reason": response.reason,
            "headers": _format_header_block(
                f"HTTP/1.1 {response.status_code} {response.reason or ''}",
                response.headers,
            ),
        }
        if body:
            fields["body"] = _decode(body)
        self._logger.bind(**fields).debug("HTTP response")


class RetryMiddleware(Middleware):
    """Re-issue failed attempts with exponential backoff.

    Connection errors, timeouts and responses whose status is in
    ``statuses`` are retried up to ``retries`` times for idempotent methods.
    The body is snapshotted once and every attempt sends a fresh copy of the
    request. Other outcomes are returned (or raised) immediately.
    """

    def __init__(
        self,
        retries: int,
        *,
        statuses: frozenset[int] = frozenset(),
        methods: frozenset[str] = frozenset({"GET", "HEAD"}),
        backoff_base_seconds: float = 0.0,
        backoff_max_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._retries = retries
        self._statuses = statuses
        self._methods = methods
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep

    def _is_retryable_exception(
        self, error: requests.exceptions.RequestException
    ) -> bool:
        return isinstance(
            error,
            (requests.exceptions.Timeout, requests.exceptions.ConnectionError),
        )

    def _backoff(self, attempt: int) -> float:
        """Return the sleep before the attempt following ``attempt``."""
        if self._backoff_base <= 0:
            return 0.0
        delay = self._backoff_base * (2 ** max(0, attempt - 1))
        return min(delay, self._backoff_max)

    def handle(
        self,
        request: requests.PreparedRequest,
        context: CallContext,
        call_next: Handler,
    ) -> requests.Response:
        if self._retries <= 0 or (request.method or "").upper() not in (
            self._methods
        ):
            return call_next(request, context)

        buffer_body(request)
        attempt = 0
        while True:
            attempt += 1
            error: requests.exceptions.RequestException | None = None
            response: requests.Response | None = None
            try:
                response = call_next(request.copy(), context)
            except requests.exceptions.RequestException as exc:
                if not self._is_retryable_exception(exc):
                    raise
                error = exc
            else:
                if response.status_code not in self._statuses:
                    return response

            delay = self._backoff(attempt)
            if attempt > self._retries or not context.has_time_for(delay):
                if error is not None:
                    raise error
                assert response is not None
                return response

            if response is not None:
                response.close()
            if delay > 0:
                self._sleep(delay)


class SessionTransport:
    """Raw transport sending prepared requests through a requests Session."""

    def __init__(
        self,
        session: requests.Session,
        *,
        verify_tls: bool = True,
        allow_redirects: bool = True,
    ) -> None:
        self._session = session
        self._verify_tls = verify_tls
        self._allow_redirects = allow_redirects

    def send(
        self, request: requests.PreparedRequest, *, timeout: float | None
    ) -> requests.Response:
        return self._session.send(
            request,
            timeout=timeout,
            verify=self._verify_tls,
            allow_redirects=self._allow_redirects,
        )


class _Terminal:
    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    def __call__(
        self, request: requests.PreparedRequest, context: CallContext
    ) -> requests.Response:
        timeout = context.remaining()
        if timeout <= 0:
            raise requests.exceptions.Timeout(
                "deadline exceeded before the request was sent",
                request=request,
            )
        context.attempts += 1

        def send_once(
            prepared: requests.PreparedRequest,
        ) -> requests.Response:
            return self._transport.send(prepared, timeout=timeout)

        send: Send = send_once
        for hook in reversed(context.attempt_hooks):
            send = functools.partial(hook, send=send)
        return send(request)


class _Link:
    def __init__(self, middleware: Middleware, next_handler: Handler) -> None:
        self._middleware = middleware
        self._next = next_handler

    def __call__(
        self, request: requests.PreparedRequest, context: CallContext
    ) -> requests.Response:
        return self._middleware.handle(request, context, self._next)


class TransportChain:
    """Middlewares composed into a single executor over one transport."""

    def __init__(
        self, middlewares: Sequence[Middleware], transport: Transport
    ) -> None:
        self.middlewares = tuple(middlewares)
        self.transport = transport
        handler: Handler = _Terminal(transport)
        for middleware in reversed(self.middlewares):
            handler = _Link(middleware, handler)
        self._handler = handler

    def send(
        self, request: requests.PreparedRequest, context: CallContext
    ) -> requests.Response:
        return self._handler(request, context)


def build_chain(
    config: HttpClientConfig, transport: Transport
) -> TransportChain:
    """Build the client chain: headers, then logging, then retry."""
    return TransportChain(
        [
            HeadersMiddleware(config.default_headers),
            LoggingMiddleware(config.logger, config.debug),
            RetryMiddleware(
                config.retries,
                statuses=config.retry_statuses,
                methods=config.retry_methods,
                backoff_base_seconds=config.backoff_base_seconds,
                backoff_max_seconds=config.backoff_max_seconds,
            ),
        ],
        transport,
    )
