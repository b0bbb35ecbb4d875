"""Synchronous HTTP client for the brisa networking layer.

All outbound HTTP goes through ``HttpClient``: targets are resolved against
the configured base URL, requests pass through the transport chain (default
headers, debug logging, retries) and every outcome comes back as a Result
holding either the response or a classified error plus request metadata.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import requests

from .config import HttpClientConfig
from .errors import (
    ConfigurationError,
    HttpClientError,
    classify_exception,
    classify_response,
)
from .transport import SessionTransport, build_chain
from .types import CallContext, Err, Executor, Ok, Result
from .urls import QueryParams, add_query_params, resolve_url


@dataclass(frozen=True)
class RequestOptions:
    """Per-request settings.

    ``body`` accepts what ``requests`` accepts as ``data``: bytes, str, a
    readable byte stream, an iterable of chunks or a form mapping.
    ``headers`` override the client defaults of the same name.
    """

    params: QueryParams | None = None
    body: Any | None = None
    json: Any | None = None
    headers: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )


class HttpClient:
    """Core HTTP client (sync).

    A client is safe to share between threads: its configuration and
    transport chain are read-only after construction.
    """

    def __init__(self, config: HttpClientConfig | None = None) -> None:
        """Create a new HttpClient.

        Args:
            config: Configuration for base URL, timeouts, headers, logging
                and retry policy. Defaults to ``HttpClientConfig()``.
        """
        self._config = config if config is not None else HttpClientConfig()
        self._session = requests.Session()
        # Default headers are injected by the chain, not the session.
        self._session.headers.clear()
        if self._config.cookie_jar is not None:
            self._session.cookies = (  # type: ignore[assignment]
                self._config.cookie_jar
            )

        self._executor: Executor
        if self._config.executor is not None:
            self._executor = self._config.executor
        else:
            transport = self._config.transport or SessionTransport(
                self._session, verify_tls=self._config.verify_tls
            )
            self._executor = build_chain(self._config, transport)

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _call_context(
        self, timeout: float | None, deadline: float | None
    ) -> CallContext:
        """Resolve timeout preference into a per-call context."""
        if timeout is not None and timeout <= 0:
            raise ConfigurationError(
                "timeout override must be > 0 when provided"
            )
        if timeout is None:
            timeout = self._config.timeout_seconds
        return CallContext(timeout_seconds=timeout, deadline=deadline)

    def _prepare(
        self, method: str, url: str, options: RequestOptions
    ) -> requests.PreparedRequest:
        request = requests.Request(
            method=method,
            url=url,
            headers=dict(options.headers),
            data=options.body,
            json=options.json,
        )
        try:
            return self._session.prepare_request(request)
        except requests.exceptions.RequestException as exc:
            raise classify_exception(exc) from exc
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(
                f"failed to create request: {exc}"
            ) from exc

    def _build_meta(
        self,
        method: str,
        request_url: str,
        response: requests.Response | None,
        context: Mapping[str, Any] | None,
        attempts: int,
        timeout: float,
        final_error: str | None = None,
    ) -> dict[str, Any]:
        """Construct metadata dictionary from response and context."""
        meta: dict[str, Any] = {}
        meta["method"] = method
        meta["url"] = request_url
        meta["attempts"] = attempts
        meta["timeout_s"] = timeout
        if context:
            context_dict = dict(context)
            meta["context"] = context_dict
            for key, value in context_dict.items():
                meta.setdefault(key, value)

        if response is not None:
            meta["status"] = response.status_code
            meta["status_code"] = response.status_code
            meta["url"] = response.url or request_url
            meta["reason"] = response.reason
            elapsed = getattr(response, "elapsed", None)
            if elapsed is not None:
                meta["elapsed_s"] = elapsed.total_seconds()
        if final_error is not None:
            meta["final_error"] = final_error

        return meta

    def execute(
        self,
        method: str,
        target: str,
        options: RequestOptions | None = None,
        *,
        timeout: float | None = None,
        deadline: float | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[requests.Response, HttpClientError]:
        """Execute one request through the transport chain.

        Args:
            method: HTTP method.
            target: Absolute URL, or a path resolved against the base URL.
            options: Query parameters, body and header overrides.
            timeout: Override timeout in seconds for this request.
            deadline: Absolute ``time.monotonic()`` deadline for the call,
                including retries and backoff.
            context: Optional caller context for logging/tracing.

        Returns:
            ``Ok`` with the response for statuses below 400, otherwise ``Err``
            with a ConfigurationError, NetworkError or HTTPStatusError.
        """
        method = method.upper()
        options = options if options is not None else RequestOptions()
        try:
            call = self._call_context(timeout, deadline)
            url = add_query_params(
                resolve_url(self._config.base_url, target), options.params
            )
            request = self._prepare(method, url, options)
        except ConfigurationError as exc:
            return Err(
                exc,
                meta=self._build_meta(
                    method,
                    target,
                    None,
                    context,
                    attempts=0,
                    timeout=(
                        timeout
                        if timeout is not None
                        else self._config.timeout_seconds
                    ),
                    final_error=type(exc).__name__,
                ),
            )

        try:
            response = self._executor.send(request, call)
        except requests.exceptions.RequestException as exc:
            return Err(
                classify_exception(exc),
                meta=self._build_meta(
                    method,
                    url,
                    exc.response,
                    context,
                    attempts=max(1, call.attempts),
                    timeout=call.timeout_seconds,
                    final_error=type(exc).__name__,
                ),
            )

        status_error = classify_response(response)
        final_error = (
            type(status_error).__name__ if status_error is not None else None
        )
        meta = self._build_meta(
            method,
            url,
            response,
            context,
            attempts=max(1, call.attempts),
            timeout=call.timeout_seconds,
            final_error=final_error,
        )
        if status_error is not None:
            return Err(status_error, meta=meta)
        return Ok(response, meta=meta)

    def get(
        self,
        target: str,
        *,
        params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        deadline: float | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[requests.Response, HttpClientError]:
        """Perform an HTTP GET request.

        Args:
            target: Absolute URL, or a path resolved against the base URL.
            params: Optional query parameters merged into the URL.
            headers: Optional per-request headers overriding defaults.
            timeout: Override timeout in seconds for this request.
            deadline: Absolute ``time.monotonic()`` deadline for the call.
            context: Optional caller context for logging/tracing.
        """
        return self.execute(
            "GET",
            target,
            RequestOptions(params=params, headers=headers or {}),
            timeout=timeout,
            deadline=deadline,
            context=context,
        )

    def head(
        self,
        target: str,
        *,
        params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        deadline: float | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[requests.Response, HttpClientError]:
        """Perform an HTTP HEAD request."""
        return self.execute(
            "HEAD",
            target,
            RequestOptions(params=params, headers=headers or {}),
            timeout=timeout,
            deadline=deadline,
            context=context,
        )

    def post(
        self,
        target: str,
        *,
        params: QueryParams | None = None,
        headers: Mapping[str, str] | None = None,
        body: Any | None = None,
        json: Any | None = None,
        timeout: float | None = None,
        deadline: float | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Result[requests.Response, HttpClientError]:
        """Perform an HTTP POST request.

        Args:
            target: Absolute URL, or a path resolved against the base URL.
            params: Optional query parameters merged into the URL.
            headers: Optional per-request headers overriding defaults.
            body: Optional payload: bytes, str, byte stream or form mapping.
            json: Optional JSON payload (mutually exclusive with body).
            timeout: Override timeout in seconds for this request.
            deadline: Absolute ``time.monotonic()`` deadline for the call.
            context: Optional caller context for logging/tracing.
        """
        return self.execute(
            "POST",
            target,
            RequestOptions(
                params=params, body=body, json=json, headers=headers or {}
            ),
            timeout=timeout,
            deadline=deadline,
            context=context,
        )


_default_client: HttpClient | None = None
_default_client_lock = threading.Lock()


def default_client() -> HttpClient:
    """Return the process-wide client, created with defaults on first use."""
    global _default_client
    if _default_client is None:
        with _default_client_lock:
            if _default_client is None:
                _default_client = HttpClient()
    return _default_client


def get(url: str, **kwargs: Any) -> Result[requests.Response, HttpClientError]:
    """Perform a GET with the default client (no base URL configured)."""
    return default_client().get(url, **kwargs)
