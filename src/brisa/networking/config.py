"""Configuration models for the HttpClient interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from http.cookiejar import CookieJar
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from requests.structures import CaseInsensitiveDict

from .errors import ConfigurationError
from .log import Logger, null_logger
from .types import Executor, Transport
from .urls import normalize_base_url

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_RETRIES = 3
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
)
DEFAULT_BACKOFF_BASE_SECONDS = 0.5
DEFAULT_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_RETRY_METHODS = frozenset(
    {"GET", "HEAD", "OPTIONS", "PUT", "DELETE", "TRACE"}
)


def _default_headers() -> Mapping[str, str]:
    """Return the default headers, seeded with the User-Agent."""

    return MappingProxyType(
        CaseInsensitiveDict({"User-Agent": DEFAULT_USER_AGENT})
    )


@dataclass(frozen=True)
class HttpClientConfig:
    """Immutable configuration snapshot for HttpClient.

    Constructing it directly validates strictly and raises ``ValueError``;
    ``HttpClientConfigBuilder`` degrades invalid options to defaults instead.
    """

    base_url: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    default_headers: Mapping[str, str] = field(
        default_factory=_default_headers
    )
    cookie_jar: CookieJar | None = None
    logger: Logger = field(default_factory=null_logger)
    debug: bool = False
    transport: Transport | None = None
    executor: Executor | None = None
    retry_statuses: frozenset[int] = frozenset()
    retry_methods: frozenset[str] = DEFAULT_RETRY_METHODS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX_SECONDS
    verify_tls: bool = True
    rejected_options: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")
        if self.backoff_base_seconds < 0:
            raise ValueError("backoff_base_seconds must be >= 0")
        if self.backoff_max_seconds < 0:
            raise ValueError("backoff_max_seconds must be >= 0")
        for status in self.retry_statuses:
            if not 100 <= status <= 599:
                raise ValueError(f"invalid retry status: {status}")

        if self.base_url is not None:
            # ConfigurationError is a ValueError.
            object.__setattr__(
                self, "base_url", normalize_base_url(self.base_url)
            )

        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(CaseInsensitiveDict(self.default_headers)),
        )
        object.__setattr__(
            self, "retry_statuses", frozenset(self.retry_statuses)
        )
        object.__setattr__(
            self,
            "retry_methods",
            frozenset(method.upper() for method in self.retry_methods),
        )
        object.__setattr__(
            self, "rejected_options", tuple(self.rejected_options)
        )

    @staticmethod
    def builder() -> "HttpClientConfigBuilder":
        return HttpClientConfigBuilder()


class HttpClientConfigBuilder:
    """Fluent builder applying options in call order over the defaults.

    Later options override earlier ones for scalar settings; headers are
    merged. ``build()`` never fails: a rejected option keeps the default, is
    logged as a warning and listed in ``HttpClientConfig.rejected_options``.

    Example::

        config = (
            HttpClientConfig.builder()
            .base_url("https://portal.example/api/")
            .timeout(5)
            .headers({"Accept-Language": "pt-BR"})
            .build()
        )
    """

    def __init__(self) -> None:
        self._fields: dict[str, Any] = {}
        self._headers: CaseInsensitiveDict = CaseInsensitiveDict(
            _default_headers()
        )
        self._rejected: list[tuple[str, Any, str]] = []

    def _reject(self, option: str, value: Any, reason: str) -> None:
        self._rejected.append((option, value, reason))

    def timeout(self, seconds: float) -> "HttpClientConfigBuilder":
        """Set the request timeout; non-positive values are ignored."""
        if seconds > 0:
            self._fields["timeout_seconds"] = float(seconds)
        else:
            self._reject("timeout", seconds, "timeout must be > 0")
        return self

    def base_url(self, url: str) -> "HttpClientConfigBuilder":
        """Set the base URL for relative targets; invalid URLs are ignored."""
        if not url:
            return self
        try:
            self._fields["base_url"] = normalize_base_url(url)
        except ConfigurationError as exc:
            self._reject("base_url", url, str(exc))
        return self

    def retry_attempts(self, attempts: int) -> "HttpClientConfigBuilder":
        """Set the retry count; 0 disables retries, negatives are ignored."""
        if attempts >= 0:
            self._fields["retries"] = attempts
        else:
            self._reject("retry_attempts", attempts, "attempts must be >= 0")
        return self

    def headers(self, headers: Mapping[str, str]) -> "HttpClientConfigBuilder":
        """Merge default headers sent with every request (copied)."""
        self._headers.update(dict(headers or {}))
        return self

    def cookie_jar(self, jar: CookieJar | None) -> "HttpClientConfigBuilder":
        if jar is not None:
            self._fields["cookie_jar"] = jar
        return self

    def logger(self, logger: Logger | None) -> "HttpClientConfigBuilder":
        if logger is not None:
            self._fields["logger"] = logger
        return self

    def debug(self, enable: bool = True) -> "HttpClientConfigBuilder":
        """Log full requests and responses through the configured logger."""
        self._fields["debug"] = bool(enable)
        return self

    def transport(
        self, transport: Transport | None
    ) -> "HttpClientConfigBuilder":
        """Replace the raw network transport under the middleware chain."""
        if transport is not None:
            self._fields["transport"] = transport
        return self

    def executor(self, executor: Executor | None) -> "HttpClientConfigBuilder":
        """Replace the whole chain with a custom executor (mocks, tests)."""
        if executor is not None:
            self._fields["executor"] = executor
        return self

    def retry_statuses(
        self, statuses: Iterable[int]
    ) -> "HttpClientConfigBuilder":
        """Set the response status codes that trigger a retry."""
        codes = frozenset(statuses)
        invalid = sorted(code for code in codes if not 100 <= code <= 599)
        if invalid:
            self._reject(
                "retry_statuses", invalid, "status codes must be in 100-599"
            )
        else:
            self._fields["retry_statuses"] = codes
        return self

    def retry_methods(
        self, methods: Iterable[str]
    ) -> "HttpClientConfigBuilder":
        self._fields["retry_methods"] = frozenset(m.upper() for m in methods)
        return self

    def backoff(
        self, base_seconds: float, max_seconds: float | None = None
    ) -> "HttpClientConfigBuilder":
        """Set exponential backoff: ``base * 2**(attempt - 1)``, capped."""
        if base_seconds >= 0:
            self._fields["backoff_base_seconds"] = float(base_seconds)
        else:
            self._reject("backoff", base_seconds, "base must be >= 0")
        if max_seconds is not None:
            if max_seconds >= 0:
                self._fields["backoff_max_seconds"] = float(max_seconds)
            else:
                self._reject("backoff", max_seconds, "max must be >= 0")
        return self

    def verify_tls(self, verify: bool) -> "HttpClientConfigBuilder":
        self._fields["verify_tls"] = bool(verify)
        return self

    def build(self) -> HttpClientConfig:
        """Return the finalized, immutable configuration."""
        config = HttpClientConfig(
            default_headers=self._headers,
            rejected_options=tuple(
                f"{option}: {reason}" for option, _, reason in self._rejected
            ),
            **self._fields,
        )
        for option, value, reason in self._rejected:
            config.logger.warning(
                "Ignoring invalid client option",
                option=option,
                value=value,
                reason=reason,
            )
        return config


def build_config(**options: Any) -> HttpClientConfig:
    """Build a config from keyword options named after the builder methods.

    ``build_config(base_url="https://x/api", timeout=5, debug=True)``
    """
    builder = HttpClientConfigBuilder()
    for name, value in options.items():
        method = getattr(builder, name, None)
        if name.startswith("_") or name == "build" or method is None:
            raise TypeError(f"unknown client option: {name}")
        method(value)
    return builder.build()
