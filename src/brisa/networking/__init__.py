"""Networking layer: configurable HTTP client and transport chain."""

from .client import HttpClient, RequestOptions, default_client, get
from .config import HttpClientConfig, HttpClientConfigBuilder, build_config
from .errors import (
    ConfigurationError,
    HttpClientError,
    HTTPStatusError,
    NetworkError,
    RequestTimeoutError,
)
from .transport import (
    HeadersMiddleware,
    LoggingMiddleware,
    Middleware,
    RetryMiddleware,
    SessionTransport,
    TransportChain,
)
from .types import CallContext, Err, Ok, Result

__all__ = [
    "CallContext",
    "ConfigurationError",
    "Err",
    "HTTPStatusError",
    "HeadersMiddleware",
    "HttpClient",
    "HttpClientConfig",
    "HttpClientConfigBuilder",
    "HttpClientError",
    "LoggingMiddleware",
    "Middleware",
    "NetworkError",
    "Ok",
    "RequestOptions",
    "RequestTimeoutError",
    "Result",
    "RetryMiddleware",
    "SessionTransport",
    "TransportChain",
    "build_config",
    "default_client",
    "get",
]
