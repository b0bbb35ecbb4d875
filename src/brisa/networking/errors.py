"""Error taxonomy surfaced by HttpClient.

Every failure reaches the caller as one of these classes inside an ``Err``
result: a local configuration mistake, a network-level fault, or a status
rejection from the remote side.
"""

from __future__ import annotations

import requests

_CONFIGURATION_EXCEPTIONS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.URLRequired,
    requests.exceptions.InvalidHeader,
)


class HttpClientError(Exception):
    """Base class for all client errors."""


class ConfigurationError(HttpClientError, ValueError):
    """The request could not be built from the given target or settings."""


class NetworkError(HttpClientError):
    """The transport could not complete the exchange."""


class RequestTimeoutError(NetworkError):
    """The exchange did not finish before its timeout or deadline."""


class HTTPStatusError(HttpClientError):
    """A response arrived with a failing status code (>= 400)."""

    def __init__(self, response: requests.Response) -> None:
        self.response = response
        self.status_code = response.status_code
        reason = f" {response.reason}" if response.reason else ""
        super().__init__(
            f"request returned error status {self.status_code}{reason}"
        )


def classify_exception(
    exc: requests.exceptions.RequestException,
) -> HttpClientError:
    """Map a requests exception onto the taxonomy."""
    error: HttpClientError
    if isinstance(exc, _CONFIGURATION_EXCEPTIONS):
        error = ConfigurationError(str(exc))
    elif isinstance(exc, requests.exceptions.Timeout):
        error = RequestTimeoutError(str(exc))
    else:
        error = NetworkError(str(exc))
    error.__cause__ = exc
    return error


def classify_response(response: requests.Response) -> HTTPStatusError | None:
    """Return an HTTPStatusError for failing responses, None otherwise."""
    if response.status_code >= 400:
        return HTTPStatusError(response)
    return None
