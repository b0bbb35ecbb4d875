"""URL helpers: base URL normalization, target resolution, query merging."""

from __future__ import annotations

import re
from typing import Any, Iterable, Iterator, Mapping, Sequence, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import ConfigurationError

QueryParams = Union[
    Mapping[str, Union[Any, Sequence[Any]]],
    Sequence[Tuple[str, Any]],
]

# Malformed percent escapes and control characters.
_INVALID_TARGET = re.compile(r"%(?![0-9A-Fa-f]{2})|[\x00-\x1f\x7f]")


def normalize_base_url(base_url: str) -> str:
    """Validate an absolute base URL and strip trailing path slashes.

    Example: ``"http://x.com/api/v1/"`` -> ``"http://x.com/api/v1"``

    Raises:
        ConfigurationError: if the URL cannot be parsed or lacks scheme/host.
    """
    try:
        parts = urlsplit(base_url)
    except ValueError as exc:
        raise ConfigurationError(f"invalid base URL: {exc}") from exc
    if _INVALID_TARGET.search(base_url):
        raise ConfigurationError(f"invalid base URL: {base_url}")
    if not parts.scheme or not parts.netloc:
        raise ConfigurationError(
            "base URL must be absolute (have scheme and host)"
        )
    return urlunsplit(parts._replace(path=parts.path.rstrip("/")))


def resolve_url(base_url: str | None, target: str) -> str:
    """Resolve ``target`` against ``base_url``.

    Absolute targets (scheme and host) are returned untouched. Relative
    targets are appended to the base path, so ``"/users"`` and ``"users"``
    both land under it. The base query is only kept for an empty target.
    """
    try:
        parts = urlsplit(target)
    except ValueError as exc:
        raise ConfigurationError(f"invalid URL or path: {target}") from exc
    if _INVALID_TARGET.search(target):
        raise ConfigurationError(f"invalid URL or path: {target}")

    if parts.scheme:
        if not parts.netloc:
            raise ConfigurationError(f"invalid URL or path: {target}")
        return target
    if ":" in parts.path.split("/", 1)[0]:
        raise ConfigurationError(f"invalid URL or path: {target}")

    if base_url is None:
        raise ConfigurationError(
            "cannot resolve relative path without a base URL"
        )
    base = urlsplit(base_url)

    if parts.netloc:
        # Network-path reference: only the scheme comes from the base.
        return urlunsplit(parts._replace(scheme=base.scheme))

    if parts.path:
        path = _remove_dot_segments(
            base.path.rstrip("/") + "/" + parts.path.lstrip("/")
        )
        query = parts.query
    else:
        path = base.path
        query = parts.query or base.query
    return urlunsplit((base.scheme, base.netloc, path, query, parts.fragment))


def add_query_params(url: str, params: QueryParams | None) -> str:
    """Merge ``params`` into the query string of ``url``.

    Existing and new values are combined, keys are emitted in sorted order and
    the values of one key keep their insertion order.
    """
    if not params:
        return url

    parts = urlsplit(url)
    merged: dict[str, list[str]] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        merged.setdefault(key, []).append(value)
    for key, value in _iter_params(params):
        merged.setdefault(key, []).append(value)

    query = urlencode(
        [(key, value) for key in sorted(merged) for value in merged[key]]
    )
    return urlunsplit(parts._replace(query=query))


def _iter_params(params: QueryParams) -> Iterator[tuple[str, str]]:
    items: Iterable[tuple[str, Any]]
    if isinstance(params, Mapping):
        items = params.items()
    else:
        items = params
    for key, value in items:
        if isinstance(value, (list, tuple)):
            for item in value:
                yield str(key), str(item)
        else:
            yield str(key), str(value)


def _remove_dot_segments(path: str) -> str:
    if "." not in path:
        return path
    segments = path.split("/")
    output: list[str] = []
    for segment in segments:
        if segment == ".":
            continue
        if segment == "..":
            if len(output) > 1:
                output.pop()
            continue
        output.append(segment)
    if segments[-1] in (".", ".."):
        output.append("")
    return "/".join(output)
