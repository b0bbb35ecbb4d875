# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
import io
import time
from unittest.mock import Mock

import pytest
import requests

from brisa.networking.config import HttpClientConfig
from brisa.networking.transport import (
    HeadersMiddleware,
    LoggingMiddleware,
    Middleware,
    RetryMiddleware,
    SessionTransport,
    TransportChain,
    buffer_body,
    build_chain,
)
from brisa.networking.types import CallContext
from helpers import FakeTransport, capturing_logger, make_response


def _prepare(method="GET", url="http://example.com/api", **kwargs):
    return requests.Request(method, url, **kwargs).prepare()


def _context(timeout=5.0, deadline=None):
    return CallContext(timeout_seconds=timeout, deadline=deadline)


class RecordingMiddleware(Middleware):
    def __init__(self, name, trail):
        self.name = name
        self.trail = trail

    def handle(self, request, context, call_next):
        self.trail.append(f"{self.name}:in")
        response = call_next(request, context)
        self.trail.append(f"{self.name}:out")
        return response


def test_chain_first_middleware_is_outermost():
    trail = []
    chain = TransportChain(
        [
            RecordingMiddleware("outer", trail),
            RecordingMiddleware("middle", trail),
            RecordingMiddleware("inner", trail),
        ],
        FakeTransport(200),
    )

    chain.send(_prepare(), _context())

    assert trail == [
        "outer:in",
        "middle:in",
        "inner:in",
        "inner:out",
        "middle:out",
        "outer:out",
    ]


def test_chain_without_middlewares_calls_transport_once():
    transport = FakeTransport(204)
    context = _context(timeout=3.0)

    response = TransportChain([], transport).send(_prepare(), context)

    assert response.status_code == 204
    assert transport.calls == 1
    assert transport.timeouts == [3.0]
    assert context.attempts == 1


def test_chain_uses_remaining_deadline_as_timeout():
    transport = FakeTransport(200)
    context = _context(timeout=30.0, deadline=time.monotonic() + 2.0)

    TransportChain([], transport).send(_prepare(), context)

    assert 0 < transport.timeouts[0] <= 2.0


def test_chain_expired_deadline_fails_before_sending():
    transport = FakeTransport(200)
    context = _context(deadline=time.monotonic() - 1)

    with pytest.raises(requests.exceptions.Timeout):
        TransportChain([], transport).send(_prepare(), context)

    assert transport.calls == 0
    assert context.attempts == 0


def test_build_chain_order_is_headers_logging_retry():
    transport = FakeTransport()
    chain = build_chain(HttpClientConfig(), transport)

    assert [type(m) for m in chain.middlewares] == [
        HeadersMiddleware,
        LoggingMiddleware,
        RetryMiddleware,
    ]
    assert chain.transport is transport


def test_headers_middleware_injects_missing_headers():
    transport = FakeTransport()
    chain = TransportChain(
        [HeadersMiddleware({"User-Agent": "brisa", "X-Portal": "nfce"})],
        transport,
    )

    chain.send(_prepare(), _context())

    sent = transport.requests[0].headers
    assert sent["User-Agent"] == "brisa"
    assert sent["X-Portal"] == "nfce"


def test_headers_middleware_request_headers_win_case_insensitively():
    transport = FakeTransport()
    chain = TransportChain(
        [HeadersMiddleware({"User-Agent": "brisa", "Accept": "text/html"})],
        transport,
    )

    chain.send(
        _prepare(headers={"user-agent": "custom", "accept": ""}), _context()
    )

    sent = transport.requests[0].headers
    assert sent["User-Agent"] == "custom"
    # Empty values count as absent.
    assert sent["Accept"] == "text/html"


def test_headers_are_visible_to_every_retried_attempt():
    transport = FakeTransport(requests.exceptions.ConnectionError("down"), 200)
    chain = TransportChain(
        [
            HeadersMiddleware({"X-Portal": "nfce"}),
            RetryMiddleware(2),
        ],
        transport,
    )

    chain.send(_prepare(), _context())

    assert transport.calls == 2
    assert all(r.headers["X-Portal"] == "nfce" for r in transport.requests)


def test_logging_middleware_disabled_emits_nothing():
    logger, capture = capturing_logger()
    chain = TransportChain(
        [LoggingMiddleware(logger, debug=False)],
        FakeTransport(requests.exceptions.ConnectionError("down")),
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context())
    chain = TransportChain(
        [LoggingMiddleware(logger, debug=False)], FakeTransport(200)
    )
    chain.send(_prepare(), _context())

    assert capture.entries == []


def test_logging_middleware_logs_request_and_response():
    logger, capture = capturing_logger()
    transport = FakeTransport(
        make_response(
            201,
            body=b"<html>ok</html>",
            reason="Created",
            headers={"Content-Type": "text/html", "X-Trace": "abc"},
        )
    )
    chain = TransportChain([LoggingMiddleware(logger, debug=True)], transport)

    response = chain.send(
        _prepare(
            "POST",
            "http://example.com/api/consulta?x=1",
            data=io.BytesIO(b"chave=123"),
            headers={"X-Req": "1"},
        ),
        _context(),
    )

    assert transport.bodies == [b"chave=123"]
    assert response.content == b"<html>ok</html>"
    assert response.text == "<html>ok</html>"

    request_entry, response_entry = capture.entries
    assert request_entry["event"] == "HTTP request"
    assert request_entry["log_level"] == "debug"
    assert request_entry["method"] == "POST"
    assert request_entry["url"] == "http://example.com/api/consulta?x=1"
    assert request_entry["headers"].startswith(
        "POST /api/consulta?x=1 HTTP/1.1\r\n"
    )
    assert "X-Req: 1" in request_entry["headers"]
    assert request_entry["body"] == "chave=123"
    assert request_entry["duration_s"] >= 0

    assert response_entry["event"] == "HTTP response"
    assert response_entry["status"] == 201
    assert response_entry["reason"] == "Created"
    assert response_entry["headers"].startswith("HTTP/1.1 201 Created\r\n")
    assert "X-Trace: abc" in response_entry["headers"]
    assert response_entry["body"] == "<html>ok</html>"


def test_logging_middleware_omits_empty_bodies():
    logger, capture = capturing_logger()
    chain = TransportChain(
        [LoggingMiddleware(logger, debug=True)],
        FakeTransport(make_response(204, body=b"")),
    )

    chain.send(_prepare(), _context())

    assert [e["event"] for e in capture.entries] == [
        "HTTP request",
        "HTTP response",
    ]
    assert all("body" not in e for e in capture.entries)


def test_logging_middleware_logs_request_when_downstream_fails():
    logger, capture = capturing_logger()
    chain = TransportChain(
        [LoggingMiddleware(logger, debug=True)],
        FakeTransport(requests.exceptions.ConnectionError("refused")),
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context())

    assert len(capture.entries) == 1
    assert capture.entries[0]["event"] == "HTTP request"
    assert capture.entries[0]["url"] == "http://example.com/api"


def test_retry_makes_n_plus_one_attempts_on_transport_errors():
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    context = _context()
    chain = TransportChain([RetryMiddleware(3)], transport)

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), context)

    assert transport.calls == 4
    assert context.attempts == 4


def test_retry_stops_on_first_success():
    transport = FakeTransport(
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("refused"),
        200,
    )
    chain = TransportChain([RetryMiddleware(5)], transport)

    response = chain.send(_prepare(), _context())

    assert response.status_code == 200
    assert transport.calls == 3


def test_retry_zero_attempts_disables_retries():
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    chain = TransportChain([RetryMiddleware(0)], transport)

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context())

    assert transport.calls == 1


def test_retry_does_not_retry_non_transport_errors():
    transport = FakeTransport(requests.exceptions.TooManyRedirects("loop"))
    chain = TransportChain([RetryMiddleware(3)], transport)

    with pytest.raises(requests.exceptions.TooManyRedirects):
        chain.send(_prepare(), _context())

    assert transport.calls == 1


def test_retry_on_configured_statuses_returns_last_response():
    transport = FakeTransport(503)
    chain = TransportChain(
        [RetryMiddleware(2, statuses=frozenset({503}))], transport
    )

    response = chain.send(_prepare(), _context())

    assert response.status_code == 503
    assert response.content == b"body-503"
    assert transport.calls == 3


def test_retry_status_then_success():
    transport = FakeTransport(502, 200)
    chain = TransportChain(
        [RetryMiddleware(2, statuses=frozenset({502}))], transport
    )

    response = chain.send(_prepare(), _context())

    assert response.status_code == 200
    assert transport.calls == 2


def test_retry_ignores_statuses_outside_set():
    transport = FakeTransport(404)
    chain = TransportChain(
        [RetryMiddleware(3, statuses=frozenset({503}))], transport
    )

    response = chain.send(_prepare(), _context())

    assert response.status_code == 404
    assert transport.calls == 1


def test_retry_skips_non_idempotent_methods():
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    chain = TransportChain([RetryMiddleware(3)], transport)

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare("POST", data=b"x"), _context())

    assert transport.calls == 1


def test_retry_replays_stream_body_on_every_attempt():
    transport = FakeTransport(
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.ConnectionError("refused"),
        200,
    )
    chain = TransportChain(
        [RetryMiddleware(3, methods=frozenset({"PUT"}))], transport
    )
    request = _prepare("PUT", data=io.BytesIO(b"payload-bytes"))

    chain.send(request, _context())

    assert transport.bodies == [b"payload-bytes"] * 3
    assert all(
        r.headers["Content-Length"] == "13" for r in transport.requests
    )


def test_retry_exponential_backoff_is_capped():
    sleeps = []
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    chain = TransportChain(
        [
            RetryMiddleware(
                4,
                backoff_base_seconds=0.5,
                backoff_max_seconds=1.5,
                sleep=sleeps.append,
            )
        ],
        transport,
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context())

    assert sleeps == [0.5, 1.0, 1.5, 1.5]


def test_retry_without_backoff_does_not_sleep():
    sleep = Mock()
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    chain = TransportChain([RetryMiddleware(2, sleep=sleep)], transport)

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context())

    sleep.assert_not_called()


def test_retry_stops_when_backoff_would_overrun_deadline():
    sleep = Mock()
    transport = FakeTransport(requests.exceptions.ConnectionError("refused"))
    chain = TransportChain(
        [RetryMiddleware(3, backoff_base_seconds=60.0, sleep=sleep)],
        transport,
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), _context(deadline=time.monotonic() + 5))

    assert transport.calls == 1
    sleep.assert_not_called()


def test_logging_records_every_retried_attempt():
    logger, capture = capturing_logger()
    transport = FakeTransport(503, 503, 200)
    chain = TransportChain(
        [
            LoggingMiddleware(logger, debug=True),
            RetryMiddleware(2, statuses=frozenset({503})),
        ],
        transport,
    )

    response = chain.send(_prepare(), _context())

    assert response.status_code == 200
    events = [e["event"] for e in capture.entries]
    assert events == ["HTTP request", "HTTP response"] * 3
    statuses = [e["status"] for e in capture.entries if "status" in e]
    assert statuses == [503, 503, 200]


def test_logging_records_failed_attempts_before_retry():
    logger, capture = capturing_logger()
    chain = TransportChain(
        [
            LoggingMiddleware(logger, debug=True),
            RetryMiddleware(1),
        ],
        FakeTransport(requests.exceptions.ConnectionError("refused"), 200),
    )

    chain.send(_prepare(), _context())

    assert [e["event"] for e in capture.entries] == [
        "HTTP request",
        "HTTP request",
        "HTTP response",
    ]


def test_logging_hook_is_released_after_the_call():
    logger, _ = capturing_logger()
    context = _context()
    chain = TransportChain(
        [LoggingMiddleware(logger, debug=True)],
        FakeTransport(requests.exceptions.ConnectionError("refused")),
    )

    with pytest.raises(requests.exceptions.ConnectionError):
        chain.send(_prepare(), context)

    assert context.attempt_hooks == []


def test_retried_attempts_are_silent_without_debug():
    logger, capture = capturing_logger()
    chain = TransportChain(
        [
            LoggingMiddleware(logger, debug=False),
            RetryMiddleware(1),
        ],
        FakeTransport(requests.exceptions.ConnectionError("refused"), 200),
    )

    chain.send(_prepare(), _context())

    assert capture.entries == []


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        (None, b""),
        (b"raw", b"raw"),
        ("text", b"text"),
        (io.BytesIO(b"stream"), b"stream"),
        ({"chave": "1"}, b"chave=1"),
    ],
)
def test_buffer_body_makes_body_rereadable(data, expected):
    request = _prepare("POST", data=data)

    assert buffer_body(request) == expected
    assert buffer_body(request) == expected
    if data is not None:
        assert request.body == expected
        assert request.headers["Content-Length"] == str(len(expected))


def test_buffer_body_replaces_chunked_generators():
    request = _prepare("POST", data=(chunk for chunk in [b"a", b"bc"]))
    assert request.headers["Transfer-Encoding"] == "chunked"

    assert buffer_body(request) == b"abc"
    assert "Transfer-Encoding" not in request.headers
    assert request.headers["Content-Length"] == "3"


def test_session_transport_delegates_to_session_send():
    session = Mock(spec=requests.Session)
    session.send.return_value = make_response(200)
    transport = SessionTransport(session, verify_tls=False)
    request = _prepare()

    response = transport.send(request, timeout=4.0)

    assert response.status_code == 200
    session.send.assert_called_once_with(
        request, timeout=4.0, verify=False, allow_redirects=True
    )
