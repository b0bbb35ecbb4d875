import io

import requests
import structlog
from requests.structures import CaseInsensitiveDict
from structlog.testing import LogCapture


def make_response(
    status: int = 200,
    *,
    body: bytes = b"",
    reason: str = "OK",
    url: str = "http://example.com",
    headers=None,
):
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.url = url
    response.headers = CaseInsensitiveDict(
        headers or {"Content-Type": "text/html; charset=utf-8"}
    )
    response.raw = io.BytesIO(body)
    return response


class FakeTransport:
    """Raw transport double replaying scripted outcomes.

    Outcomes are status codes, responses or exceptions; the last outcome
    repeats once the script runs out.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [200]
        self.requests = []
        self.bodies = []
        self.timeouts = []

    @property
    def calls(self):
        return len(self.requests)

    def send(self, request, *, timeout):
        self.requests.append(request)
        self.timeouts.append(timeout)
        body = request.body
        if hasattr(body, "read"):
            body = body.read()
        self.bodies.append(body)

        if len(self.outcomes) > 1:
            outcome = self.outcomes.pop(0)
        else:
            outcome = self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, int):
            return make_response(
                outcome, url=request.url, body=b"body-%d" % outcome
            )
        return outcome


def capturing_logger():
    capture = LogCapture()
    logger = structlog.wrap_logger(
        structlog.ReturnLogger(), processors=[capture]
    )
    return logger, capture
