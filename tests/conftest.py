import json
from typing import Any, Callable, List, Union

import httpx
import pytest

from qbo_client import ClientConfiguration, QuickBooks

REALM = "9130350000000000"
BASE = f"https://quickbooks.api.intuit.com/v3/company/{REALM}"
SANDBOX_BASE = f"https://sandbox-quickbooks.api.intuit.com/v3/company/{REALM}"


class FakeQBO:
    """MockTransport handler that records requests and replays queued responses.

    A queued item is either an ``httpx.Response`` or a callable taking the
    request (use it to raise transport errors).
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responses: List[Union[httpx.Response, Callable[[httpx.Request], Any]]] = []

    def queue(self, *responses):
        self.responses.extend(responses)
        return self

    def json(self, body: Any, status: int = 200, **headers: str):
        return self.queue(httpx.Response(status, json=body, headers=headers))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        item = self.responses.pop(0)
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        return item

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def body_of(request: httpx.Request) -> Any:
    return json.loads(request.content)


def make_config(**overrides) -> ClientConfiguration:
    values = dict(
        consumer_key="key",
        consumer_secret="secret",
        access_token="access-token",
        refresh_token="refresh-token",
        realm_id=REALM,
        oauth_version="2.0",
        max_retries=2,
        retry_backoff=0,
    )
    values.update(overrides)
    return ClientConfiguration(**values)


@pytest.fixture
def fake() -> FakeQBO:
    return FakeQBO()


@pytest.fixture
def make_client(fake):
    def _make(**overrides) -> QuickBooks:
        return QuickBooks(make_config(**overrides), transport=httpx.MockTransport(fake))

    return _make


@pytest.fixture
def qb(make_client) -> QuickBooks:
    return make_client()
