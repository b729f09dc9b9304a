import json
from typing import Callable, List

import httpx
import pytest

from backend.bfl_client import BFLClient


class FakeProvider:
    """
    Scripted stand-in for the BFL API behind an httpx.MockTransport.
    Each queued response is returned in order; every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responses: List[Callable[[httpx.Request], httpx.Response]] = []

    def queue_json(self, body, status_code: int = 200) -> "FakeProvider":
        self._responses.append(lambda request: httpx.Response(status_code, json=body))
        return self

    def queue_text(self, text: str, status_code: int) -> "FakeProvider":
        self._responses.append(lambda request: httpx.Response(status_code, text=text))
        return self

    def queue_bytes(self, content: bytes, status_code: int = 200) -> "FakeProvider":
        self._responses.append(lambda request: httpx.Response(status_code, content=content))
        return self

    def queue_error(self, exc: Exception) -> "FakeProvider":
        def raise_(request):
            raise exc

        self._responses.append(raise_)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            raise AssertionError(f"unexpected request: {request.method} {request.url}")
        return self._responses.pop(0)(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_client(provider):
    def factory(max_attempts=None) -> BFLClient:
        return BFLClient(poll_interval=0, max_attempts=max_attempts, transport=provider.transport)

    return factory
