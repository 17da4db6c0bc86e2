import json

import httpx
import pytest

from labtrack.commons.types import UserCtx
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter

BASE_URL = "http://lab.test/api/v1"
USER = UserCtx(hospital_id=7, user_id=3, role_name="pathology")


class FakeBackend:
    """Canned responses keyed by (method, path relative to the API root)."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method: str, path: str, *responses):
        self.routes[(method, path)] = list(responses)
        return self

    def paths(self, method: str = None):
        return [p for m, p, _ in self.calls if method is None or m == method]

    def bodies(self, path: str):
        return [json.loads(r.content) for m, p, r in self.calls if p == path and m == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        rel = request.url.path.replace("/api/v1/", "", 1)
        self.calls.append((request.method, rel, request))
        queue = self.routes.get((request.method, rel))
        if not queue:
            return httpx.Response(404, json={"message": "not found"})
        canned = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(canned, Exception):
            raise canned
        if callable(canned):
            return canned(request)
        if isinstance(canned, httpx.Response):
            return canned
        return httpx.Response(200, json=canned)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def router():
    return EndpointRouter(USER)


@pytest.fixture
def transport(backend):
    return HttpTransport(
        BASE_URL,
        token="abc123",
        attempts=2,
        backoff_sec=0,
        transport=httpx.MockTransport(backend.handler),
    )
