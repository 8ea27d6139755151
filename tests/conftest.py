"""Shared fixtures: a scripted escrow API behind `httpx.MockTransport`."""

from typing import Any, Callable, Union

import httpx
import pytest

from swiftline.services.session.models import MemoryCredentialStore, Session
from swiftline.services.session.service import SessionManager
from swiftline.services.transport.service import Transport

BASE_URL = "http://escrow.test"


def envelope(data: Any = None, status_code: int = 200, success: bool = True, **extra) -> httpx.Response:
    """JSON envelope response as the escrow API sends it."""

    payload = {"success": success, **extra}
    if data is not None:
        payload["data"] = data
    return httpx.Response(status_code, json=payload)


def unauthorized() -> httpx.Response:
    return envelope(status_code=401, success=False, error="Unauthorized")


Responder = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeServer:
    """Per-route response queues; the last response of a queue repeats."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Responder]] = {}

    def add(self, method: str, path: str, *responses: Responder) -> None:
        self._routes.setdefault((method.upper(), path), []).extend(responses)

    def count(self, method: str | None = None, path: str | None = None) -> int:
        return sum(
            1
            for request in self.requests
            if (method is None or request.method == method.upper())
            and (path is None or request.url.path == path)
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return envelope(status_code=404, success=False, error="Not found")
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            return responder(request)
        return responder


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def transport(server: FakeServer) -> Transport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler))
    return Transport(base_url=BASE_URL, client=client)


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore(Session(access_token="access-1", refresh_token="refresh-1"))


@pytest.fixture
def session_manager(transport: Transport, store: MemoryCredentialStore) -> SessionManager:
    return SessionManager(transport, store=store)
