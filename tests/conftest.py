"""Shared test fixtures for the convertio_client test suite.

WHY: Transport, session and CLI tests all need a Convertio service that
answers deterministically and records what it was sent. Centralizing the
fake here keeps every test module on the same response shapes.

HOW: FakeConvertio routes (method, path) pairs to scripted responses and
is plugged into httpx through httpx.MockTransport, so the real
ConvertioAPI code path (URL building, JSON encoding, response decoding)
runs unchanged.

RULES:
- Each route holds a queue of responses; the last one repeats forever
- A queued exception instance is raised instead of answering
- A queued callable is called with the request and must return a Response
- Unknown routes answer with a Convertio-style 404 error envelope
- The Convertio API is never called for real
"""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from convertio_client.api.client import ConvertioAPI
from convertio_client.config import TransportConfig
from convertio_client.conversion import Conversion

TEST_API_KEY = "test-api-key-0123456789"
CONVERT_ID = "c5e0d1ab8a1b6e2d74f1c5f3a3b2d9e7"


def ok(data: Optional[Dict[str, Any]] = None) -> httpx.Response:
    """A successful Convertio JSON envelope."""
    body: Dict[str, Any] = {"code": 200, "status": "ok"}
    if data is not None:
        body["data"] = data
    return httpx.Response(200, json=body)


def error(message: str, code: int = 422) -> httpx.Response:
    """A Convertio JSON envelope reporting a service error."""
    return httpx.Response(code, json={"code": code, "status": "error", "error": message})


def status_response(step: str, percent: Optional[int] = None, output: Optional[dict] = None) -> httpx.Response:
    data: Dict[str, Any] = {"id": CONVERT_ID, "step": step, "minutes": 1}
    if percent is not None:
        data["step_percent"] = percent
    if output is not None:
        data["output"] = output
    return ok(data)


def content_response(content: bytes) -> httpx.Response:
    return ok({"id": CONVERT_ID, "encode": "base64", "content": base64.b64encode(content).decode("ascii")})


class FakeConvertio:
    """Scripted stand-in for the Convertio HTTP API."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], list] = {}

    def add(self, method: str, path: str, *responses: Any) -> "FakeConvertio":
        self._routes.setdefault((method, path), []).extend(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return error("No route for {} {}".format(request.method, request.url.path), 404)

        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and (path is None or r.url.path == path)
        ]

    def json_body(self, request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep CONVERTIO_* variables from the developer's shell or .env out of tests."""
    for name in (
        "CONVERTIO_API_KEY",
        "CONVERTIO_PROTOCOL",
        "CONVERTIO_CONNECT_TIMEOUT",
        "CONVERTIO_TOTAL_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_service() -> FakeConvertio:
    return FakeConvertio()


@pytest.fixture
def api(fake_service) -> ConvertioAPI:
    return ConvertioAPI(TEST_API_KEY, config=TransportConfig(), transport=fake_service.transport)


@pytest.fixture
def conversion(api) -> Conversion:
    return Conversion(api=api)


@pytest.fixture
def started_service(fake_service) -> FakeConvertio:
    """Fake service that accepts a job creation with CONVERT_ID."""
    fake_service.add("POST", "/convert", ok({"id": CONVERT_ID, "minutes": 3}))
    return fake_service
