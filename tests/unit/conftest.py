from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable

import httpx
import pytest

from httpx_eventsource._config import ENV_HTTP_DEBUG, ENV_READ_TIMEOUT_MS, ENV_RETRY_MS


class ScriptedStream(httpx.AsyncByteStream):
    """
    Response body that yields ``chunks`` and then either raises ``error``,
    hangs until cancelled (``hang=True``) or ends.
    """

    def __init__(self, *chunks: str | bytes, error: Exception | None = None, hang: bool = False) -> None:
        self.chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.error = error
        self.hang = hang
        self.closed = threading.Event()

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.sleep(3600)

    async def aclose(self) -> None:
        self.closed.set()


class RecordingHandler:
    """
    MockTransport handler that answers with the next scripted response and
    keeps every request. The last response is reused once the script runs out.
    """

    def __init__(self, *responses: Callable[[httpx.Request], httpx.Response] | httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            index = min(len(self.requests), len(self.responses)) - 1
            response = self.responses[index]
        if callable(response) and not isinstance(response, httpx.Response):
            return response(request)
        # Un Response no se puede devolver dos veces; se clona.
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def event_stream(*chunks: str, error: Exception | None = None, hang: bool = False, **headers: str):
    """Build a fresh 200 text/event-stream response per request."""

    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream", **headers},
            stream=ScriptedStream(*chunks, error=error, hang=hang),
        )

    return respond


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # Las variables del entorno no deben alterar los defaults en los tests.
    for name in (ENV_READ_TIMEOUT_MS, ENV_RETRY_MS, ENV_HTTP_DEBUG):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    def _wait(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait


@pytest.fixture
def scripted_stream() -> type[ScriptedStream]:
    return ScriptedStream


@pytest.fixture
def recording_handler() -> type[RecordingHandler]:
    return RecordingHandler


@pytest.fixture
def sse_response() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    return event_stream
