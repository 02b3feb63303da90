from __future__ import annotations

import base64
import os
import queue
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from email.message import Message
from typing import Callable

import pytest
from dotenv import find_dotenv, load_dotenv

from httpx_eventsource._config import ENV_HTTP_DEBUG, ENV_READ_TIMEOUT_MS, ENV_RETRY_MS

# Cargar .env lo más temprano posible (antes de pytest_collection_modifyitems)
load_dotenv(find_dotenv(usecwd=True))

TEST_URL_ENV = "EVENTSOURCE_TEST_URL"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    test_url = os.getenv(TEST_URL_ENV)
    for item in items:
        if "integration" in item.keywords and not test_url:
            item.add_marker(pytest.mark.skip(reason=f"Falta {TEST_URL_ENV} en entorno/.env"))


class _Handler(BaseHTTPRequestHandler):
    server: LocalSseServer

    def log_message(self, format: str, *args: object) -> None:
        pass

    def do_GET(self) -> None:
        self.server.record(self)
        path = self.path.split("?", 1)[0]
        if path == "/redirect":
            self.send_response(301)
            self.send_header("Location", "/events")
            self.end_headers()
        elif path == "/nocontent":
            self.send_response(204)
            self.end_headers()
        elif path == "/list.uri":
            body = self.server.uri_list.encode("utf-8")
            self.send_response(200)
            self.send_header("Content-Type", "text/uri-list")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        elif path == "/auth" and self.headers.get("Authorization") != self.server.expected_auth:
            self.send_response(401)
            self.send_header("WWW-Authenticate", 'Basic realm="events"')
            self.end_headers()
        elif path in ("/events", "/auth"):
            self._stream()
        else:
            self.send_error(404)

    def _stream(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        self.wfile.flush()
        lines = self.server.open_connection()
        while True:
            text = lines.get()
            if text is None:
                return
            try:
                self.wfile.write(text.encode("utf-8"))
                self.wfile.flush()
            except OSError:
                return


class LocalSseServer(ThreadingHTTPServer):
    """
    Threaded HTTP server speaking ``text/event-stream`` on ``/events``.

    ``println`` goes to the most recent connection; lines sent before anyone
    connected are delivered to the first connection.
    """

    daemon_threads = True

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _Handler)
        self.uri_list = ""
        self.expected_auth = "Basic " + base64.b64encode(b"user:pw").decode("ascii")
        self.requests: list[tuple[str, Message]] = []
        self._connections: list[queue.Queue[str | None]] = []
        self._pending: list[str] = []
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def url(self, path: str = "/events") -> str:
        return self.base_url + path

    def record(self, handler: BaseHTTPRequestHandler) -> None:
        with self._lock:
            self.requests.append((handler.path, handler.headers))

    def open_connection(self) -> queue.Queue[str | None]:
        lines: queue.Queue[str | None] = queue.Queue()
        with self._lock:
            self._connections.append(lines)
            for text in self._pending:
                lines.put(text)
            self._pending.clear()
        return lines

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def println(self, text: str = "") -> None:
        with self._lock:
            if self._connections:
                self._connections[-1].put(text + "\n")
            else:
                self._pending.append(text + "\n")

    def drop(self) -> None:
        """End the most recent response."""
        with self._lock:
            if self._connections:
                self._connections[-1].put(None)

    def stop(self) -> None:
        with self._lock:
            for lines in self._connections:
                lines.put(None)
        self.shutdown()
        self.server_close()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (ENV_READ_TIMEOUT_MS, ENV_RETRY_MS, ENV_HTTP_DEBUG):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def sse_server():
    server = LocalSseServer()
    thread = threading.Thread(target=server.serve_forever, name="sse-server", daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.stop()
        thread.join(5)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait
