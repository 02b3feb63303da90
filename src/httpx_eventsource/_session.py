"""
A single connection attempt: build the request, open the stream and feed
every line through an ``EventAccumulator``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

import httpx

from httpx_eventsource._auth import UserInfoAuth
from httpx_eventsource._client import EventStreamHttpClient, check_url, translated_errors
from httpx_eventsource._errors import EventSourceError
from httpx_eventsource._sse import EventAccumulator, Message

ACCEPT = "text/event-stream, text/plain;q=0.9, text/*;q=0.5"

logger = logging.getLogger(__name__)


class SessionOutcome(enum.Enum):
    ENDED = "ended"
    NO_CONTENT = "no_content"


def build_request_headers(auth: UserInfoAuth, last_event_id: str | None) -> dict[str, str]:
    """Headers sent on every connection attempt, before the before-open hook runs."""
    headers = {
        "Accept": ACCEPT,
        "Accept-Encoding": "identity",
        "Cache-Control": "no-store",
    }
    if last_event_id:
        headers["Last-Event-ID"] = last_event_id
    return auth.apply(headers)


def encode_headers(headers: dict[str, str]) -> dict[str, bytes]:
    """Header values go out as UTF-8; ids and hook values are not limited to ASCII."""
    try:
        return {name: value.encode("utf-8") if isinstance(value, str) else value for name, value in headers.items()}
    except UnicodeEncodeError as exc:
        raise EventSourceError(f"Cannot encode request headers: {exc}", cause=exc) from exc


def _ignore(_: object) -> None:
    return None


@dataclass(slots=True)
class ConnectionSession:
    """
    Streams one response until it ends, fails or gets cancelled.

    The callbacks run on the caller's event loop in wire order. Failures are
    raised as library errors; the session never retries on its own.
    """

    http: EventStreamHttpClient
    url: str
    timeout_s: float
    last_event_id: str | None = None
    before_open: Callable[[dict[str, str]], object] | None = None
    on_open: Callable[[httpx.Response], object] = _ignore
    on_message: Callable[[Message], object] = _ignore
    on_retry: Callable[[int], object] = _ignore
    on_event_id: Callable[[str | None], object] = _ignore
    accumulator: EventAccumulator = field(init=False)

    def __post_init__(self) -> None:
        self.accumulator = EventAccumulator(last_event_id=self.last_event_id)

    def request_headers(self) -> tuple[str, dict[str, str]]:
        """Validate the URL and return the address to request with its headers."""
        auth = UserInfoAuth.from_url(str(check_url(self.url)))
        headers = build_request_headers(auth, self.accumulator.last_event_id)
        if self.before_open is not None:
            self.before_open(headers)
        return auth.url, headers

    async def run(self) -> SessionOutcome:
        url, headers = self.request_headers()
        wire_headers = encode_headers(headers)
        with translated_errors(url):
            async with self.http.astream_get(url, wire_headers, timeout_s=self.timeout_s) as response:
                await self.http.araise_for_status(response)
                self.on_open(response)
                # text/event-stream is always UTF-8, whatever charset is declared
                if response.charset_encoding is not None:
                    response.encoding = "utf-8"
                async for line in response.aiter_lines():
                    self.feed(line)
                logger.debug("stream from %s ended with status %s", response.url, response.status_code)
                if response.status_code == 204:
                    return SessionOutcome.NO_CONTENT
                return SessionOutcome.ENDED

    def feed(self, line: str) -> None:
        acc = self.accumulator
        previous_id = acc.last_event_id
        message = acc.feed(line)
        if acc.last_event_id != previous_id:
            self.on_event_id(acc.last_event_id)
        retry = acc.take_retry()
        if retry is not None:
            self.on_retry(retry)
        if message is not None:
            self.on_message(message)
