from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import httpx

from httpx_eventsource._config import http_debug_enabled
from httpx_eventsource._errors import (
    EventSourceConnectionError,
    EventSourceHTTPError,
    EventSourceTimeoutError,
    InvalidURIError,
)
from httpx_eventsource._transports import AsyncFileTransport, FileTransport

SUPPORTED_SCHEMES = frozenset({"http", "https", "file"})


@dataclass(frozen=True, slots=True)
class HttpConfig:
    timeout_s: float = 60.0
    follow_redirects: bool = True


def _parse_error_response(
    status_code: int,
    body_text: str,
    content_type: str,
    *,
    reason: str = "",
    url: str | None = None,
) -> EventSourceHTTPError:
    """
    Build an EventSourceHTTPError from a non-2xx response.

    JSON bodies are searched for ``error.message`` or ``message``; any other
    body is used verbatim. An empty body falls back to the reason phrase.
    """
    message = reason or "HTTP error"
    if body_text and body_text.strip():
        message = body_text.strip()

    if "application/json" in content_type.lower() and body_text:
        try:
            data = json.loads(body_text)
        except (json.JSONDecodeError, ValueError):
            data = None
        if isinstance(data, dict):
            error_obj = data.get("error")
            msg = error_obj.get("message") if isinstance(error_obj, dict) else data.get("message")
            if isinstance(msg, str) and msg.strip():
                message = msg.strip()

    return EventSourceHTTPError(
        status_code=status_code,
        message=message,
        body=body_text or None,
        url=url,
    )


def _error_from_response(resp: httpx.Response) -> EventSourceHTTPError:
    return _parse_error_response(
        status_code=resp.status_code,
        body_text=resp.text,
        content_type=resp.headers.get("content-type", ""),
        reason=resp.reason_phrase,
        url=str(resp.url),
    )


def check_url(url: str | httpx.URL) -> httpx.URL:
    """
    Validate that ``url`` is absolute and uses a scheme this client can open.

    Raises:
        InvalidURIError: For relative, malformed or unsupported URLs.
    """
    try:
        parsed = httpx.URL(str(url))
    except httpx.InvalidURL as exc:
        raise InvalidURIError(f"Malformed URI {str(url)!r}: {exc}", cause=exc) from exc
    if not parsed.scheme:
        raise InvalidURIError(f"URI is not absolute: {str(url)!r}")
    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise InvalidURIError(f"Unsupported URI scheme {parsed.scheme!r} in {str(url)!r}")
    # file URLs have no host
    if parsed.scheme != "file" and not parsed.host:
        raise InvalidURIError(f"URI has no host: {str(url)!r}")
    return parsed


@contextmanager
def translated_errors(url: str) -> Iterator[None]:
    """Re-raise httpx failures inside the block as library errors."""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise EventSourceTimeoutError(f"Timed out talking to {url}: {exc!r}", cause=exc) from exc
    except (httpx.UnsupportedProtocol, httpx.InvalidURL) as exc:
        raise InvalidURIError(f"Cannot open {url}: {exc}", cause=exc) from exc
    except httpx.HTTPError as exc:
        raise EventSourceConnectionError(f"Connection to {url} failed: {exc!r}", cause=exc) from exc


class EventStreamHttpClient:
    """
    Thin httpx wrapper with:
    - streaming GET via httpx.Client.stream / AsyncClient.stream
    - ``file://`` support through mounted transports
    - optional debug logging (``EVENTSOURCE_HTTP_DEBUG``)
    """

    def __init__(
        self,
        *,
        config: HttpConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpConfig()
        self._debug_http = http_debug_enabled()

        def _redact_headers(headers: dict[str, Any]) -> dict[str, Any]:
            out = dict(headers)
            for k in ("authorization", "Authorization"):
                if k in out:
                    scheme = str(out[k]).split(" ", 1)[0]
                    out[k] = f"{scheme} ***REDACTED***"
            return out

        def _log_request(request: httpx.Request) -> None:
            if not self._debug_http:
                return
            logging.warning("HTTPX REQUEST %s %s", request.method, request.url)
            logging.warning("HTTPX REQUEST headers=%s", _redact_headers(dict(request.headers)))

        def _log_response_head(response: httpx.Response) -> bool:
            req = response.request
            logging.warning("HTTPX RESPONSE %s %s -> %s", req.method, req.url, response.status_code)
            logging.warning("HTTPX RESPONSE headers=%s", dict(response.headers))
            # 2xx bodies are the stream itself, whatever the content type
            if 200 <= response.status_code < 300:
                logging.warning("HTTPX RESPONSE body=(streamed; not auto-logged)")
                return False
            return True

        def _log_response_sync(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_head(response):
                return
            try:
                response.read()
                logging.warning("HTTPX RESPONSE body=%s", response.text)
            except httpx.HTTPError as e:
                logging.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        async def _log_request_async(request: httpx.Request) -> None:
            _log_request(request)

        async def _log_response_async(response: httpx.Response) -> None:
            if not self._debug_http or not _log_response_head(response):
                return
            try:
                await response.aread()
                logging.warning("HTTPX RESPONSE body=%s", response.text)
            except httpx.HTTPError as e:
                logging.warning("HTTPX RESPONSE body=(unreadable) err=%r", e)

        EventHooksDict = dict[str, list[Callable[..., Any]]]

        hooks_sync: EventHooksDict = {"request": [_log_request], "response": [_log_response_sync]}
        hooks_async: EventHooksDict = {"request": [_log_request_async], "response": [_log_response_async]}

        timeout = httpx.Timeout(self._config.timeout_s)
        self._client_kwargs: dict[str, Any] = {
            "timeout": timeout,
            "follow_redirects": self._config.follow_redirects,
        }
        self._hooks_sync = hooks_sync
        self._hooks_async = hooks_async
        self._transport = transport
        self._async_transport = async_transport
        # Built on first use; a source only needs the async one, UriList the sync one
        self._client: httpx.Client | None = None
        self._aclient: httpx.AsyncClient | None = None

    @property
    def config(self) -> HttpConfig:
        return self._config

    def _sync_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                **self._client_kwargs,
                event_hooks=self._hooks_sync,
                transport=self._transport,
                mounts={"file://": FileTransport()},
            )
        return self._client

    def _async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(
                **self._client_kwargs,
                event_hooks=self._hooks_async,
                transport=self._async_transport,
                mounts={"file://": AsyncFileTransport()},
            )
        return self._aclient

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    async def aclose(self) -> None:
        if self._aclient is not None:
            await self._aclient.aclose()

    @staticmethod
    def raise_for_status(resp: httpx.Response) -> None:
        """Check the status of a streamed response and raise EventSourceHTTPError."""
        if 200 <= resp.status_code < 300:
            return
        resp.read()
        raise _error_from_response(resp)

    @staticmethod
    async def araise_for_status(resp: httpx.Response) -> None:
        if 200 <= resp.status_code < 300:
            return
        await resp.aread()
        raise _error_from_response(resp)

    def _timeout(self, timeout_s: float | None) -> httpx.Timeout:
        return httpx.Timeout(self._config.timeout_s if timeout_s is None else timeout_s)

    def stream_get(self, url: str, headers: dict[str, str], *, timeout_s: float | None = None) -> Any:
        """
        Return an httpx stream context manager.

        Usage:
            with client.stream_get(url, headers) as r:
                for line in r.iter_lines():
                    ...
        """
        return self._sync_client().stream("GET", url, headers=headers, timeout=self._timeout(timeout_s))

    def astream_get(self, url: str, headers: dict[str, str], *, timeout_s: float | None = None) -> Any:
        """
        Return an async httpx stream context manager.

        Usage:
            async with client.astream_get(url, headers) as r:
                async for line in r.aiter_lines():
                    ...
        """
        return self._async_client().stream("GET", url, headers=headers, timeout=self._timeout(timeout_s))
