"""
Reader for ``text/uri-list`` resources (RFC 2483).

Each non-empty line that does not start with ``#`` is a URI. Relative entries
are resolved against the final address of the list after redirects. Basic
authentication is taken from the URI's user-info part.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import httpx

from httpx_eventsource._auth import UserInfoAuth
from httpx_eventsource._client import EventStreamHttpClient, HttpConfig, check_url, translated_errors

ACCEPT = "text/uri-list, text/plain;q=0.9, text/*;q=0.5"


@dataclass(frozen=True, slots=True)
class UriList:
    """
    Lazily read list of URIs behind ``uri``.

    Every iteration performs a new request, so a UriList can be iterated
    any number of times; URIs are yielded while the body is still being read.

    Example:
        >>> for entry in UriList("https://example.com/feeds.uri"):
        ...     print(entry)
    """

    uri: str
    timeout_s: float = 60.0
    transport: httpx.BaseTransport | None = None

    @staticmethod
    def get_from(uri: str, *, transport: httpx.BaseTransport | None = None) -> list[str]:
        """Read the whole list at once."""
        return list(UriList(uri, transport=transport))

    @staticmethod
    def stream_from(uri: str, *, transport: httpx.BaseTransport | None = None) -> Iterator[str]:
        """Return a lazy iterator over the list."""
        return iter(UriList(uri, transport=transport))

    def __iter__(self) -> Iterator[str]:
        """
        Yield the absolute URIs of the list in order.

        Raises:
            InvalidURIError: If ``uri`` is relative, malformed or unsupported.
            EventSourceHTTPError: If the server answers with a non-2xx status.
            EventSourceConnectionError: If the transport fails.
        """
        auth = UserInfoAuth.from_url(str(check_url(self.uri)))
        headers = auth.apply({"Accept": ACCEPT})
        http = EventStreamHttpClient(config=HttpConfig(timeout_s=self.timeout_s), transport=self.transport)
        try:
            with translated_errors(auth.url):
                with http.stream_get(auth.url, headers) as response:
                    http.raise_for_status(response)
                    base = response.url
                    for line in response.iter_lines():
                        line = line.strip()
                        if not line or line.startswith("#"):
                            continue
                        yield str(base.join(line))
        finally:
            http.close()
