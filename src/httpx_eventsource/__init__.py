from __future__ import annotations

from httpx_eventsource._errors import (
    EventSourceConnectionError,
    EventSourceError,
    EventSourceHTTPError,
    EventSourceTimeoutError,
    InvalidURIError,
)
from httpx_eventsource._sse import Message
from httpx_eventsource.eventsource import EventSource, Status
from httpx_eventsource.urilist import UriList

__all__ = [
    "EventSource",
    "EventSourceConnectionError",
    "EventSourceError",
    "EventSourceHTTPError",
    "EventSourceTimeoutError",
    "InvalidURIError",
    "Message",
    "Status",
    "UriList",
]

__version__ = "0.1.0"
