"""
Client for Server-Sent Events, modelled on the browser ``EventSource`` API.

An ``EventSource`` keeps a ``text/event-stream`` subscription alive for as
long as somebody listens: it connects when the first listener is attached,
disconnects when the last one goes away, reconnects after errors or a closed
stream, and resumes with ``Last-Event-ID``. Basic authentication is taken from
the URI's user-info part.

See https://html.spec.whatwg.org/multipage/server-sent-events.html
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from typing import Any, Callable, Union

import httpx

from httpx_eventsource._client import EventStreamHttpClient, HttpConfig
from httpx_eventsource._config import EventSourceSettings
from httpx_eventsource._registry import ListenerRegistry
from httpx_eventsource._retry import MAX_RETRY_MS, effective_retry_ms, parse_retry_after
from httpx_eventsource._session import ConnectionSession, SessionOutcome
from httpx_eventsource._sse import Message

logger = logging.getLogger(__name__)

CLOSE_TIMEOUT_S = 5.0

UriFactory = Callable[[Union[str, None]], Union[str, httpx.URL]]
MessageListener = Callable[[Message], Any]
OpenListener = Callable[[str], Any]
ErrorListener = Callable[[BaseException], Any]
BeforeOpenHook = Callable[[dict[str, str]], Any]


class Status(enum.Enum):
    """Connection state of an EventSource."""

    DISCONNECTED = "disconnected"
    """Initial state, and whenever no stream is open."""

    CONNECTING = "connecting"
    """A connection attempt is in progress."""

    CONNECTED = "connected"
    """The response arrived and the stream is being read; ``uri`` is the final address."""

    CLOSED = "closed"
    """Terminal: closed by the caller or by a 204 response."""


class _Outcome(enum.Enum):
    RECONNECT = "reconnect"
    ABANDONED = "abandoned"
    CLOSED = "closed"


def _check_callable(listener: Any) -> None:
    if listener is not None and not callable(listener):
        raise TypeError(f"listener must be callable or None, got {type(listener).__name__}")


class EventSource:
    """
    Auto-reconnecting subscription to a ``text/event-stream`` resource.

    The stream is read by one background thread running a private asyncio
    loop. All listeners are called on that thread, in the order the lines
    arrived. Every method of this class may be called from any thread.

    The target is either a fixed URI or a factory called with the last event
    id before every connection attempt, which suits resumable endpoints::

        source = EventSource(lambda last_id: f"https://example.com/feed?after={last_id or ''}")

    Example:
        >>> with EventSource("https://example.com/events") as source:
        ...     source.on_error(print).add_event_listener("update", handle_update)
        ...     ...

    Delivery order between the ``on_message`` listener and listeners added
    with ``add_event_listener`` is not specified. Listeners registered for the
    same type are called in registration order. A listener that raises is
    logged and does not affect the connection.
    """

    def __init__(
        self,
        uri: str | httpx.URL | UriFactory,
        *,
        read_timeout_ms: int | None = None,
        default_retry_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if isinstance(uri, (str, httpx.URL)):
            fixed = str(uri)
            self._uri_factory: UriFactory = lambda _last_event_id: fixed
            self._uri: str | None = fixed
        elif callable(uri):
            self._uri_factory = uri
            self._uri = None
        else:
            raise TypeError(f"uri must be a string, httpx.URL or callable, got {type(uri).__name__}")

        self._settings = EventSourceSettings.from_env_or_values(read_timeout_ms, default_retry_ms)
        self._http = EventStreamHttpClient(
            config=HttpConfig(timeout_s=self._settings.read_timeout_s),
            async_transport=transport,
        )

        self._lock = threading.Lock()
        self._status = Status.DISCONNECTED
        self._last_event_id: str | None = None
        self._retry_override_ms: int | None = None

        self._registry: ListenerRegistry[Message] = ListenerRegistry()
        self._on_message: MessageListener | None = None
        self._on_open: OpenListener | None = None
        self._on_error: ErrorListener | None = None
        self._on_before_open: BeforeOpenHook | None = None

        self._loop = asyncio.new_event_loop()
        self._wanted = asyncio.Event()
        self._unwanted = asyncio.Event()
        self._unwanted.set()
        self._finalizing = False
        self._task = self._loop.create_task(self._run())
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"EventSource({self._uri or 'factory'})",
            daemon=True,
        )
        self._thread.start()

    def __repr__(self) -> str:
        return f"EventSource(uri={self._uri!r}, status={self._status.name})"

    def __enter__(self) -> EventSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> Status:
        return self._status

    @property
    def uri(self) -> str | None:
        """
        The address data is read from.

        Under a factory this is the most recently requested URI, and the final
        URI after redirects once the status is CONNECTED.
        """
        return self._uri

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    @property
    def retry_ms(self) -> int:
        """Delay before the next reconnect: ``Retry-After`` if the server sent one, else the default."""
        return effective_retry_ms(self._settings.default_retry_ms, self._retry_override_ms)

    @property
    def default_retry_ms(self) -> int:
        return self._settings.default_retry_ms

    @default_retry_ms.setter
    def default_retry_ms(self, value: int) -> None:
        self._settings.default_retry_ms = value

    @property
    def read_timeout_ms(self) -> int:
        """Connect and read timeout, applied from the next connection attempt on."""
        return self._settings.read_timeout_ms

    @read_timeout_ms.setter
    def read_timeout_ms(self, value: int) -> None:
        self._settings.read_timeout_ms = value

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_message(self, listener: MessageListener | None) -> EventSource:
        """
        Set the listener receiving every message, comments included.
        ``None`` removes it. Setting it is enough to open the connection.
        """
        _check_callable(listener)
        with self._lock:
            self._on_message = listener
            self._refresh_demand()
        return self

    def on_open(self, listener: OpenListener | None) -> EventSource:
        """Set the listener called with the resolved URI whenever a stream opens."""
        _check_callable(listener)
        self._on_open = listener
        return self

    def on_error(self, listener: ErrorListener | None) -> EventSource:
        """Set the listener called with every connection or stream failure."""
        _check_callable(listener)
        self._on_error = listener
        return self

    def on_before_open(self, hook: BeforeOpenHook | None) -> EventSource:
        """
        Set a hook that may edit the request headers before each attempt.

        The hook gets the mutable header dict once per attempt, after the
        built-in headers are in place, e.g. to add a bearer token.
        """
        _check_callable(hook)
        self._on_before_open = hook
        return self

    def add_event_listener(self, event_type: str, listener: MessageListener) -> None:
        """
        Listen for events of one type. Events without an ``event:`` field
        have the type ``"message"``.

        Raises:
            TypeError: If ``event_type`` or ``listener`` is None.
        """
        with self._lock:
            self._registry.add(event_type, listener)
            self._refresh_demand()

    def remove_event_listener(self, event_type: str, listener: MessageListener) -> None:
        """Remove one registration of ``listener`` for ``event_type``, if present."""
        with self._lock:
            self._registry.remove(event_type, listener)
            self._refresh_demand()

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Stop listening for good.

        The status turns CLOSED right away and no listener is called after
        that. When called from another thread, waits briefly for the
        background thread to finish.
        """
        with self._lock:
            if self._status is Status.CLOSED:
                return
            self._status = Status.CLOSED
            self._loop.call_soon_threadsafe(self._cancel_task)
        if threading.current_thread() is not self._thread:
            self._thread.join(CLOSE_TIMEOUT_S)

    # ------------------------------------------------------------------
    # Demand, always called with the lock held
    # ------------------------------------------------------------------

    def _refresh_demand(self) -> None:
        if self._status is Status.CLOSED:
            return
        wanted = self._on_message is not None or bool(self._registry)
        self._loop.call_soon_threadsafe(self._apply_demand, wanted)

    def _apply_demand(self, wanted: bool) -> None:
        if wanted:
            self._unwanted.clear()
            self._wanted.set()
        else:
            self._wanted.clear()
            self._unwanted.set()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._task)
        finally:
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
            self._loop.close()

    def _cancel_task(self) -> None:
        if not self._finalizing:
            self._task.cancel()

    def _set_status(self, status: Status) -> None:
        with self._lock:
            if self._status is not Status.CLOSED:
                self._status = status

    def _mark_closed(self) -> None:
        with self._lock:
            self._status = Status.CLOSED

    async def _run(self) -> None:
        try:
            while await self._cycle():
                pass
        except asyncio.CancelledError:
            logger.debug("%r cancelled", self)
        finally:
            self._finalizing = True
            self._mark_closed()
            await self._http.aclose()
            self._http.close()

    async def _cycle(self) -> bool:
        """One pass of the state machine. Returns False once CLOSED."""
        self._set_status(Status.DISCONNECTED)
        await self._wanted.wait()
        self._set_status(Status.CONNECTING)

        outcome = await self._connect_once()
        if outcome is _Outcome.CLOSED:
            logger.debug("%r: server sent 204, closing", self)
            self._mark_closed()
            return False

        self._set_status(Status.DISCONNECTED)
        if outcome is _Outcome.RECONNECT:
            await asyncio.sleep(min(self.retry_ms, MAX_RETRY_MS) / 1000)
        return True

    async def _connect_once(self) -> _Outcome:
        session = asyncio.ensure_future(self._attempt())
        unwanted = asyncio.ensure_future(self._unwanted.wait())
        try:
            await asyncio.wait({session, unwanted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            unwanted.cancel()
            if not session.done():
                session.cancel()
                await asyncio.wait({session})

        if session.cancelled():
            logger.debug("%r: no listeners left, disconnected", self)
            return _Outcome.ABANDONED
        exc = session.exception()
        if exc is not None:
            logger.debug("%r: connection failed: %r", self, exc)
            self._notify(self._on_error, exc)
            return _Outcome.RECONNECT
        if session.result() is SessionOutcome.NO_CONTENT:
            return _Outcome.CLOSED
        return _Outcome.RECONNECT

    async def _attempt(self) -> SessionOutcome:
        url = str(self._uri_factory(self._last_event_id))
        with self._lock:
            if self._status is not Status.CLOSED:
                self._uri = url
        session = ConnectionSession(
            http=self._http,
            url=url,
            timeout_s=self._settings.read_timeout_s,
            last_event_id=self._last_event_id,
            before_open=self._before_open,
            on_open=self._opened,
            on_message=self._dispatch,
            on_retry=self._retry_received,
            on_event_id=self._event_id_received,
        )
        return await session.run()

    # ------------------------------------------------------------------
    # Session callbacks, run on the loop thread
    # ------------------------------------------------------------------

    def _before_open(self, headers: dict[str, str]) -> None:
        hook = self._on_before_open
        if hook is not None:
            hook(headers)

    def _opened(self, response: httpx.Response) -> None:
        uri = str(response.url)
        with self._lock:
            if self._status is Status.CLOSED:
                return
            self._status = Status.CONNECTED
            self._uri = uri
        logger.debug("%r: connected", self)
        self._notify(self._on_open, uri)
        retry_after = parse_retry_after(response.headers.get("Retry-After"))
        if retry_after is not None:
            self._retry_override_ms = retry_after

    def _dispatch(self, message: Message) -> None:
        self._notify(self._on_message, message)
        if message.type is None:
            return
        for listener in self._registry.get(message.type):
            self._notify(listener, message)

    def _retry_received(self, retry_ms: int) -> None:
        self._settings.default_retry_ms = retry_ms

    def _event_id_received(self, event_id: str | None) -> None:
        self._last_event_id = event_id

    def _notify(self, listener: Callable[[Any], Any] | None, value: Any) -> None:
        if listener is None or self._status is Status.CLOSED:
            return
        try:
            listener(value)
        except Exception:
            logger.exception("EventSource listener %r failed on %r", listener, value)
