"""
Line-oriented parser for the ``text/event-stream`` format.

Each decoded line either updates the pending event held by an
``EventAccumulator`` or produces a ``Message`` ready for dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ._retry import parse_millis

DEFAULT_EVENT_TYPE = "message"

BOM = "\ufeff"


@dataclass(frozen=True, slots=True)
class Message:
    """
    A single event received from the server.

    ``type`` is ``None`` for comment lines, which are only delivered to the
    any-message listener. ``last_event_id`` is the id in effect when the
    message was flushed.
    """

    last_event_id: str | None
    type: str | None
    data: str

    @property
    def is_comment(self) -> bool:
        return self.type is None


@dataclass(frozen=True, slots=True)
class Field:
    """One parsed ``name: value`` line. ``name`` is ``None`` for comments."""

    name: str | None
    value: str


def parse_line(line: str) -> Field | None:
    """
    Split an event stream line into its field name and value.

    A single leading byte-order-mark and a single space after the colon are
    dropped. Returns ``None`` for a blank line, which terminates an event.
    """
    if line.startswith(BOM):
        line = line[1:]
    if not line:
        return None
    name, colon, value = line.partition(":")
    if value.startswith(" "):
        value = value[1:]
    return Field(name=name or None, value=value) if colon else Field(name=name, value="")


@dataclass(slots=True)
class EventAccumulator:
    """
    Per-connection state built up line by line.

    ``last_event_id`` survives flushes. ``retry_ms`` holds the latest valid
    ``retry:`` value until the owner takes it with ``take_retry``.
    """

    last_event_id: str | None = None
    retry_ms: int | None = None
    _type: str = ""
    _data: list[str] = field(default_factory=list)

    def feed(self, line: str) -> Message | None:
        """Consume one line and return a message when one is complete."""
        parsed = parse_line(line)
        if parsed is None:
            return self.flush()

        if parsed.name is None:
            return Message(last_event_id=None, type=None, data=parsed.value)

        name, value = parsed.name, parsed.value
        if name == "event":
            self._type = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            # NUL would end up inside the next Last-Event-ID header
            if "\0" not in value:
                self.last_event_id = value
        elif name == "retry":
            retry_ms = parse_millis(value)
            if retry_ms is not None:
                self.retry_ms = retry_ms
        return None

    def flush(self) -> Message:
        message = Message(
            last_event_id=self.last_event_id,
            type=self._type or DEFAULT_EVENT_TYPE,
            data="\n".join(self._data),
        )
        self._type = ""
        self._data = []
        return message

    def take_retry(self) -> int | None:
        retry, self.retry_ms = self.retry_ms, None
        return retry
