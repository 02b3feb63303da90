from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class EventSourceError(RuntimeError):
    """Base error of the library."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class InvalidURIError(EventSourceError):
    """The target URI is relative, malformed or uses an unsupported scheme."""


class EventSourceConnectionError(EventSourceError):
    """The transport failed to connect, send or read."""


class EventSourceTimeoutError(EventSourceConnectionError):
    """Connecting to or reading from the remote resource timed out."""


@dataclass(slots=True)
class EventSourceHTTPError(EventSourceError):
    """
    The remote resource answered with a non-2xx status.

    The body is kept as text. When the server sends a JSON envelope such as
    ``{"error": {"message": "..."}}`` or ``{"message": "..."}`` the message is
    lifted out of it, otherwise the plain body (or the reason phrase) is used.
    """

    status_code: int
    message: str
    body: str | None = None
    url: str | None = None
    cause: BaseException | None = None

    def __str__(self) -> str:
        parts = [f"EventSourceHTTPError(status_code={self.status_code}"]
        parts.append(f", message={self.message!r}")
        if self.url:
            parts.append(f", url={self.url!r}")
        if self.body:
            parts.append(f", body={len(self.body)} chars")
        parts.append(")")
        return "".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Return the error fields as a dict for structured logging."""
        return {
            "status_code": self.status_code,
            "message": self.message,
            "url": self.url,
            "body": self.body,
        }

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def is_auth_error(self) -> bool:
        """True for 401 (authentication) and 403 (authorization)."""
        return self.status_code in (401, 403)
