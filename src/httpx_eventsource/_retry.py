"""Reconnection delay helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

# Largest delay accepted from the server, about 24.8 days.
MAX_RETRY_MS = 2**31 - 1


def parse_millis(value: str, *, scale: int = 1) -> int | None:
    """Parse ASCII digits into a delay in ms, ``None`` when invalid or too large."""
    if not (value.isascii() and value.isdigit()):
        return None
    # Avoids int() on arbitrarily long strings.
    if len(value.lstrip("0")) > len(str(MAX_RETRY_MS)):
        return None
    millis = int(value) * scale
    return millis if millis <= MAX_RETRY_MS else None


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> int | None:
    """Convert a ``Retry-After`` header into milliseconds.

    The header is interpreted with HTTP semantics: either a number of
    seconds or an HTTP-date. Dates in the past yield ``0``. Anything that is
    neither, or a delay above ``MAX_RETRY_MS``, returns ``None`` so the
    caller keeps its current value.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isascii() and value.isdigit():
        return parse_millis(value, scale=1000)

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    millis = max(0, int((when - now).total_seconds() * 1000))
    return millis if millis <= MAX_RETRY_MS else None


def effective_retry_ms(default_ms: int, override_ms: int | None) -> int:
    """The server override wins over the caller's default when set."""
    return default_ms if override_ms is None else override_ms
