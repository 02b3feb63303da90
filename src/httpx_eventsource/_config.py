"""
Runtime settings of an EventSource.
Explicit values win over environment variables, which win over the defaults.
"""

from __future__ import annotations

import os
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from httpx_eventsource._retry import MAX_RETRY_MS

ENV_READ_TIMEOUT_MS = "EVENTSOURCE_READ_TIMEOUT_MS"
ENV_RETRY_MS = "EVENTSOURCE_RETRY_MS"
ENV_HTTP_DEBUG = "EVENTSOURCE_HTTP_DEBUG"

DEFAULT_READ_TIMEOUT_MS = 60_000
DEFAULT_RETRY_MS = 30_000

Millis = Annotated[int, Field(ge=0)]
RetryMillis = Annotated[int, Field(ge=0, le=MAX_RETRY_MS)]


class EventSourceSettings(BaseModel):
    """
    Timing configuration, validated on construction and on every assignment.
    ``default_retry_ms`` is also overwritten by ``retry:`` fields in the stream.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    read_timeout_ms: Millis = DEFAULT_READ_TIMEOUT_MS
    default_retry_ms: RetryMillis = DEFAULT_RETRY_MS

    @property
    def read_timeout_s(self) -> float:
        return self.read_timeout_ms / 1000

    @staticmethod
    def from_env_or_values(
        read_timeout_ms: int | None = None,
        default_retry_ms: int | None = None,
    ) -> EventSourceSettings:
        """
        Build settings from explicit values, falling back to the environment.

        Args:
            read_timeout_ms: Connect and read timeout in milliseconds.
            default_retry_ms: Reconnect delay in milliseconds.

        Returns:
            Validated settings.

        Raises:
            pydantic.ValidationError: If a value is negative or not an integer.
        """
        values: dict[str, str | int] = {}
        timeout = read_timeout_ms if read_timeout_ms is not None else os.getenv(ENV_READ_TIMEOUT_MS)
        retry = default_retry_ms if default_retry_ms is not None else os.getenv(ENV_RETRY_MS)
        if timeout is not None:
            values["read_timeout_ms"] = timeout
        if retry is not None:
            values["default_retry_ms"] = retry
        return EventSourceSettings.model_validate(values)


def http_debug_enabled() -> bool:
    return os.getenv(ENV_HTTP_DEBUG, "").lower() in {"1", "true", "yes", "on"}
