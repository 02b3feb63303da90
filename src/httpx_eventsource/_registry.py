from __future__ import annotations

from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")

Listener = Callable[[T], object]


class ListenerRegistry(Generic[T]):
    """
    Event type -> ordered listeners.

    Collections are tuples that get replaced on every write, so a dispatch can
    iterate the snapshot it read while other threads add or remove listeners.
    Writers are expected to hold the owner's lock; readers need none.
    Duplicates are kept and removal drops the first equal entry.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, tuple[Listener[T], ...]] = {}

    def add(self, event_type: str, listener: Listener[T]) -> None:
        if event_type is None:
            raise TypeError("event_type must not be None")
        if listener is None:
            raise TypeError("listener must not be None")
        if not callable(listener):
            raise TypeError(f"listener must be callable, got {type(listener).__name__}")
        self._listeners[event_type] = self._listeners.get(event_type, ()) + (listener,)

    def remove(self, event_type: str, listener: Listener[T]) -> bool:
        """Remove one registration. Returns False when nothing matched."""
        if event_type is None:
            raise TypeError("event_type must not be None")
        if listener is None:
            raise TypeError("listener must not be None")
        current = self._listeners.get(event_type)
        if not current or listener not in current:
            return False
        index = current.index(listener)
        remaining = current[:index] + current[index + 1 :]
        if remaining:
            self._listeners[event_type] = remaining
        else:
            del self._listeners[event_type]
        return True

    def get(self, event_type: str) -> tuple[Listener[T], ...]:
        return self._listeners.get(event_type, ())

    def types(self) -> Iterator[str]:
        return iter(tuple(self._listeners))

    def __len__(self) -> int:
        return len(self._listeners)

    def __bool__(self) -> bool:
        return bool(self._listeners)
