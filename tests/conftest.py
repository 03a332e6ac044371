from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest


@dataclass
class FakeStore:
    """Minimal observable container: subscribe / get_state / dispatch."""

    state: Any = field(default_factory=dict)
    listeners: list[Callable[[], None]] = field(default_factory=list)
    dispatched: list[Any] = field(default_factory=list)
    unsubscribe_calls: int = 0

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        self.listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe_calls += 1
            # A second call raises ValueError, like a real store might misbehave.
            self.listeners.remove(listener)

        return unsubscribe

    def get_state(self) -> Any:
        return self.state

    def set_state(self, state: Any) -> None:
        self.state = state
        for listener in list(self.listeners):
            listener()

    def dispatch(self, event: Any) -> None:
        self.dispatched.append(event)


@dataclass
class RecordingStorage:
    """Callback-style backend that records every write attempt with its loop time."""

    items: dict[str, Any] = field(default_factory=dict)
    writes: list[tuple[float, str, Any]] = field(default_factory=list)
    fail_keys: set[str] = field(default_factory=set)

    def set_item(self, key: str, value: Any, callback: Callable[..., None]) -> None:
        self.writes.append((asyncio.get_running_loop().time(), key, value))
        if key in self.fail_keys:
            callback(OSError(f"disk full while writing {key}"))
            return
        self.items[key] = value
        callback(None)

    def get_item(self, key: str, callback: Callable[..., None]) -> None:
        callback(None, self.items.get(key))

    def remove_item(self, key: str, callback: Callable[..., None]) -> None:
        self.items.pop(key, None)
        callback(None)

    def keys(self, callback: Callable[..., None]) -> None:
        callback(None, list(self.items))

    @property
    def written(self) -> list[tuple[str, Any]]:
        return [(key, value) for _, key, value in self.writes]


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def storage() -> RecordingStorage:
    return RecordingStorage()
