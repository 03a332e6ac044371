"""In-process storage backend."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any


def _notify(callback: Callable[..., None] | None, error: Any = None, result: Any = None) -> None:
    if callback is not None:
        callback(error, result)


class MemoryStorage:
    """Dict-backed storage.

    Every method both calls the optional ``callback(error, result)`` and
    returns an awaitable, so it works with either storage convention.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._items: dict[str, Any] = dict(initial or {})

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the stored items."""
        return dict(self._items)

    async def get_item(self, key: str, callback: Callable[..., None] | None = None) -> Any:
        value = self._items.get(key)
        _notify(callback, None, value)
        return value

    async def set_item(self, key: str, value: Any, callback: Callable[..., None] | None = None) -> None:
        self._items[key] = value
        _notify(callback)

    async def remove_item(self, key: str, callback: Callable[..., None] | None = None) -> None:
        self._items.pop(key, None)
        _notify(callback)

    async def get_all_keys(self, callback: Callable[..., None] | None = None) -> list[str]:
        keys = list(self._items)
        _notify(callback, None, keys)
        return keys
