"""Uniform asynchronous contract over key-value storage backends.

Backends come in two flavours: some report completion through a
``callback(error, result)`` argument and return nothing, others ignore the
callback and return an awaitable. :class:`StorageAdapter` always passes a
synthesized callback *and* inspects the return value, so the rest of the
library only ever deals with :class:`asyncio.Future` outcomes.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pypersist.exceptions import PersistStorageError

_logger = logging.getLogger(__name__)

StorageCallback = Callable[..., None]


class StorageBackend(Protocol):
    """Structural backend interface.

    Only ``set_item`` is required by the persistor. ``get_item``,
    ``remove_item`` and ``get_all_keys`` (or ``keys``) are needed for
    restoring and purging. Each method may call ``callback(error, result)``
    or return an awaitable.
    """

    def set_item(self, key: str, value: Any, callback: StorageCallback) -> Any:
        ...


def make_adapter(loop: asyncio.AbstractEventLoop) -> tuple[StorageCallback, asyncio.Future[Any]]:
    """Return a ``(callback, future)`` pair where the callback settles the future.

    The callback may be called from any thread and only its first call counts.
    """
    future: asyncio.Future[Any] = loop.create_future()

    def _settle(error: Any, result: Any) -> None:
        if future.done():
            return
        if error is None:
            future.set_result(result)
        elif isinstance(error, BaseException):
            future.set_exception(error)
        else:
            future.set_exception(PersistStorageError(str(error)))

    def callback(error: Any = None, result: Any = None) -> None:
        loop.call_soon_threadsafe(_settle, error, result)

    return callback, future


def _consume(future: asyncio.Future[Any]) -> None:
    # Mark an unused exception as retrieved.
    if not future.cancelled():
        future.exception()


def _outcome(result: Any, fallback: asyncio.Future[Any], loop: asyncio.AbstractEventLoop) -> asyncio.Future[Any]:
    """Prefer the backend's own awaitable over the callback-fed future."""
    if isinstance(result, concurrent.futures.Future):
        outcome: asyncio.Future[Any] = asyncio.wrap_future(result, loop=loop)
    elif inspect.isawaitable(result):
        outcome = asyncio.ensure_future(result, loop=loop)
    else:
        return fallback
    fallback.add_done_callback(_consume)
    return outcome


class StorageAdapter:
    """Wrap a backend so that every operation yields an asyncio future."""

    def __init__(self, backend: Any, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if backend is None:
            raise PersistStorageError("storage backend is required")
        self._backend = backend
        self._loop = loop
        # Some backends list keys under ``keys`` instead.
        self._list_keys_name: str | None = None
        if hasattr(backend, "get_all_keys"):
            self._list_keys_name = "get_all_keys"
        elif hasattr(backend, "keys"):
            self._list_keys_name = "keys"

    @property
    def backend(self) -> Any:
        return self._backend

    def _call(self, method_name: str | None, *args: Any) -> asyncio.Future[Any]:
        loop = self._loop or asyncio.get_running_loop()
        callback, future = make_adapter(loop)
        method = getattr(self._backend, method_name, None) if method_name else None
        if method is None:
            future.set_exception(
                PersistStorageError(f"storage backend {type(self._backend).__name__} does not support {method_name or 'get_all_keys'}")
            )
            return future
        try:
            result = method(*args, callback)
        except Exception as exc:
            _logger.debug("Storage %s raised synchronously", method_name, exc_info=True)
            future.set_exception(exc)
            return future
        return _outcome(result, future, loop)

    def set_key(self, key: str, value: Any) -> asyncio.Future[Any]:
        """Start writing ``value`` under ``key``; never raises synchronously."""
        return self._call("set_item", key, value)

    async def get_item(self, key: str) -> Any:
        return await self._call("get_item", key)

    async def remove_item(self, key: str) -> Any:
        return await self._call("remove_item", key)

    async def get_all_keys(self) -> list[str]:
        keys = await self._call(self._list_keys_name)
        return list(keys or [])
