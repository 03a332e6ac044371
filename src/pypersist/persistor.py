"""Incremental persistence of an observed state container.

A :class:`Persistor` subscribes to a store, diffs every new state against
the last one it saw, and queues the top-level keys that changed. A single
timer drains that queue one key per tick, reading the *live* value of the
key, running it through the transforms and serializer, and handing it to
the storage backend without waiting for the write to finish.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pypersist._constants import UNSET
from pypersist.config import PersistConfig
from pypersist.exceptions import PersistorStoppedError
from pypersist.purge import purge_stored_state
from pypersist.serialization import apply_inbound, apply_outbound, build_codec
from pypersist.state.events import rehydrate_event
from pypersist.state.policy import passes_filter
from pypersist.storage.adapter import StorageAdapter

_logger = logging.getLogger(__name__)

# Immutable values compared by equality rather than identity.
_SCALARS = (str, bytes, int, float, complex, bool, type(None))


class ObservableStore(Protocol):
    """The container a persistor observes but never owns."""

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        ...

    def get_state(self) -> Any:
        ...

    def dispatch(self, event: Any) -> Any:
        ...


def _unchanged(previous: Any, current: Any) -> bool:
    if previous is current:
        return True
    return isinstance(current, _SCALARS) and type(previous) is type(current) and previous == current


class Persistor:
    """Keep storage in sync with a store's state, key by key.

    Usage::

        persistor = Persistor(store, PersistConfig(blacklist=["session"]))
        ...
        await persistor.aclose()

    Must be created and used on the thread running the event loop.
    """

    def __init__(
        self,
        store: ObservableStore,
        config: PersistConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._store = store
        self._config = config if config is not None else PersistConfig()
        self._adapter = self._config.state_adapter
        self._serializer, self._deserializer = build_codec(
            serialize=self._config.serialize,
            production=self._config.production,
        )
        self._error_callback = self._config.error_callback or self._log_error
        self._loop = loop
        self._storage: StorageAdapter | None = StorageAdapter(self._config.storage, loop=loop)

        self._last_state: Any = self._adapter.init()
        # Insertion-ordered set of keys awaiting a write.
        self._pending: dict[str, None] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._paused = False
        self._stopped = False
        self._stop_callbacks: list[Callable[[], Any]] = []
        self._unsubscribe: Callable[[], Any] | None = store.subscribe(self._on_change)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def config(self) -> PersistConfig:
        return self._config

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def draining(self) -> bool:
        """Whether a drain timer is currently scheduled."""
        return self._timer is not None

    @property
    def pending_keys(self) -> tuple[str, ...]:
        return tuple(self._pending)

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def _passes(self, key: str) -> bool:
        return passes_filter(key, whitelist=self._config.whitelist, blacklist=self._config.blacklist)

    def _on_change(self) -> None:
        # Stores may still notify once after unsubscribe.
        if self._paused or self._stopped:
            return

        state = self._store.get_state()
        for key, sub_state in self._adapter.iterate(state):
            if not self._passes(key):
                continue
            if _unchanged(self._adapter.get(self._last_state, key), sub_state):
                continue
            if key in self._pending:
                continue
            self._pending[key] = None
            _logger.debug("Queued key %s", key)

        self._last_state = state

        if self._pending and self._timer is None:
            self._schedule_tick()

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    def _schedule_tick(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._timer = self._loop.call_later(self._config.interval, self._tick)

    def _tick(self) -> None:
        if not self._pending:
            self._timer = None
            _logger.debug("Write queue drained")
            if self._stopped:
                self._finish_stop()
            return

        self._schedule_tick()
        key = next(iter(self._pending))
        del self._pending[key]
        self._write(key)

    def _storage_key(self, key: str) -> str:
        return f"{self._config.key_prefix}{key}"

    def _write(self, key: str) -> None:
        value = self._adapter.get(self._store.get_state(), key)
        value = apply_inbound(value, key, self._config.transforms)
        if value is UNSET:
            _logger.debug("Skipping write for key %s: no value", key)
            return

        storage = self._storage
        if storage is None:
            return
        outcome = storage.set_key(self._storage_key(key), self._serializer(value))
        outcome.add_done_callback(functools.partial(self._on_write_done, key))

    def _on_write_done(self, key: str, outcome: asyncio.Future[Any]) -> None:
        if outcome.cancelled():
            return
        error = outcome.exception()
        if error is not None:
            self._error_callback(f"Error storing data for key: {key}", error)

    def _log_error(self, description: str, error: BaseException) -> None:
        if not self._config.production:
            _logger.warning("%s: %s", description, error, exc_info=error)

    # ------------------------------------------------------------------
    # Rehydration
    # ------------------------------------------------------------------

    def rehydrate(self, incoming: Any, *, serial: bool = False) -> Any:
        """Restore ``incoming`` into the store and return the restored state.

        With ``serial=True`` every entry of ``incoming`` is a stored blob
        that is decoded and reverse-transformed into a fresh state;
        otherwise ``incoming`` is taken as the state itself.
        """
        if serial:
            state = self._adapter.init()
            for key, raw in self._adapter.iterate(incoming):
                value = apply_outbound(self._deserializer(raw), key, self._config.transforms)
                state = self._adapter.set(state, key, value)
        else:
            state = incoming

        self._store.dispatch(rehydrate_event(state))
        return state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self, callback: Callable[[], Any] | None = None) -> None:
        """Stop observing the store.

        Keys already queued are still written. ``callback`` runs once the
        queue has drained, or right away if it already has.
        """
        self._stopped = True
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()
        if callback is not None:
            self._stop_callbacks.append(callback)
        if self._timer is None:
            self._finish_stop()

    def _finish_stop(self) -> None:
        if self._storage is not None:
            _logger.debug("Persistor stopped, releasing storage")
        self._storage = None
        callbacks, self._stop_callbacks = self._stop_callbacks, []
        for callback in callbacks:
            callback()

    async def aclose(self) -> None:
        """Stop and wait until every queued key has been handed to storage."""
        loop = asyncio.get_running_loop()
        done: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not done.done():
                done.set_result(None)

        self.stop(_resolve)
        await done

    async def __aenter__(self) -> Persistor:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def purge(self, keys: Iterable[str] | None = None) -> list[str]:
        """Delete persisted keys (all keys under the prefix when ``keys`` is None)."""
        if self._storage is None:
            raise PersistorStoppedError("Cannot purge: persistor has been stopped")
        return await purge_stored_state(self._storage, self._config.key_prefix, keys)
