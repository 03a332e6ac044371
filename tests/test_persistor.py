"""Change detection, write queue and drain scheduling."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from pypersist import UNSET, PersistConfig, Persistor, PersistSerializationError, create_transform


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_blacklisted_key_is_never_written(store, storage) -> None:
    store.state = {"a": 1, "session": "x"}
    persistor = Persistor(store, PersistConfig(storage=storage, blacklist=["session"]))

    store.set_state({"a": 2, "session": "y"})
    assert persistor.pending_keys == ("a",)

    await persistor.aclose()
    assert storage.written == [("persist:a", "2")]


@pytest.mark.asyncio
async def test_whitelist_limits_persisted_keys(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage, whitelist=["keep"]))

    for i in range(3):
        store.set_state({"keep": i, "drop": i})

    await persistor.aclose()
    assert storage.written == [("persist:keep", "2")]


@pytest.mark.asyncio
async def test_empty_whitelist_rejects_everything(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage, whitelist=[]))
    store.set_state({"a": 1})
    assert persistor.pending_keys == ()
    await persistor.aclose()
    assert storage.writes == []


@pytest.mark.asyncio
async def test_keys_queued_once_in_detection_order_and_written_with_live_value(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage))

    store.set_state({"b": 1})
    store.set_state({"b": 1, "a": 1})
    store.set_state({"b": 2, "a": 1})
    assert persistor.pending_keys == ("b", "a")

    await persistor.aclose()
    assert storage.written == [("persist:b", "2"), ("persist:a", "1")]


@pytest.mark.asyncio
async def test_equal_scalars_and_same_objects_are_not_requeued(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage))
    nested = {"x": [1, 2]}

    store.set_state({"a": "text", "b": nested})
    await _settle()
    assert persistor.pending_keys == ()
    assert len(storage.writes) == 2

    store.set_state({"a": "text", "b": nested})
    assert persistor.pending_keys == ()
    # A new but equal container counts as a change.
    store.set_state({"a": "text", "b": {"x": [1, 2]}})
    assert persistor.pending_keys == ("b",)
    await persistor.aclose()


@pytest.mark.asyncio
async def test_snapshot_refreshes_even_when_nothing_is_queued(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage))
    store.set_state({"a": 1})
    # Already pending: nothing queued, but the snapshot moves on to a=2.
    store.set_state({"a": 2})
    await _settle()
    assert storage.written == [("persist:a", "2")]

    store.set_state({"a": 2})
    assert persistor.pending_keys == ()
    await persistor.aclose()


@pytest.mark.asyncio
async def test_custom_key_prefix(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage, key_prefix="app/"))
    store.set_state({"user": {"name": "ada"}})
    await persistor.aclose()
    assert storage.written == [("app/user", '{"name":"ada"}')]


@pytest.mark.asyncio
async def test_only_one_timer_and_idle_after_drain(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage))
    assert not persistor.draining

    store.set_state({"a": 1})
    timer = persistor._timer  # noqa: SLF001
    assert timer is not None
    store.set_state({"a": 1, "b": 2})
    assert persistor._timer is timer  # noqa: SLF001

    await _settle()
    assert persistor.pending_keys == ()
    assert not persistor.draining
    assert storage.written == [("persist:a", "1"), ("persist:b", "2")]
    await persistor.aclose()


@pytest.mark.asyncio
async def test_debounce_spaces_writes_apart(store, storage) -> None:
    loop = asyncio.get_running_loop()
    persistor = Persistor(store, PersistConfig(storage=storage, debounce=100))

    started = loop.time()
    store.set_state({"a": 1, "b": 2, "c": 3})
    await persistor.aclose()

    times = [at for at, _, _ in storage.writes]
    assert [key for _, key, _ in storage.writes] == ["persist:a", "persist:b", "persist:c"]
    assert times[0] - started >= 0.09
    assert all(later - earlier >= 0.09 for earlier, later in zip(times, times[1:]))


@pytest.mark.asyncio
async def test_transform_returning_unset_skips_write_but_drains_key(store, storage) -> None:
    drop_secret = create_transform(
        lambda value, key: UNSET if key == "secret" else value,
        lambda value, key: value,
    )
    persistor = Persistor(store, PersistConfig(storage=storage, transforms=[drop_secret]))

    store.set_state({"secret": "hunter2", "public": 1})
    await persistor.aclose()

    assert persistor.pending_keys == ()
    assert storage.written == [("persist:public", "1")]


@pytest.mark.asyncio
async def test_removed_key_is_not_written(store, storage) -> None:
    persistor = Persistor(store, PersistConfig(storage=storage))
    store.set_state({"a": 1, "b": 2})
    store.state = {"b": 2}
    await persistor.aclose()
    assert storage.written == [("persist:b", "2")]


@pytest.mark.asyncio
async def test_transforms_run_in_declared_order_before_serializer(store, storage) -> None:
    add_one = create_transform(lambda v, k: v + 1, lambda v, k: v - 1)
    times_ten = create_transform(lambda v, k: v * 10, lambda v, k: v / 10)
    persistor = Persistor(store, PersistConfig(storage=storage, transforms=[add_one, times_ten]))

    store.set_state({"n": 3})
    await persistor.aclose()
    assert storage.written == [("persist:n", "40")]


@pytest.mark.asyncio
async def test_serialize_false_passes_values_through(store, storage) -> None:
    value = {"nested": [1, 2]}
    persistor = Persistor(store, PersistConfig(storage=storage, serialize=False))
    store.set_state({"a": value})
    await persistor.aclose()
    assert storage.items["persist:a"] is value


@pytest.mark.asyncio
async def test_write_failure_is_reported_and_drain_continues(store, storage) -> None:
    errors: list[tuple[str, BaseException]] = []
    storage.fail_keys.add("persist:a")
    persistor = Persistor(
        store,
        PersistConfig(storage=storage, error_callback=lambda description, err: errors.append((description, err))),
    )

    store.set_state({"a": 1, "b": 2})
    await persistor.aclose()
    await _settle()

    assert storage.written == [("persist:a", "1"), ("persist:b", "2")]
    assert storage.items == {"persist:b": "2"}
    assert len(errors) == 1
    description, error = errors[0]
    assert description == "Error storing data for key: a"
    assert isinstance(error, OSError)


@pytest.mark.asyncio
async def test_default_error_callback_logs_outside_production(store, storage, caplog) -> None:
    storage.fail_keys.add("persist:a")
    persistor = Persistor(store, PersistConfig(storage=storage, production=False))

    with caplog.at_level(logging.WARNING, logger="pypersist.persistor"):
        store.set_state({"a": 1})
        await persistor.aclose()
        await _settle()

    assert any("Error storing data for key: a" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_default_error_callback_is_silent_in_production(store, storage, caplog) -> None:
    storage.fail_keys.add("persist:a")
    persistor = Persistor(store, PersistConfig(storage=storage, production=True))

    with caplog.at_level(logging.WARNING, logger="pypersist.persistor"):
        store.set_state({"a": 1})
        await persistor.aclose()
        await _settle()

    assert not caplog.records


@pytest.mark.asyncio
async def test_slow_write_does_not_block_next_key(store) -> None:
    release = asyncio.Event()
    started: list[str] = []
    finished: list[str] = []

    class SlowStorage:
        async def set_item(self, key: str, value: Any, callback: Any) -> None:
            started.append(key)
            if key == "persist:slow":
                await release.wait()
            finished.append(key)

    persistor = Persistor(store, PersistConfig(storage=SlowStorage()))
    store.set_state({"slow": 1, "fast": 2})
    await persistor.aclose()
    await _settle()

    assert started == ["persist:slow", "persist:fast"]
    assert finished == ["persist:fast"]
    release.set()
    await _settle()
    assert finished == ["persist:fast", "persist:slow"]


@pytest.mark.asyncio
async def test_cyclic_state_raises_from_tick_but_drain_continues(store, storage) -> None:
    loop = asyncio.get_running_loop()
    raised: list[BaseException] = []
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: raised.append(context["exception"]))
    try:
        cyclic: dict[str, Any] = {"name": "node"}
        cyclic["parent"] = cyclic
        persistor = Persistor(store, PersistConfig(storage=storage, production=False))

        store.set_state({"tree": cyclic, "ok": True})
        await persistor.aclose()
    finally:
        loop.set_exception_handler(previous_handler)

    assert len(raised) == 1
    assert isinstance(raised[0], PersistSerializationError)
    assert raised[0].key == "parent"
    assert storage.written == [("persist:ok", "true")]


@pytest.mark.asyncio
async def test_cyclic_state_written_with_null_in_production(store, storage) -> None:
    cyclic: dict[str, Any] = {"name": "node"}
    cyclic["parent"] = cyclic
    persistor = Persistor(store, PersistConfig(storage=storage, production=True))

    store.set_state({"tree": cyclic})
    await persistor.aclose()
    assert storage.written == [("persist:tree", '{"name":"node","parent":null}')]
