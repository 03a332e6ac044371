"""Read a previously persisted state tree back out of storage."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pypersist.config import PersistConfig
from pypersist.serialization import apply_outbound, build_codec
from pypersist.state.policy import passes_filter
from pypersist.storage.adapter import StorageAdapter

_logger = logging.getLogger(__name__)


async def get_stored_state(config: PersistConfig) -> Any:
    """Load every persisted key allowed by ``config`` into a new state.

    Values are decoded and run through the transforms in reverse. A key
    that cannot be read or decoded is logged and left out of the result.
    """
    storage = StorageAdapter(config.storage)
    adapter = config.state_adapter
    _, deserializer = build_codec(serialize=config.serialize, production=config.production)
    prefix = config.key_prefix

    all_keys = await storage.get_all_keys()
    keys = [
        storage_key[len(prefix) :]
        for storage_key in all_keys
        if storage_key.startswith(prefix)
    ]
    keys = [key for key in keys if passes_filter(key, whitelist=config.whitelist, blacklist=config.blacklist)]

    results = await asyncio.gather(
        *(storage.get_item(f"{prefix}{key}") for key in keys),
        return_exceptions=True,
    )

    state = adapter.init()
    restored = 0
    for key, raw in zip(keys, results):
        if isinstance(raw, BaseException):
            if not config.production:
                _logger.warning("Error restoring data for key: %s", key, exc_info=raw)
            continue
        try:
            value = apply_outbound(deserializer(raw), key, config.transforms)
        except Exception:
            if not config.production:
                _logger.warning("Error decoding stored data for key: %s", key, exc_info=True)
            continue
        state = adapter.set(state, key, value)
        restored += 1

    _logger.debug("Restored %d of %d stored key(s)", restored, len(keys))
    return state
