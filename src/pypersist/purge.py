"""Delete persisted keys from storage."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from pypersist.storage.adapter import StorageAdapter

_logger = logging.getLogger(__name__)


async def _remove(storage: StorageAdapter, storage_key: str) -> None:
    try:
        await storage.remove_item(storage_key)
    except Exception:
        _logger.warning("Error removing data for key: %s", storage_key, exc_info=True)
        raise


async def purge_stored_state(
    storage: StorageAdapter | Any,
    key_prefix: str,
    keys: Iterable[str] | None = None,
) -> list[str]:
    """Remove persisted keys and return the storage keys that were removed.

    With ``keys=None`` every storage key starting with ``key_prefix`` is
    removed; otherwise only ``key_prefix + key`` for each given key.
    """
    if not isinstance(storage, StorageAdapter):
        storage = StorageAdapter(storage)

    if keys is None:
        all_keys = await storage.get_all_keys()
        targets = [key for key in all_keys if key.startswith(key_prefix)]
    else:
        targets = [f"{key_prefix}{key}" for key in keys]

    _logger.debug("Purging %d key(s) with prefix %r", len(targets), key_prefix)
    await asyncio.gather(*(_remove(storage, key) for key in targets))
    return targets
