"""One-call setup: restore a store from storage, then keep it persisted."""

from __future__ import annotations

import logging

from pypersist.config import PersistConfig
from pypersist.persistor import ObservableStore, Persistor
from pypersist.restore import get_stored_state

_logger = logging.getLogger(__name__)


async def persist_store(
    store: ObservableStore,
    config: PersistConfig | None = None,
    *,
    skip_restore: bool = False,
) -> Persistor:
    """Create a persistor for ``store`` and rehydrate it from storage.

    Change detection stays paused while the stored state loads. Changes made
    in the meantime are picked up by the first notification after resume.
    If the restore fails, the persistor is stopped before the error propagates.
    """
    config = config if config is not None else PersistConfig()
    persistor = Persistor(store, config)
    if skip_restore:
        return persistor

    persistor.pause()
    try:
        restored = await get_stored_state(config)
        persistor.rehydrate(restored)
    except BaseException:
        persistor.stop()
        raise
    persistor.resume()
    _logger.debug("Store rehydrated from storage")
    return persistor
