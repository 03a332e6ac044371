"""pypersist - Incremental persistence of application state into async key-value storage."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypersist")
except PackageNotFoundError:
    __version__ = "0+local"
from pypersist._constants import KEY_PREFIX, REHYDRATE, UNSET
from pypersist.config import PersistConfig
from pypersist.exceptions import (
    PersistConfigError,
    PersistDeserializationError,
    PersistError,
    PersistorStoppedError,
    PersistSerializationError,
    PersistStorageError,
)
from pypersist.persist import persist_store
from pypersist.persistor import ObservableStore, Persistor
from pypersist.purge import purge_stored_state
from pypersist.restore import get_stored_state
from pypersist.serialization import (
    KeyedTransform,
    Transform,
    create_transform,
    default_deserializer,
    default_serializer,
)
from pypersist.state.adapters import DICT_STATE, StateAdapter, model_adapter
from pypersist.state.events import RehydrateEvent
from pypersist.storage import FileStorage, MemoryStorage, StorageAdapter, StorageBackend

__all__ = [
    "__version__",
    "DICT_STATE",
    "FileStorage",
    "KEY_PREFIX",
    "KeyedTransform",
    "MemoryStorage",
    "ObservableStore",
    "PersistConfig",
    "PersistConfigError",
    "PersistDeserializationError",
    "PersistError",
    "PersistSerializationError",
    "PersistStorageError",
    "Persistor",
    "PersistorStoppedError",
    "REHYDRATE",
    "RehydrateEvent",
    "StateAdapter",
    "StorageAdapter",
    "StorageBackend",
    "Transform",
    "UNSET",
    "create_transform",
    "default_deserializer",
    "default_serializer",
    "get_stored_state",
    "model_adapter",
    "persist_store",
    "purge_stored_state",
]
