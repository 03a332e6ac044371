"""Custom exception hierarchy for pypersist."""

from __future__ import annotations

from typing import Any


class PersistError(Exception):
    """Base exception for all pypersist errors."""


class PersistConfigError(PersistError):
    """Invalid or missing configuration."""


class PersistSerializationError(PersistError, ValueError):
    """State could not be encoded for storage.

    Raised by the default serializer when a cyclic reference is found
    outside production mode. ``key`` is the property at which the cycle
    was encountered and ``value`` is the object that closed the loop.
    """

    def __init__(self, message: str, *, key: str = "", value: Any = None) -> None:
        self.key = key
        self.value = value
        super().__init__(message)


class PersistDeserializationError(PersistError, ValueError):
    """Persisted data is malformed and cannot be decoded."""


class PersistStorageError(PersistError):
    """Storage backend failure for a single key."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class PersistorStoppedError(PersistError):
    """Operation requires storage but the persistor has been stopped."""
