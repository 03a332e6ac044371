"""Internal constants shared across the library."""

from __future__ import annotations

import enum

KEY_PREFIX = "persist:"
REHYDRATE = "persist/REHYDRATE"

# Environment switch for production mode (quiet errors, lenient serializer).
ENV_MODE_VARIABLE = "PYPERSIST_ENV"
PRODUCTION = "production"


class _Unset(enum.Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


#: Marker for "no value". ``None`` is a persistable value, ``UNSET`` is not.
UNSET = _Unset.UNSET
