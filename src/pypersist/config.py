"""Persistor configuration for pypersist."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Iterable
from typing import Any

from pypersist._constants import ENV_MODE_VARIABLE, KEY_PREFIX, PRODUCTION
from pypersist.exceptions import PersistConfigError
from pypersist.serialization import Transform
from pypersist.state.adapters import DICT_STATE, StateAdapter
from pypersist.storage.memory import MemoryStorage

ErrorCallback = Callable[[str, BaseException], None]


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def is_production() -> bool:
    """Whether the process runs in production mode (``PYPERSIST_ENV=production``)."""
    return os.environ.get(ENV_MODE_VARIABLE, "").strip().lower() == PRODUCTION


def _as_keys(name: str, value: Iterable[str] | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        raise PersistConfigError(f"{name} must be a collection of keys, not a string")
    return tuple(value)


@dataclasses.dataclass(frozen=True)
class PersistConfig:
    """Persistor configuration.

    Parameters
    ----------
    storage : StorageBackend or None
        Key-value backend. ``None`` creates a private :class:`MemoryStorage`.
    key_prefix : str
        Namespace prepended to every persisted key.
    serialize : bool
        ``False`` stores values untouched (for backends that accept
        structured values) and skips decoding on rehydrate.
    blacklist : sequence of str
        Top-level keys that are never persisted.
    whitelist : sequence of str or None
        When set, only these top-level keys are persisted.
    transforms : sequence of Transform
        Applied in order before writing and in reverse after reading.
    debounce : float
        Interval between queue drain ticks, in milliseconds.
    error_callback : callable or None
        ``(description, error)`` hook for storage failures. Defaults to a
        warning log outside production mode.
    state_adapter : StateAdapter
        How to enumerate, read and build the observed state.
    production : bool
        Production mode. Defaults to ``PYPERSIST_ENV == "production"``.
    """

    storage: Any = None
    key_prefix: str = KEY_PREFIX
    serialize: bool = True
    blacklist: tuple[str, ...] = ()
    whitelist: tuple[str, ...] | None = None
    transforms: tuple[Transform, ...] = ()
    debounce: float = 0.0
    error_callback: ErrorCallback | None = None
    state_adapter: StateAdapter = DICT_STATE
    production: bool = dataclasses.field(default_factory=is_production)

    def __post_init__(self) -> None:
        if not isinstance(self.key_prefix, str):
            raise PersistConfigError("key_prefix must be a string")
        if self.debounce is None or self.debounce is False:
            object.__setattr__(self, "debounce", 0.0)
        if self.debounce < 0:
            raise PersistConfigError(f"debounce must be >= 0 ms, got {self.debounce}")
        object.__setattr__(self, "blacklist", _as_keys("blacklist", self.blacklist) or ())
        object.__setattr__(self, "whitelist", _as_keys("whitelist", self.whitelist))
        object.__setattr__(self, "transforms", tuple(self.transforms))
        if self.storage is None:
            object.__setattr__(self, "storage", MemoryStorage())

    @property
    def interval(self) -> float:
        """Drain tick interval in seconds."""
        return self.debounce / 1000.0

    @classmethod
    def from_env(cls, **overrides: Any) -> PersistConfig:
        """Create configuration from environment variables.

        Reads ``PYPERSIST_KEY_PREFIX``, ``PYPERSIST_DEBOUNCE``,
        ``PYPERSIST_SERIALIZE``, ``PYPERSIST_BLACKLIST``,
        ``PYPERSIST_WHITELIST`` (comma separated) and ``PYPERSIST_ENV``.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        prefix = env.get("PYPERSIST_KEY_PREFIX")
        if prefix is not None:
            config_kwargs["key_prefix"] = prefix

        debounce_env = env.get("PYPERSIST_DEBOUNCE")
        if debounce_env is not None and "debounce" not in overrides:
            try:
                config_kwargs["debounce"] = float(debounce_env)
            except ValueError as exc:
                raise PersistConfigError(f"PYPERSIST_DEBOUNCE is not a number: {debounce_env!r}") from exc

        if "serialize" not in overrides:
            config_kwargs["serialize"] = _env_bool(env.get("PYPERSIST_SERIALIZE"), True)

        blacklist_env = env.get("PYPERSIST_BLACKLIST")
        if blacklist_env is not None:
            config_kwargs["blacklist"] = _env_list(blacklist_env)

        whitelist_env = env.get("PYPERSIST_WHITELIST")
        if whitelist_env is not None:
            config_kwargs["whitelist"] = _env_list(whitelist_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
