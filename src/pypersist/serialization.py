"""Serialization pipeline: serializer, deserializer and key transforms.

Writing a key runs ``serializer(tN.inbound(...t1.inbound(value, key)...))``;
rehydrating runs ``deserializer(raw)`` and then every ``outbound`` from the
last transform to the first.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Protocol

from pydantic import BaseModel

from pypersist._constants import UNSET
from pypersist.exceptions import PersistDeserializationError, PersistSerializationError
from pypersist.state.policy import passes_filter

_logger = logging.getLogger(__name__)

Serializer = Callable[[Any], Any]
Deserializer = Callable[[Any], Any]


class Transform(Protocol):
    """Reversible per-key mapping applied around serialization."""

    def inbound(self, value: Any, key: str) -> Any:
        ...

    def outbound(self, value: Any, key: str) -> Any:
        ...


@dataclasses.dataclass(frozen=True)
class KeyedTransform:
    """Transform built from two functions, optionally limited to some keys."""

    inbound_fn: Callable[[Any, str], Any]
    outbound_fn: Callable[[Any, str], Any]
    whitelist: tuple[str, ...] | None = None
    blacklist: tuple[str, ...] = ()

    def applies_to(self, key: str) -> bool:
        return passes_filter(key, whitelist=self.whitelist, blacklist=self.blacklist)

    def inbound(self, value: Any, key: str) -> Any:
        if not self.applies_to(key):
            return value
        return self.inbound_fn(value, key)

    def outbound(self, value: Any, key: str) -> Any:
        if not self.applies_to(key):
            return value
        return self.outbound_fn(value, key)


def create_transform(
    inbound: Callable[[Any, str], Any],
    outbound: Callable[[Any, str], Any],
    *,
    whitelist: Iterable[str] | None = None,
    blacklist: Iterable[str] = (),
) -> KeyedTransform:
    """Build a transform from an ``inbound``/``outbound`` function pair.

    ``whitelist`` and ``blacklist`` restrict the keys the transform touches;
    other keys pass through unchanged in both directions.
    """
    return KeyedTransform(
        inbound_fn=inbound,
        outbound_fn=outbound,
        whitelist=tuple(whitelist) if whitelist is not None else None,
        blacklist=tuple(blacklist),
    )


def apply_inbound(value: Any, key: str, transforms: Sequence[Transform]) -> Any:
    """Run the write-side transform chain in declared order.

    Returns ``UNSET`` as soon as a transform drops the value.
    """
    for transform in transforms:
        value = transform.inbound(value, key)
        if value is UNSET:
            return UNSET
    return value


def apply_outbound(value: Any, key: str, transforms: Sequence[Transform]) -> Any:
    """Run the read-side transform chain, last transform first."""
    for transform in reversed(transforms):
        value = transform.outbound(value, key)
    return value


# ------------------------------------------------------------------
# Default JSON codec
# ------------------------------------------------------------------


def _cycle_message(key: str, value: Any) -> str:
    return (
        "pypersist: cannot process cyclical state. "
        "Consider changing your state structure to have no cycles. "
        "Alternatively blacklist the corresponding key. "
        f'Cycle encountered at key "{key}" with value "{value!r}".'
    )


def _is_container(value: Any) -> bool:
    return isinstance(value, (Mapping, list, tuple))


def _decycle(value: Any, ancestors: set[int], production: bool) -> Any:
    """Copy ``value`` into plain JSON containers, breaking reference cycles.

    A cycle is a reference back to an object on the current path; objects
    that are merely shared between branches are encoded each time.
    """
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    if not _is_container(value):
        return value

    ancestors.add(id(value))
    try:
        if isinstance(value, Mapping):
            items: Iterable[tuple[Any, Any]] = value.items()
        else:
            items = enumerate(value)

        encoded: list[tuple[Any, Any]] = []
        for child_key, child in items:
            if _is_container(child) and id(child) in ancestors:
                if not production:
                    raise PersistSerializationError(
                        _cycle_message(str(child_key), child),
                        key=str(child_key),
                        value=child,
                    )
                _logger.debug("Replacing cyclic reference at key %s with null", child_key)
                encoded.append((child_key, None))
                continue
            encoded.append((child_key, _decycle(child, ancestors, production)))
    finally:
        ancestors.discard(id(value))

    if isinstance(value, Mapping):
        return dict(encoded)
    return [item for _, item in encoded]


def default_serializer(data: Any, *, production: bool = False) -> str:
    """Encode ``data`` as compact JSON, refusing (or nulling) cycles.

    Outside production mode a cyclic reference raises
    :class:`PersistSerializationError`; in production mode ``null`` is
    written at the cycle point instead.
    """
    prepared = _decycle(data, set(), production)
    try:
        return json.dumps(prepared, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise PersistSerializationError(f"State is not JSON serializable: {exc}") from exc


def default_deserializer(serial: Any) -> Any:
    """Strictly parse JSON text produced by :func:`default_serializer`."""
    try:
        return json.loads(serial)
    except (TypeError, json.JSONDecodeError) as exc:
        raise PersistDeserializationError(f"Persisted data is not valid JSON: {str(serial)[:64]!r}") from exc


def identity(data: Any) -> Any:
    return data


def build_codec(*, serialize: bool, production: bool) -> tuple[Serializer, Deserializer]:
    """Return the ``(serializer, deserializer)`` pair for a configuration."""
    if not serialize:
        return identity, identity

    def serializer(data: Any) -> str:
        return default_serializer(data, production=production)

    return serializer, default_deserializer
