"""Pluggable state-shape adapters.

The persistor never assumes a concrete state type. It walks, reads and
rebuilds the observed state through a :class:`StateAdapter`: four plain
functions supplied at construction. :data:`DICT_STATE` covers mapping
state; :func:`model_adapter` covers immutable pydantic models.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from pypersist._constants import UNSET


@dataclasses.dataclass(frozen=True)
class StateAdapter:
    """Capability set over one state shape.

    Attributes:
        init: Returns a new, empty state (the initial snapshot and the
            starting point of a serial rehydrate).
        iterate: Yields ``(key, sub_state)`` pairs for the top-level keys.
        get: Returns the sub-state for a key, or ``UNSET`` when absent.
        set: Returns a state with ``key`` set to ``value``. May mutate and
            return its argument, or return a new object.
    """

    init: Callable[[], Any]
    iterate: Callable[[Any], Iterable[tuple[str, Any]]]
    get: Callable[[Any, str], Any]
    set: Callable[[Any, str, Any], Any]


def _dict_iterate(state: Mapping[str, Any]) -> Iterable[tuple[str, Any]]:
    return list(state.items())


def _dict_get(state: Mapping[str, Any], key: str) -> Any:
    return state.get(key, UNSET)


def _dict_set(state: dict[str, Any], key: str, value: Any) -> dict[str, Any]:
    state[key] = value
    return state


DICT_STATE = StateAdapter(init=dict, iterate=_dict_iterate, get=_dict_get, set=_dict_set)


def model_adapter(model_cls: type[BaseModel]) -> StateAdapter:
    """Adapter for state held in a (typically frozen) pydantic model.

    Top-level keys are the model's fields. Rehydrate builds the model with
    ``model_construct`` and ``model_copy(update=...)``, so restored values
    are not re-validated. Serialized snapshots handed to ``iterate`` may be
    plain mappings.
    """

    def init() -> BaseModel:
        return model_cls.model_construct()

    def iterate(state: Any) -> Iterable[tuple[str, Any]]:
        if isinstance(state, Mapping):
            return list(state.items())
        return [(name, getattr(state, name)) for name in type(state).model_fields if hasattr(state, name)]

    def get(state: Any, key: str) -> Any:
        if isinstance(state, Mapping):
            return state.get(key, UNSET)
        return getattr(state, key, UNSET)

    def set_(state: BaseModel, key: str, value: Any) -> BaseModel:
        return state.model_copy(update={key: value})

    return StateAdapter(init=init, iterate=iterate, get=get, set=set_)
