"""Events delivered back to the observed container."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pypersist._constants import REHYDRATE


class RehydrateEvent(BaseModel):
    """Carries a restored state tree to the container's ``dispatch``.

    Wire shape: ``{"kind": "persist/REHYDRATE", "payload": <state>}``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["persist/REHYDRATE"] = REHYDRATE
    payload: Any = Field(default=None, description="Restored state tree")


def rehydrate_event(state: Any) -> RehydrateEvent:
    return RehydrateEvent(payload=state)
