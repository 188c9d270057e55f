from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class StateChangeKind(str, Enum):
    """Kind of pending mutation on one actor state key."""

    INSERT = "insert"
    UPDATE = "update"
    REMOVE = "remove"
    NO_OP = "no_op"

    @property
    def operation(self) -> str:
        """Wire operation name for the transactional state API ("" = never sent)."""
        return _OPERATIONS[self]


_OPERATIONS = {
    StateChangeKind.INSERT: "upsert",
    StateChangeKind.UPDATE: "upsert",
    StateChangeKind.REMOVE: "delete",
    StateChangeKind.NO_OP: "",
}


class ActorStateChange(BaseModel):
    """
    One pending change to an actor's state.

    Fields
    - state_name: key of the state entry within the actor.
    - kind: what to do with it. None is tolerated and skipped when the batch is built.
    - value: new value; only used for INSERT and UPDATE.

    Notes
    - Nothing is validated against `kind` here; records that cannot be sent
      are dropped by `ActorStateProvider.apply`.
    """

    model_config = ConfigDict(frozen=True)

    state_name: str = Field(..., description="State key within the actor")
    kind: Optional[StateChangeKind] = Field(default=None, description="Change kind")
    value: Any = Field(default=None, description="New value for INSERT/UPDATE")

    @property
    def has_value(self) -> bool:
        return self.kind in (StateChangeKind.INSERT, StateChangeKind.UPDATE)
