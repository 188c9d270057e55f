from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ActorId:
    """Opaque identifier of an actor instance, compared by value."""

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("actor id must not be empty")

    @classmethod
    def create_random(cls) -> "ActorId":
        return cls(uuid4().hex)

    def __str__(self) -> str:
        return self.value
