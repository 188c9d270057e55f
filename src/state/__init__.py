"""
Transactional actor state access.

This package loads, probes and atomically updates actor state kept in the
Dapr state store, through `actors.client.DaprActorClient`.
"""

from .models import ActorStateChange, StateChangeKind
from .provider import (
    ActorStateProvider,
    StateDeserializationError,
    StateEncodingError,
    StateError,
    fix_state_response,
)

__all__ = [
    "ActorStateChange",
    "ActorStateProvider",
    "StateChangeKind",
    "StateDeserializationError",
    "StateEncodingError",
    "StateError",
    "fix_state_response",
]
