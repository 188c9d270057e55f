"""
Actor-side building blocks shared by the state layer.

Modules:
- ids: ActorId value type
- serializer: pluggable state serializers (JSON, Fernet-encrypted JSON)
- client: Dapr sidecar client for the actor state HTTP API
"""

from .ids import ActorId

__all__ = [
    "ActorId",
    "client",
    "ids",
    "serializer",
]
