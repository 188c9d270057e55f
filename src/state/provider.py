from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from actors.client import DaprActorClient
from actors.ids import ActorId
from actors.serializer import EncryptedStateSerializer, JsonStateSerializer, StateSerializer

from .models import ActorStateChange


logger = logging.getLogger(__name__)

# Optional Fernet key; when set, state values are encrypted at rest
ENV_FERNET_KEY = "DAPR_ACTOR_STATE_FERNET_KEY"


class StateError(RuntimeError):
    """Base error for actor state access."""


class StateDeserializationError(StateError):
    """Stored bytes could not be decoded into a value."""


class StateEncodingError(StateError):
    """A transactional batch could not be built; nothing was sent."""


def fix_state_response(raw: Optional[bytes]) -> Optional[bytes]:
    """
    Undo double encoding of actor state returned by the sidecar.

    The sidecar sometimes hands back a value as a JSON string literal wrapping the
    payload (e.g. b'"{\\"x\\":1}"') instead of the payload itself. If `raw` is a
    single JSON string, its content is returned as UTF-8 bytes; anything else,
    including bytes that are not JSON at all, is returned unchanged.
    """
    if not raw:
        return raw

    try:
        decoded = json.loads(raw)
    except (ValueError, RecursionError):
        return raw

    if not isinstance(decoded, str):
        return raw
    try:
        return decoded.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogate escapes have no UTF-8 form
        return raw


ActorIdLike = Union[ActorId, str]


class ActorStateProvider:
    """
    Reads and transactionally writes actor state through the Dapr sidecar.

    Usage
    - `load(...)` returns the deserialized value, or None when absent.
    - `contains(...)` reports whether the sidecar returned anything for the key.
    - `apply(...)` sends an ordered batch of changes as one transaction.

    The provider keeps no per-call state and does not retry; retries and
    timeouts are handled by the client.
    """

    def __init__(self, client: DaprActorClient, serializer: StateSerializer) -> None:
        self._client = client
        self._serializer = serializer
        self._is_state_string = bool(serializer.is_string_content)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "ActorStateProvider":
        serializer: StateSerializer = JsonStateSerializer()
        fernet_key = os.environ.get(ENV_FERNET_KEY)
        if fernet_key:
            try:
                serializer = EncryptedStateSerializer(fernet_key, inner=serializer)
            except ValueError as ex:
                raise RuntimeError(f"Invalid {ENV_FERNET_KEY}: not a valid Fernet key") from ex
        return cls(DaprActorClient.from_env(), serializer)

    # -------- Core operations --------
    async def load(
        self,
        actor_type: str,
        actor_id: ActorIdLike,
        state_name: str,
        type_: Any = None,
    ) -> Any:
        """Load one state value.

        Returns None when the key is missing or its stored value decodes to null.
        Raises:
        - StateDeserializationError if the stored bytes cannot be decoded.
        - DaprError (from the client) for remote failures.
        """
        raw = await self._client.get_actor_state(actor_type, str(actor_id), state_name)
        if not raw:
            return None

        try:
            return self._serializer.deserialize(fix_state_response(raw), type_)
        except ValueError as ex:
            raise StateDeserializationError(
                f"Failed to deserialize state {state_name!r} of {actor_type}/{actor_id}"
            ) from ex

    async def contains(self, actor_type: str, actor_id: ActorIdLike, state_name: str) -> bool:
        # Presence of a response, not of a non-null value: a stored null is still "contained".
        raw = await self._client.get_actor_state(actor_type, str(actor_id), state_name)
        return bool(raw)

    async def apply(
        self,
        actor_type: str,
        actor_id: ActorIdLike,
        state_changes: Optional[Sequence[Optional[ActorStateChange]]],
    ) -> None:
        """Save state changes transactionally.

        The request body is a JSON array, one entry per change, in input order:

            [
              {"operation": "upsert", "request": {"key": "key1", "value": "myData"}},
              {"operation": "delete", "request": {"key": "key2"}}
            ]

        Records without a kind, or whose kind maps to no operation, are skipped.
        If every record is skipped, nothing is sent.
        Raises:
        - StateEncodingError if a value cannot be encoded (no request is made).
        - DaprError (from the client) for remote failures.
        """
        if not state_changes:
            return

        operations = self._build_operations(state_changes)
        if not operations:
            logger.debug("No state operations to save for %s/%s", actor_type, actor_id)
            return

        payload = json.dumps(operations, separators=(",", ":")).encode("utf-8")
        await self._client.save_actor_state_transactionally(actor_type, str(actor_id), payload)

    # -------- Internal --------
    def _build_operations(self, state_changes: Sequence[Optional[ActorStateChange]]) -> List[Dict[str, Any]]:
        operations: List[Dict[str, Any]] = []
        for change in state_changes:
            if change is None or change.kind is None:
                logger.debug("Skipping state change without kind: %r", change)
                continue

            operation_name = change.kind.operation
            if not operation_name:
                logger.debug("Skipping %s change for state %r", change.kind.name, change.state_name)
                continue

            request: Dict[str, Any] = {"key": change.state_name}
            if change.has_value:
                value = self._encode_value(change)
                if value is not None:
                    request["value"] = value

            operations.append({"operation": operation_name, "request": request})
        return operations

    def _encode_value(self, change: ActorStateChange) -> Optional[str]:
        try:
            data = self._serializer.serialize(change.value)
        except (TypeError, ValueError) as ex:
            raise StateEncodingError(f"Failed to serialize state {change.state_name!r}") from ex
        if data is None:
            return None

        if self._is_state_string:
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as ex:
                raise StateEncodingError(
                    f"Serializer produced non-text content for state {change.state_name!r}"
                ) from ex
        # Binary content goes over the wire as a base64 JSON string
        return base64.b64encode(data).decode("ascii")


__all__ = [
    "ActorStateProvider",
    "StateDeserializationError",
    "StateEncodingError",
    "StateError",
    "fix_state_response",
]
