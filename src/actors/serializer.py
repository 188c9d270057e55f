from __future__ import annotations

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from pydantic import TypeAdapter


class SerializationError(ValueError):
    """Raised when a value cannot be encoded or decoded by a serializer."""


class StateSerializer(ABC):
    """
    Base class for actor state serializers.

    Subclasses set `is_string_content = True` when every byte sequence they
    produce (and accept) is valid UTF-8 text. The state provider reads the flag
    once and embeds values as JSON text instead of base64 accordingly.
    """

    is_string_content: bool = False

    @abstractmethod
    def serialize(self, value: Any) -> Optional[bytes]:
        ...

    @abstractmethod
    def deserialize(self, data: Optional[bytes], type_: Any = None) -> Any:
        ...


@lru_cache(maxsize=256)
def _optional_adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(Optional[type_])


class JsonStateSerializer(StateSerializer):
    """
    JSON serializer backed by pydantic.

    - `serialize(None)` returns None, meaning "no value to store".
    - `deserialize` validates into `type_` when given (models, dataclasses,
      builtins); empty input and JSON `null` yield None.
    """

    is_string_content = True

    _ANY = TypeAdapter(Any)

    def serialize(self, value: Any) -> Optional[bytes]:
        if value is None:
            return None
        try:
            return self._ANY.dump_json(value)
        except ValueError as ex:
            raise SerializationError(f"Failed to serialize {type(value).__name__} to JSON") from ex

    def deserialize(self, data: Optional[bytes], type_: Any = None) -> Any:
        if not data:
            return None
        adapter = self._ANY if type_ is None else _optional_adapter(type_)
        try:
            return adapter.validate_json(data)
        except ValueError as ex:
            raise SerializationError("Failed to parse state JSON") from ex


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


class EncryptedStateSerializer(StateSerializer):
    """
    Encrypts the output of another serializer with Fernet.

    Fernet tokens are urlsafe base64, so the stored content is plain text
    regardless of the inner serializer.
    """

    is_string_content = True

    def __init__(self, fernet_key: str | bytes, *, inner: Optional[StateSerializer] = None) -> None:
        self._fernet = _to_fernet(fernet_key)
        self._inner = inner or JsonStateSerializer()

    def serialize(self, value: Any) -> Optional[bytes]:
        plaintext = self._inner.serialize(value)
        if plaintext is None:
            return None
        return self._fernet.encrypt(plaintext)

    def deserialize(self, data: Optional[bytes], type_: Any = None) -> Any:
        if not data:
            return None
        try:
            decrypted = self._fernet.decrypt(data)
        except InvalidToken as ex:
            raise SerializationError("Failed to decrypt state: invalid Fernet token") from ex
        return self._inner.deserialize(decrypted, type_)


__all__ = [
    "EncryptedStateSerializer",
    "JsonStateSerializer",
    "SerializationError",
    "StateSerializer",
]
