"""
Serializers — Structured values to bytes and back.

Serialization is deterministic: serializing equal values twice gives the
same bytes, which seals and cookie verification rely on.
"""
import math
import base64
from abc import ABC, abstractmethod
from typing import Any

import orjson
from pydantic import BaseModel

from .exceptions import SerializationError


_BYTES_WRAPPER_KEY = "__cookie_bytes_b64__"
_ESCAPE_KEY = "__cookie_dict__"
_RESERVED_KEYS = frozenset((_BYTES_WRAPPER_KEY, _ESCAPE_KEY))


class Serializer(ABC):
    """Turns a structured value into bytes and back."""

    @abstractmethod
    def serialize(self, value: Any) -> bytes:
        ...

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        ...


class JSONSerializer(Serializer):
    """orjson based serializer.

    Supports: str, int, finite float, bool, None, dict with str keys, list,
    tuple, set, bytes, datetime/date/UUID (as strings) and pydantic models
    (as dicts).

    bytes values are wrapped as {"__cookie_bytes_b64__": "<base64>"} for a
    safe JSON round-trip. A dict that uses one of the reserved keys itself is
    wrapped as {"__cookie_dict__": {...}}, so it is never mistaken for
    bytes. Keys are sorted so output is stable.

    NaN, infinities and dicts with non-str keys raise SerializationError;
    JSON would otherwise change them silently.
    """

    option = orjson.OPT_SORT_KEYS

    def _encode(self, value: Any) -> Any:
        if isinstance(value, float) and not math.isfinite(value):
            raise SerializationError(f"Unable to serialize non finite float: {value}")
        if isinstance(value, dict):
            encoded = {k: self._encode(v) for k, v in value.items()}
            if _RESERVED_KEYS.intersection(value):
                return {_ESCAPE_KEY: encoded}
            return encoded
        if isinstance(value, (list, tuple)):
            return [self._encode(v) for v in value]
        return value

    def _default(self, value: Any) -> Any:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return {_BYTES_WRAPPER_KEY: base64.b64encode(bytes(value)).decode("ascii")}
        if isinstance(value, BaseModel):
            return self._encode(value.model_dump(mode="json"))
        if isinstance(value, (set, frozenset)):
            return self._encode(sorted(value))
        raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")

    def _unwrap(self, value: Any) -> Any:
        if isinstance(value, dict):
            if len(value) == 1 and _BYTES_WRAPPER_KEY in value:
                encoded = value[_BYTES_WRAPPER_KEY]
                if not isinstance(encoded, str):
                    raise ValueError("Wrapped bytes must be a base64 string")
                return base64.b64decode(encoded, validate=True)
            if len(value) == 1 and _ESCAPE_KEY in value:
                inner = value[_ESCAPE_KEY]
                if not isinstance(inner, dict):
                    raise ValueError("Escaped value must be a mapping")
                return {k: self._unwrap(v) for k, v in inner.items()}
            return {k: self._unwrap(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._unwrap(v) for v in value]
        return value

    def serialize(self, value: Any) -> bytes:
        """Serialize a Python value to bytes.

        Raises:
            SerializationError: value holds a type or value JSON can't
                represent exactly.
        """
        try:
            return orjson.dumps(
                self._encode(value), default=self._default, option=self.option
            )
        except (TypeError, RecursionError) as err:
            raise SerializationError(f"Unable to serialize value: {err}") from err

    def deserialize(self, data: bytes) -> Any:
        """Deserialize bytes produced by :meth:`serialize`.

        Raises:
            SerializationError: data is not valid serialized JSON.
        """
        try:
            return self._unwrap(orjson.loads(data))
        except (orjson.JSONDecodeError, ValueError, TypeError, RecursionError) as err:
            raise SerializationError(f"Unable to deserialize value: {err}") from err
