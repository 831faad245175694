"""JSON value codec backed by pydantic.

Structured values are stored as compact JSON text. Decoding validates the
payload against a caller-supplied shape: a pydantic model, a dataclass, a
TypedDict, or any type pydantic can build a ``TypeAdapter`` for. Below Python
3.12 pydantic only accepts TypedDict classes from ``typing_extensions``. Raw
string values never pass through here.
"""

from __future__ import annotations

import threading
from typing import Any, TypeVar, overload

from pydantic import BaseModel, PydanticUserError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from sqlkv.errors import DecodeError

T = TypeVar("T")

_adapters: dict[Any, TypeAdapter[Any]] = {}
_adapters_lock = threading.Lock()


def _build_adapter(shape: Any) -> TypeAdapter[Any]:
    try:
        return TypeAdapter(shape)
    except PydanticUserError as e:
        raise TypeError(f"Unsupported value shape {shape!r}: {e}") from e


def _adapter_for(shape: Any) -> TypeAdapter[Any]:
    try:
        hash(shape)
    except TypeError:
        return _build_adapter(shape)
    with _adapters_lock:
        adapter = _adapters.get(shape)
        if adapter is None:
            adapter = _build_adapter(shape)
            _adapters[shape] = adapter
        return adapter


def encode_value(obj: Any) -> str:
    """Serialize obj to compact JSON text."""
    if isinstance(obj, BaseModel):
        return obj.model_dump_json()
    try:
        return to_json(obj).decode("utf-8")
    except PydanticSerializationError as e:
        raise TypeError(f"Cannot encode value of type {type(obj).__name__}: {e}") from e


@overload
def decode_value(payload: str | bytes, shape: type[T]) -> T: ...


@overload
def decode_value(payload: str | bytes, shape: Any = ...) -> Any: ...


def decode_value(payload: str | bytes, shape: Any = Any) -> Any:
    """Parse payload and validate it into shape.

    Raises DecodeError when the payload is not JSON or does not fit shape.
    """
    if payload is None:
        raise DecodeError("value is NULL")
    try:
        return _adapter_for(shape).validate_json(payload)
    except ValidationError as e:
        text = payload.decode("utf-8", "replace") if isinstance(payload, bytes) else payload
        first = e.errors()[0]["msg"] if e.error_count() else str(e)
        raise DecodeError(first, payload=text) from e
