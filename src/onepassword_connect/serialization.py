"""JSON encoding of request bodies and decoding of typed responses."""

from __future__ import annotations

import json
from enum import Enum
from functools import lru_cache
from typing import Any, TypeVar, cast

from pydantic import BaseModel, TypeAdapter, ValidationError

from onepassword_connect.errors import DeserializationError

T = TypeVar("T")

JSON_CONTENT_TYPE = "application/json"


def to_wire(value: Any) -> Any:
    """Convert models, enums and containers to JSON-compatible values.

    Models are written by wire alias with unset optional fields omitted.
    """
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): to_wire(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(item) for item in value]
    return value


def encode_body(body: Any) -> bytes | None:
    """Serialize a request body to UTF-8 JSON bytes; ``None`` means no body."""
    if body is None:
        return None
    return json.dumps(to_wire(body), separators=(",", ":")).encode("utf-8")


@lru_cache(maxsize=128)
def _adapter(target: Any) -> TypeAdapter[Any]:
    return TypeAdapter(target)


def _describe(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def decode_payload(
    content: bytes,
    target: type[T] | Any,
    *,
    http_status: int | None = None,
) -> T:
    """Decode a JSON success payload into ``target``.

    Raises:
        DeserializationError: When the payload is not JSON or does not match
            ``target``.
    """
    name = _describe(target)
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise DeserializationError(
            f"Response body is not valid JSON for {name}.",
            http_status=http_status,
            target=name,
        ) from exc

    try:
        return cast(T, _adapter(target).validate_python(data))
    except ValidationError as exc:
        raise DeserializationError(
            f"Response body does not match {name}: {exc.error_count()} error(s).",
            http_status=http_status,
            target=name,
        ) from exc
