"""Structured JSON values for caller-defined payload fields.

Tool schemas, tool-call arguments and output-format schemas have a shape that
only the caller knows. They travel through the client as plain JSON trees:
``None``, ``bool``, ``int``, ``float``, ``str``, ``list`` and ``dict`` with
string keys. Python dicts keep insertion order, so encoding then decoding a
value never reorders object keys, and ints stay ints while floats stay floats.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

from ollama_stream.domain.exceptions import MalformedFrameError, PreconditionViolation

JSONValue = JsonValue
"""Recursive JSON tree: null, bool, number, string, list or str-keyed dict."""

_JSON_VALUE_ADAPTER: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)


def validate_json_value(value: Any) -> JSONValue:
    """Check that ``value`` is a JSON tree and return it.

    Args:
        value: Arbitrary Python object supplied by a caller.

    Returns:
        The validated value. Containers are rebuilt with the same ordering.

    Raises:
        PreconditionViolation: If any node is outside the JSON union (tuples,
            sets, objects, non-string keys, bytes...).
    """
    try:
        validated = _JSON_VALUE_ADAPTER.validate_python(value, strict=True)
    except ValidationError as exc:
        raise PreconditionViolation(f"Not a JSON value: {exc.errors()[0]['msg']}") from exc
    # NaN and infinity pass the type check but have no JSON form.
    encode_json_value(validated)
    return validated


def encode_json_value(value: JSONValue) -> bytes:
    """Serialize a JSON tree to compact UTF-8 bytes.

    Raises:
        PreconditionViolation: If the tree holds NaN or infinity, which JSON
            cannot represent, or a node that is not serializable.
    """
    try:
        text = json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise PreconditionViolation(f"Value cannot be encoded as JSON: {exc}") from exc
    return text.encode("utf-8")


def decode_json_value(data: bytes | str) -> JSONValue:
    """Parse JSON text into a tree, preserving object key order.

    Raises:
        MalformedFrameError: If ``data`` is not valid UTF-8 JSON.
    """
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raw = data if isinstance(data, bytes) else data.encode("utf-8", errors="replace")
        raise MalformedFrameError(f"Invalid JSON: {exc}", frame=raw) from exc


__all__ = ["JSONValue", "decode_json_value", "encode_json_value", "validate_json_value"]
