"""JSON-safe encoding of step inputs and results.

Step results are stored in the step log and handed back verbatim on
replay, so they must survive a JSON round trip with their types
intact.  Dataclasses, enums, tuples and bytes are wrapped in tagged
objects; everything else must already be JSON-native.

Only types defined inside the ``certbind`` package are decoded; a
tagged object naming anything else is rejected.
"""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import importlib
import json
from enum import Enum
from typing import Any

_DATACLASS_TAG = "__dataclass__"
_ENUM_TAG = "__enum__"
_TUPLE_TAG = "__tuple__"
_BYTES_TAG = "__bytes__"

_ALLOWED_PREFIX = "certbind."


def _type_path(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


def _load_type(path: str) -> type:
    module_name, _, qualname = path.partition(":")
    if not module_name.startswith(_ALLOWED_PREFIX):
        msg = f"Refusing to decode type outside certbind: {path}"
        raise ValueError(msg)
    obj: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        obj = getattr(obj, part)
    return obj


def encode(value: Any) -> Any:
    """Convert *value* to a JSON-native structure."""
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, Enum):
        return {_ENUM_TAG: _type_path(type(value)), "value": value.value}
    if isinstance(value, bytes):
        return {_BYTES_TAG: base64.b64encode(value).decode("ascii")}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: encode(getattr(value, f.name)) for f in dataclasses.fields(value)}
        return {_DATACLASS_TAG: _type_path(type(value)), "fields": fields}
    if isinstance(value, tuple):
        return {_TUPLE_TAG: [encode(v) for v in value]}
    if isinstance(value, list):
        return [encode(v) for v in value]
    if isinstance(value, dict):
        encoded = {}
        for key, item in value.items():
            if not isinstance(key, str):
                msg = f"Cannot encode dict with non-string key {key!r}"
                raise TypeError(msg)
            encoded[key] = encode(item)
        return encoded
    msg = f"Cannot encode value of type {type(value).__name__}"
    raise TypeError(msg)


def decode(data: Any) -> Any:
    """Inverse of :func:`encode`."""
    if isinstance(data, list):
        return [decode(v) for v in data]
    if not isinstance(data, dict):
        return data
    if _DATACLASS_TAG in data:
        cls = _load_type(data[_DATACLASS_TAG])
        return cls(**{k: decode(v) for k, v in data["fields"].items()})
    if _ENUM_TAG in data:
        return _load_type(data[_ENUM_TAG])(data["value"])
    if _TUPLE_TAG in data:
        return tuple(decode(v) for v in data[_TUPLE_TAG])
    if _BYTES_TAG in data:
        return base64.b64decode(data[_BYTES_TAG])
    return {k: decode(v) for k, v in data.items()}


def dumps(value: Any) -> str:
    """Encode and serialise *value* canonically (sorted keys, no whitespace)."""
    return json.dumps(encode(value), sort_keys=True, separators=(",", ":"))


def input_hash(kind: str, args: Any) -> str:
    """Digest identifying a step call: its kind plus encoded arguments."""
    payload = f"{kind}\n{dumps(args)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
