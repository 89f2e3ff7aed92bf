"""Flatten raw source material into the ``{field: bytes}`` shape a
Kubernetes Secret stores.
"""
from __future__ import annotations

import json
from typing import Any, Dict

from secret_reflector.config import SOURCE_TYPE_GSM, SOURCE_TYPE_VAULT, Mapping
from secret_reflector.errors import MalformedPayload, UnsupportedEngineVariant, UnsupportedSourceType
from secret_reflector.gsm import ENCODING_TYPE_JSON, ENCODING_TYPE_STRING


def cast_fields(path: str, fields: Dict[str, Any]) -> Dict[str, bytes]:
    """Turn a Vault field map into bytes.  Only text and bytes are allowed."""
    out: Dict[str, bytes] = {}
    for k, v in fields.items():
        if isinstance(v, str):
            out[k] = v.encode("utf-8")
        elif isinstance(v, (bytes, bytearray)):
            out[k] = bytes(v)
        else:
            raise MalformedPayload(
                path, f"secret {path}: unknown type of value for key {k!r}: {type(v).__name__}"
            )
    return out


class _Number(str):
    """A JSON number kept as the literal text it was written with."""


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _compact(value: Any) -> str:
    """Re-serialize parsed JSON without whitespace, numbers untouched."""
    if isinstance(value, _Number):
        return str(value)
    if isinstance(value, dict):
        return "{" + ",".join(
            f"{json.dumps(k, ensure_ascii=False)}:{_compact(v)}" for k, v in value.items()
        ) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_compact(v) for v in value) + "]"
    return json.dumps(value, ensure_ascii=False)


def decode_json_fields(path: str, payload: bytes) -> Dict[str, bytes]:
    """Split a JSON object into one field per top-level key.

    String values are stored as their raw text, so ``"a\\nb"`` becomes the
    three bytes ``a``, newline, ``b``.  Everything else is stored as compact
    JSON text: ``1`` becomes ``b"1"``, ``{"x": true}`` becomes
    ``b'{"x":true}'``.  Numbers keep exactly the digits they were written
    with; ``NaN`` and ``Infinity`` are rejected.
    """
    try:
        decoded = json.loads(
            payload,
            parse_float=_Number,
            parse_int=_Number,
            parse_constant=_reject_constant,
        )
    except ValueError as e:
        raise MalformedPayload(path, f"error unmarshaling GSM JSON secret {path!r}: {e}") from e
    if not isinstance(decoded, dict):
        raise MalformedPayload(
            path, f"GSM JSON secret {path!r} is not an object"
        )

    out: Dict[str, bytes] = {}
    for k, v in decoded.items():
        if isinstance(v, str) and not isinstance(v, _Number):
            out[k] = v.encode("utf-8")
        else:
            out[k] = _compact(v).encode("utf-8")
    return out


def normalize(mapping: Mapping, raw: Any) -> Dict[str, bytes]:
    source_type = mapping.source_type or SOURCE_TYPE_VAULT

    if source_type == SOURCE_TYPE_VAULT:
        return cast_fields(mapping.path, raw)

    if source_type == SOURCE_TYPE_GSM:
        encoding = mapping.gsm_encoding_type or ENCODING_TYPE_STRING
        if encoding == ENCODING_TYPE_JSON:
            return decode_json_fields(mapping.path, raw)
        if encoding == ENCODING_TYPE_STRING:
            key = mapping.gsm_secret_key_value or mapping.secret_name
            return {key: bytes(raw)}
        raise UnsupportedEngineVariant(mapping.path, f"unknown GSM encoding type: {encoding!r}")

    raise UnsupportedSourceType(mapping.path, f"unknown secret source type: {mapping.source_type!r}")
