"""Casting between Python attribute values and document source values.

Assignments are cast to the declared :class:`FieldType` when the conversion
loses nothing (``"12"`` to ``12``, ``3.0`` to ``3``, an ISO string to an aware
``datetime``). Anything else raises :class:`CoercionError`.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from ninja_docstore.schema.attribute import FieldType

logger = logging.getLogger(__name__)


class CoercionError(ValueError):
    """Raised when a value cannot be cast to the declared attribute type."""

    def __init__(self, field_name: str, value: Any, target_type: FieldType, reason: str) -> None:
        self.field_name = field_name
        self.value = value
        self.target_type = target_type
        self.reason = reason
        super().__init__(f"Cannot coerce {field_name}={value!r} to {target_type.value}: {reason}")


_BOOLEAN_WORDS = {
    "true": True,
    "yes": True,
    "on": True,
    "1": True,
    "false": False,
    "no": False,
    "off": False,
    "0": False,
}


class CoercionEngine:
    """Casts assigned values to the declared attribute type."""

    def coerce(self, value: Any, target_type: FieldType, field_name: str, model_name: str) -> Any:
        if value is None:
            return None
        cast = _CASTS.get(target_type)
        if cast is None:
            return value
        try:
            result = cast(value)
        except (ValueError, TypeError, OverflowError) as exc:
            raise CoercionError(field_name, value, target_type, str(exc)) from exc
        if type(result) is not type(value):
            logger.debug("Cast %s.%s from %s to %s", model_name, field_name, type(value).__name__, target_type.value)
        return result


def serialize_value(value: Any, field_type: FieldType) -> Any:
    """Render a Python attribute value as a JSON-compatible source value."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return (value if value.tzinfo else value.replace(tzinfo=timezone.utc)).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, tuple) and field_type == FieldType.ARRAY:
        return list(value)
    return value


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, Enum, uuid.UUID)) and not isinstance(value, bool):
        return str(value.value) if isinstance(value, Enum) else str(value)
    raise TypeError(f"expected a string, got {type(value).__name__}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("booleans are not integers")
    if isinstance(value, int):
        return value
    number = float(value.strip()) if isinstance(value, str) else value
    if isinstance(number, float):
        if not number.is_integer():
            raise ValueError(f"{value!r} has a fractional part")
        return int(number)
    raise TypeError(f"expected an integer, got {type(value).__name__}")


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in _BOOLEAN_WORDS:
        return _BOOLEAN_WORDS[value.strip().lower()]
    raise ValueError(f"ambiguous boolean {value!r}")


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        # Stored documents carry ISO 8601 strings.
        parsed = datetime.fromisoformat(value.strip())
    else:
        raise TypeError(f"expected a datetime, got {type(value).__name__}")
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        return date.fromisoformat(text) if len(text) == 10 else datetime.fromisoformat(text).date()
    raise TypeError(f"expected a date, got {type(value).__name__}")


def _to_uuid(value: Any) -> str:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, str):
        return str(uuid.UUID(value.strip()))
    raise TypeError(f"expected a uuid, got {type(value).__name__}")


def _to_json(value: Any) -> dict | list:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON: {exc}") from exc
    if isinstance(value, (dict, list)):
        return value
    raise TypeError(f"expected an object or list, got {type(value).__name__}")


def _to_list(value: Any) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (dict, bytes)):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return [value]


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        # Source documents carry binary as base64.
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64: {exc}") from exc
    raise TypeError(f"expected bytes, got {type(value).__name__}")


def _to_enum_value(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, str):
        return value.strip()
    raise TypeError(f"expected an enum member or string, got {type(value).__name__}")


_CASTS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: _to_str,
    FieldType.TEXT: _to_str,
    FieldType.INTEGER: _to_int,
    FieldType.FLOAT: _to_float,
    FieldType.BOOLEAN: _to_bool,
    FieldType.DATETIME: _to_datetime,
    FieldType.DATE: _to_date,
    FieldType.UUID: _to_uuid,
    FieldType.JSON: _to_json,
    FieldType.ARRAY: _to_list,
    FieldType.BINARY: _to_bytes,
    FieldType.ENUM: _to_enum_value,
}
