# src/entity_store/base/conversion.py
"""
Bidirectional conversion between typed field values and their storage form.

Every declared field has a semantic type. ``to_storage`` turns a Python value
into something a driver can bind (numbers, text or None) and
``from_storage`` turns whatever a driver returns back into the typed value.
For every semantic type and every value ``v`` the store can hand back::

    from_storage(to_storage(v, t), t) == v

Timestamps must be timezone-aware. They are always written in the
process-wide time zone (see :mod:`entity_store.settings`) unless a zone is
passed explicitly.
"""

import json
import logging
from dataclasses import is_dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from ..settings import get_settings
from .utils import prepare_for_storage
from .validation_exceptions import ConversionError, UnknownSemanticTypeError

log = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# Most to least precise. %f accepts 1 to 6 digits, so it covers both the
# microsecond and the millisecond forms.
TIMESTAMP_READ_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
)


class SemanticType(str, Enum):
    """Semantic type of a declared entity field."""

    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"
    TIMESTAMP = "timestamp"
    STRUCTURED = "structured"

    @classmethod
    def parse(cls, value: Union["SemanticType", str]) -> "SemanticType":
        """Resolves a type tag (or one of its aliases) to a SemanticType."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            key = _TYPE_ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        raise UnknownSemanticTypeError(f"Unknown semantic type: {value!r}")


_TYPE_ALIASES = {
    "str": "string",
    "integer": "int",
    "datetime": "timestamp",
    "json": "structured",
}


class BindType(Enum):
    """Type tag attached to every positional parameter."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"


class BoundParam(NamedTuple):
    bind_type: BindType
    value: Any


def _zone(tz: Optional[tzinfo]) -> tzinfo:
    return tz if tz is not None else get_settings().tzinfo


def _force_int(value: Any) -> int:
    try:
        return int(value)
    except ValueError:
        # "3.0" and the like
        return int(float(value))


def _force_float(value: Any) -> float:
    return float(value)


# --- Writers ---


def _write_bool(value: Any, tz: Optional[tzinfo]) -> int:
    return 1 if value else 0


def _write_int(value: Any, tz: Optional[tzinfo]) -> int:
    return _force_int(value)


def _write_float(value: Any, tz: Optional[tzinfo]) -> float:
    return _force_float(value)


def _write_timestamp(value: Any, tz: Optional[tzinfo]) -> str:
    if not isinstance(value, datetime):
        raise TypeError(f"expected a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        # Reads always return aware values
        raise ValueError("naive datetime is not a point in time; attach a tzinfo")
    return value.astimezone(_zone(tz)).strftime(TIMESTAMP_FORMAT)


def _write_structured(value: Any, tz: Optional[tzinfo]) -> str:
    return json.dumps(
        prepare_for_storage(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def _write_string(value: Any, tz: Optional[tzinfo]) -> Any:
    return value


# --- Readers ---


def _read_bool(raw: Any, tz: Optional[tzinfo]) -> bool:
    if isinstance(raw, (bytes, bytearray)):
        if not raw.strip().isdigit():
            # BIT(1) columns come back as raw bytes
            return int.from_bytes(raw, "big") != 0
        raw = raw.decode()
    if isinstance(raw, str):
        text = raw.strip()
        try:
            return float(text) != 0
        except ValueError:
            return text.lower() in ("true", "t", "yes", "y", "on")
    return bool(raw)


def _read_int(raw: Any, tz: Optional[tzinfo]) -> int:
    return _force_int(raw)


def _read_float(raw: Any, tz: Optional[tzinfo]) -> float:
    return _force_float(raw)


def _read_timestamp(raw: Any, tz: Optional[tzinfo]) -> Optional[datetime]:
    zone = _zone(tz)
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=zone) if raw.tzinfo is None else raw.astimezone(zone)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=zone)
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    text = str(raw).strip()
    for fmt in TIMESTAMP_READ_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=zone)
        except ValueError:
            continue
    log.warning(f"Could not parse timestamp value {text!r}; reading it as unset.")
    return None


def _read_structured(raw: Any, tz: Optional[tzinfo]) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    if isinstance(raw, str):
        return json.loads(raw)
    return raw


def _read_string(raw: Any, tz: Optional[tzinfo]) -> Any:
    return raw


_WRITERS: Dict[SemanticType, Callable[[Any, Optional[tzinfo]], Any]] = {
    SemanticType.BOOL: _write_bool,
    SemanticType.INT: _write_int,
    SemanticType.FLOAT: _write_float,
    SemanticType.TIMESTAMP: _write_timestamp,
    SemanticType.STRUCTURED: _write_structured,
    SemanticType.STRING: _write_string,
}

_READERS: Dict[SemanticType, Callable[[Any, Optional[tzinfo]], Any]] = {
    SemanticType.BOOL: _read_bool,
    SemanticType.INT: _read_int,
    SemanticType.FLOAT: _read_float,
    SemanticType.TIMESTAMP: _read_timestamp,
    SemanticType.STRUCTURED: _read_structured,
    SemanticType.STRING: _read_string,
}


def _conversion_error(
    value: Any, semantic_type: SemanticType, field: Optional[str], error: Exception
) -> ConversionError:
    where = f" for field '{field}'" if field else ""
    return ConversionError(
        f"Error while converting value {value!r} to type {semantic_type.value}{where}: {error}",
        field=field,
        value=value,
    )


def to_storage(
    value: Any,
    semantic_type: Union[SemanticType, str],
    field: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> Any:
    """
    Converts a typed value into the form stored in the database.

    Args:
        value: The in-memory value. None is returned unchanged.
        semantic_type: The declared type of the field.
        field: Field name, only used to give errors context.
        tz: Zone used for timestamps (defaults to the configured zone).

    Raises:
        ConversionError: If the value cannot be represented in that type.
        UnknownSemanticTypeError: If the type tag is not supported.
    """
    semantic_type = SemanticType.parse(semantic_type)
    if value is None:
        return None
    try:
        return _WRITERS[semantic_type](value, tz)
    except (TypeError, ValueError, OverflowError) as e:
        raise _conversion_error(value, semantic_type, field, e) from e


def from_storage(
    raw: Any,
    semantic_type: Union[SemanticType, str],
    field: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> Any:
    """
    Converts a value returned by the driver into the typed in-memory value.

    Timestamps in a format that cannot be recognised read as None instead of
    failing, since stored data may have been written with varying precision.
    """
    semantic_type = SemanticType.parse(semantic_type)
    if raw is None:
        return None
    try:
        return _READERS[semantic_type](raw, tz)
    except (TypeError, ValueError, OverflowError) as e:
        raise _conversion_error(raw, semantic_type, field, e) from e


def to_bind_param(value: Any, tz: Optional[tzinfo] = None) -> BoundParam:
    """
    Tags a non-null value for positional binding.

    Booleans and integers get the integer tag, floats the float tag and
    everything else the string tag. Timestamps and structured values are
    serialized to their storage text first.
    """
    if isinstance(value, bool):
        return BoundParam(BindType.INTEGER, 1 if value else 0)
    if isinstance(value, int):
        return BoundParam(BindType.INTEGER, value)
    if isinstance(value, float):
        return BoundParam(BindType.FLOAT, value)
    if isinstance(value, datetime):
        return BoundParam(BindType.STRING, to_storage(value, SemanticType.TIMESTAMP, tz=tz))
    if isinstance(value, date):
        return BoundParam(BindType.STRING, value.isoformat())
    if isinstance(value, Decimal):
        return BoundParam(BindType.STRING, str(value))
    if (
        isinstance(value, (dict, list, tuple, set, frozenset))
        or (is_dataclass(value) and not isinstance(value, type))
        or hasattr(value, "model_dump")
    ):
        return BoundParam(BindType.STRING, to_storage(value, SemanticType.STRUCTURED))
    return BoundParam(BindType.STRING, value)
