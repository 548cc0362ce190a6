"""Column type registry.

Every column is bound to a *type*: a stateless object that knows how to
coerce raw input into a field value (``normalize``), encode a value for a
backend (``store``), decode a backend value (``restore``), produce a
default, deep-copy mutable values (``clone``) and project a value to a
JSON-friendly form (``to_json``).

Contract (for every valid value ``v`` of a type):

- ``normalize(normalize(x)) == normalize(x)``
- ``normalize(restore(store(v))) == v``

Built-in tags: ``any``, ``numeric``, ``integer``, ``text``, ``uuid``,
``date``, ``time``, ``datetime``, ``json``, ``binary``.  Unknown tags fall
back to ``any``.

Usage:
    from entity_mapper.columns.types import TextType, register_type

    class SlugType(TextType):
        def normalize(self, value, options):
            return super().normalize(value, options).lower().replace(" ", "-")

    register_type("slug", SlugType())
"""

from __future__ import annotations

import base64
import binascii
import copy
import json
import math
import re
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from entity_mapper.errors import UnexpectedColumnValueError

if TYPE_CHECKING:
    from entity_mapper.columns.column import ColumnOptions


# ============================================================================
# Base Type
# ============================================================================


class AnyType:
    """Permissive passthrough type.

    ``None`` and ``""`` are treated as null; every other value is kept
    as-is.  Subclasses override the coercion methods they need.

    Attributes:
        defaults: Option defaults merged under the caller's column options
            (type-specific options such as ``trim_space`` live here too).
    """

    defaults: dict[str, Any] = {}

    def normalize(self, value: Any, options: ColumnOptions) -> Any:
        return value

    def store(self, value: Any, options: ColumnOptions) -> Any:
        return None if self.is_null(value) else value

    def restore(self, value: Any, options: ColumnOptions) -> Any:
        return None if self.is_null(value) else self.normalize(value, options)

    def get_default_value(self, options: ColumnOptions) -> Any:
        value = options.default
        if callable(value):
            value = value()
        return value

    def to_json(self, value: Any, options: ColumnOptions) -> Any:
        return value

    def clone(self, value: Any) -> Any:
        if isinstance(value, (dict, list, set, bytearray)):
            return copy.deepcopy(value)
        return value

    def is_null(self, value: Any) -> bool:
        return value is None or (isinstance(value, str) and value == "")

    def validate(self, value: Any, options: ColumnOptions) -> None:
        """Extra per-type check run by ``Entity.validate()``; no-op by default."""


# ============================================================================
# Numeric Types
# ============================================================================


class NumericType(AnyType):
    """Numbers: ``int``, ``float``, ``Decimal`` or numeric strings.

    Booleans, infinities, NaN and non-numeric input are rejected with
    ``UnexpectedColumnValueError`` (never clamped or defaulted).
    """

    def normalize(self, value: Any, options: ColumnOptions) -> int | float | Decimal:
        if isinstance(value, bool):
            raise UnexpectedColumnValueError(f"Not a number: {value!r}")

        if isinstance(value, str):
            value = self._parse(value.strip())
        elif not isinstance(value, (int, float, Decimal)):
            raise UnexpectedColumnValueError(f"Not a number: {value!r}")

        if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
            raise UnexpectedColumnValueError(f"Infinity or NaN number: {value!r}")
        if isinstance(value, Decimal) and not value.is_finite():
            raise UnexpectedColumnValueError(f"Infinity or NaN number: {value!r}")

        return value

    @staticmethod
    def _parse(text: str) -> int | float:
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise UnexpectedColumnValueError(f"Not a number: {text!r}") from None


class IntegerType(NumericType):
    """Integers; fractional input is truncated toward zero."""

    def normalize(self, value: Any, options: ColumnOptions) -> int:
        return int(super().normalize(value, options))


# ============================================================================
# Text Types
# ============================================================================


class TextType(AnyType):
    """Strings.

    Options:
        trim_space: Strip surrounding whitespace (default ``True``).
        empty_as_null: Treat an empty (post-trim) string as null
            (default ``False``).

    ``""`` is a value in memory but is stored as ``None``; restoring
    ``None`` into a non-nullable column yields ``""`` again.
    """

    defaults = {"trim_space": True, "empty_as_null": False}

    def normalize(self, value: Any, options: ColumnOptions) -> str | None:
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        value = str(value)

        if options.get("trim_space", True):
            value = value.strip()

        if value == "" and options.get("empty_as_null", False):
            return None

        return value

    def store(self, value: Any, options: ColumnOptions) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    def restore(self, value: Any, options: ColumnOptions) -> str | None:
        if value is None:
            return None if options.nullable else ""
        return self.normalize(value, options)

    def is_null(self, value: Any) -> bool:
        return value is None


class UUIDType(TextType):
    """UUID strings in canonical form.

    Options:
        upper_case: Hold the value upper-cased (default ``False``).

    With ``auto_generate`` the default value is a fresh ``uuid4()``.
    """

    defaults = {**TextType.defaults, "upper_case": False}

    def normalize(self, value: Any, options: ColumnOptions) -> str:
        if isinstance(value, uuid.UUID):
            text = str(value)
        else:
            try:
                text = str(uuid.UUID(str(value).strip()))
            except ValueError:
                raise UnexpectedColumnValueError(f"Invalid UUID value: {value!r}") from None

        return text.upper() if options.get("upper_case", False) else text

    def restore(self, value: Any, options: ColumnOptions) -> str | None:
        return None if self.is_null(value) else self.normalize(value, options)

    def get_default_value(self, options: ColumnOptions) -> Any:
        if options.auto_generate:
            return self.generate()
        return super().get_default_value(options)

    def generate(self) -> str:
        return str(uuid.uuid4())

    def is_null(self, value: Any) -> bool:
        return AnyType.is_null(self, value)


# ============================================================================
# Temporal Types
# ============================================================================


_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{1,2})(?::(\d{1,2}))?$")


class DateType(AnyType):
    """Calendar dates (``datetime.date``), stored as ``YYYY-MM-DD``."""

    def normalize(self, value: Any, options: ColumnOptions) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        match = _DATE_PATTERN.match(value.strip()) if isinstance(value, str) else None
        if match is None:
            raise UnexpectedColumnValueError(f"Unexpected date value: {value!r}")

        try:
            return date(*(int(part) for part in match.groups()))
        except ValueError:
            raise UnexpectedColumnValueError(f"Unexpected date value: {value!r}") from None

    def store(self, value: Any, options: ColumnOptions) -> str | None:
        return None if self.is_null(value) else value.isoformat()

    def to_json(self, value: Any, options: ColumnOptions) -> str | None:
        return self.store(value, options)


class TimeType(AnyType):
    """Wall-clock times (``datetime.time``, second precision), stored as ``HH:MM:SS``."""

    def normalize(self, value: Any, options: ColumnOptions) -> time:
        if isinstance(value, datetime):
            value = value.time()
        if isinstance(value, time):
            return value.replace(microsecond=0, tzinfo=None)

        match = _TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
        if match is None:
            raise UnexpectedColumnValueError(f"Unexpected time value: {value!r}")

        hour, minute, second = match.groups()
        try:
            return time(int(hour), int(minute), int(second or 0))
        except ValueError:
            raise UnexpectedColumnValueError(f"Unexpected time value: {value!r}") from None

    def store(self, value: Any, options: ColumnOptions) -> str | None:
        return None if self.is_null(value) else value.strftime("%H:%M:%S")

    def to_json(self, value: Any, options: ColumnOptions) -> str | None:
        return self.store(value, options)


class DateTimeType(AnyType):
    """Timezone-aware datetimes with second precision.

    Naive input is interpreted in the local timezone.  Stored as ISO-8601
    with offset (``2024-05-01T10:30:00+02:00``), or as integer epoch
    seconds when the ``unix_timestamp`` option is set.  A default of
    ``"now"`` resolves to the current time.
    """

    defaults = {"unix_timestamp": False}

    def normalize(self, value: Any, options: ColumnOptions) -> datetime:
        if isinstance(value, datetime):
            moment = value
        elif isinstance(value, date):
            moment = datetime.combine(value, time())
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            moment = self._from_timestamp(value)
        elif isinstance(value, str):
            moment = self._parse(value.strip(), options)
        else:
            raise UnexpectedColumnValueError(f"Invalid datetime value: {value!r}")

        if moment.tzinfo is None:
            moment = moment.astimezone()

        return moment.replace(microsecond=0)

    def store(self, value: Any, options: ColumnOptions) -> str | int | None:
        if self.is_null(value):
            return None
        if not isinstance(value, datetime):
            raise UnexpectedColumnValueError(f"Invalid datetime value: {value!r}")

        if options.get("unix_timestamp", False):
            return int(value.timestamp())

        return value.isoformat(timespec="seconds")

    def get_default_value(self, options: ColumnOptions) -> Any:
        if options.default == "now":
            return datetime.now().astimezone()
        return super().get_default_value(options)

    def to_json(self, value: Any, options: ColumnOptions) -> str | None:
        return None if value is None else value.isoformat(timespec="seconds")

    def _parse(self, text: str, options: ColumnOptions) -> datetime:
        if text.isdigit() and options.get("unix_timestamp", False):
            return self._from_timestamp(int(text))

        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise UnexpectedColumnValueError(f"Invalid datetime value: {text!r}") from None

    @staticmethod
    def _from_timestamp(seconds: int | float) -> datetime:
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).astimezone()
        except (OverflowError, OSError, ValueError):
            raise UnexpectedColumnValueError(f"Invalid timestamp: {seconds!r}") from None


# ============================================================================
# Structured Types
# ============================================================================


class JSONType(AnyType):
    """JSON objects and arrays.

    Strings are parsed with ``json.loads``; the result must be a dict or a
    list.  An empty container is stored as ``None`` so empty-but-truthy
    records are never written.  Json columns are ``strict`` by default.
    """

    defaults = {"strict": True}

    def normalize(self, value: Any, options: ColumnOptions) -> dict | list:
        if isinstance(value, (dict, list)):
            return value

        if isinstance(value, (str, bytes, bytearray)):
            try:
                value = json.loads(value)
            except ValueError:
                raise UnexpectedColumnValueError("Invalid json value") from None

            if isinstance(value, (dict, list)):
                return value

        raise UnexpectedColumnValueError(f"Json value must be an object or array: {value!r}")

    def store(self, value: Any, options: ColumnOptions) -> str | None:
        if self.is_null(value) or (isinstance(value, (dict, list)) and not value):
            return None
        return json.dumps(value)

    def restore(self, value: Any, options: ColumnOptions) -> dict | list | None:
        if self.is_null(value):
            return None if options.nullable else {}
        return self.normalize(value, options)

    def get_default_value(self, options: ColumnOptions) -> Any:
        if options.nullable:
            return None

        value = super().get_default_value(options)
        return {} if value is None else value


class BinaryType(AnyType):
    """Raw bytes, stored as base64 text."""

    def normalize(self, value: Any, options: ColumnOptions) -> bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")

        raise UnexpectedColumnValueError(f"Unexpected binary value: {value!r}")

    def store(self, value: Any, options: ColumnOptions) -> str | None:
        return None if self.is_null(value) else base64.b64encode(value).decode("ascii")

    def restore(self, value: Any, options: ColumnOptions) -> bytes | None:
        if self.is_null(value):
            return None
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)

        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise UnexpectedColumnValueError("Invalid base64 value") from None

    def to_json(self, value: Any, options: ColumnOptions) -> str | None:
        return self.store(value, options)

    def is_null(self, value: Any) -> bool:
        return value is None or value == "" or value == b""


# ============================================================================
# Registry
# ============================================================================


_types: dict[str, AnyType] = {}

_ALIASES = {
    "int": "integer",
    "string": "text",
    "float": "numeric",
    "number": "numeric",
    "bytes": "binary",
}


def _canonical(tag: str) -> str:
    tag = tag.lower()
    return _ALIASES.get(tag, tag)


def register_type(tag: str, column_type: AnyType | type[AnyType], *, replace: bool = False) -> None:
    """Register a column type under a unique tag.

    Args:
        tag: Type tag used in ``Column(tag, ...)`` declarations.
        column_type: Type instance (or class, instantiated once).
        replace: Allow overriding an existing registration.

    Raises:
        ValueError: If the tag is already registered and ``replace`` is false.
    """
    tag = _canonical(tag)
    if tag in _types and not replace:
        raise ValueError(f"Column type already registered: {tag}")

    if isinstance(column_type, type):
        column_type = column_type()

    _types[tag] = column_type


def get_type(tag: str) -> AnyType:
    """Return the type registered under ``tag``, falling back to ``any``."""
    return _types.get(_canonical(tag), _types["any"])


def registered_types() -> list[str]:
    """Names of every registered type tag."""
    return sorted(_types)


register_type("any", AnyType)
register_type("numeric", NumericType)
register_type("integer", IntegerType)
register_type("text", TextType)
register_type("uuid", UUIDType)
register_type("date", DateType)
register_type("time", TimeType)
register_type("datetime", DateTimeType)
register_type("json", JSONType)
register_type("binary", BinaryType)
