"""Tests for the column type registry and the built-in types."""

import base64
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from entity_mapper.columns import Column, TextType, get_type, register_type, registered_types
from entity_mapper.columns.types import AnyType, IntegerType, JSONType, NumericType, UUIDType
from entity_mapper.errors import UnexpectedColumnValueError


# ============================================================================
# Registry
# ============================================================================


class TestRegistry:
    """Verify registration, lookup and aliases."""

    def test_builtin_tags_registered(self) -> None:
        """Every built-in tag resolves to its own type."""
        for tag in ("any", "numeric", "integer", "text", "uuid", "date", "time", "datetime", "json", "binary"):
            assert tag in registered_types()

    def test_unknown_tag_falls_back_to_any(self) -> None:
        """An unregistered tag behaves as ``any``."""
        assert type(get_type("no-such-type")) is AnyType

    def test_aliases(self) -> None:
        """int/string/float/number/bytes resolve to their canonical types."""
        assert isinstance(get_type("int"), IntegerType)
        assert isinstance(get_type("string"), TextType)
        assert type(get_type("float")) is NumericType
        assert type(get_type("number")) is NumericType
        assert get_type("bytes") is get_type("binary")

    def test_duplicate_registration_rejected(self) -> None:
        """Registering an existing tag without replace=True raises ValueError."""
        with pytest.raises(ValueError, match="already registered"):
            register_type("text", TextType)

    def test_type_option_defaults(self) -> None:
        """Each type's ``defaults`` seed the options of its columns."""
        assert isinstance(get_type("uuid"), UUIDType)
        assert isinstance(get_type("json"), JSONType)
        assert UUIDType.defaults == {"trim_space": True, "empty_as_null": False, "upper_case": False}
        assert Column("uuid").options.get("upper_case") is False
        assert Column("json").options.strict is True
        assert Column("json", strict=False).options.strict is False

    def test_register_custom_type(self) -> None:
        """A registered class is instantiated and used by columns."""

        class SlugType(TextType):
            def normalize(self, value, options):
                return super().normalize(value, options).lower().replace(" ", "-")

        register_type("slug", SlugType, replace=True)

        column = Column("slug")
        assert column.coerce("  Hello World ") == "hello-world"


# ============================================================================
# Numeric
# ============================================================================


class TestNumericType:
    """Verify numeric and integer coercion."""

    def test_accepts_numbers_and_numeric_strings(self) -> None:
        column = Column("numeric")
        assert column.coerce(3) == 3
        assert column.coerce("3") == 3
        assert isinstance(column.coerce("3"), int)
        assert column.coerce(" 1.5 ") == 1.5
        assert column.coerce(Decimal("2.25")) == Decimal("2.25")

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "1e400", "abc", True, [1]])
    def test_rejects_non_finite_and_non_numeric(self, value) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("numeric").coerce(value)

    def test_integer_truncates_toward_zero(self) -> None:
        column = Column("integer")
        assert column.coerce("1.9") == 1
        assert column.coerce(-2.7) == -2
        assert column.coerce(7) == 7

    def test_empty_string_is_null(self) -> None:
        assert Column("integer").coerce("") is None

    def test_normalize_is_idempotent(self) -> None:
        column = Column("integer")
        once = column.coerce("42.8")
        assert column.coerce(once) == once


# ============================================================================
# Text / UUID
# ============================================================================


class TestTextType:
    """Verify text coercion and its options."""

    def test_trims_by_default(self) -> None:
        assert Column("text").coerce("  hi  ") == "hi"

    def test_trim_space_disabled(self) -> None:
        assert Column("text", trim_space=False).coerce("  hi  ") == "  hi  "

    def test_empty_string_is_a_value(self) -> None:
        """Unlike other types, "" is a text value and not null."""
        assert Column("text").coerce("") == ""
        assert Column("text").coerce(None) is None

    def test_stringifies_values(self) -> None:
        assert Column("text").coerce(12) == "12"
        assert Column("text").coerce(b"raw") == "raw"

    def test_restore_null(self) -> None:
        assert Column("text").restore(None) == ""
        assert Column("text", nullable=True).restore(None) is None

    def test_empty_string_stored_as_null(self) -> None:
        """An empty string stays a value in memory but is stored as None."""
        column = Column("text")
        assert column.store("") is None
        assert column.store("x") == "x"
        assert column.restore(column.store("")) == ""


class TestUUIDType:
    """Verify UUID canonicalisation and generation."""

    def test_canonical_lower_case(self) -> None:
        raw = "A0EEBC99-9C0B-4EF8-BB6D-6BB9BD380A11"
        assert Column("uuid").coerce(raw) == raw.lower()

    def test_upper_case_option(self) -> None:
        value = uuid.uuid4()
        assert Column("uuid", upper_case=True).coerce(value) == str(value).upper()

    def test_invalid_uuid_rejected(self) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("uuid").coerce("not-a-uuid")

    def test_auto_generate_default(self) -> None:
        column = Column("uuid", auto_generate=True)
        first = column.get_default_value()
        second = column.get_default_value()
        assert uuid.UUID(first)
        assert first != second

    def test_no_default_without_auto_generate(self) -> None:
        assert Column("uuid").get_default_value() is None


# ============================================================================
# Temporal
# ============================================================================


class TestDateAndTimeTypes:
    """Verify date and time coercion and encoding."""

    def test_date_from_string(self) -> None:
        assert Column("date").coerce("2024-2-9") == date(2024, 2, 9)

    def test_date_from_datetime(self) -> None:
        assert Column("date").coerce(datetime(2024, 2, 9, 13, 0)) == date(2024, 2, 9)

    @pytest.mark.parametrize("value", ["2024-02-30", "09/02/2024", 20240209])
    def test_invalid_date_rejected(self, value) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("date").coerce(value)

    def test_date_store_and_restore(self) -> None:
        column = Column("date")
        assert column.store(date(2024, 2, 9)) == "2024-02-09"
        assert column.coerce(column.restore("2024-02-09")) == date(2024, 2, 9)

    def test_time_from_string(self) -> None:
        column = Column("time")
        assert column.coerce("9:05") == time(9, 5)
        assert column.coerce("23:59:58") == time(23, 59, 58)

    def test_time_drops_microseconds(self) -> None:
        assert Column("time").coerce(time(1, 2, 3, 999)) == time(1, 2, 3)

    def test_time_store(self) -> None:
        assert Column("time").store(time(9, 5)) == "09:05:00"

    def test_invalid_time_rejected(self) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("time").coerce("25:00")


class TestDateTimeType:
    """Verify datetime coercion, timezone handling and encoding."""

    def test_naive_value_becomes_aware(self) -> None:
        value = Column("datetime").coerce(datetime(2024, 5, 1, 10, 30))
        assert value.tzinfo is not None

    def test_preserves_the_instant(self) -> None:
        aware = datetime(2024, 5, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))
        assert Column("datetime").coerce(aware) == aware

    def test_drops_microseconds(self) -> None:
        aware = datetime(2024, 5, 1, 10, 30, 5, 123456, tzinfo=timezone.utc)
        assert Column("datetime").coerce(aware).microsecond == 0

    def test_store_iso_with_offset(self) -> None:
        aware = datetime(2024, 5, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))
        assert Column("datetime").store(aware) == "2024-05-01T10:30:00+02:00"

    def test_unix_timestamp_option(self) -> None:
        column = Column("datetime", unix_timestamp=True)
        moment = datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)

        stored = column.store(moment)
        assert stored == int(moment.timestamp())
        assert column.coerce(column.restore(stored)) == moment
        assert column.coerce(str(stored)) == moment

    def test_round_trip(self) -> None:
        column = Column("datetime")
        moment = column.coerce("2024-05-01T10:30:00+02:00")
        assert column.coerce(column.restore(column.store(moment))) == moment

    def test_default_now(self) -> None:
        before = datetime.now(timezone.utc).replace(microsecond=0)
        value = Column("datetime", default="now").get_default_value()
        assert value.tzinfo is not None
        assert value >= before

    def test_invalid_string_rejected(self) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("datetime").coerce("yesterday")


# ============================================================================
# JSON / Binary
# ============================================================================


class TestJSONType:
    """Verify json parsing, encoding and defaults."""

    def test_parses_strings(self) -> None:
        assert Column("json").coerce('{"a": [1, 2]}') == {"a": [1, 2]}

    @pytest.mark.parametrize("value", ["{broken", "42", 42])
    def test_scalars_and_invalid_json_rejected(self, value) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("json").coerce(value)

    def test_empty_container_stores_null(self) -> None:
        column = Column("json")
        assert column.store({}) is None
        assert column.store([]) is None
        assert column.store({"a": 1}) == '{"a": 1}'

    def test_restore_null(self) -> None:
        assert Column("json").restore(None) == {}
        assert Column("json", nullable=True).restore(None) is None

    def test_default_value(self) -> None:
        assert Column("json").get_default_value() == {}
        assert Column("json", nullable=True).get_default_value() is None

    def test_json_columns_are_strict(self) -> None:
        assert Column("json").is_strict() is True

    def test_clone_is_deep(self) -> None:
        column = Column("json")
        value = {"tags": ["a"]}
        copy = column.clone(value)
        copy["tags"].append("b")
        assert value == {"tags": ["a"]}


class TestBinaryType:
    """Verify bytes handling and base64 encoding."""

    def test_store_base64(self) -> None:
        assert Column("binary").store(b"\x00\x01") == base64.b64encode(b"\x00\x01").decode()

    def test_restore_accepts_bytes_and_base64(self) -> None:
        column = Column("binary")
        assert column.restore(b"raw") == b"raw"
        assert column.restore(base64.b64encode(b"raw").decode()) == b"raw"

    def test_restore_invalid_base64(self) -> None:
        with pytest.raises(UnexpectedColumnValueError):
            Column("binary").restore("***")

    def test_memoryview_normalized(self) -> None:
        assert Column("binary").coerce(memoryview(b"ab")) == b"ab"


# ============================================================================
# Round Trip
# ============================================================================


ROUND_TRIP_CASES = [
    ("any", {}, 5),
    ("numeric", {}, "3.5"),
    ("numeric", {}, Decimal("1.25")),
    ("integer", {}, "1.9"),
    ("text", {}, "  hi "),
    ("uuid", {}, "A0EEBC99-9C0B-4EF8-BB6D-6BB9BD380A11"),
    ("uuid", {"upper_case": True}, "a0eebc99-9c0b-4ef8-bb6d-6bb9bd380a11"),
    ("date", {}, "2024-05-01"),
    ("time", {}, "9:05"),
    ("datetime", {}, "2024-05-01T10:30:00+02:00"),
    ("datetime", {"unix_timestamp": True}, "2024-05-01T10:30:00+02:00"),
    ("json", {}, '{"a": [1, 2]}'),
    ("binary", {}, b"\x00\x01"),
]


class TestRoundTrip:
    """Verify the normalize/store/restore contract of every built-in type."""

    @pytest.mark.parametrize(("tag", "options", "raw"), ROUND_TRIP_CASES)
    def test_normalize_is_idempotent(self, tag, options, raw) -> None:
        column = Column(tag, **options)
        value = column.coerce(raw)
        assert column.coerce(value) == value

    @pytest.mark.parametrize(("tag", "options", "raw"), ROUND_TRIP_CASES)
    def test_restore_of_store_is_identity(self, tag, options, raw) -> None:
        column = Column(tag, **options)
        value = column.coerce(raw)
        assert column.coerce(column.restore(column.store(value))) == value
