"""Exception hierarchy for entity-mapper.

Validation errors (``UndefinedColumnError``, ``UnexpectedColumnValueError``
and its subclasses, ``RefuseUpdateError``) are raised synchronously before
any backend I/O.  Errors raised by third-party drivers (SQLAlchemy, redis)
are never wrapped -- they reach the caller unchanged.

Usage:
    from entity_mapper.errors import NotNullableError

    try:
        user.set("email", None)
    except NotNullableError as e:
        print(f"Rejected: {e}")
"""


class EntityMapperError(Exception):
    """Base class for every error raised by this package."""


# ============================================================================
# Column / Value Errors
# ============================================================================


class UndefinedColumnError(EntityMapperError):
    """Raised when a field is not declared on the entity kind."""


class UnexpectedColumnValueError(EntityMapperError):
    """Raised when a value cannot be coerced to the column type.

    Covers non-numeric input, infinite numbers, invalid dates, invalid JSON
    and malformed identities.
    """


class NotNullableError(UnexpectedColumnValueError):
    """Raised when null is supplied to (or left in) a non-nullable column."""


class PatternMismatchError(UnexpectedColumnValueError):
    """Raised when a value is rejected by the column's configured pattern."""


class RefuseUpdateError(EntityMapperError):
    """Raised when an immutable-after-creation column is changed on a persisted entity."""


class EntityDestroyedError(EntityMapperError):
    """Raised when an entity is used after it was destroyed."""


# ============================================================================
# Mapper Errors
# ============================================================================


class MapperError(EntityMapperError):
    """Raised for mapper misconfiguration or an unusable backend response."""


class ReadonlyMapperError(MapperError):
    """Raised when a write is attempted through a readonly mapper."""


class EntityNotFoundError(MapperError):
    """Raised when refreshing an entity whose record no longer exists."""


# ============================================================================
# Backend Errors
# ============================================================================


class BackendError(EntityMapperError):
    """Raised by this package's own backend mappers for storage-level failures."""


class DuplicateKeyError(BackendError):
    """Raised when inserting a record whose key already exists."""


# ============================================================================
# Service Registry Errors
# ============================================================================


class ServiceError(EntityMapperError):
    """Raised when a service cannot be built or dispatched."""


class ServiceNotFoundError(ServiceError, LookupError):
    """Raised when no service is defined under the requested name."""
