# fleetcron/core/utils/db.py
"""Classification of transient database errors."""

from __future__ import annotations

from psycopg import InterfaceError, OperationalError
from psycopg.errors import SerializationFailure
from sqlalchemy.exc import DBAPIError, OperationalError as SAOperationalError


def is_dbapi_disconnect(exc: DBAPIError) -> bool:
    """Check whether a SQLAlchemy DBAPIError represents a connection disconnect."""
    connection_invalidated = bool(getattr(exc, 'connection_invalidated', False))
    is_disconnect = bool(getattr(exc, 'is_disconnect', False))
    return connection_invalidated or is_disconnect


def is_serialization_failure(exc: BaseException) -> bool:
    """SERIALIZABLE conflicts surface as SQLSTATE 40001, raw or wrapped by SQLAlchemy."""
    if isinstance(exc, DBAPIError):
        return isinstance(exc.orig, SerializationFailure)
    return isinstance(exc, SerializationFailure)


def is_retryable_connection_error(exc: BaseException) -> bool:
    """Check whether an exception is transient and the operation is worth retrying next tick."""
    match exc:
        case OperationalError() | InterfaceError() | SAOperationalError():
            return True
        case DBAPIError() as db_exc if is_dbapi_disconnect(db_exc):
            return True
        case DBAPIError() as db_exc if is_serialization_failure(db_exc):
            return True
        case _:
            return False
