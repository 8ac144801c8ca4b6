"""Shared repository plumbing: driver error translation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError

from chatstore.errors import DatabaseConnectionError, DatabaseError, DuplicateKeyError


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise SQLAlchemy failures as chatstore errors.

    Unique-constraint violations become DuplicateKeyError; a lost or refused
    connection becomes DatabaseConnectionError.
    """
    try:
        yield
    except IntegrityError as exc:
        raise DuplicateKeyError(f"{operation}: {exc.orig}") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise DatabaseConnectionError(f"{operation}: {exc.orig}") from exc
        raise DatabaseError(f"{operation}: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        raise DatabaseError(f"{operation}: {exc}") from exc


__all__ = ["translate_errors"]
