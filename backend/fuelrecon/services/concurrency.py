# Overview: Row locking and conditional-insert helpers shared by the write paths.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..validation import ConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def insert_or_conflict(obj, *, code: str, message: str):
    """
    Conditional insert backed by a unique constraint.

    Flushes the new row immediately so a concurrent writer that got there
    first surfaces here as CONFLICT instead of overwriting. The whole
    unit of work is rolled back on conflict.
    """
    db.session.add(obj)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message, code=code)
    return obj
