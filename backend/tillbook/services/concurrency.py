# Overview: Transaction boundaries and row locking for lifecycle operations.

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, StorageError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; unit_of_work() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work():
    """
    Run one lifecycle operation as a single atomic transaction.

    Document header, lines, stock deltas and the activity log entry either
    all commit together or none do. Any exception rolls the whole
    transaction back:
    - IntegrityError, StaleDataError -> ConflictError (409)
    - other SQLAlchemyError -> StorageError (500)
    - DomainError and anything else is re-raised as-is

    There is no retry; the caller sees the failure.
    """
    try:
        if db.engine.dialect.name == "sqlite":
            # Serialize writers so a conditional stock UPDATE never races a
            # concurrent one between lock upgrade and commit.
            db.session.execute(text("BEGIN IMMEDIATE"))
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Operation conflicts with existing data") from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified by another request; reload and retry") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Database operation failed; no changes were saved") from exc
    except BaseException:
        db.session.rollback()
        raise
