# Overview: Atomic-unit helpers for the stock ledger; one DB transaction per engine operation.

from __future__ import annotations

import logging
from contextlib import contextmanager
from functools import wraps

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ServiceError, ConflictError, StorageError

log = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; atomic() takes the database
    write lock up front there instead.
    """
    return query.with_for_update()


@contextmanager
def atomic(*, conflict_message: str = "Duplicate value violates a unique constraint"):
    """
    Run the enclosed writes as one all-or-nothing DB transaction.

    - SQLite: BEGIN IMMEDIATE so the write lock is held before any read that
      a decision depends on (no deferred read-then-upgrade deadlock).
    - Commit on success, rollback on any exception.
    - ServiceError subclasses propagate unchanged.
    - IntegrityError (unique index race) -> ConflictError(conflict_message).
    - StaleDataError (version_id mismatch) -> ConflictError.
    - Any other SQLAlchemyError -> StorageError with a generic message.

    No retries: callers decide whether to retry StorageError.
    """
    try:
        if db.engine.dialect.name == "sqlite":
            db.session.execute(text("BEGIN IMMEDIATE"))
        yield db.session
        db.session.commit()
    except ServiceError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message) from exc
    except StaleDataError as exc:
        db.session.rollback()
        raise ConflictError("Record was modified concurrently; reload and try again") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.exception("Atomic unit failed")
        raise StorageError() from exc
    except Exception:
        db.session.rollback()
        raise


def storage_read(fn):
    """
    Wrap a read-only service call so driver failures surface as StorageError.

    The session is rolled back so the next request starts clean.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            log.exception("Read %s failed", fn.__name__)
            raise StorageError() from exc

    return wrapper
