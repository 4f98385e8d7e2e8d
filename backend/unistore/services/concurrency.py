# Overview: Unit-of-work and locking helpers; maps backing-store failures onto store errors.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import BackendUnavailable, Conflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def unit_of_work():
    """
    Run one store call as a single atomic unit.

    Commits once on success; any exception rolls back every row the call
    touched, so partial writes are never observable. There is no retry here:
    callers retry transient failures with the same idempotency key.
    """
    try:
        yield db.session
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise Conflict("Record was modified concurrently; reload and retry") from exc
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning("Integrity violation rolled back: %s", exc.orig)
        raise Conflict("Write conflicts with an existing record", reason=str(exc.orig)) from exc
    except OperationalError as exc:
        db.session.rollback()
        current_app.logger.error("Backing store unavailable: %s", exc.orig)
        raise BackendUnavailable("Backing store unavailable; retry with the same idempotency key") from exc
    except Exception:
        db.session.rollback()
        raise
