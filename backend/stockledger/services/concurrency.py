# Overview: Atomic-unit helpers: write locks, retry on conflicts, store error classification.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy import exc as sa_exc
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflict, StoreUnavailable

logger = logging.getLogger(__name__)

CONNECTIVITY = "connectivity"
CONFLICT = "conflict"
OTHER = "other"


def classify_store_error(exc: BaseException) -> str:
    """
    Sort a store failure into connectivity / conflict / other by type.

    Connectivity: the store could not be reached (disconnects, pool timeouts,
    dialect-recognized disconnect errors, OS-level connection errors).
    Conflict: the store was reached but our read set went stale (optimistic
    version mismatch, lock timeouts, deadlocks, serialization failures).
    """
    if isinstance(exc, StaleDataError):
        return CONFLICT
    if isinstance(exc, (sa_exc.DisconnectionError, sa_exc.TimeoutError, ConnectionError)):
        return CONNECTIVITY
    if isinstance(exc, sa_exc.DBAPIError):
        if exc.connection_invalidated or isinstance(exc, sa_exc.InterfaceError):
            return CONNECTIVITY
        if _dialect_says_disconnect(exc):
            return CONNECTIVITY
        if isinstance(exc, sa_exc.OperationalError):
            return CONFLICT
    return OTHER


def _dialect_says_disconnect(exc: sa_exc.DBAPIError) -> bool:
    if not has_app_context() or exc.orig is None:
        return False
    try:
        return bool(db.engine.dialect.is_disconnect(exc.orig, None, None))
    except (AttributeError, TypeError):
        return False


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_atomic() takes the
    database write lock up front there instead.
    """
    return query.with_for_update()


def begin_atomic() -> None:
    """
    Start the atomic unit so every read below happens under the write lock.

    On SQLite this is BEGIN IMMEDIATE, which serializes writers before they
    read stock. Other dialects rely on lock_for_update() plus version_id.
    """
    if db.engine.dialect.name != "sqlite":
        return
    conn = db.session.connection()
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _retry_settings(attempts, backoff_base):
    if has_app_context():
        attempts = attempts or current_app.config.get("RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("RETRY_BACKOFF_BASE", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one atomic unit, retrying when a concurrent commit invalidated it.

    - conflict: roll back, back off exponentially, run func again from scratch
    - connectivity: roll back and raise StoreUnavailable
    - anything else (including LedgerError): roll back and re-raise
    Exhausted retries raise ConcurrencyConflict.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except sa_exc.SQLAlchemyError as exc:
            db.session.rollback()
            kind = classify_store_error(exc)
            if kind == CONNECTIVITY:
                raise StoreUnavailable(
                    "Data store unavailable",
                    details={"cause": exc.__class__.__name__},
                ) from exc
            if kind != CONFLICT:
                raise
            if attempt >= attempts - 1:
                raise ConcurrencyConflict(
                    "Concurrent update conflict, please retry",
                    details={"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            logger.info("Retrying after %s (attempt %d/%d)", exc.__class__.__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def commit_with_retry(*, attempts: int | None = None, backoff_base: float | None = None):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def increment_columns(model, entity_id: int, **deltas) -> int:
    """
    Increment-style UPDATE: col = col + delta, with no read and no condition.

    Used by the degraded (offline replay) path and by bookkeeping that must
    not depend on a previously read value. Bumps version_id so any atomic
    unit holding a stale copy of the row fails its own UPDATE.
    Returns the number of rows matched.
    """
    values = {
        name: getattr(model, name) + delta
        for name, delta in deltas.items()
        if delta
    }
    if not values:
        return 0
    if hasattr(model, "version_id"):
        values["version_id"] = model.version_id + 1
    result = db.session.execute(
        update(model)
        .where(model.id == entity_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
