# Overview: Transaction scope, row locking, and lock-conflict retry shared by every order mutation.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, TypeVar

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError

from ..errors import TransientConflict
from ..extensions import db


logger = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL ER_LOCK_WAIT_TIMEOUT
MYSQL_LOCK_WAIT_TIMEOUT = 1205

_LOCK_TIMEOUT_MARKERS = (
    "lock wait timeout",
    "database is locked",
    "could not obtain lock",
    "lock timeout",
)


def lock_for_update(query, of=None):
    """
    Apply row-level locking for critical operations.

    Pass `of` to lock only that entity's rows when the query joins other
    tables.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; unit_of_work takes the
    database write lock up front there instead.
    """
    return query.with_for_update(of=of)


@contextmanager
def unit_of_work():
    """
    One atomic unit of work on the scoped session.

    Commits when the block exits normally. Any exception (business rule or
    unexpected) rolls back everything done inside the block and propagates.

    On SQLite the write lock is taken at BEGIN so a read that justifies a
    later write cannot be interleaved with another writer.
    """
    session = db.session()
    try:
        if db.engine.dialect.name == "sqlite" and not session.in_transaction():
            session.execute(text("BEGIN IMMEDIATE"))
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def is_lock_timeout(exc: BaseException) -> bool:
    """True for the transient lock-conflict class eligible for retry."""
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    orig = getattr(exc, "orig", None)
    args = getattr(orig, "args", None) or ()
    if args and args[0] == MYSQL_LOCK_WAIT_TIMEOUT:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_TIMEOUT_MARKERS)


def _retry_policy() -> tuple[int, float]:
    if has_app_context():
        return (
            current_app.config.get("ORDER_RETRY_ATTEMPTS", 3),
            current_app.config.get("ORDER_RETRY_BACKOFF_SECONDS", 0.1),
        )
    return 3, 0.1


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    is_transient: Callable[[BaseException], bool] = is_lock_timeout,
    label: str = "operation",
) -> T:
    """
    Run a whole unit of work, retrying it on transient lock conflicts.

    func must open and close its own unit_of_work so each attempt starts
    from a clean transaction. Waits backoff_base * attempt seconds between
    attempts. Errors that are not transient propagate on the first attempt.
    Raises TransientConflict once the attempt budget is spent.
    """
    default_attempts, default_backoff = _retry_policy()
    attempts = attempts or default_attempts
    backoff_base = default_backoff if backoff_base is None else backoff_base

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except Exception as exc:
            if not is_transient(exc):
                raise
            db.session.rollback()
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise TransientConflict(details={"attempts": attempts}) from exc
            logger.warning("Retrying %s after lock conflict, attempt %d", label, attempt + 1)
            time.sleep(backoff_base * attempt)

    raise TransientConflict(details={"attempts": attempts})
