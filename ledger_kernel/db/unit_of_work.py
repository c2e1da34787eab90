"""
Module: ledger_kernel.db.unit_of_work
Responsibility: Explicit commit-or-rollback boundary for multi-row writes and
    translation of infrastructure failures into StorageUnavailableError.
Architecture position: Kernel > DB.  Used by services that own their
    transaction boundary (LedgerEngine).  MUST NOT import from services/.

Invariants enforced:
    - All-or-nothing: every write issued inside ``unit_of_work`` is either
      committed together or rolled back together.
    - With ``auto_commit=False`` the work runs inside a SAVEPOINT of the
      caller's transaction, so a failure undoes exactly this unit and the
      caller still decides when to commit.
    - Rollback happens BEFORE any error propagates to the caller.

Failure modes:
    - StorageUnavailableError for lock/statement timeouts, dropped
      connections and pool exhaustion (retryable by the caller).
    - Every other exception is re-raised unchanged after rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from ledger_kernel.exceptions import StorageUnavailableError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


def is_storage_failure(exc: BaseException) -> bool:
    """True for errors that say the store is unavailable, not that data is wrong."""
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


@contextmanager
def translate_storage_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise infrastructure failures as StorageUnavailableError."""
    try:
        yield
    except Exception as exc:
        if is_storage_failure(exc):
            raise StorageUnavailableError(operation, str(exc).splitlines()[0]) from exc
        raise


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    auto_commit: bool = True,
) -> Generator[Session, None, None]:
    """
    Run a block of writes as one atomic unit.

    Preconditions: ``session`` is open.  With ``auto_commit=True`` the session
        must not hold uncommitted work that belongs to someone else.
    Postconditions: On normal exit the writes are committed (auto_commit) or
        released into the caller's transaction (savepoint).  On exception
        they are rolled back and the exception is re-raised, translated to
        StorageUnavailableError when the store itself failed.

    Usage:
        with unit_of_work(session, "record_transaction") as uow_session:
            uow_session.add(header)
            ...
    """
    with translate_storage_errors(operation):
        savepoint = None if auto_commit else session.begin_nested()
        try:
            yield session
            if savepoint is not None:
                savepoint.commit()
            else:
                session.commit()
            logger.debug("unit_of_work_committed", extra={"operation": operation})
        except Exception:
            if savepoint is not None:
                if savepoint.is_active:
                    savepoint.rollback()
            else:
                session.rollback()
            logger.warning(
                "unit_of_work_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
