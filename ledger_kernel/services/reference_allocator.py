"""
ReferenceAllocator -- unique, human-legible transaction references.

Responsibility:
    Produces ``<PREFIX>-<YYYYMMDD>-<suffix>`` references and binds one to a
    transaction header at insert time.  The suffix is six digits of the
    clock's millisecond timestamp followed by four random hex characters.

Architecture position:
    Kernel > Services.  Called by LedgerEngine inside its unit of work.

Invariants enforced:
    - Uniqueness is enforced by the UNIQUE constraint on
      transactions.reference_number, not by the existence pre-check.  The
      pre-check only skips candidates that are known to be taken.
    - A uniqueness violation at insert time rolls back a savepoint (never
      the caller's transaction) and counts as one attempt.
    - Attempts are bounded; there is no sleep between them.

Failure modes:
    - ReferenceExhaustedError after ``max_attempts`` collisions (retryable).
"""

import secrets
from typing import Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import ReferenceExhaustedError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transaction import Transaction

logger = get_logger("services.reference_allocator")

T = TypeVar("T")

DEFAULT_PREFIX = "TXN"
DEFAULT_MAX_ATTEMPTS = 10

# SQLite names the column, PostgreSQL names the constraint.
_REFERENCE_CONSTRAINT_MARKERS = ("uq_transaction_reference", "transactions.reference_number")


def is_reference_violation(exc: IntegrityError) -> bool:
    """True if the integrity error is the reference uniqueness constraint."""
    text = str(exc.orig)
    return any(marker in text for marker in _REFERENCE_CONSTRAINT_MARKERS)


class ReferenceAllocator:
    """
    Generates and binds transaction references.

    Contract:
        ``allocate(session, insert)`` calls ``insert(reference)`` with fresh
        candidates until one inserts without a uniqueness violation, and
        returns whatever ``insert`` returned.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        prefix: str = DEFAULT_PREFIX,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._clock = clock or SystemClock()
        self._prefix = prefix
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _random_suffix(self) -> str:
        return secrets.token_hex(2)

    def generate(self) -> str:
        """One candidate reference."""
        now = self._clock.now()
        millis = str(self._clock.timestamp_ms())[-6:]
        return f"{self._prefix}-{now:%Y%m%d}-{millis}{self._random_suffix()}"

    def exists(self, session: Session, reference: str) -> bool:
        found = session.scalar(
            select(Transaction.id).where(Transaction.reference_number == reference)
        )
        return found is not None

    def allocate(self, session: Session, insert: Callable[[str], T]) -> T:
        """
        Bind a unique reference through ``insert``.

        ``insert`` adds the row carrying the reference; it runs inside a
        savepoint that is flushed before this method returns.

        Raises:
            ReferenceExhaustedError: Every attempt collided.
        """
        for attempt in range(1, self._max_attempts + 1):
            reference = self.generate()
            if self.exists(session, reference):
                logger.warning(
                    "reference_collision",
                    extra={"attempt": attempt, "reference": reference, "stage": "precheck"},
                )
                continue
            savepoint = session.begin_nested()
            try:
                result = insert(reference)
                session.flush()
            except IntegrityError as exc:
                savepoint.rollback()
                if not is_reference_violation(exc):
                    raise
                logger.warning(
                    "reference_collision",
                    extra={"attempt": attempt, "reference": reference, "stage": "insert"},
                )
                continue
            savepoint.commit()
            logger.debug(
                "reference_allocated",
                extra={"attempt": attempt, "reference": reference},
            )
            return result

        logger.error(
            "reference_exhausted",
            extra={"attempts": self._max_attempts},
        )
        raise ReferenceExhaustedError(self._max_attempts)
