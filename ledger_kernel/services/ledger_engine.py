"""
LedgerEngine -- the only write path for transactions and balances.

Responsibility:
    Validates a submitted transaction, then records its header, its journal
    entries and the balance change of every touched account as one atomic
    unit.  Also offers a dry-run validation and reversal of a recorded
    transaction.

Architecture position:
    Kernel > Services.  Uses AccountRegistry semantics for posting targets,
    ReferenceAllocator for the reference, TransactionSelector to read the
    result back.

Invariants enforced:
    - Balance law: sum(debit) == sum(credit), exact Decimal comparison,
      checked before any write.
    - Referential integrity: every line targets an existing active account,
      checked before any write and again under the row lock.
    - Sign convention: debit-normal accounts move by D - C, credit-normal
      accounts by C - D, one delta per touched account.
    - No lost updates: touched account rows are locked in ascending id order
      (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite) and balances change
      through an in-database increment, never read-modify-write in Python.
    - All-or-nothing: header, entries and balances commit together or not
      at all.

Failure modes:
    - MalformedTransactionError, UnbalancedEntryError,
      UnknownOrInactiveAccountError: rejected before any write.
    - ReferenceExhaustedError, StorageUnavailableError: raised after rollback.
    - TransactionNotFoundError, TransactionAlreadyReversedError: reversal.

Transaction boundary:
    auto_commit=True (default): the engine commits on success and rolls the
    session back on any failure.  auto_commit=False: the work runs in a
    SAVEPOINT of the caller's transaction and the caller commits.
"""

import time
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.config import LedgerConfig
from ledger_kernel.db.types import MAX_MONEY, MONEY_LIMIT, ZERO, format_money
from ledger_kernel.db.unit_of_work import translate_storage_errors, unit_of_work
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import BalanceValidationResult, EntryLine, TransactionDTO
from ledger_kernel.domain.posting import (
    AccountMovement,
    PostingLine,
    aggregate_by_account,
    balance_delta,
    check_balanced,
    check_line_count,
    normalize_line,
    normalize_lines,
    reversed_lines,
    totals,
)
from ledger_kernel.exceptions import (
    LedgerKernelError,
    MalformedTransactionError,
    TransactionAlreadyReversedError,
    TransactionNotFoundError,
    UnknownOrInactiveAccountError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import JournalEntry, Transaction
from ledger_kernel.selectors.transaction_selector import TransactionSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.reference_allocator import ReferenceAllocator

logger = get_logger("services.ledger_engine")


class LedgerEngine(BaseService[Transaction]):
    """
    Records balanced transactions and maintains running balances.

    Contract:
        ``record_transaction`` either returns the recorded TransactionDTO or
        raises, in which case nothing was written.

    Non-goals:
        - Does NOT amend or delete recorded transactions.  Corrections are
          reversals.
        - Does NOT authorize the actor; actor_id is recorded as given.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        allocator: ReferenceAllocator | None = None,
        auto_commit: bool = True,
    ):
        super().__init__(session)
        config = config or LedgerConfig()
        self._clock = clock or SystemClock()
        self._strict_line_sides = config.strict_line_sides
        self._allocator = allocator or ReferenceAllocator(
            clock=self._clock,
            prefix=config.reference_prefix,
            max_attempts=config.reference_max_attempts,
        )
        self._auto_commit = auto_commit
        self._selector = TransactionSelector(session)

    # -- Validation -----------------------------------------------------------

    @staticmethod
    def _check_header(transaction_date: date, description: str) -> str:
        if isinstance(transaction_date, datetime) or not isinstance(transaction_date, date):
            raise MalformedTransactionError(
                f"transaction_date must be a date, got {transaction_date!r}"
            )
        if not isinstance(description, str) or not description.strip():
            raise MalformedTransactionError("description is required")
        return description.strip()

    @staticmethod
    def _coerce_actor(actor_id: UUID | str) -> UUID:
        if isinstance(actor_id, UUID):
            return actor_id
        try:
            return UUID(str(actor_id))
        except ValueError as exc:
            raise MalformedTransactionError(f"actor_id {actor_id!r} is not a valid identifier") from exc

    def _offending_accounts(self, lines: Sequence[PostingLine]) -> list[UUID]:
        """Ids in line order that are missing or inactive, without duplicates."""
        ids = list(dict.fromkeys(line.account_id for line in lines))
        active = set(
            self.session.scalars(
                select(Account.id).where(
                    Account.id.in_(ids),
                    Account.is_active.is_(True),
                )
            )
        )
        return [account_id for account_id in ids if account_id not in active]

    def _check_accounts(self, lines: Sequence[PostingLine]) -> None:
        offending = self._offending_accounts(lines)
        if offending:
            raise UnknownOrInactiveAccountError(
                str(offending[0]), [str(a) for a in offending]
            )

    def _validate(
        self,
        transaction_date: date,
        description: str,
        lines: Sequence[EntryLine],
    ) -> tuple[str, list[PostingLine], Decimal]:
        posting_lines = normalize_lines(lines, self._strict_line_sides)
        description = self._check_header(transaction_date, description)
        with translate_storage_errors("validate_accounts"):
            self._check_accounts(posting_lines)
        total = check_balanced(posting_lines)
        return description, posting_lines, total

    def validate_transaction(
        self,
        lines: Sequence[EntryLine],
        description: str | None = None,
    ) -> BalanceValidationResult:
        """
        Dry run of the recording checks.  Nothing is written.

        Collects every problem instead of stopping at the first one.
        """
        errors: list[str] = []
        try:
            check_line_count(lines)
        except MalformedTransactionError as exc:
            errors.append(str(exc))
        if description is not None and not description.strip():
            errors.append("description is required")

        posting_lines = []
        for index, line in enumerate(lines or []):
            try:
                posting_lines.append(normalize_line(line, index, self._strict_line_sides))
            except MalformedTransactionError as exc:
                errors.append(str(exc))

        if posting_lines:
            with translate_storage_errors("validate_transaction"):
                offending = self._offending_accounts(posting_lines)
            for account_id in offending:
                errors.append(f"Account {account_id} not found or is inactive")

        debits, credits = totals(posting_lines)
        if debits != credits:
            errors.append(
                f"Transaction is not balanced: debits ({format_money(debits)}) "
                f"must equal credits ({format_money(credits)})"
            )
        elif posting_lines and debits == ZERO:
            errors.append("transaction total must be greater than zero")
        elif debits >= MONEY_LIMIT:
            errors.append(
                f"transaction total {format_money(debits)} exceeds the largest amount {MAX_MONEY}"
            )

        return BalanceValidationResult(
            is_valid=not errors,
            total_debits=debits,
            total_credits=credits,
            errors=errors,
        )

    # -- Persistence ------------------------------------------------------------

    def _lock_accounts(self, account_ids: list[UUID]) -> dict[UUID, Account]:
        """Lock rows in ascending id order and re-check that they are postable."""
        locked = {
            account.id: account
            for account in self.session.scalars(
                select(Account)
                .where(Account.id.in_(account_ids))
                .order_by(Account.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        }
        offending = [
            account_id
            for account_id in account_ids
            if account_id not in locked or not locked[account_id].is_active
        ]
        if offending:
            raise UnknownOrInactiveAccountError(
                str(offending[0]), [str(a) for a in offending]
            )
        return locked

    def _check_balance_range(
        self,
        movements: list[AccountMovement],
        accounts: dict[UUID, Account],
    ) -> None:
        """Refuse a posting that would push a locked balance out of column range."""
        for movement in movements:
            account = accounts[movement.account_id]
            delta = balance_delta(account.account_type, movement.debits, movement.credits)
            resulting = account.balance + delta
            if abs(resulting) >= MONEY_LIMIT:
                raise MalformedTransactionError(
                    f"balance of account {account.code} would become "
                    f"{format_money(resulting)}, beyond the largest amount {MAX_MONEY}"
                )

    def _apply_deltas(
        self,
        movements: list[AccountMovement],
        accounts: dict[UUID, Account],
    ) -> None:
        for movement in movements:
            account = accounts[movement.account_id]
            delta = balance_delta(account.account_type, movement.debits, movement.credits)
            self.session.execute(
                update(Account)
                .where(Account.id == movement.account_id)
                .values(balance=Account.balance + delta)
                .execution_options(synchronize_session=False)
            )
            self.session.expire(account, ["balance"])

    def _persist(
        self,
        transaction_date: date,
        description: str,
        posting_lines: list[PostingLine],
        total: Decimal,
        actor: UUID,
        reversal_of_id: UUID | None = None,
    ) -> TransactionDTO:
        movements = aggregate_by_account(posting_lines)
        now = self._clock.now()

        def insert_header(reference: str) -> Transaction:
            header = Transaction(
                reference_number=reference,
                transaction_date=transaction_date,
                description=description,
                total_amount=total,
                created_by=actor,
                reversal_of_id=reversal_of_id,
                created_at=now,
                updated_at=now,
            )
            self.session.add(header)
            return header

        with unit_of_work(self.session, "record_transaction", auto_commit=self._auto_commit):
            accounts = self._lock_accounts([m.account_id for m in movements])
            self._check_balance_range(movements, accounts)
            header = self._allocator.allocate(self.session, insert_header)
            with LogContext.bind(
                transaction_id=str(header.id),
                reference=header.reference_number,
            ):
                header.entries = [
                    JournalEntry(
                        account_id=line.account_id,
                        debit_amount=line.debit_amount,
                        credit_amount=line.credit_amount,
                        description=line.description,
                        line_seq=line.line_seq,
                        created_at=now,
                        updated_at=now,
                    )
                    for line in posting_lines
                ]
                self.session.flush()
                self._apply_deltas(movements, accounts)
                logger.debug(
                    "balances_applied",
                    extra={"account_count": len(movements)},
                )
            # Read back inside the unit so no second transaction is opened.
            result = self._selector.find_by_id(header.id)
        return result

    def _run(self, event: str, actor_id, work, **log_fields) -> TransactionDTO:
        """Run ``work`` with log context, timing and the rollback policy."""
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=str(actor_id),
        ):
            logger.info(f"{event}_started", extra=log_fields)
            t0 = time.monotonic()
            try:
                result = work()
            except LedgerKernelError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self.session.rollback()
                logger.warning(
                    f"{event}_rejected",
                    extra={
                        "error_code": exc.code,
                        "error_category": exc.category,
                        "duration_ms": duration_ms,
                    },
                )
                raise
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self.session.rollback()
                logger.error(
                    f"{event}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                f"{event}_completed",
                extra={
                    "transaction_id": str(result.id),
                    "reference": result.reference_number,
                    "total_amount": format_money(result.total_amount),
                    "entry_count": len(result.entries),
                    "duration_ms": duration_ms,
                },
            )
            return result

    def record_transaction(
        self,
        transaction_date: date,
        description: str,
        lines: Sequence[EntryLine],
        actor_id: UUID | str,
    ) -> TransactionDTO:
        """
        Record a balanced transaction.

        Validation, in order, each a distinct failure:
            1. At least two lines with well-formed amounts and a non-blank
               description (MalformedTransactionError).
            2. Every account exists and is active
               (UnknownOrInactiveAccountError naming the first offender).
            3. Debits equal credits exactly (UnbalancedEntryError), and the
               total is greater than zero and fits a money column
               (MalformedTransactionError).

        Effects, one atomic unit: lock accounts and refuse any balance that
        would leave the money range, allocate the reference and insert the
        header, insert the entries, apply one balance delta per
        account.

        Returns:
            The recorded transaction, entries in submission order.
        """

        def work() -> TransactionDTO:
            clean_description, posting_lines, total = self._validate(
                transaction_date, description, lines
            )
            actor = self._coerce_actor(actor_id)
            return self._persist(
                transaction_date, clean_description, posting_lines, total, actor
            )

        return self._run(
            "transaction_recording",
            actor_id,
            work,
            transaction_date=str(transaction_date),
            line_count=len(lines) if lines is not None else 0,
        )

    def reverse_transaction(
        self,
        transaction_id: UUID,
        reason: str,
        actor_id: UUID | str,
        reversal_date: date | None = None,
    ) -> TransactionDTO:
        """
        Record a new transaction that mirrors ``transaction_id`` with debit and
        credit swapped on every line.  The original is never modified.

        Raises:
            TransactionNotFoundError: Unknown transaction id.
            TransactionAlreadyReversedError: A reversal already exists.
            MalformedTransactionError: Blank reason.
        """

        def work() -> TransactionDTO:
            with translate_storage_errors("reverse_transaction"):
                original = self.session.get(Transaction, transaction_id)
                if original is None:
                    raise TransactionNotFoundError(str(transaction_id))
                existing = self.session.scalar(
                    select(Transaction.id).where(Transaction.reversal_of_id == original.id)
                )
            if existing is not None:
                raise TransactionAlreadyReversedError(str(original.id), str(existing))
            if not reason or not reason.strip():
                raise MalformedTransactionError("a reversal needs a reason")

            mirrored = reversed_lines(
                [
                    PostingLine(
                        line_seq=entry.line_seq,
                        account_id=entry.account_id,
                        debit_amount=entry.debit_amount,
                        credit_amount=entry.credit_amount,
                        description=entry.description,
                    )
                    for entry in sorted(original.entries, key=lambda e: e.line_seq)
                ],
                f"Reversal of {original.reference_number}",
            )
            description = (
                f"REVERSAL of {original.reference_number}: "
                f"{original.description} (Reason: {reason.strip()})"
            )
            clean_description, posting_lines, total = self._validate(
                reversal_date or self._clock.today(), description, mirrored
            )
            actor = self._coerce_actor(actor_id)
            try:
                return self._persist(
                    reversal_date or self._clock.today(),
                    clean_description,
                    posting_lines,
                    total,
                    actor,
                    reversal_of_id=original.id,
                )
            except IntegrityError as exc:
                # A concurrent reversal won the uq_transaction_reversal_of race.
                winner = self.session.scalar(
                    select(Transaction.id).where(Transaction.reversal_of_id == original.id)
                )
                if winner is None:
                    raise
                raise TransactionAlreadyReversedError(str(original.id), str(winner)) from exc

        return self._run(
            "transaction_reversal",
            actor_id,
            work,
            original_transaction_id=str(transaction_id),
        )
