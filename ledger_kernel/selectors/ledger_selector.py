"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only balance queries -- running balances, balances as of
    a date recomputed from journal entries, trial balance and the agreement
    check between the two.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Recomputed balances use the same sign convention as LedgerEngine
      (domain.posting.balance_delta).
    - Agreement law: for an account with no future-dated entries, the
      recomputed balance equals the stored running balance.
    - All amounts are two-place Decimals (never float).

Failure modes:
    - AccountNotFoundError from account_balance for an unknown id.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO
from ledger_kernel.db.unit_of_work import translate_storage_errors
from ledger_kernel.domain.account_codes import normal_balance_for
from ledger_kernel.domain.dtos import BalanceDiscrepancy, TrialBalanceRow
from ledger_kernel.domain.posting import balance_delta
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, NormalBalance
from ledger_kernel.models.transaction import JournalEntry, Transaction
from ledger_kernel.selectors.base import BaseSelector, as_money


def _to_uuid(account_id) -> UUID:
    if isinstance(account_id, UUID):
        return account_id
    try:
        return UUID(str(account_id))
    except ValueError as exc:
        raise AccountNotFoundError(str(account_id)) from exc


class LedgerSelector(BaseSelector[JournalEntry]):
    """
    Selector for balance queries.

    Contract:
        Stored balances are read with a column query, so a long-lived
        session never serves a stale identity-map value.  Balances as of a
        date are derived from journal entries whose transaction_date is on
        or before that date.
    """

    def _movements(
        self,
        as_of_date: date | None = None,
        account_ids: list[UUID] | None = None,
    ) -> dict[UUID, tuple[Decimal, Decimal]]:
        """(debits, credits) per account from journal entries."""
        query = (
            select(
                JournalEntry.account_id,
                func.sum(JournalEntry.debit_amount).label("debit_total"),
                func.sum(JournalEntry.credit_amount).label("credit_total"),
            )
            .join(Transaction, JournalEntry.transaction_id == Transaction.id)
            .group_by(JournalEntry.account_id)
        )
        if as_of_date is not None:
            query = query.where(Transaction.transaction_date <= as_of_date)
        if account_ids is not None:
            query = query.where(JournalEntry.account_id.in_(account_ids))

        return {
            row.account_id: (as_money(row.debit_total), as_money(row.credit_total))
            for row in self.session.execute(query)
        }

    def _computed(
        self,
        account_type: str,
        movements: dict[UUID, tuple[Decimal, Decimal]],
        account_id: UUID,
    ) -> Decimal:
        debits, credits = movements.get(account_id, (ZERO, ZERO))
        return balance_delta(account_type, debits, credits)

    def account_balance(
        self,
        account_id: UUID,
        as_of_date: date | None = None,
    ) -> Decimal:
        """
        Balance of one account.

        Without a date this is the persisted running balance.  With a date it
        is recomputed from every entry dated on or before it.

        Raises:
            AccountNotFoundError: No account with this id.
        """
        key = _to_uuid(account_id)
        return self.account_balances([key], as_of_date)[key]

    def account_balances(
        self,
        account_ids: list[UUID],
        as_of_date: date | None = None,
    ) -> dict[UUID, Decimal]:
        """
        Balances for several accounts, keyed by id.

        Raises:
            AccountNotFoundError: Any id does not exist.
        """
        ids = list(dict.fromkeys(_to_uuid(a) for a in account_ids))
        with translate_storage_errors("account_balances"):
            rows = {
                row.id: row
                for row in self.session.execute(
                    select(Account.id, Account.account_type, Account.balance).where(
                        Account.id.in_(ids)
                    )
                )
            }
            for account_id in ids:
                if account_id not in rows:
                    raise AccountNotFoundError(str(account_id))
            if as_of_date is None:
                return {account_id: as_money(rows[account_id].balance) for account_id in ids}

            movements = self._movements(as_of_date, ids)
        return {
            account_id: self._computed(rows[account_id].account_type, movements, account_id)
            for account_id in ids
        }

    def total_debits_credits(self, as_of_date: date | None = None) -> tuple[Decimal, Decimal]:
        """Ledger-wide (debits, credits).  Equal whenever the balance law holds."""
        query = select(
            func.sum(JournalEntry.debit_amount),
            func.sum(JournalEntry.credit_amount),
        ).join(Transaction, JournalEntry.transaction_id == Transaction.id)
        if as_of_date is not None:
            query = query.where(Transaction.transaction_date <= as_of_date)
        with translate_storage_errors("total_debits_credits"):
            debits, credits = self.session.execute(query).one()
        return as_money(debits), as_money(credits)

    def trial_balance(self, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        """
        Trial balance over active accounts with a non-zero balance.

        A positive balance sits in the column of the account's normal side, a
        negative one in the opposite column, so the column totals agree.
        Rows are ordered by account code.
        """
        with translate_storage_errors("trial_balance"):
            accounts = self.session.execute(
                select(
                    Account.id,
                    Account.code,
                    Account.name,
                    Account.account_type,
                    Account.balance,
                )
                .where(Account.is_active.is_(True))
                .order_by(Account.code)
            ).all()
            movements = self._movements(as_of_date) if as_of_date is not None else {}

        rows = []
        for account in accounts:
            if as_of_date is None:
                balance = as_money(account.balance)
            else:
                balance = self._computed(account.account_type, movements, account.id)
            if balance == ZERO:
                continue

            debit_side = normal_balance_for(account.account_type) == NormalBalance.DEBIT
            if balance < ZERO:
                debit_side = not debit_side
            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    balance=balance,
                    debit_balance=abs(balance) if debit_side else ZERO,
                    credit_balance=ZERO if debit_side else abs(balance),
                )
            )
        return rows

    def verify_running_balances(
        self,
        as_of_date: date | None = None,
    ) -> list[BalanceDiscrepancy]:
        """
        Compare every stored running balance with the entry-derived balance.

        Empty when the ledger is consistent.  With a date, only meaningful if
        no entries are dated after it.
        """
        with translate_storage_errors("verify_running_balances"):
            accounts = self.session.execute(
                select(Account.id, Account.code, Account.account_type, Account.balance)
                .order_by(Account.code)
            ).all()
            movements = self._movements(as_of_date)

        discrepancies = []
        for account in accounts:
            stored = as_money(account.balance)
            computed = self._computed(account.account_type, movements, account.id)
            if stored != computed:
                discrepancies.append(
                    BalanceDiscrepancy(
                        account_id=account.id,
                        account_code=account.code,
                        stored_balance=stored,
                        computed_balance=computed,
                    )
                )
        return discrepancies
