"""
Module: ledger_kernel.selectors.transaction_selector
Responsibility: Read-only query access to transactions and their journal
    entries.  Converts ORM rows to DTOs for clean layer separation.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/dtos.py and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: No mutations performed on any queried data.
    - Entries are ordered by line_seq (submission order), so repeated reads
      return the same lines in the same order.
    - Listings are ordered by transaction_date DESC, created_at DESC, with id
      as the final tiebreak so pagination is stable.
    - Account code/name on each entry are read at query time, not stored.

Failure modes:
    - Returns None or an empty list when nothing matches (never raises on
      absence of data).
"""

from collections import defaultdict
from uuid import UUID

from sqlalchemy import Select, func, or_, select

from ledger_kernel.db.unit_of_work import translate_storage_errors
from ledger_kernel.domain.dtos import JournalEntryDTO, TransactionDTO, TransactionFilter
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import JournalEntry, Transaction
from ledger_kernel.selectors.base import BaseSelector

DEFAULT_SEARCH_LIMIT = 50


class TransactionSelector(BaseSelector[Transaction]):
    """
    Selector for transaction queries.

    Contract:
        All public query methods return TransactionDTO instances (or lists
        thereof) with entries in line_seq order.

    Non-goals:
        - This selector does NOT compute balances; use LedgerSelector for that.
    """

    def _entries_for(self, transaction_ids: list[UUID]) -> dict[UUID, list[JournalEntryDTO]]:
        """Load entries for many transactions in one query."""
        if not transaction_ids:
            return {}
        rows = self.session.execute(
            select(
                JournalEntry,
                Account.code.label("account_code"),
                Account.name.label("account_name"),
            )
            .join(Account, JournalEntry.account_id == Account.id)
            .where(JournalEntry.transaction_id.in_(transaction_ids))
            .order_by(JournalEntry.transaction_id, JournalEntry.line_seq)
        ).all()

        entries: dict[UUID, list[JournalEntryDTO]] = defaultdict(list)
        for entry, account_code, account_name in rows:
            entries[entry.transaction_id].append(
                JournalEntryDTO(
                    id=entry.id,
                    account_id=entry.account_id,
                    account_code=account_code,
                    account_name=account_name,
                    debit_amount=entry.debit_amount,
                    credit_amount=entry.credit_amount,
                    description=entry.description,
                    line_seq=entry.line_seq,
                )
            )
        return entries

    def _to_dtos(self, transactions: list[Transaction]) -> list[TransactionDTO]:
        """Convert ORM headers to DTOs, preserving order."""
        entries = self._entries_for([t.id for t in transactions])
        return [
            TransactionDTO(
                id=t.id,
                reference_number=t.reference_number,
                transaction_date=t.transaction_date,
                description=t.description,
                total_amount=t.total_amount,
                created_by=t.created_by,
                created_at=t.created_at,
                updated_at=t.updated_at,
                reversal_of_id=t.reversal_of_id,
                entries=entries.get(t.id, []),
            )
            for t in transactions
        ]

    def _fetch(self, query: Select) -> list[TransactionDTO]:
        with translate_storage_errors("read_transactions"):
            return self._to_dtos(list(self.session.scalars(query)))

    @staticmethod
    def _ordered(query: Select) -> Select:
        return query.order_by(
            Transaction.transaction_date.desc(),
            Transaction.created_at.desc(),
            Transaction.id,
        )

    @staticmethod
    def _paginate(query: Select, limit: int | None, offset: int | None) -> Select:
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        return query

    @staticmethod
    def _apply_filter(query: Select, filters: TransactionFilter | None) -> Select:
        if filters is None:
            return query
        if filters.date_from is not None:
            query = query.where(Transaction.transaction_date >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(Transaction.transaction_date <= filters.date_to)
        if filters.created_by is not None:
            query = query.where(Transaction.created_by == filters.created_by)
        if filters.reference_number is not None:
            query = query.where(Transaction.reference_number == filters.reference_number)
        if filters.account_id is not None:
            query = query.where(
                Transaction.id.in_(
                    select(JournalEntry.transaction_id).where(
                        JournalEntry.account_id == filters.account_id
                    )
                )
            )
        return query

    def find_by_id(self, transaction_id: UUID) -> TransactionDTO | None:
        """
        Get a transaction by id.

        Returns:
            TransactionDTO if found, None otherwise.
        """
        found = self._fetch(select(Transaction).where(Transaction.id == transaction_id))
        return found[0] if found else None

    def find_by_reference(self, reference_number: str) -> TransactionDTO | None:
        found = self._fetch(
            select(Transaction).where(Transaction.reference_number == reference_number)
        )
        return found[0] if found else None

    def find_all(
        self,
        filters: TransactionFilter | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[TransactionDTO]:
        """Most recent first.  Date bounds are inclusive."""
        query = self._apply_filter(select(Transaction), filters)
        return self._fetch(self._paginate(self._ordered(query), limit, offset))

    def find_by_account(
        self,
        account_id: UUID,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[TransactionDTO]:
        """Transactions with at least one line against the account."""
        return self.find_all(TransactionFilter(account_id=account_id), limit, offset)

    def search(
        self,
        text: str,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
    ) -> list[TransactionDTO]:
        """Case-insensitive substring match over description or reference."""
        query = select(Transaction).where(
            or_(
                Transaction.description.icontains(text, autoescape=True),
                Transaction.reference_number.icontains(text, autoescape=True),
            )
        )
        return self._fetch(self._paginate(self._ordered(query), limit, offset))

    def count(self, filters: TransactionFilter | None = None) -> int:
        """Number of transactions matching the same filter as find_all."""
        query = self._apply_filter(select(func.count()).select_from(Transaction), filters)
        with translate_storage_errors("count_transactions"):
            return self.session.scalar(query) or 0

    def find_reversal_of(self, transaction_id: UUID) -> TransactionDTO | None:
        """The transaction that reversed this one, if any."""
        found = self._fetch(
            select(Transaction).where(Transaction.reversal_of_id == transaction_id)
        )
        return found[0] if found else None

    def history(self, transaction_id: UUID) -> list[dict]:
        """
        Audit-trail summary for a transaction.

        A CREATED record, followed by a REVERSED record when a reversal
        exists.  Empty for an unknown id.
        """
        transaction = self.find_by_id(transaction_id)
        if transaction is None:
            return []

        records = [
            {
                "action": "CREATED",
                "timestamp": transaction.created_at,
                "user_id": transaction.created_by,
                "details": {
                    "reference_number": transaction.reference_number,
                    "description": transaction.description,
                    "total_amount": transaction.total_amount,
                    "entries_count": len(transaction.entries),
                },
            }
        ]
        reversal = self.find_reversal_of(transaction_id)
        if reversal is not None:
            records.append(
                {
                    "action": "REVERSED",
                    "timestamp": reversal.created_at,
                    "user_id": reversal.created_by,
                    "details": {
                        "reference_number": reversal.reference_number,
                        "reversal_id": reversal.id,
                        "description": reversal.description,
                    },
                }
            )
        return records
