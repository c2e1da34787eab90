"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for transactions (headers) and their journal
    entries (lines) -- the single source of financial truth.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/ or domain/.

Invariants enforced:
    - reference_number is unique (uq_transaction_reference).  The allocator
      treats a violation at insert time as a collision and retries.
    - Sum of debit_amount == sum of credit_amount per transaction (checked by
      LedgerEngine before any write; is_balanced is the read-side check).
    - line_seq preserves submission order for stable reads.
    - A transaction is reversed at most once (uq_transaction_reversal_of).

Failure modes:
    - IntegrityError on duplicate reference_number or second reversal.
"""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyAmount

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class Transaction(TrackedBase):
    """
    Transaction header -- the atomic unit of double-entry recording.

    Contract:
        Created together with all of its entries and the balance updates
        they imply, in one database transaction.  Never updated or deleted
        afterwards; corrections are new (reversing) transactions.

    Guarantees:
        - total_amount == sum(debit_amount) == sum(credit_amount).
        - At least two entries.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint("reference_number", name="uq_transaction_reference"),
        UniqueConstraint("reversal_of_id", name="uq_transaction_reversal_of"),
        Index("idx_transaction_date", "transaction_date"),
        Index("idx_transaction_created_by", "created_by"),
        Index("idx_transaction_created_at", "created_at"),
    )

    reference_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # Accounting date (drives balance-as-of queries)
    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        nullable=False,
    )

    # Actor id passed through from the auth layer
    created_by: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # If this is a reversal, points to the original transaction
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    entries: Mapped[list["JournalEntry"]] = relationship(
        back_populates="transaction",
        order_by="JournalEntry.line_seq",
        lazy="selectin",
    )

    reversal_of: Mapped["Transaction | None"] = relationship(
        remote_side="Transaction.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.reference_number} total={self.total_amount}>"


class JournalEntry(TrackedBase):
    """
    One debit or credit posting within a transaction.

    Contract:
        Belongs to exactly one Transaction, references exactly one Account.
        Both amounts are non-negative; normally exactly one is non-zero.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        CheckConstraint("debit_amount >= 0", name="ck_entry_debit_non_negative"),
        CheckConstraint("credit_amount >= 0", name="ck_entry_credit_non_negative"),
        Index("idx_entry_transaction", "transaction_id"),
        Index("idx_entry_account", "account_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit_amount: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        default=Decimal("0.00"),
        nullable=False,
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        default=Decimal("0.00"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Position within the transaction as submitted
    line_seq: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    transaction: Mapped["Transaction"] = relationship(
        back_populates="entries",
    )

    account: Mapped["Account"] = relationship(
        back_populates="journal_entries",
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntry account={self.account_id} "
            f"dr={self.debit_amount} cr={self.credit_amount}>"
        )
