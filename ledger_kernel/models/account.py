"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts (COA) -- the target
    of every journal entry line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique (uq_account_code).
    - balance is mutated ONLY by LedgerEngine, always through an in-database
      increment under a row lock.  No other component writes it.
    - Accounts referenced by journal entries are deactivated, never deleted.

Failure modes:
    - IntegrityError on duplicate code.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.db.types import MoneyAmount

if TYPE_CHECKING:
    from ledger_kernel.models.transaction import JournalEntry


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSET, AccountType.EXPENSE})


class Account(TrackedBase):
    """
    Chart of Accounts entry -- a single node in the general ledger structure.

    Contract:
        Account.code is unique and encodes the type in its first digit.
        A child account's code extends its parent's code and shares its type.

    Guarantees:
        - balance has fixed two-place precision and starts at 0.00.
        - account_type is one of ASSET, LIABILITY, EQUITY, REVENUE, EXPENSE.

    Non-goals:
        - This model does NOT validate code format or hierarchy; that is
          AccountRegistry's job (see domain/account_codes.py).
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_parent", "parent_id"),
        Index("idx_account_active", "is_active"),
    )

    # Human-readable code, e.g. "1101"
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    # Whether the account accepts new postings
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Running balance in the account's normal-balance sign
    balance: Mapped[Decimal] = mapped_column(
        MoneyAmount(),
        default=Decimal("0.00"),
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        foreign_keys=[parent_id],
    )

    journal_entries: Mapped[list["JournalEntry"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
