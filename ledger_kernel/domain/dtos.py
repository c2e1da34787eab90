"""
Module: ledger_kernel.domain.dtos
Responsibility: Data transfer objects crossing the kernel boundary.  Services
    and selectors return these instead of ORM instances so callers never hold
    a live session-bound object.
Architecture position: Kernel > Domain.  Pure dataclasses, zero I/O.

Amounts are Decimals.  ``to_dict()`` renders them as fixed two-place strings
for transport; the reporting layer must never see a float.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import ZERO, format_money


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class EntryLine:
    """
    One line of a transaction as submitted by a caller.

    Amounts may be Decimals, ints or exact decimal strings.  Floats are
    refused at recording time.
    """

    account_id: UUID | str
    debit_amount: Decimal | int | str = ZERO
    credit_amount: Decimal | int | str = ZERO
    description: str | None = None


@dataclass(frozen=True)
class AccountDTO:
    """Data transfer object for an account."""

    id: UUID
    code: str
    name: str
    account_type: str
    parent_id: UUID | None
    is_active: bool
    balance: Decimal
    description: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type,
            "parent_id": _str_or_none(self.parent_id),
            "is_active": self.is_active,
            "balance": format_money(self.balance),
            "description": self.description,
        }


@dataclass(frozen=True)
class JournalEntryDTO:
    """Data transfer object for a journal entry line."""

    id: UUID
    account_id: UUID
    account_code: str
    account_name: str
    debit_amount: Decimal
    credit_amount: Decimal
    description: str | None
    line_seq: int

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "account_id": str(self.account_id),
            "account_code": self.account_code,
            "account_name": self.account_name,
            "debit_amount": format_money(self.debit_amount),
            "credit_amount": format_money(self.credit_amount),
            "description": self.description,
            "line_seq": self.line_seq,
        }


@dataclass(frozen=True)
class TransactionDTO:
    """Data transfer object for a transaction with its ordered entries."""

    id: UUID
    reference_number: str
    transaction_date: date
    description: str
    total_amount: Decimal
    created_by: UUID
    created_at: datetime | None
    updated_at: datetime | None
    entries: list[JournalEntryDTO]
    reversal_of_id: UUID | None = None

    @property
    def total_debits(self) -> Decimal:
        """Sum of debit amounts."""
        return sum((e.debit_amount for e in self.entries), ZERO)

    @property
    def total_credits(self) -> Decimal:
        """Sum of credit amounts."""
        return sum((e.credit_amount for e in self.entries), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "reference_number": self.reference_number,
            "transaction_date": _iso(self.transaction_date),
            "description": self.description,
            "total_amount": format_money(self.total_amount),
            "created_by": str(self.created_by),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "reversal_of_id": _str_or_none(self.reversal_of_id),
            "entries": [e.to_dict() for e in self.entries],
        }


@dataclass(frozen=True)
class TransactionFilter:
    """Filter for transaction listings.  Date bounds are inclusive."""

    date_from: date | None = None
    date_to: date | None = None
    created_by: UUID | None = None
    reference_number: str | None = None
    account_id: UUID | None = None


@dataclass
class BalanceValidationResult:
    """Outcome of a dry-run validation."""

    is_valid: bool
    total_debits: Decimal
    total_credits: Decimal
    errors: list[str] = field(default_factory=list)

    @property
    def difference(self) -> Decimal:
        return abs(self.total_debits - self.total_credits)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "total_debits": format_money(self.total_debits),
            "total_credits": format_money(self.total_credits),
            "difference": format_money(self.difference),
            "errors": list(self.errors),
        }


@dataclass
class AccountNode:
    """An account with its child accounts, for hierarchy views."""

    account: AccountDTO
    children: list["AccountNode"] = field(default_factory=list)

    @property
    def level(self) -> int:
        return len(self.account.code)


@dataclass(frozen=True)
class AccountIntegrityIssue:
    """A stored account that breaks a chart-of-accounts rule."""

    account_id: UUID
    account_code: str
    issue: str
    detail: str


@dataclass(frozen=True)
class TrialBalanceRow:
    """A single row in a trial balance."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    balance: Decimal
    debit_balance: Decimal
    credit_balance: Decimal

    def to_dict(self) -> dict:
        return {
            "account_id": str(self.account_id),
            "account_code": self.account_code,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "balance": format_money(self.balance),
            "debit_balance": format_money(self.debit_balance),
            "credit_balance": format_money(self.credit_balance),
        }


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """Stored running balance disagrees with the balance derived from entries."""

    account_id: UUID
    account_code: str
    stored_balance: Decimal
    computed_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.computed_balance
