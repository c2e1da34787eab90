"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    DEBIT_NORMAL_TYPES,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.models.transaction import JournalEntry, Transaction

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "DEBIT_NORMAL_TYPES",
    "Transaction",
    "JournalEntry",
]
