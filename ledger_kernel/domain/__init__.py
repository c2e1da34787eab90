"""Pure domain rules: account codes, posting arithmetic, clock and DTOs."""

from ledger_kernel.domain.account_codes import (
    is_valid_account_code,
    is_valid_hierarchy,
    normal_balance_for,
    type_for_code,
)
from ledger_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from ledger_kernel.domain.dtos import (
    AccountDTO,
    AccountIntegrityIssue,
    AccountNode,
    BalanceDiscrepancy,
    BalanceValidationResult,
    EntryLine,
    JournalEntryDTO,
    TransactionDTO,
    TransactionFilter,
    TrialBalanceRow,
)
from ledger_kernel.domain.posting import (
    AccountMovement,
    PostingLine,
    aggregate_by_account,
    balance_delta,
    check_balanced,
    check_line_count,
    normalize_line,
    normalize_lines,
    totals,
)

__all__ = [
    "is_valid_account_code",
    "is_valid_hierarchy",
    "normal_balance_for",
    "type_for_code",
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "SequentialClock",
    "AccountDTO",
    "AccountIntegrityIssue",
    "AccountNode",
    "BalanceDiscrepancy",
    "BalanceValidationResult",
    "EntryLine",
    "JournalEntryDTO",
    "TransactionDTO",
    "TransactionFilter",
    "TrialBalanceRow",
    "AccountMovement",
    "PostingLine",
    "aggregate_by_account",
    "balance_delta",
    "check_balanced",
    "check_line_count",
    "normalize_line",
    "normalize_lines",
    "totals",
]
