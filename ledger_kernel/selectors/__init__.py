"""Read-only query selectors."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.transaction_selector import TransactionSelector

__all__ = [
    "BaseSelector",
    "LedgerSelector",
    "TransactionSelector",
]
