"""
Module: ledger_kernel.domain.account_codes
Responsibility: Pure rules of the chart-of-accounts numbering scheme.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.  May import
    from models/account.py for the AccountType enum only.

Numbering scheme:
    Three or four digits, first digit 1-5.  Three-digit codes are group
    headers that four-digit accounts hang below.  The first digit names the
    account type:

        1xxx  ASSET
        2xxx  LIABILITY
        3xxx  EQUITY
        4xxx  REVENUE
        5xxx  EXPENSE

    A child account's code extends its parent's code (the parent code is a
    strict prefix of the child code) and the child shares the parent's type.
"""

import re

from ledger_kernel.models.account import (
    DEBIT_NORMAL_TYPES,
    AccountType,
    NormalBalance,
)

ACCOUNT_CODE_PATTERN = re.compile(r"^[1-5]\d{2,3}$")

TYPE_BY_LEADING_DIGIT: dict[str, AccountType] = {
    "1": AccountType.ASSET,
    "2": AccountType.LIABILITY,
    "3": AccountType.EQUITY,
    "4": AccountType.REVENUE,
    "5": AccountType.EXPENSE,
}


def is_valid_account_code(code: str) -> bool:
    """True if code is three or four digits starting with 1-5."""
    return isinstance(code, str) and ACCOUNT_CODE_PATTERN.fullmatch(code) is not None


def type_for_code(code: str) -> AccountType | None:
    """The account type implied by the code, or None for a malformed code."""
    if not is_valid_account_code(code):
        return None
    return TYPE_BY_LEADING_DIGIT[code[0]]


def is_valid_hierarchy(
    parent_code: str,
    child_code: str,
    parent_type: AccountType | str | None = None,
    child_type: AccountType | str | None = None,
) -> bool:
    """
    Check the parent/child rule.

    The parent code must be a strict prefix of the child code.  When both
    types are given they must be equal.
    """
    if len(parent_code) >= len(child_code):
        return False
    if not child_code.startswith(parent_code):
        return False
    if parent_type is not None and child_type is not None:
        return AccountType(parent_type) == AccountType(child_type)
    return True


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    if AccountType(account_type) in DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT
