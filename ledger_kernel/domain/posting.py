"""
Module: ledger_kernel.domain.posting
Responsibility: Pure double-entry arithmetic -- line normalization, totals,
    per-account aggregation and the balance sign convention.
Architecture position: Kernel > Domain.  Pure functions, zero I/O.

Sign convention:
    Debit-normal (ASSET, EXPENSE):            delta = debits - credits
    Credit-normal (LIABILITY, EQUITY, REVENUE): delta = credits - debits

Invariants enforced:
    - Amounts are Decimals with at most two places, below MONEY_LIMIT in
      magnitude.  Floats are refused.
    - A validated transaction has at least two lines and equal totals.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from ledger_kernel.db.types import MAX_MONEY, MONEY_LIMIT, ZERO, format_money, to_money
from ledger_kernel.domain.account_codes import normal_balance_for
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.exceptions import MalformedTransactionError, UnbalancedEntryError
from ledger_kernel.models.account import AccountType, NormalBalance

MIN_LINES = 2


@dataclass(frozen=True)
class PostingLine:
    """A submitted line after amount normalization."""

    line_seq: int
    account_id: UUID
    debit_amount: Decimal
    credit_amount: Decimal
    description: str | None = None


@dataclass(frozen=True)
class AccountMovement:
    """Aggregated debit and credit contribution of one transaction to one account."""

    account_id: UUID
    debits: Decimal
    credits: Decimal


def _coerce_account_id(value, index: int) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise MalformedTransactionError(
            f"account_id {value!r} is not a valid identifier", line_index=index
        ) from exc


def _coerce_amount(value, field: str, index: int) -> Decimal:
    if value is None:
        return ZERO
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise MalformedTransactionError(f"{field}: {exc}", line_index=index) from exc
    if amount < ZERO:
        raise MalformedTransactionError(
            f"{field} must not be negative, got {amount}", line_index=index
        )
    return amount


def check_line_count(lines: Sequence[EntryLine] | None) -> None:
    count = 0 if lines is None else len(lines)
    if count < MIN_LINES:
        raise MalformedTransactionError(
            f"a transaction needs at least {MIN_LINES} entry lines, got {count}"
        )


def normalize_line(
    line: EntryLine,
    index: int,
    strict_line_sides: bool = False,
) -> PostingLine:
    """
    Convert one submitted line.

    Raises:
        MalformedTransactionError: An amount that is a float, negative, or has
            more than two decimal places, an invalid account id, or (with
            strict_line_sides) sides that are both set or both zero.
    """
    debit = _coerce_amount(line.debit_amount, "debit_amount", index)
    credit = _coerce_amount(line.credit_amount, "credit_amount", index)
    if strict_line_sides:
        if debit > ZERO and credit > ZERO:
            raise MalformedTransactionError(
                "a line cannot carry both a debit and a credit amount",
                line_index=index,
            )
        if debit == ZERO and credit == ZERO:
            raise MalformedTransactionError(
                "a line must carry either a debit or a credit amount",
                line_index=index,
            )
    return PostingLine(
        line_seq=index,
        account_id=_coerce_account_id(line.account_id, index),
        debit_amount=debit,
        credit_amount=credit,
        description=line.description,
    )


def normalize_lines(
    lines: Sequence[EntryLine],
    strict_line_sides: bool = False,
) -> list[PostingLine]:
    """
    Check line structure and convert amounts to two-place Decimals.

    Raises:
        MalformedTransactionError: Fewer than two lines, or the first line
            that fails ``normalize_line``.
    """
    check_line_count(lines)
    return [
        normalize_line(line, index, strict_line_sides)
        for index, line in enumerate(lines)
    ]


def totals(lines: Iterable[PostingLine]) -> tuple[Decimal, Decimal]:
    """(sum of debits, sum of credits)."""
    debits = ZERO
    credits = ZERO
    for line in lines:
        debits += line.debit_amount
        credits += line.credit_amount
    return debits, credits


def check_balanced(lines: Sequence[PostingLine]) -> Decimal:
    """
    Exact balance check.  Returns the transaction total.

    Raises:
        UnbalancedEntryError: Debits differ from credits.
        MalformedTransactionError: Balanced but zero in total, or a total
            too large for a money column.
    """
    debits, credits = totals(lines)
    if debits != credits:
        raise UnbalancedEntryError(format_money(debits), format_money(credits))
    if debits == ZERO:
        raise MalformedTransactionError("transaction total must be greater than zero")
    check_total_range(debits)
    return debits


def check_total_range(total: Decimal) -> None:
    if total >= MONEY_LIMIT:
        raise MalformedTransactionError(
            f"transaction total {format_money(total)} exceeds the largest amount {MAX_MONEY}"
        )


def aggregate_by_account(lines: Iterable[PostingLine]) -> list[AccountMovement]:
    """One movement per distinct account, ordered by account id."""
    debits: dict[UUID, Decimal] = {}
    credits: dict[UUID, Decimal] = {}
    for line in lines:
        debits[line.account_id] = debits.get(line.account_id, ZERO) + line.debit_amount
        credits[line.account_id] = credits.get(line.account_id, ZERO) + line.credit_amount
    # String order matches the stored id order, which is the lock order.
    return [
        AccountMovement(
            account_id=account_id,
            debits=debits[account_id],
            credits=credits[account_id],
        )
        for account_id in sorted(debits, key=str)
    ]


def balance_delta(
    account_type: AccountType | str,
    debits: Decimal,
    credits: Decimal,
) -> Decimal:
    """Signed change to an account's running balance."""
    if normal_balance_for(account_type) == NormalBalance.DEBIT:
        return debits - credits
    return credits - debits


def reversed_lines(lines: Iterable[PostingLine], prefix: str) -> list[EntryLine]:
    """Mirror lines with debit and credit swapped."""
    return [
        EntryLine(
            account_id=line.account_id,
            debit_amount=line.credit_amount,
            credit_amount=line.debit_amount,
            description=f"{prefix}: {line.description}" if line.description else prefix,
        )
        for line in lines
    ]
