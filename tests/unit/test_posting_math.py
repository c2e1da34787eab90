"""
Unit tests for double-entry arithmetic (ledger_kernel/domain/posting.py).

Pure functions only; no database.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.db.types import ZERO
from ledger_kernel.domain.dtos import EntryLine
from ledger_kernel.domain.posting import (
    PostingLine,
    aggregate_by_account,
    balance_delta,
    check_balanced,
    normalize_line,
    normalize_lines,
    reversed_lines,
    totals,
)
from ledger_kernel.exceptions import MalformedTransactionError, UnbalancedEntryError
from ledger_kernel.models.account import AccountType


def _line(account_id, debit=ZERO, credit=ZERO, seq=0, description=None):
    return PostingLine(
        line_seq=seq,
        account_id=account_id,
        debit_amount=Decimal(debit),
        credit_amount=Decimal(credit),
        description=description,
    )


class TestNormalizeLines:

    def test_needs_two_lines(self):
        with pytest.raises(MalformedTransactionError, match="at least 2"):
            normalize_lines([EntryLine(account_id=uuid4(), debit_amount="1.00")])

    def test_empty_and_none(self):
        with pytest.raises(MalformedTransactionError):
            normalize_lines([])
        with pytest.raises(MalformedTransactionError):
            normalize_lines(None)

    def test_sequence_follows_submission_order(self):
        a, b = uuid4(), uuid4()
        lines = normalize_lines(
            [
                EntryLine(account_id=b, credit_amount="10"),
                EntryLine(account_id=a, debit_amount="10"),
            ]
        )
        assert [line.line_seq for line in lines] == [0, 1]
        assert lines[0].account_id == b

    def test_string_account_id_coerced(self):
        account_id = uuid4()
        line = normalize_line(EntryLine(account_id=str(account_id), debit_amount="1"), 0)
        assert line.account_id == account_id

    def test_garbage_account_id_rejected(self):
        with pytest.raises(MalformedTransactionError) as exc_info:
            normalize_line(EntryLine(account_id="cash", debit_amount="1"), 3)
        assert exc_info.value.line_index == 3

    def test_none_amount_is_zero(self):
        line = normalize_line(EntryLine(account_id=uuid4(), debit_amount=None, credit_amount="5"), 0)
        assert line.debit_amount == ZERO

    def test_negative_amount_rejected(self):
        with pytest.raises(MalformedTransactionError, match="negative"):
            normalize_line(EntryLine(account_id=uuid4(), debit_amount="-5.00"), 0)

    def test_float_amount_rejected(self):
        with pytest.raises(MalformedTransactionError, match="float"):
            normalize_line(EntryLine(account_id=uuid4(), debit_amount=10.5), 1)

    def test_three_decimal_places_rejected(self):
        with pytest.raises(MalformedTransactionError) as exc_info:
            normalize_line(EntryLine(account_id=uuid4(), credit_amount=Decimal("1.001")), 2)
        assert exc_info.value.line_index == 2

    def test_out_of_range_amount_rejected(self):
        with pytest.raises(MalformedTransactionError, match="out of range") as exc_info:
            normalize_line(
                EntryLine(account_id=uuid4(), debit_amount="1" + "0" * 30), 3
            )
        assert exc_info.value.line_index == 3

    def test_both_sides_allowed_by_default(self):
        line = normalize_line(
            EntryLine(account_id=uuid4(), debit_amount="5", credit_amount="2"), 0
        )
        assert (line.debit_amount, line.credit_amount) == (Decimal("5.00"), Decimal("2.00"))

    def test_strict_rejects_both_sides(self):
        with pytest.raises(MalformedTransactionError, match="both"):
            normalize_line(
                EntryLine(account_id=uuid4(), debit_amount="5", credit_amount="2"),
                0,
                strict_line_sides=True,
            )

    def test_strict_rejects_empty_line(self):
        with pytest.raises(MalformedTransactionError, match="either"):
            normalize_line(EntryLine(account_id=uuid4()), 0, strict_line_sides=True)


class TestBalanceCheck:

    def test_balanced_returns_total(self):
        a, b = uuid4(), uuid4()
        total = check_balanced([_line(a, debit="100.00"), _line(b, credit="100.00")])
        assert total == Decimal("100.00")

    def test_off_by_a_cent_rejected(self):
        a, b = uuid4(), uuid4()
        with pytest.raises(UnbalancedEntryError) as exc_info:
            check_balanced([_line(a, debit="100.00"), _line(b, credit="99.99")])
        assert exc_info.value.debits == "100.00"
        assert exc_info.value.credits == "99.99"

    def test_zero_total_rejected(self):
        a, b = uuid4(), uuid4()
        with pytest.raises(MalformedTransactionError, match="greater than zero"):
            check_balanced([_line(a), _line(b)])

    def test_total_beyond_column_range_rejected(self):
        a, b = uuid4(), uuid4()
        with pytest.raises(MalformedTransactionError, match="exceeds the largest amount"):
            check_balanced(
                [
                    _line(a, debit="6000000000000.00"),
                    _line(a, debit="6000000000000.00"),
                    _line(b, credit="9999999999999.99"),
                    _line(b, credit="2000000000000.01"),
                ]
            )

    def test_largest_total_accepted(self):
        a, b = uuid4(), uuid4()
        total = check_balanced(
            [_line(a, debit="9999999999999.99"), _line(b, credit="9999999999999.99")]
        )
        assert total == Decimal("9999999999999.99")

    def test_totals(self):
        a = uuid4()
        debits, credits = totals(
            [_line(a, debit="1.10"), _line(a, debit="2.20"), _line(a, credit="3.30")]
        )
        assert debits == Decimal("3.30")
        assert credits == Decimal("3.30")

    def test_no_float_drift(self):
        """0.10 + 0.20 is exactly 0.30 in Decimal arithmetic."""
        a, b = uuid4(), uuid4()
        total = check_balanced(
            [_line(a, debit="0.10"), _line(a, debit="0.20"), _line(b, credit="0.30")]
        )
        assert total == Decimal("0.30")


class TestAggregation:

    def test_one_movement_per_account(self):
        a, b = uuid4(), uuid4()
        movements = aggregate_by_account(
            [
                _line(a, debit="10.00"),
                _line(a, credit="4.00"),
                _line(b, credit="6.00"),
            ]
        )
        assert len(movements) == 2
        by_id = {m.account_id: m for m in movements}
        assert by_id[a].debits == Decimal("10.00")
        assert by_id[a].credits == Decimal("4.00")
        assert by_id[b].credits == Decimal("6.00")

    def test_ordered_by_account_id(self):
        ids = [uuid4() for _ in range(5)]
        movements = aggregate_by_account([_line(i, debit="1") for i in ids])
        assert [m.account_id for m in movements] == sorted(ids, key=str)


class TestSignConvention:

    @pytest.mark.parametrize("account_type", [AccountType.ASSET, AccountType.EXPENSE])
    def test_debit_normal(self, account_type):
        assert balance_delta(account_type, Decimal("10"), Decimal("3")) == Decimal("7")

    @pytest.mark.parametrize(
        "account_type", [AccountType.LIABILITY, AccountType.EQUITY, AccountType.REVENUE]
    )
    def test_credit_normal(self, account_type):
        assert balance_delta(account_type, Decimal("10"), Decimal("3")) == Decimal("-7")

    def test_accepts_stored_string_type(self):
        assert balance_delta("REVENUE", ZERO, Decimal("250.00")) == Decimal("250.00")


class TestReversedLines:

    def test_sides_swapped(self):
        a, b = uuid4(), uuid4()
        mirrored = reversed_lines(
            [_line(a, debit="50.00", description="rent"), _line(b, credit="50.00", seq=1)],
            "Reversal of TXN-1",
        )
        assert mirrored[0].credit_amount == Decimal("50.00")
        assert mirrored[0].debit_amount == ZERO
        assert mirrored[1].debit_amount == Decimal("50.00")
        assert mirrored[0].description == "Reversal of TXN-1: rent"
        assert mirrored[1].description == "Reversal of TXN-1"
