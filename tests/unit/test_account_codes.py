"""Unit tests for the chart-of-accounts rules (ledger_kernel/domain/account_codes.py)."""

import pytest

from ledger_kernel.domain.account_codes import (
    is_valid_account_code,
    is_valid_hierarchy,
    normal_balance_for,
    type_for_code,
)
from ledger_kernel.models.account import AccountType, NormalBalance


class TestAccountCodeFormat:

    @pytest.mark.parametrize("code", ["1000", "2999", "5100", "100", "410"])
    def test_valid_codes(self, code):
        assert is_valid_account_code(code)

    @pytest.mark.parametrize(
        "code",
        ["0100", "6000", "10", "10000", "1a00", "", " 1000", "1000\n", None, 1000],
    )
    def test_invalid_codes(self, code):
        assert not is_valid_account_code(code)


class TestTypeForCode:

    @pytest.mark.parametrize(
        "code, expected",
        [
            ("1000", AccountType.ASSET),
            ("2100", AccountType.LIABILITY),
            ("3000", AccountType.EQUITY),
            ("410", AccountType.REVENUE),
            ("5999", AccountType.EXPENSE),
        ],
    )
    def test_leading_digit_names_type(self, code, expected):
        assert type_for_code(code) == expected

    def test_invalid_code_has_no_type(self):
        assert type_for_code("9000") is None


class TestHierarchy:

    def test_prefix_parent(self):
        assert is_valid_hierarchy("110", "1100")

    def test_parent_must_be_strict_prefix(self):
        assert not is_valid_hierarchy("1100", "1100")

    def test_longer_parent_rejected(self):
        assert not is_valid_hierarchy("1100", "110")

    def test_non_prefix_rejected(self):
        assert not is_valid_hierarchy("120", "1100")

    def test_types_must_agree_when_given(self):
        assert is_valid_hierarchy("110", "1100", AccountType.ASSET, AccountType.ASSET)
        assert not is_valid_hierarchy("110", "1100", "ASSET", "LIABILITY")


class TestNormalBalance:

    @pytest.mark.parametrize("account_type", [AccountType.ASSET, AccountType.EXPENSE])
    def test_debit_normal(self, account_type):
        assert normal_balance_for(account_type) == NormalBalance.DEBIT

    @pytest.mark.parametrize(
        "account_type", ["LIABILITY", "EQUITY", "REVENUE"]
    )
    def test_credit_normal(self, account_type):
        assert normal_balance_for(account_type) == NormalBalance.CREDIT

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError):
            normal_balance_for("CONTRA")
