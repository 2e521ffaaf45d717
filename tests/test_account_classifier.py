"""
Unit tests for account classification.
"""

from __future__ import annotations

import pytest

from ledger_insight.account_classifier import (
    classify_account,
    group_by_category,
    natural_balance,
    select_by_category,
)
from ledger_insight.schema import AccountBalance, AccountCategory as C


# ======================================================================
# classify_account
# ======================================================================

class TestClassify:
    @pytest.mark.parametrize("number, category, debit", [
        ("1000", C.ASSETS, True),
        ("1999", C.ASSETS, True),
        ("2000", C.LIABILITIES, False),
        ("3500", C.EQUITY, False),
        ("4000", C.REVENUE, False),
        ("5500", C.EXPENSES, True),
        ("10000", C.EXPENSES, True),
        ("1010-01", C.ASSETS, True),
        (" 2100", C.LIABILITIES, False),
    ])
    def test_bands(self, number: str, category: C, debit: bool) -> None:
        result = classify_account(number)
        assert result.category is category
        assert result.is_debit_nature is debit

    @pytest.mark.parametrize("number", ["abc", "", "999", "0", "-1500", None, "A-1000"])
    def test_other(self, number) -> None:
        result = classify_account(number)
        assert result.category is C.OTHER
        assert result.is_debit_nature is False

    def test_total_over_odd_inputs(self) -> None:
        for value in ["٣٠٠٠x", "1e3", "   ", "+4000", 4500, 12.7]:
            classify_account(value)

    def test_numeric_input(self) -> None:
        assert classify_account(4500).category is C.REVENUE


# ======================================================================
# Helpers
# ======================================================================

def _accounts():
    return [
        AccountBalance("1000", "Cash", ytd_debit=500.0, ytd_credit=100.0),
        AccountBalance("2000", "Loan", ytd_credit=300.0),
        AccountBalance("1100", "Receivables", ytd_debit=50.0),
        AccountBalance("X", "Suspense", ytd_debit=5.0),
    ]


class TestHelpers:
    def test_natural_balance_debit_nature(self) -> None:
        assert natural_balance(_accounts()[0]) == 400.0

    def test_natural_balance_credit_nature(self) -> None:
        assert natural_balance(_accounts()[1]) == 300.0

    def test_natural_balance_opening(self) -> None:
        account = AccountBalance("2000", opening_credit=70.0, opening_debit=20.0)
        assert natural_balance(account, "opening") == 50.0

    def test_group_by_category(self) -> None:
        groups = group_by_category(_accounts())
        assert set(groups) == set(C)
        assert [a.account_number for a in groups[C.ASSETS]] == ["1000", "1100"]
        assert [a.account_number for a in groups[C.OTHER]] == ["X"]
        assert groups[C.REVENUE] == []

    def test_select_by_category(self) -> None:
        assert [a.account_name for a in select_by_category(_accounts(), "liabilities")] == ["Loan"]
        assert len(select_by_category(_accounts(), C.ASSETS)) == 2

    def test_select_unknown_category(self) -> None:
        with pytest.raises(ValueError):
            select_by_category(_accounts(), "income")
