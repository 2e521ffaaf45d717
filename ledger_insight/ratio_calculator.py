"""
Financial Ratio Calculator.

Computes standard ratios from the category totals of a selected set of
trial-balance accounts.  Totals are natural-side YTD balances (assets and
expenses as debit − credit; liabilities, equity and revenue as
credit − debit).

A ratio whose denominator totals zero is left out of the result rather than
reported as infinity or ``None``.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from ledger_insight.account_classifier import classify_account, natural_balance
from ledger_insight.logging_setup import get_logger
from ledger_insight.schema import AccountBalance, AccountCategory, FinancialRatio

logger = get_logger("ratio_calculator")


class RatioCalculator:
    """Calculate financial ratios from trial-balance accounts."""

    @staticmethod
    def safe_divide(
        numerator: Optional[float],
        denominator: Optional[float],
        default: Optional[float] = None,
    ) -> Optional[float]:
        """Divide, returning ``default`` for a missing or zero denominator."""
        if numerator is None or denominator is None:
            return default
        if math.isclose(denominator, 0.0, abs_tol=1e-9):
            return default
        result = numerator / denominator
        if math.isnan(result) or math.isinf(result):
            return default
        return result

    @staticmethod
    def category_totals(
        accounts: Sequence[AccountBalance],
    ) -> Dict[AccountCategory, float]:
        """Sum natural YTD balances per category (every category present)."""
        totals = {c: 0.0 for c in AccountCategory}
        for a in accounts:
            totals[classify_account(a.account_number).category] += natural_balance(a)
        return totals

    def calculate_all_ratios(
        self, accounts: Sequence[AccountBalance]
    ) -> Dict[str, List[FinancialRatio]]:
        """Return available ratios grouped by kind.

        Groups are always present (possibly empty):
        ``Liquidity``, ``Leverage``, ``Profitability``, ``Efficiency``,
        ``Activity``.
        """
        totals = self.category_totals(accounts)
        return {
            "Liquidity": self._liquidity_ratios(totals),
            "Leverage": self._leverage_ratios(totals),
            "Profitability": self._profitability_ratios(totals),
            "Efficiency": self._efficiency_ratios(totals),
            "Activity": self._activity_metrics(accounts),
        }

    def calculate(self, accounts: Sequence[AccountBalance]) -> List[FinancialRatio]:
        """All available ratios as one flat list, in group order."""
        grouped = self.calculate_all_ratios(accounts)
        return [r for ratios in grouped.values() for r in ratios]

    # ------------------------------------------------------------------ #
    # Groups
    # ------------------------------------------------------------------ #

    def _liquidity_ratios(self, t: Dict[AccountCategory, float]) -> List[FinancialRatio]:
        return self._collect("Liquidity", [
            (
                "Current Ratio",
                self.safe_divide(t[AccountCategory.ASSETS], t[AccountCategory.LIABILITIES]),
                "Total Assets / Total Liabilities",
                "Ability to cover obligations with assets on hand",
            ),
        ])

    def _leverage_ratios(self, t: Dict[AccountCategory, float]) -> List[FinancialRatio]:
        assets = t[AccountCategory.ASSETS]
        liabilities = t[AccountCategory.LIABILITIES]
        equity = t[AccountCategory.EQUITY]
        return self._collect("Leverage", [
            (
                "Debt-to-Equity Ratio",
                self.safe_divide(liabilities, equity),
                "Total Liabilities / Total Equity",
                "Creditor funding per unit of owner funding",
            ),
            (
                "Debt Ratio",
                self.safe_divide(liabilities, assets),
                "Total Liabilities / Total Assets",
                "Share of assets financed by debt",
            ),
            (
                "Equity Ratio",
                self.safe_divide(equity, assets),
                "Total Equity / Total Assets",
                "Share of assets financed by owners",
            ),
        ])

    def _profitability_ratios(
        self, t: Dict[AccountCategory, float]
    ) -> List[FinancialRatio]:
        revenue = t[AccountCategory.REVENUE]
        expenses = t[AccountCategory.EXPENSES]
        net_income = revenue - expenses
        return self._collect("Profitability", [
            (
                "Net Profit Margin",
                self.safe_divide(net_income, revenue),
                "(Revenue - Expenses) / Revenue",
                "Profit kept per unit of revenue",
            ),
            (
                "Expense Ratio",
                self.safe_divide(expenses, revenue),
                "Expenses / Revenue",
                "Cost incurred per unit of revenue",
            ),
            (
                "Return on Assets",
                self.safe_divide(net_income, t[AccountCategory.ASSETS]),
                "(Revenue - Expenses) / Total Assets",
                "Profit generated per unit of assets",
            ),
            (
                "Return on Equity",
                self.safe_divide(net_income, t[AccountCategory.EQUITY]),
                "(Revenue - Expenses) / Total Equity",
                "Profit generated per unit of owner funding",
            ),
        ])

    def _efficiency_ratios(self, t: Dict[AccountCategory, float]) -> List[FinancialRatio]:
        return self._collect("Efficiency", [
            (
                "Asset Turnover",
                self.safe_divide(t[AccountCategory.REVENUE], t[AccountCategory.ASSETS]),
                "Revenue / Total Assets",
                "Revenue generated per unit of assets",
            ),
        ])

    def _activity_metrics(self, accounts: Sequence[AccountBalance]) -> List[FinancialRatio]:
        debits = sum(a.ytd_debit for a in accounts)
        credits = sum(a.ytd_credit for a in accounts)
        activity = debits + credits
        return self._collect("Activity", [
            (
                "Net Movement",
                debits - credits,
                "Total YTD Debits - Total YTD Credits",
                "Zero for a balanced selection",
            ),
            (
                "Total Activity",
                activity,
                "Total YTD Debits + Total YTD Credits",
                "Gross volume recorded on the selected accounts",
            ),
            (
                "Average Balance per Account",
                self.safe_divide(activity, float(len(accounts))),
                "Total Activity / Number of Accounts",
                "Typical size of a selected account",
            ),
        ])

    @staticmethod
    def _collect(group: str, rows: list) -> List[FinancialRatio]:
        ratios: List[FinancialRatio] = []
        for name, value, formula, interpretation in rows:
            if value is None:
                logger.debug("Ratio %r omitted: denominator is zero", name)
                continue
            ratios.append(FinancialRatio(
                name=name,
                formula=formula,
                value=value,
                group=group,
                interpretation=interpretation,
            ))
        return ratios
