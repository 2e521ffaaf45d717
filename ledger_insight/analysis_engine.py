"""
Working-Paper Generation.

Turns a selection of trial-balance accounts into a ``WorkingPaper``:

1. **Leadsheet** — opening balance, adjustments, net movement and closing
   balance from natural-side balances.
2. **Ratios** — see ``RatioCalculator``.
3. **Trend** — current vs prior-period YTD balance per account.
4. **Variance** — actual vs expected YTD balance per account.

Trend and variance rows are produced only for account numbers present on
both sides; accounts missing from the comparison set are skipped.  Duplicate
account numbers within one set are summed.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from ledger_insight.account_classifier import natural_balance
from ledger_insight.config import AnalysisConfig
from ledger_insight.errors import ValidationError, empty_selection
from ledger_insight.logging_setup import get_logger
from ledger_insight.ratio_calculator import RatioCalculator
from ledger_insight.schema import (
    AccountBalance,
    ColumnMapping,
    FinancialRatio,
    Leadsheet,
    TrendAnalysis,
    VarianceAnalysis,
    WorkingPaper,
)

logger = get_logger("analysis_engine")

AccountInput = Union[AccountBalance, Dict[str, Any]]


def _coerce_accounts(accounts: Optional[Iterable[AccountInput]]) -> List[AccountBalance]:
    if accounts is None:
        return []
    return [
        a if isinstance(a, AccountBalance) else AccountBalance.from_dict(a)
        for a in accounts
    ]


def _aggregate(accounts: Sequence[AccountBalance]) -> Dict[str, Tuple[str, float]]:
    """``{account_number: (name, natural YTD balance)}`` in first-seen order."""
    totals: Dict[str, Tuple[str, float]] = {}
    for a in accounts:
        number = a.account_number.strip()
        name, balance = totals.get(number, (a.account_name, 0.0))
        totals[number] = (name or a.account_name, balance + natural_balance(a))
    return totals


def _percent(delta: float, base: float) -> float:
    return 0.0 if base == 0 else delta / abs(base) * 100.0


class AnalysisEngine:
    """Build working papers from selected accounts.

    Parameters
    ----------
    config:
        Output rounding.
    ratio_calculator:
        Ratio implementation; a default ``RatioCalculator`` when omitted.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        ratio_calculator: Optional[RatioCalculator] = None,
    ) -> None:
        self._config = config or AnalysisConfig()
        self._ratios = ratio_calculator or RatioCalculator()

    # ------------------------------------------------------------------ #
    # Working papers
    # ------------------------------------------------------------------ #

    def build_working_paper(
        self,
        selected: Iterable[AccountInput],
        prior: Optional[Sequence[AccountInput]] = None,
        expected: Optional[Sequence[AccountInput]] = None,
        *,
        name: str = "",
        description: str = "",
        engagement_id: Optional[str] = None,
        dataset_id: Optional[str] = None,
        column_mapping: Optional[ColumnMapping] = None,
    ) -> WorkingPaper:
        """Compute every section of a working paper.

        Parameters
        ----------
        selected:
            Accounts in scope (``AccountBalance`` or JSON-like dicts).
        prior:
            Prior-period balances for the trend section.
        expected:
            Budget or expectation balances for the variance section.

        Raises
        ------
        ValidationError
            If ``selected`` is empty or an account dict is invalid.
        """
        accounts = _coerce_accounts(selected)
        if not accounts:
            raise ValidationError(empty_selection())

        prior_accounts = _coerce_accounts(prior)
        expected_accounts = _coerce_accounts(expected)

        paper = WorkingPaper(
            leadsheet=self.build_leadsheet(accounts),
            financial_ratios=self._ratios.calculate(accounts),
            trend_analysis=self.trend_analysis(accounts, prior_accounts),
            variance_analysis=self.variance_analysis(accounts, expected_accounts),
            name=name,
            description=description,
            engagement_id=engagement_id,
            dataset_id=dataset_id,
            column_mapping=column_mapping,
        )
        logger.info(
            "Built working paper %s: %d accounts, %d ratios, %d trend, %d variance rows",
            paper.id, len(accounts), len(paper.financial_ratios),
            len(paper.trend_analysis), len(paper.variance_analysis),
        )
        return paper

    def compose_working_paper(
        self,
        accounts: Iterable[AccountInput],
        *,
        financial_ratios: Optional[Sequence[FinancialRatio]] = None,
        trend_analysis: Optional[Sequence[TrendAnalysis]] = None,
        variance_analysis: Optional[Sequence[VarianceAnalysis]] = None,
        supporting_documents: Optional[Sequence[str]] = None,
        name: str = "",
        description: str = "",
        engagement_id: Optional[str] = None,
    ) -> WorkingPaper:
        """Assemble a paper from caller-supplied analyses.

        Only the leadsheet is computed; every other section is taken as
        given (empty when omitted).

        Raises
        ------
        ValidationError
            If ``accounts`` is empty.
        """
        balances = _coerce_accounts(accounts)
        if not balances:
            raise ValidationError(empty_selection())

        paper = WorkingPaper(
            leadsheet=self.build_leadsheet(balances),
            name=name,
            description=description,
            engagement_id=engagement_id,
        )
        paper.replace_collections(
            financial_ratios=list(financial_ratios or []),
            trend_analysis=list(trend_analysis or []),
            variance_analysis=list(variance_analysis or []),
            supporting_documents=list(supporting_documents or []),
        )
        return paper

    # ------------------------------------------------------------------ #
    # Sections
    # ------------------------------------------------------------------ #

    def build_leadsheet(self, accounts: Sequence[AccountBalance]) -> Leadsheet:
        """Summarise opening → closing for ``accounts``.

        ``adjustments`` is the movement of accounts flagged ``is_adjustment``;
        ``net_movement`` is the movement of all the others.  Movement is the
        natural YTD balance minus the natural opening balance.
        """
        digits = self._config.output_precision
        opening = 0.0
        adjustments = 0.0
        movement = 0.0
        for a in accounts:
            start = natural_balance(a, "opening")
            change = natural_balance(a, "ytd") - start
            opening += start
            if a.is_adjustment:
                adjustments += change
            else:
                movement += change

        opening = round(opening, digits)
        adjustments = round(adjustments, digits)
        movement = round(movement, digits)
        return Leadsheet(
            opening_balance=opening,
            adjustments=adjustments,
            net_movement=movement,
            closing_balance=round(opening + adjustments + movement, digits),
            accounts=list(accounts),
        )

    def trend_analysis(
        self,
        current: Sequence[AccountBalance],
        prior: Sequence[AccountBalance],
    ) -> List[TrendAnalysis]:
        digits = self._config.output_precision
        previous = _aggregate(prior)
        rows: List[TrendAnalysis] = []
        for number, (name, now) in _aggregate(current).items():
            if number not in previous:
                logger.debug("Trend: account %s has no prior balance; skipped", number)
                continue
            before = previous[number][1]
            delta = now - before
            rows.append(TrendAnalysis(
                account_number=number,
                account_name=name,
                current_period=round(now, digits),
                prior_period=round(before, digits),
                variance=round(delta, digits),
                percentage_change=round(_percent(delta, before), digits),
            ))
        return rows

    def variance_analysis(
        self,
        actual: Sequence[AccountBalance],
        expected: Sequence[AccountBalance],
    ) -> List[VarianceAnalysis]:
        digits = self._config.output_precision
        targets = _aggregate(expected)
        rows: List[VarianceAnalysis] = []
        for number, (name, value) in _aggregate(actual).items():
            if number not in targets:
                logger.debug("Variance: account %s has no expectation; skipped", number)
                continue
            target = targets[number][1]
            delta = value - target
            rows.append(VarianceAnalysis(
                account_number=number,
                account_name=name,
                actual=round(value, digits),
                expected=round(target, digits),
                variance=round(delta, digits),
                percentage_variance=round(_percent(delta, target), digits),
            ))
        return rows


def build_working_paper(
    selected: Iterable[AccountInput],
    prior: Optional[Sequence[AccountInput]] = None,
    expected: Optional[Sequence[AccountInput]] = None,
    config: Optional[AnalysisConfig] = None,
) -> WorkingPaper:
    """Build a working paper with default settings.  See ``AnalysisEngine``."""
    return AnalysisEngine(config=config).build_working_paper(selected, prior, expected)
