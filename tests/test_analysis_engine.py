"""
Unit tests for the AnalysisEngine and RatioCalculator.
"""

from __future__ import annotations

import pytest

from ledger_insight.analysis_engine import AnalysisEngine, build_working_paper
from ledger_insight.errors import ValidationError
from ledger_insight.ratio_calculator import RatioCalculator
from ledger_insight.schema import (
    AccountBalance,
    FinancialRatio,
    TrendAnalysis,
    WorkingPaper,
)


@pytest.fixture
def engine() -> AnalysisEngine:
    return AnalysisEngine()


@pytest.fixture
def ledger() -> list:
    return [
        AccountBalance("1000", "Cash", opening_debit=100.0, ytd_debit=150.0),
        AccountBalance("2000", "Loan", opening_credit=100.0, ytd_credit=150.0),
        AccountBalance("4000", "Sales", ytd_credit=50.0),
        AccountBalance("5000", "Accrual", ytd_debit=10.0, is_adjustment=True),
    ]


def _ratio(paper: WorkingPaper, name: str) -> FinancialRatio:
    matches = [r for r in paper.financial_ratios if r.name == name]
    assert matches, f"{name} not computed"
    return matches[0]


def _names(paper: WorkingPaper) -> set:
    return {r.name for r in paper.financial_ratios}


# ======================================================================
# Preconditions
# ======================================================================

class TestPreconditions:
    def test_empty_selection(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError, match="At least one account"):
            engine.build_working_paper([])

    def test_module_level_empty_selection(self) -> None:
        with pytest.raises(ValidationError):
            build_working_paper([])

    def test_invalid_account_dict(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError):
            engine.build_working_paper([{"account_name": "No number"}])

    def test_negative_amount_in_dict(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError):
            engine.build_working_paper([{"accountNumber": "1000", "ytdDebit": -5}])

    def test_empty_generator(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError, match="At least one account"):
            engine.build_working_paper(a for a in [])

    def test_compose_empty_generator(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError):
            engine.compose_working_paper(iter([]))

    def test_generator_selection_is_consumed_once(self, engine: AnalysisEngine, ledger: list) -> None:
        paper = engine.build_working_paper(a for a in ledger)
        assert len(paper.leadsheet.accounts) == 4
        assert paper.leadsheet.opening_balance == 200.0

    @pytest.mark.parametrize("entry", ["1000", 1000, ["1000"], None])
    def test_non_mapping_entry(self, engine: AnalysisEngine, entry) -> None:
        with pytest.raises(ValidationError, match="must be an object"):
            engine.build_working_paper([entry])

    @pytest.mark.parametrize("flag, expected", [
        ("false", False), ("0", False), ("no", False), ("", False),
        ("true", True), ("YES", True), (1, True), (True, True),
    ])
    def test_adjustment_flag_tokens(self, flag, expected: bool) -> None:
        account = AccountBalance.from_dict({"account_number": "1000", "is_adjustment": flag})
        assert account.is_adjustment is expected

    def test_adjustment_false_string_stays_in_net_movement(self, engine: AnalysisEngine) -> None:
        sheet = engine.build_working_paper([
            {"accountNumber": "5000", "ytdDebit": 10, "isAdjustment": "false"},
        ]).leadsheet
        assert sheet.adjustments == 0.0
        assert sheet.net_movement == 10.0

    def test_adjustment_flag_unrecognised(self) -> None:
        with pytest.raises(ValidationError, match="is_adjustment"):
            AccountBalance.from_dict({"account_number": "1000", "is_adjustment": "maybe"})

    def test_optional_inputs_missing(self, engine: AnalysisEngine, ledger: list) -> None:
        paper = engine.build_working_paper(ledger)
        assert paper.trend_analysis == []
        assert paper.variance_analysis == []


# ======================================================================
# Leadsheet
# ======================================================================

class TestLeadsheet:
    def test_balances(self, engine: AnalysisEngine, ledger: list) -> None:
        sheet = engine.build_working_paper(ledger).leadsheet
        assert sheet.opening_balance == 200.0
        assert sheet.adjustments == 10.0
        assert sheet.net_movement == 150.0
        assert sheet.closing_balance == 360.0
        assert len(sheet.accounts) == 4

    def test_closing_invariant(self, engine: AnalysisEngine) -> None:
        accounts = [
            AccountBalance("1000", opening_debit=12.34, ytd_debit=56.78),
            AccountBalance("3000", opening_credit=9.99, ytd_credit=1.11),
            AccountBalance("5100", ytd_debit=7.5, is_adjustment=True),
        ]
        sheet = engine.build_leadsheet(accounts)
        assert sheet.closing_balance == pytest.approx(
            sheet.opening_balance + sheet.adjustments + sheet.net_movement
        )

    def test_accepts_camel_case_dicts(self, engine: AnalysisEngine) -> None:
        paper = engine.build_working_paper([
            {"accountNumber": "1000", "accountName": "Cash", "openingDebit": 10, "ytdDebit": "$25"},
        ])
        assert paper.leadsheet.opening_balance == 10.0
        assert paper.leadsheet.closing_balance == 25.0


# ======================================================================
# Ratios
# ======================================================================

class TestRatios:
    @pytest.fixture
    def balanced(self) -> list:
        return [
            AccountBalance("1000", ytd_debit=1000.0),
            AccountBalance("2000", ytd_credit=400.0),
            AccountBalance("3000", ytd_credit=600.0),
            AccountBalance("4000", ytd_credit=500.0),
            AccountBalance("5000", ytd_debit=500.0),
        ]

    def test_values(self, engine: AnalysisEngine, balanced: list) -> None:
        paper = engine.build_working_paper(balanced)
        assert _ratio(paper, "Current Ratio").value == pytest.approx(2.5)
        assert _ratio(paper, "Debt-to-Equity Ratio").value == pytest.approx(400 / 600)
        assert _ratio(paper, "Debt Ratio").value == pytest.approx(0.4)
        assert _ratio(paper, "Expense Ratio").value == pytest.approx(1.0)
        assert _ratio(paper, "Net Profit Margin").value == pytest.approx(0.0)
        assert _ratio(paper, "Asset Turnover").value == pytest.approx(0.5)
        assert _ratio(paper, "Net Movement").value == pytest.approx(0.0)
        assert _ratio(paper, "Total Activity").value == pytest.approx(3000.0)
        assert _ratio(paper, "Average Balance per Account").value == pytest.approx(600.0)

    def test_formula_and_group(self, engine: AnalysisEngine, balanced: list) -> None:
        ratio = _ratio(engine.build_working_paper(balanced), "Current Ratio")
        assert ratio.formula == "Total Assets / Total Liabilities"
        assert ratio.group == "Liquidity"

    def test_zero_denominator_omitted(self, engine: AnalysisEngine) -> None:
        paper = engine.build_working_paper([AccountBalance("1000", ytd_debit=100.0)])
        names = _names(paper)
        assert "Current Ratio" not in names
        assert "Net Profit Margin" not in names
        assert "Debt-to-Equity Ratio" not in names
        assert "Debt Ratio" in names
        assert _ratio(paper, "Debt Ratio").value == 0.0

    def test_no_infinite_values(self, engine: AnalysisEngine) -> None:
        paper = engine.build_working_paper([
            AccountBalance("2000", ytd_credit=10.0),
            AccountBalance("4000", ytd_credit=0.0),
        ])
        for ratio in paper.financial_ratios:
            assert ratio.value == ratio.value
            assert abs(ratio.value) != float("inf")

    def test_grouped_output(self) -> None:
        grouped = RatioCalculator().calculate_all_ratios([AccountBalance("1000", ytd_debit=1.0)])
        assert list(grouped) == ["Liquidity", "Leverage", "Profitability", "Efficiency", "Activity"]

    def test_safe_divide(self) -> None:
        assert RatioCalculator.safe_divide(1.0, 0.0) is None
        assert RatioCalculator.safe_divide(None, 2.0) is None
        assert RatioCalculator.safe_divide(1.0, 1e-12, default=-1.0) == -1.0
        assert RatioCalculator.safe_divide(3.0, 2.0) == 1.5


# ======================================================================
# Trend & variance
# ======================================================================

class TestComparisons:
    def test_trend_example(self, engine: AnalysisEngine) -> None:
        paper = engine.build_working_paper(
            [{"account_number": "1000", "ytd_debit": 100}],
            prior=[{"account_number": "1000", "ytd_debit": 80}],
        )
        assert len(paper.trend_analysis) == 1
        row = paper.trend_analysis[0]
        assert row.current_period == 100.0
        assert row.prior_period == 80.0
        assert row.variance == 20.0
        assert row.percentage_change == 25.0

    def test_trend_skips_absent_accounts(self, engine: AnalysisEngine, ledger: list) -> None:
        paper = engine.build_working_paper(
            ledger, prior=[AccountBalance("2000", "Loan", ytd_credit=100.0)]
        )
        assert [t.account_number for t in paper.trend_analysis] == ["2000"]
        assert paper.trend_analysis[0].variance == 50.0

    def test_trend_zero_prior(self, engine: AnalysisEngine) -> None:
        rows = engine.trend_analysis(
            [AccountBalance("1000", ytd_debit=10.0)], [AccountBalance("1000")]
        )
        assert rows[0].percentage_change == 0.0
        assert rows[0].variance == 10.0

    def test_trend_sums_duplicates(self, engine: AnalysisEngine) -> None:
        rows = engine.trend_analysis(
            [AccountBalance("1000", ytd_debit=10.0), AccountBalance("1000", ytd_debit=5.0)],
            [AccountBalance("1000", ytd_debit=10.0)],
        )
        assert len(rows) == 1
        assert rows[0].current_period == 15.0
        assert rows[0].percentage_change == 50.0

    def test_variance(self, engine: AnalysisEngine) -> None:
        paper = engine.build_working_paper(
            [AccountBalance("5000", "Rent", ytd_debit=120.0)],
            expected=[AccountBalance("5000", "Rent", ytd_debit=100.0)],
        )
        row = paper.variance_analysis[0]
        assert row.actual == 120.0
        assert row.expected == 100.0
        assert row.variance == 20.0
        assert row.percentage_variance == 20.0

    def test_variance_negative_expected_uses_magnitude(self, engine: AnalysisEngine) -> None:
        rows = engine.variance_analysis(
            [AccountBalance("1000", ytd_debit=50.0)],
            [AccountBalance("1000", ytd_credit=100.0)],
        )
        assert rows[0].expected == -100.0
        assert rows[0].variance == 150.0
        assert rows[0].percentage_variance == 150.0


# ======================================================================
# Working-paper composition
# ======================================================================

class TestComposition:
    def test_compose_keeps_supplied_sections(self, engine: AnalysisEngine, ledger: list) -> None:
        trend = TrendAnalysis("1000", "Cash", 1.0, 1.0, 0.0, 0.0)
        paper = engine.compose_working_paper(
            ledger,
            trend_analysis=[trend],
            supporting_documents=["doc-1", "doc-1", "doc-2"],
            name="Cash lead",
        )
        assert paper.trend_analysis == [trend]
        assert paper.financial_ratios == []
        assert paper.supporting_documents == ["doc-1", "doc-2"]
        assert paper.name == "Cash lead"
        assert paper.leadsheet.opening_balance == 200.0

    def test_compose_empty(self, engine: AnalysisEngine) -> None:
        with pytest.raises(ValidationError):
            engine.compose_working_paper([])

    def test_link_document_replaces_list(self, engine: AnalysisEngine, ledger: list) -> None:
        paper = engine.build_working_paper(ledger)
        before = paper.supporting_documents
        assert paper.link_document("doc-9")
        assert paper.supporting_documents == ["doc-9"]
        assert before is not paper.supporting_documents
        assert before == []
        assert not paper.link_document("doc-9")

    def test_replace_collections(self, engine: AnalysisEngine, ledger: list) -> None:
        paper = engine.build_working_paper(ledger)
        paper.replace_collections(financial_ratios=[])
        assert paper.financial_ratios == []
        assert paper.leadsheet.opening_balance == 200.0

    def test_to_dict(self, engine: AnalysisEngine, ledger: list) -> None:
        data = engine.build_working_paper(ledger, name="WP-1").to_dict()
        assert data["name"] == "WP-1"
        assert data["leadsheet"]["closing_balance"] == 360.0
        assert isinstance(data["financial_ratios"], list)
        assert data["column_mapping"] is None
