"""
Integration tests for the full LedgerInsightPipeline.
"""

from __future__ import annotations

import io
import logging

import pytest
from openpyxl import Workbook

import ledger_insight
from ledger_insight.config import EngineConfig, ProfilingConfig
from ledger_insight.errors import ParseError, ValidationError
from ledger_insight.pipeline import LedgerInsightPipeline, import_payload
from ledger_insight.schema import AccountCategory, DataType, TrialBalanceField
from ledger_insight.storage import InMemoryStore


TB_CSV = (
    b"Account No,Acct Name,Opening Debit,Opening Credit,YTD Debit,YTD Credit,Contact Email\n"
    b"1000,Cash,100,,150,,a@b.com\n"
    b"2000,Loan,,100,,150,c@d.com\n"
    b"4000,Sales,,,,50,\n"
    b"5000,Rent,,,50,,\n"
)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def pipeline(store: InMemoryStore) -> LedgerInsightPipeline:
    return LedgerInsightPipeline(
        config=EngineConfig(log_level=logging.WARNING),
        provider=store,
        sink=store,
    )


# ======================================================================
# Import & versioning
# ======================================================================

class TestImport:
    def test_first_import(self, pipeline: LedgerInsightPipeline) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB FY24", file_name="tb.csv")
        assert ds.version == 1
        assert ds.row_count == 4
        assert ds.sheet_name == "tb"
        assert ds.headers[0] == "Account No"
        by_name = {c.name: c for c in ds.columns}
        assert by_name["Contact Email"].is_pii
        assert by_name["Acct Name"].is_pii
        assert by_name["YTD Debit"].data_type is DataType.CURRENCY
        assert by_name["YTD Debit"].null_percent == 50.0

    def test_reimport_increments_version(
        self, pipeline: LedgerInsightPipeline, store: InMemoryStore
    ) -> None:
        first = pipeline.import_dataset(TB_CSV, "csv", name="TB FY24")
        second = pipeline.import_dataset(TB_CSV, "csv", name="  tb fy24 ")
        assert second.version == 2
        assert second.id != first.id
        assert [d.version for d in store.list_versions("TB FY24")] == [1, 2]
        assert store.get_dataset(first.id).version == 1

    def test_engagement_scopes_versions(self, pipeline: LedgerInsightPipeline) -> None:
        pipeline.import_dataset(TB_CSV, "csv", name="TB", engagement_id="E1")
        other = pipeline.import_dataset(TB_CSV, "csv", name="TB", engagement_id="E2")
        assert other.version == 1

    def test_override_creates_version_and_survives_reimport(
        self, pipeline: LedgerInsightPipeline
    ) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        patched = pipeline.override_column(ds.id, "YTD Debit", name="Closing Dr", data_type="numeric")
        assert patched.version == 2
        col = next(c for c in patched.columns if c.original_name == "YTD Debit")
        assert col.name == "Closing Dr"
        assert col.data_type is DataType.NUMERIC
        original = next(c for c in ds.columns if c.original_name == "YTD Debit")
        assert original.name == "YTD Debit"

        again = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        col = next(c for c in again.columns if c.original_name == "YTD Debit")
        assert again.version == 3
        assert col.name == "Closing Dr"
        assert col.data_type is DataType.NUMERIC
        assert col.is_overridden

    def test_override_unknown_column(self, pipeline: LedgerInsightPipeline) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        with pytest.raises(ValidationError):
            pipeline.override_column(ds.id, "Nope", name="x")

    def test_blank_name(self, pipeline: LedgerInsightPipeline) -> None:
        with pytest.raises(ValidationError):
            pipeline.import_dataset(TB_CSV, "csv", name="  ")

    def test_parse_error_propagates(self, pipeline: LedgerInsightPipeline) -> None:
        with pytest.raises(ParseError):
            pipeline.import_dataset(b"", "csv", name="TB")

    def test_workbook_sheet_choice(self, pipeline: LedgerInsightPipeline) -> None:
        wb = Workbook()
        wb.active.title = "Summary"
        wb.active.append(["Note"])
        wb.active.append(["ignore"])
        tb = wb.create_sheet("TB")
        tb.append(["Account No", "Acct Name", "YTD Debit"])
        tb.append([1000, "Cash", 10])
        buf = io.BytesIO()
        wb.save(buf)

        ds = pipeline.import_dataset(buf.getvalue(), "xlsx", name="WB", sheet_name="TB")
        assert ds.sheet_name == "TB"
        assert ds.headers == ["Account No", "Acct Name", "YTD Debit"]

        with pytest.raises(ValidationError):
            pipeline.import_dataset(buf.getvalue(), "xlsx", name="WB", sheet_name="Missing")

    def test_import_payload(self) -> None:
        profiles = import_payload(TB_CSV, "csv", EngineConfig(log_level=logging.WARNING))
        assert list(profiles) == ["Sheet1"]
        assert len(profiles["Sheet1"]) == 7

    def test_config_flows_to_profiler(self, store: InMemoryStore) -> None:
        strict = LedgerInsightPipeline(
            config=EngineConfig(
                profiling=ProfilingConfig(type_threshold=0.99),
                log_level=logging.WARNING,
            ),
            provider=store,
            sink=store,
        )
        ds = strict.import_dataset(b"v\n$1\n$2\nx\n", "csv", name="T")
        assert ds.columns[0].data_type is DataType.TEXT


# ======================================================================
# Working papers from datasets
# ======================================================================

class TestWorkingPaperFlow:
    def test_end_to_end(self, pipeline: LedgerInsightPipeline, store: InMemoryStore) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB", engagement_id="ENG-1")
        paper = pipeline.working_paper_from_dataset(ds.id, name="Full TB")

        assert paper.dataset_id == ds.id
        assert paper.engagement_id == "ENG-1"
        assert paper.column_mapping[TrialBalanceField.ACCOUNT_NUMBER] == "Account No"
        assert paper.leadsheet.opening_balance == 200.0
        assert len(paper.leadsheet.accounts) == 4
        assert store.get_working_paper(paper.id) is paper
        assert store.list_working_papers("ENG-1") == [paper]

    def test_selection(self, pipeline: LedgerInsightPipeline) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        paper = pipeline.working_paper_from_dataset(ds.id, ["1000"])
        assert [a.account_number for a in paper.leadsheet.accounts] == ["1000"]

    def test_empty_selection(self, pipeline: LedgerInsightPipeline) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        with pytest.raises(ValidationError):
            pipeline.working_paper_from_dataset(ds.id, ["9999"])

    def test_mapping_override(self, pipeline: LedgerInsightPipeline) -> None:
        csv = b"GL,Title,Dr YTD,Cr YTD\n1000,Cash,10,\n2000,Loan,,10\n"
        ds = pipeline.import_dataset(csv, "csv", name="Odd")
        with pytest.raises(ValidationError):
            pipeline.working_paper_from_dataset(ds.id)

        paper = pipeline.working_paper_from_dataset(
            ds.id,
            mapping_overrides={
                "account_number": "GL",
                "account_name": "Title",
                "ytd_debit": "Dr YTD",
                "ytd_credit": "Cr YTD",
            },
        )
        assert paper.leadsheet.net_movement == 20.0

    def test_prior_period_trend(self, pipeline: LedgerInsightPipeline) -> None:
        ds = pipeline.import_dataset(TB_CSV, "csv", name="TB")
        paper = pipeline.working_paper_from_dataset(
            ds.id, prior=[{"account_number": "1000", "ytd_debit": 120}]
        )
        assert len(paper.trend_analysis) == 1
        assert paper.trend_analysis[0].variance == 30.0

    def test_unknown_dataset(self, pipeline: LedgerInsightPipeline) -> None:
        with pytest.raises(ValidationError):
            pipeline.working_paper_from_dataset("missing")


# ======================================================================
# Public operations
# ======================================================================

class TestPublicOperations:
    def test_module_level_exports(self) -> None:
        sheets = ledger_insight.parse_tabular_payload(TB_CSV, "csv")
        columns = ledger_insight.profile_columns(sheets[0])
        mapping = ledger_insight.resolve_column_mapping(sheets[0].headers)
        assert len(columns) == 7
        assert mapping[TrialBalanceField.YTD_CREDIT] == "YTD Credit"
        assert ledger_insight.classify_account("4000").category is AccountCategory.REVENUE
        paper = ledger_insight.build_working_paper([{"account_number": "1000", "ytd_debit": 1}])
        assert paper.leadsheet.closing_balance == 1.0

    def test_pipeline_methods(self, pipeline: LedgerInsightPipeline) -> None:
        sheet = pipeline.parse_tabular_payload(TB_CSV, "csv")[0]
        assert len(pipeline.profile_columns(sheet)) == 7
        assert pipeline.classify_account("5500").is_debit_nature
        report = pipeline.validate_trial_balance([
            {"account_number": "1000", "ytd_debit": 10},
            {"account_number": "2000", "ytd_credit": 10},
        ])
        assert report.is_balanced

    def test_default_store(self) -> None:
        pipe = LedgerInsightPipeline(config=EngineConfig(log_level=logging.WARNING))
        assert isinstance(pipe.provider, InMemoryStore)
        assert pipe.provider is pipe.sink
