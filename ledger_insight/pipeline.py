"""
Pipeline Orchestrator.

Wires the layers into the two end-to-end flows:

    Import:   payload  →  RowParser  →  ColumnProfiler (+ PIIDetector)
                       →  Dataset (new version)  →  sink

    Analyse:  provider  →  Sheet  →  FieldMapper  →  extract_accounts
                        →  AnalysisEngine  →  WorkingPaper  →  sink

Usage
-----
>>> from ledger_insight.pipeline import LedgerInsightPipeline
>>>
>>> pipe = LedgerInsightPipeline()
>>> dataset = pipe.import_dataset(b"Account No,Acct Name\\n1000,Cash\\n", "csv",
...                               name="TB FY24")
>>> paper = pipe.working_paper_from_dataset(dataset.id)
"""

from __future__ import annotations

import dataclasses
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ledger_insight.account_classifier import classify_account
from ledger_insight.analysis_engine import AccountInput, AnalysisEngine
from ledger_insight.column_profiler import ColumnProfiler
from ledger_insight.config import EngineConfig
from ledger_insight.errors import ValidationError
from ledger_insight.field_mapper import FieldMapper
from ledger_insight.logging_setup import configure_logging, get_logger
from ledger_insight.pii_detector import PIIDetector
from ledger_insight.row_parser import PayloadFormat, RowParser, WorkbookLoader
from ledger_insight.schema import (
    AccountBalance,
    AccountClassification,
    ColumnMapping,
    ColumnMetadata,
    DataType,
    Dataset,
    Sheet,
    TrialBalanceValidation,
    WorkingPaper,
)
from ledger_insight.storage import DatasetProvider, InMemoryStore, PersistenceSink
from ledger_insight.trial_balance import extract_accounts, validate_trial_balance

logger = get_logger("pipeline")


class LedgerInsightPipeline:
    """Façade over parsing, profiling, mapping and analysis.

    Parameters
    ----------
    config:
        All tuneable knobs.  Defaults match the documented thresholds.
    provider, sink:
        Storage collaborators.  When both are omitted one ``InMemoryStore``
        plays both roles.
    workbook_loader:
        Forwarded to ``RowParser``.
    extra_patterns:
        Additional header patterns merged into the built-in table.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        provider: Optional[DatasetProvider] = None,
        sink: Optional[PersistenceSink] = None,
        workbook_loader: Optional[WorkbookLoader] = None,
        extra_patterns: Optional[Dict[object, List[str]]] = None,
    ) -> None:
        self._config = config or EngineConfig()

        configure_logging(level=self._config.log_level)

        if provider is None and sink is None:
            store = InMemoryStore()
            provider, sink = store, store
        self.provider = provider
        self.sink = sink

        self._parser = RowParser(workbook_loader=workbook_loader)
        self._profiler = ColumnProfiler(
            config=self._config.profiling,
            pii_detector=PIIDetector(self._config.pii),
        )
        self._mapper = FieldMapper(
            config=self._config.mapping, extra_patterns=extra_patterns
        )
        self._engine = AnalysisEngine(config=self._config.analysis)

        logger.info(
            "Pipeline initialised: type_threshold=%.2f, pii_threshold=%.2f",
            self._config.profiling.type_threshold,
            self._config.pii.pattern_threshold,
        )

    # ------------------------------------------------------------------ #
    # Single-step operations
    # ------------------------------------------------------------------ #

    def parse_tabular_payload(
        self,
        payload: Any,
        fmt: Union[PayloadFormat, str, None] = None,
        sheet_name: str = "Sheet1",
    ) -> List[Sheet]:
        return self._parser.parse(payload, fmt, sheet_name=sheet_name)

    def profile_columns(self, sheet: Sheet) -> List[ColumnMetadata]:
        return self._profiler.profile_sheet(sheet)

    def resolve_column_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        return self._mapper.resolve(headers)

    @staticmethod
    def classify_account(account_number: object) -> AccountClassification:
        return classify_account(account_number)

    def build_working_paper(
        self,
        selected: Sequence[AccountInput],
        prior: Optional[Sequence[AccountInput]] = None,
        expected: Optional[Sequence[AccountInput]] = None,
        **details: Any,
    ) -> WorkingPaper:
        return self._engine.build_working_paper(selected, prior, expected, **details)

    def compose_working_paper(
        self, accounts: Sequence[AccountInput], **sections: Any
    ) -> WorkingPaper:
        return self._engine.compose_working_paper(accounts, **sections)

    def validate_trial_balance(
        self, accounts: Sequence[AccountInput]
    ) -> TrialBalanceValidation:
        balances = [
            a if isinstance(a, AccountBalance) else AccountBalance.from_dict(a)
            for a in accounts
        ]
        return validate_trial_balance(balances, self._config.analysis)

    # ------------------------------------------------------------------ #
    # Import flow
    # ------------------------------------------------------------------ #

    def import_dataset(
        self,
        payload: Any,
        fmt: Union[PayloadFormat, str, None] = None,
        *,
        name: str,
        sheet_name: Optional[str] = None,
        file_name: str = "",
        engagement_id: Optional[str] = None,
    ) -> Dataset:
        """Parse, profile and store one sheet as a new dataset version.

        If an earlier version exists, user overrides on its columns are
        carried over.

        Parameters
        ----------
        payload, fmt:
            As for ``parse_tabular_payload``.  A path payload also supplies
            ``file_name`` when that is left empty.
        name:
            Logical dataset name; with ``engagement_id`` it decides which
            version chain the import joins.
        sheet_name:
            Worksheet to import.  Defaults to the first non-empty sheet.

        Raises
        ------
        ParseError
            If the payload cannot be parsed.
        ValidationError
            If ``name`` is blank or ``sheet_name`` is not in the workbook.
        """
        if not name or not name.strip():
            raise ValidationError("Dataset name cannot be blank")
        if not file_name and isinstance(payload, Path):
            file_name = payload.name

        text_sheet = Path(file_name).stem if file_name else "Sheet1"
        sheets = self.parse_tabular_payload(payload, fmt, sheet_name=text_sheet)
        sheet = self._pick_sheet(sheets, sheet_name)

        previous = self.sink.latest_dataset(name, engagement_id)
        if previous is None:
            columns = self._profiler.profile_sheet(sheet)
            version = 1
        else:
            columns = self._profiler.reprofile(sheet, previous.columns)
            version = previous.version + 1

        dataset = Dataset(
            id=uuid.uuid4().hex,
            name=name.strip(),
            version=version,
            columns=tuple(columns),
            sheet_name=sheet.name,
            file_name=file_name,
            engagement_id=engagement_id,
            row_count=sheet.row_count,
        )
        self.sink.save_dataset(dataset, sheet)
        logger.info(
            "Imported '%s' v%d (%d columns, %d rows)",
            dataset.name, dataset.version, len(dataset.columns), dataset.row_count,
        )
        return dataset

    def override_column(
        self,
        dataset_ref: str,
        column: str,
        *,
        name: Optional[str] = None,
        data_type: Optional[Union[DataType, str]] = None,
    ) -> Dataset:
        """Store a new dataset version with one column's name/type corrected.

        ``column`` matches either the original header or the current display
        name.

        Raises
        ------
        ValidationError
            If the column is unknown or the override itself is invalid.
        """
        current = self._require_dataset(dataset_ref)
        columns = [dataclasses.replace(c) for c in current.columns]
        target = next(
            (c for c in columns if column in (c.original_name, c.name)), None
        )
        if target is None:
            raise ValidationError(
                f"Dataset '{current.name}' has no column '{column}'"
            )
        target.override(name=name, data_type=data_type)

        sheet = self.provider.get_sheet(dataset_ref)
        updated = dataclasses.replace(
            current,
            id=uuid.uuid4().hex,
            version=self.sink.latest_dataset(current.name, current.engagement_id).version + 1,
            columns=tuple(columns),
        )
        self.sink.save_dataset(updated, sheet)
        return updated

    # ------------------------------------------------------------------ #
    # Analysis flow
    # ------------------------------------------------------------------ #

    def working_paper_from_dataset(
        self,
        dataset_ref: str,
        selected_numbers: Optional[Iterable[str]] = None,
        *,
        sheet_name: Optional[str] = None,
        mapping_overrides: Optional[Dict[str, Optional[str]]] = None,
        prior: Optional[Sequence[AccountInput]] = None,
        expected: Optional[Sequence[AccountInput]] = None,
        name: str = "",
        description: str = "",
    ) -> WorkingPaper:
        """Map, extract and analyse a stored dataset, then persist the paper.

        Parameters
        ----------
        dataset_ref:
            Id of a stored dataset.
        selected_numbers:
            Account numbers in scope; every account when omitted.
        mapping_overrides:
            ``{field: header or None}`` applied on top of the resolved
            mapping.

        Raises
        ------
        ValidationError
            If a required field stays unmapped or the selection is empty.
        """
        sheet = self.provider.get_sheet(dataset_ref, sheet_name)
        mapping = self.resolve_column_mapping(sheet.headers)
        for key, header in (mapping_overrides or {}).items():
            mapping.override(key, header)

        accounts = extract_accounts(sheet, mapping, selected_numbers)
        getter = getattr(self.provider, "get_dataset", None)
        engagement_id = getter(dataset_ref).engagement_id if getter else None

        paper = self._engine.build_working_paper(
            accounts,
            prior,
            expected,
            name=name,
            description=description,
            engagement_id=engagement_id,
            dataset_id=dataset_ref,
            column_mapping=mapping,
        )
        self.sink.save_working_paper(paper)
        return paper

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _require_dataset(self, dataset_ref: str) -> Dataset:
        getter = getattr(self.provider, "get_dataset", None)
        if getter is None:
            raise ValidationError("Dataset provider cannot look up dataset metadata")
        return getter(dataset_ref)

    @staticmethod
    def _pick_sheet(sheets: List[Sheet], sheet_name: Optional[str]) -> Sheet:
        if sheet_name is None:
            return sheets[0]
        for sheet in sheets:
            if sheet.name == sheet_name:
                return sheet
        raise ValidationError(
            f"Sheet '{sheet_name}' not found; available: {[s.name for s in sheets]}"
        )


# ---------------------------------------------------------------------------
# Module-level operations
# ---------------------------------------------------------------------------

def import_payload(
    payload: Any,
    fmt: Union[PayloadFormat, str, None] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, List[ColumnMetadata]]:
    """Parse and profile every sheet of a payload without storing anything.

    Returns ``{sheet_name: [ColumnMetadata, ...]}``.

    Raises
    ------
    ParseError
        If the payload cannot be parsed.
    """
    pipe = LedgerInsightPipeline(config=config)
    sheets = pipe.parse_tabular_payload(payload, fmt)
    return {s.name: pipe.profile_columns(s) for s in sheets}
