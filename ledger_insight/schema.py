"""
Canonical vocabulary and data models.

Defines the closed enumerations the system reasons with (column data types,
trial-balance fields, account categories) and the typed records carried from
parsing through profiling, mapping and analysis.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ledger_insight.errors import ValidationError
from ledger_insight.normalizer import parse_amount, parse_flag, stringify_cell


Cell = Union[str, int, float, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class DataType(str, Enum):
    """Semantic type inferred for a column.

    Declared in detection precedence order for the typed members; ``TEXT`` is
    the fallback when no detector reaches the majority threshold.
    """

    CURRENCY = "currency"
    NUMERIC = "numeric"
    DATE = "date"
    BOOLEAN = "boolean"
    TEXT = "text"

    @property
    def has_range(self) -> bool:
        """True when min/max values are meaningful for this type."""
        return self in (DataType.NUMERIC, DataType.CURRENCY, DataType.DATE)


class TrialBalanceField(str, Enum):
    """The canonical trial-balance fields, in resolution order."""

    ACCOUNT_NUMBER = "account_number"
    ACCOUNT_NAME = "account_name"
    CURRENCY = "currency"
    OPENING_DEBIT = "opening_debit"
    OPENING_CREDIT = "opening_credit"
    PERIOD_DEBIT = "period_debit"
    PERIOD_CREDIT = "period_credit"
    YTD_DEBIT = "ytd_debit"
    YTD_CREDIT = "ytd_credit"
    ENTITY = "entity"
    DEPARTMENT = "department"
    PROJECT = "project"
    NOTES = "notes"

    @property
    def is_monetary(self) -> bool:
        return self in MONETARY_FIELDS


MONETARY_FIELDS: frozenset = frozenset({
    TrialBalanceField.OPENING_DEBIT,
    TrialBalanceField.OPENING_CREDIT,
    TrialBalanceField.PERIOD_DEBIT,
    TrialBalanceField.PERIOD_CREDIT,
    TrialBalanceField.YTD_DEBIT,
    TrialBalanceField.YTD_CREDIT,
})


def field_lookup(name: str) -> Optional[TrialBalanceField]:
    """Case-insensitive lookup accepting ``ytd_debit``, ``ytdDebit`` or ``YTD Debit``."""
    key = "".join(ch for ch in name.lower() if ch.isalnum())
    for f in TrialBalanceField:
        if f.value.replace("_", "") == key:
            return f
    return None


class AccountCategory(str, Enum):
    """Accounting category derived from an account number."""

    ASSETS = "assets"
    LIABILITIES = "liabilities"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSES = "expenses"
    OTHER = "other"


@dataclass(frozen=True)
class AccountClassification:
    """Result of classifying one account number."""

    category: AccountCategory
    is_debit_nature: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "is_debit_nature": self.is_debit_nature,
        }


# ---------------------------------------------------------------------------
# Parsing & profiling models
# ---------------------------------------------------------------------------

@dataclass
class Sheet:
    """One rectangular grid of cells; row 0 holds the headers."""

    name: str
    rows: List[List[Cell]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    @property
    def headers(self) -> List[str]:
        """Header strings, with ``Column N`` standing in for empty header cells."""
        if not self.rows:
            return []
        header_row = self.rows[0]
        headers: List[str] = []
        for idx in range(self.width):
            raw = header_row[idx] if idx < len(header_row) else None
            text = stringify_cell(raw)
            headers.append(text if text else f"Column {idx + 1}")
        return headers

    @property
    def data_rows(self) -> List[List[Cell]]:
        return self.rows[1:]

    @property
    def row_count(self) -> int:
        """Number of data rows (the header row excluded)."""
        return max(len(self.rows) - 1, 0)

    def column(self, index: int) -> List[Cell]:
        """All data-row values of column ``index`` (missing cells read as None)."""
        return [row[index] if index < len(row) else None for row in self.data_rows]

    def to_dict(self, include_rows: bool = False) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "headers": self.headers,
            "row_count": self.row_count,
        }
        if include_rows:
            d["rows"] = self.data_rows
        return d


@dataclass
class ColumnMetadata:
    """Profile of a single column.

    ``min_value``/``max_value`` are only populated for numeric, currency and
    date columns.  ``sample_values`` holds at most five distinct non-empty
    values in first-seen order.
    """

    name: str
    data_type: DataType
    is_pii: bool
    null_percent: float
    unique_count: int
    sample_values: List[str] = field(default_factory=list)
    min_value: Optional[str] = None
    max_value: Optional[str] = None
    original_name: str = ""
    is_overridden: bool = False

    def __post_init__(self) -> None:
        if not self.original_name:
            self.original_name = self.name

    def override(
        self,
        *,
        name: Optional[str] = None,
        data_type: Optional[Union[DataType, str]] = None,
    ) -> None:
        """Apply a user correction of the display name and/or data type.

        Overridden columns keep their name and type across re-profiling.

        Raises
        ------
        ValidationError
            If neither value is supplied, the name is blank, or the type is
            not one of the known data types.
        """
        if name is None and data_type is None:
            raise ValidationError("Override requires a name or a data type")

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Column name cannot be blank")
            self.name = name

        if data_type is not None:
            try:
                self.data_type = DataType(data_type)
            except ValueError as exc:
                raise ValidationError(f"Unknown data type {data_type!r}") from exc
            if not self.data_type.has_range:
                self.min_value = None
                self.max_value = None

        self.is_overridden = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "original_name": self.original_name,
            "data_type": self.data_type.value,
            "is_pii": self.is_pii,
            "null_percent": round(self.null_percent, 2),
            "unique_count": self.unique_count,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "sample_values": list(self.sample_values),
            "is_overridden": self.is_overridden,
        }


@dataclass(frozen=True)
class Dataset:
    """An immutable, versioned snapshot of one profiled sheet."""

    id: str
    name: str
    version: int
    columns: Tuple[ColumnMetadata, ...]
    created_at: datetime = field(default_factory=_utcnow)
    sheet_name: str = ""
    file_name: str = ""
    engagement_id: Optional[str] = None
    row_count: int = 0

    @property
    def identity(self) -> Tuple[str, Optional[str]]:
        """Logical identity shared by every version of the same dataset."""
        return self.name.strip().lower(), self.engagement_id

    @property
    def headers(self) -> List[str]:
        return [c.original_name for c in self.columns]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "sheet_name": self.sheet_name,
            "file_name": self.file_name,
            "engagement_id": self.engagement_id,
            "row_count": self.row_count,
            "created_at": self.created_at.isoformat(),
            "columns": [c.to_dict() for c in self.columns],
        }


# ---------------------------------------------------------------------------
# Mapping models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MappingAmbiguity:
    """Informational record: several headers could have served one field."""

    field: TrialBalanceField
    chosen: str
    candidates: Tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field.value,
            "chosen": self.chosen,
            "candidates": list(self.candidates),
        }


@dataclass
class ColumnMapping:
    """Advisory binding of each canonical field to at most one source header."""

    bindings: Dict[TrialBalanceField, Optional[str]] = field(
        default_factory=lambda: {f: None for f in TrialBalanceField}
    )
    ambiguities: List[MappingAmbiguity] = field(default_factory=list)
    suggestions: Dict[TrialBalanceField, List[Tuple[str, float]]] = field(
        default_factory=dict
    )

    def __post_init__(self) -> None:
        for f in TrialBalanceField:
            self.bindings.setdefault(f, None)

    def __getitem__(self, key: Union[TrialBalanceField, str]) -> Optional[str]:
        return self.bindings[self._coerce(key)]

    def get(self, key: Union[TrialBalanceField, str]) -> Optional[str]:
        return self[key]

    @property
    def mapped(self) -> Dict[TrialBalanceField, str]:
        return {f: h for f, h in self.bindings.items() if h is not None}

    @property
    def unresolved(self) -> List[TrialBalanceField]:
        return [f for f in TrialBalanceField if self.bindings[f] is None]

    def field_for(self, header: str) -> Optional[TrialBalanceField]:
        for f, h in self.bindings.items():
            if h == header:
                return f
        return None

    def override(
        self, key: Union[TrialBalanceField, str], header: Optional[str]
    ) -> None:
        """Rebind (or clear, with ``None``) one field.

        Raises
        ------
        ValidationError
            If ``header`` is already bound to a different field.
        """
        target = self._coerce(key)
        if header is not None:
            owner = self.field_for(header)
            if owner is not None and owner is not target:
                raise ValidationError(
                    f"Header '{header}' is already bound to '{owner.value}'; "
                    f"clear that binding first"
                )
        self.bindings[target] = header
        self.suggestions.pop(target, None)

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> "ColumnMapping":
        mapping = cls()
        for key, header in data.items():
            if header:
                mapping.override(key, header)
        return mapping

    def to_dict(self) -> dict[str, Any]:
        return {f.value: self.bindings[f] for f in TrialBalanceField}

    def report(self) -> dict[str, Any]:
        """Mapping plus the informational extras (ambiguities, suggestions)."""
        return {
            "mapping": self.to_dict(),
            "unresolved": [f.value for f in self.unresolved],
            "ambiguities": [a.to_dict() for a in self.ambiguities],
            "suggestions": {
                f.value: [{"header": h, "score": round(s, 1)} for h, s in cands]
                for f, cands in self.suggestions.items()
            },
        }

    @staticmethod
    def _coerce(key: Union[TrialBalanceField, str]) -> TrialBalanceField:
        if isinstance(key, TrialBalanceField):
            return key
        f = field_lookup(key)
        if f is None:
            raise ValidationError(f"Unknown trial-balance field {key!r}")
        return f


# ---------------------------------------------------------------------------
# Accounts & working-paper models
# ---------------------------------------------------------------------------

@dataclass
class AccountBalance:
    """One trial-balance line.  Debits and credits are stored separately."""

    account_number: str
    account_name: str = ""
    currency: str = ""
    opening_debit: float = 0.0
    opening_credit: float = 0.0
    period_debit: float = 0.0
    period_credit: float = 0.0
    ytd_debit: float = 0.0
    ytd_credit: float = 0.0
    entity: str = ""
    department: str = ""
    project: str = ""
    notes: str = ""
    is_adjustment: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccountBalance":
        """Build from a JSON-like dict using snake_case or camelCase keys.

        Raises
        ------
        ValidationError
            If ``data`` is not a mapping, the account number is missing, an
            amount is negative or ``is_adjustment`` is not a yes/no value.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"Account entry must be an object, got {type(data).__name__}"
            )

        values: Dict[str, Any] = {}
        for key, raw in data.items():
            f = field_lookup(key)
            if f is not None:
                values[f.value] = raw

        number = stringify_cell(values.get("account_number"))
        if not number:
            raise ValidationError("Account entry is missing 'account_number'")

        kwargs: Dict[str, Any] = {"account_number": number}
        for f in TrialBalanceField:
            if f is TrialBalanceField.ACCOUNT_NUMBER or f.value not in values:
                continue
            raw = values[f.value]
            if f.is_monetary:
                amount = parse_amount(raw)
                if amount < 0:
                    raise ValidationError(
                        f"Account {number}: '{f.value}' must be non-negative, "
                        f"got {amount}"
                    )
                kwargs[f.value] = amount
            else:
                kwargs[f.value] = stringify_cell(raw)

        adjustment = data.get("is_adjustment", data.get("isAdjustment", False))
        flag = parse_flag(adjustment)
        if flag is None:
            raise ValidationError(
                f"Account {number}: 'is_adjustment' must be a yes/no value, "
                f"got {adjustment!r}"
            )
        kwargs["is_adjustment"] = flag
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_number": self.account_number,
            "account_name": self.account_name,
            "currency": self.currency,
            "opening_debit": self.opening_debit,
            "opening_credit": self.opening_credit,
            "period_debit": self.period_debit,
            "period_credit": self.period_credit,
            "ytd_debit": self.ytd_debit,
            "ytd_credit": self.ytd_credit,
            "entity": self.entity,
            "department": self.department,
            "project": self.project,
            "notes": self.notes,
            "is_adjustment": self.is_adjustment,
        }


@dataclass
class Leadsheet:
    """Opening → adjustments → closing summary for a set of accounts."""

    opening_balance: float
    closing_balance: float
    adjustments: float
    net_movement: float
    accounts: List[AccountBalance] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "opening_balance": self.opening_balance,
            "adjustments": self.adjustments,
            "net_movement": self.net_movement,
            "closing_balance": self.closing_balance,
            "accounts": [a.to_dict() for a in self.accounts],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class FinancialRatio:
    """A precomputed ratio; ``formula`` is a human-readable description."""

    name: str
    formula: str
    value: float
    group: str = ""
    interpretation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "formula": self.formula,
            "value": self.value,
            "group": self.group,
            "interpretation": self.interpretation,
        }


@dataclass
class TrendAnalysis:
    """Current vs prior period balance of one account."""

    account_number: str
    account_name: str
    current_period: float
    prior_period: float
    variance: float
    percentage_change: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_number": self.account_number,
            "account_name": self.account_name,
            "current_period": self.current_period,
            "prior_period": self.prior_period,
            "variance": self.variance,
            "percentage_change": self.percentage_change,
        }


@dataclass
class VarianceAnalysis:
    """Actual vs expected balance of one account."""

    account_number: str
    account_name: str
    actual: float
    expected: float
    variance: float
    percentage_variance: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_number": self.account_number,
            "account_name": self.account_name,
            "actual": self.actual,
            "expected": self.expected,
            "variance": self.variance,
            "percentage_variance": self.percentage_variance,
        }


@dataclass
class WorkingPaper:
    """Audit artifact bundling a leadsheet with its analyses.

    Collections are only ever swapped wholesale through
    ``replace_collections``; no method edits a list in place.
    """

    leadsheet: Leadsheet
    financial_ratios: List[FinancialRatio] = field(default_factory=list)
    trend_analysis: List[TrendAnalysis] = field(default_factory=list)
    variance_analysis: List[VarianceAnalysis] = field(default_factory=list)
    supporting_documents: List[str] = field(default_factory=list)
    name: str = ""
    description: str = ""
    engagement_id: Optional[str] = None
    dataset_id: Optional[str] = None
    column_mapping: Optional[ColumnMapping] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)

    def replace_collections(
        self,
        *,
        leadsheet: Optional[Leadsheet] = None,
        financial_ratios: Optional[List[FinancialRatio]] = None,
        trend_analysis: Optional[List[TrendAnalysis]] = None,
        variance_analysis: Optional[List[VarianceAnalysis]] = None,
        supporting_documents: Optional[List[str]] = None,
    ) -> None:
        """Swap any of the owned collections for new ones."""
        if leadsheet is not None:
            self.leadsheet = leadsheet
        if financial_ratios is not None:
            self.financial_ratios = list(financial_ratios)
        if trend_analysis is not None:
            self.trend_analysis = list(trend_analysis)
        if variance_analysis is not None:
            self.variance_analysis = list(variance_analysis)
        if supporting_documents is not None:
            self.supporting_documents = list(dict.fromkeys(supporting_documents))

    def link_document(self, document_id: str) -> bool:
        """Attach a supporting document reference; False if already linked."""
        if document_id in self.supporting_documents:
            return False
        self.replace_collections(
            supporting_documents=[*self.supporting_documents, document_id]
        )
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "engagement_id": self.engagement_id,
            "dataset_id": self.dataset_id,
            "column_mapping": (
                self.column_mapping.to_dict() if self.column_mapping else None
            ),
            "leadsheet": self.leadsheet.to_dict(),
            "financial_ratios": [r.to_dict() for r in self.financial_ratios],
            "trend_analysis": [t.to_dict() for t in self.trend_analysis],
            "variance_analysis": [v.to_dict() for v in self.variance_analysis],
            "supporting_documents": list(self.supporting_documents),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class TrialBalanceValidation:
    """Outcome of checking that YTD debits equal YTD credits."""

    is_balanced: bool
    total_debits: float
    total_credits: float
    difference: float
    account_count: int
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_balanced": self.is_balanced,
            "total_debits": self.total_debits,
            "total_credits": self.total_credits,
            "difference": self.difference,
            "account_count": self.account_count,
            "issues": list(self.issues),
        }
