"""
Ledger Insight — Trial-Balance Profiling & Working-Paper Engine.

Reads spreadsheet and CSV exports whose columns are unknown and
inconsistently named, infers what each column holds (type, sensitivity),
maps headers onto a canonical trial-balance vocabulary, and turns selected
accounts into audit working papers.
"""

__version__ = "1.0.0"
__author__ = "Ledger Insight Team"

from ledger_insight.account_classifier import classify_account  # noqa: F401
from ledger_insight.analysis_engine import build_working_paper  # noqa: F401
from ledger_insight.column_profiler import profile_columns  # noqa: F401
from ledger_insight.errors import LedgerInsightError, ParseError, ValidationError  # noqa: F401
from ledger_insight.field_mapper import resolve_column_mapping  # noqa: F401
from ledger_insight.pipeline import LedgerInsightPipeline  # noqa: F401
from ledger_insight.row_parser import parse_tabular_payload  # noqa: F401
from ledger_insight.storage import InMemoryStore  # noqa: F401
