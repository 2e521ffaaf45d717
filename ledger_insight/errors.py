"""Error types raised by Ledger Insight.

All errors derive from ``ValueError`` so callers that already guard input
handling with ``except ValueError`` keep working.
"""


class LedgerInsightError(ValueError):
    """Base class for every error raised by this package."""


class ParseError(LedgerInsightError):
    """The payload is malformed, corrupt, empty or in an unsupported format."""


class ValidationError(LedgerInsightError):
    """An operation was asked to run on semantically invalid input."""


def empty_selection() -> str:
    """Return message for a working paper requested with no accounts."""
    return "At least one account must be selected to build a working paper"


def unmapped_required_field(field_name: str) -> str:
    """Return message for a required trial-balance field with no source column."""
    return f"Column mapping is required for field '{field_name}'"


def header_not_in_sheet(header: str, sheet_name: str) -> str:
    """Return message for a mapped header that the sheet does not contain."""
    return f"Column '{header}' not found in sheet '{sheet_name}'"
