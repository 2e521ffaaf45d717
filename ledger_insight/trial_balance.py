"""
Trial-Balance Extraction & Validation.

Reads mapped columns of a sheet into ``AccountBalance`` rows and checks the
resulting ledger for consistency.

Checks performed by ``validate_trial_balance``
----------------------------------------------
1. **Balance** — total YTD debits must equal total YTD credits within
   ``balance_tolerance``.
2. **Negative amounts** — stored debits and credits must be non-negative.
3. **Classification** — every account number must fall in a known range.
4. **Duplicates** — the same account number should appear once.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from ledger_insight.account_classifier import classify_account
from ledger_insight.config import AnalysisConfig
from ledger_insight.errors import ValidationError, header_not_in_sheet, unmapped_required_field
from ledger_insight.logging_setup import get_logger
from ledger_insight.normalizer import parse_amount, stringify_cell
from ledger_insight.schema import (
    AccountBalance,
    AccountCategory,
    ColumnMapping,
    Sheet,
    TrialBalanceField,
    TrialBalanceValidation,
)

logger = get_logger("trial_balance")

_REQUIRED = (TrialBalanceField.ACCOUNT_NUMBER, TrialBalanceField.ACCOUNT_NAME)

# debit field → credit field on the same line
_SIDES = (
    (TrialBalanceField.OPENING_DEBIT, TrialBalanceField.OPENING_CREDIT),
    (TrialBalanceField.PERIOD_DEBIT, TrialBalanceField.PERIOD_CREDIT),
    (TrialBalanceField.YTD_DEBIT, TrialBalanceField.YTD_CREDIT),
)


def extract_accounts(
    sheet: Sheet,
    mapping: ColumnMapping,
    selected_numbers: Optional[Iterable[str]] = None,
) -> List[AccountBalance]:
    """Read every data row of ``sheet`` into an ``AccountBalance``.

    Parameters
    ----------
    sheet:
        Parsed sheet whose headers the mapping refers to.
    mapping:
        Field bindings; account number and name must be bound.
    selected_numbers:
        When given, only rows whose account number is in this collection are
        returned.

    Raises
    ------
    ValidationError
        If a required field is unbound or a bound header is not in the sheet.

    Notes
    -----
    Unparseable amounts read as ``0.0``.  A negative amount is moved to the
    opposite side of the same pair (a debit of -50 becomes a credit of 50).
    Rows without an account number are skipped.
    """
    for f in _REQUIRED:
        if mapping[f] is None:
            raise ValidationError(unmapped_required_field(f.value))

    headers = sheet.headers
    columns: Dict[TrialBalanceField, int] = {}
    for f, header in mapping.mapped.items():
        if header not in headers:
            raise ValidationError(header_not_in_sheet(header, sheet.name))
        columns[f] = headers.index(header)

    wanted = None
    if selected_numbers is not None:
        wanted = {str(n).strip() for n in selected_numbers}

    accounts: List[AccountBalance] = []
    for row_no, row in enumerate(sheet.data_rows, start=2):
        values = {
            f: (row[idx] if idx < len(row) else None) for f, idx in columns.items()
        }
        number = stringify_cell(values.get(TrialBalanceField.ACCOUNT_NUMBER))
        if not number:
            logger.debug("Row %d of '%s' has no account number; skipped", row_no, sheet.name)
            continue
        if wanted is not None and number not in wanted:
            continue

        kwargs: Dict[str, object] = {"account_number": number}
        for f, raw in values.items():
            if f is TrialBalanceField.ACCOUNT_NUMBER:
                continue
            kwargs[f.value] = parse_amount(raw) if f.is_monetary else stringify_cell(raw)

        for debit_f, credit_f in _SIDES:
            debit = kwargs.get(debit_f.value, 0.0)
            credit = kwargs.get(credit_f.value, 0.0)
            if debit < 0 or credit < 0:
                logger.warning(
                    "Account %s (row %d): negative %s/%s amount moved to the "
                    "opposite side",
                    number, row_no, debit_f.value, credit_f.value,
                )
                kwargs[debit_f.value] = max(debit, 0.0) - min(credit, 0.0)
                kwargs[credit_f.value] = max(credit, 0.0) - min(debit, 0.0)

        accounts.append(AccountBalance(**kwargs))

    logger.info(
        "Extracted %d account(s) from sheet '%s'%s",
        len(accounts), sheet.name,
        "" if wanted is None else f" (selection of {len(wanted)})",
    )
    return accounts


def validate_trial_balance(
    accounts: Sequence[AccountBalance],
    config: Optional[AnalysisConfig] = None,
) -> TrialBalanceValidation:
    """Check that YTD debits and credits agree and flag suspect accounts."""
    config = config or AnalysisConfig()
    issues: List[str] = []

    def add_issue(msg: str) -> None:
        issues.append(msg)
        logger.warning("Trial balance: %s", msg)

    total_debits = sum(a.ytd_debit for a in accounts)
    total_credits = sum(a.ytd_credit for a in accounts)
    difference = total_debits - total_credits
    is_balanced = abs(difference) <= config.balance_tolerance

    if not is_balanced:
        add_issue(
            f"Debits ({total_debits:,.2f}) do not equal credits "
            f"({total_credits:,.2f}); difference {difference:,.2f}"
        )

    for a in accounts:
        negatives = [
            f.value for f in TrialBalanceField
            if f.is_monetary and getattr(a, f.value) < 0
        ]
        if negatives:
            add_issue(f"Account {a.account_number} has negative {', '.join(negatives)}")
        if classify_account(a.account_number).category is AccountCategory.OTHER:
            add_issue(f"Account {a.account_number} cannot be classified by its number")

    for number, count in Counter(a.account_number for a in accounts).items():
        if count > 1:
            add_issue(f"Account {number} appears {count} times")

    digits = config.output_precision
    return TrialBalanceValidation(
        is_balanced=is_balanced,
        total_debits=round(total_debits, digits),
        total_credits=round(total_credits, digits),
        difference=round(difference, digits),
        account_count=len(accounts),
        issues=issues,
    )
