"""
Account classification by chart-of-accounts numbering.

=========  ===========  ============
Range      Category     Nature
=========  ===========  ============
1000–1999  assets       debit
2000–2999  liabilities  credit
3000–3999  equity       credit
4000–4999  revenue      credit
5000+      expenses     debit
other      other        credit
=========  ===========  ============

Only the leading integer of the account number is read, so ``"1010-01"``
classifies as an asset.  Classification never raises.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from ledger_insight.schema import AccountBalance, AccountCategory, AccountClassification

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

# (lower bound inclusive, upper bound exclusive or None, category, debit nature)
_BANDS = (
    (1000, 2000, AccountCategory.ASSETS, True),
    (2000, 3000, AccountCategory.LIABILITIES, False),
    (3000, 4000, AccountCategory.EQUITY, False),
    (4000, 5000, AccountCategory.REVENUE, False),
    (5000, None, AccountCategory.EXPENSES, True),
)

_OTHER = AccountClassification(AccountCategory.OTHER, False)


def leading_integer(account_number: object) -> Optional[int]:
    if account_number is None:
        return None
    m = _LEADING_INT_RE.match(str(account_number))
    return int(m.group(1)) if m else None


def classify_account(account_number: object) -> AccountClassification:
    """Map an account number to its category and normal balance side."""
    number = leading_integer(account_number)
    if number is None:
        return _OTHER
    for low, high, category, debit in _BANDS:
        if number >= low and (high is None or number < high):
            return AccountClassification(category, debit)
    return _OTHER


def natural_balance(account: AccountBalance, stage: str = "ytd") -> float:
    """Balance of one stage (``opening``, ``period`` or ``ytd``) on its normal side.

    Debit-nature accounts report debit − credit, all others credit − debit,
    so a healthy balance is positive either way.
    """
    debit = getattr(account, f"{stage}_debit")
    credit = getattr(account, f"{stage}_credit")
    if classify_account(account.account_number).is_debit_nature:
        return debit - credit
    return credit - debit


def group_by_category(
    accounts: Iterable[AccountBalance],
) -> Dict[AccountCategory, List[AccountBalance]]:
    """Bucket accounts by category; every category key is present."""
    groups: Dict[AccountCategory, List[AccountBalance]] = {c: [] for c in AccountCategory}
    for account in accounts:
        groups[classify_account(account.account_number).category].append(account)
    return groups


def select_by_category(
    accounts: Iterable[AccountBalance], category: object
) -> List[AccountBalance]:
    """Accounts whose number falls in ``category`` (enum member or its value)."""
    wanted = AccountCategory(category)
    return [
        a for a in accounts
        if classify_account(a.account_number).category is wanted
    ]
