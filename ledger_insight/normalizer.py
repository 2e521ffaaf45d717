"""
Cell Normalization Layer.

Spreadsheet cells arrive as whatever the source produced: strings with
currency symbols and thousands separators, native numbers, booleans, or
``datetime`` objects from a workbook.  This module turns them into the few
canonical shapes the rest of the system compares:

* ``stringify``       — display/compare form of any cell
* ``normalize_header`` — lower-cased, whitespace-collapsed header text
* ``parse_number``     — strict finite number (plain or thousands-grouped)
* ``parse_money``      — lenient amount: symbols, codes, ``(neg)``, commas
* ``parse_amount``     — ``parse_money`` with a ``0.0`` fallback
* ``parse_date``       — calendar date via ``dateutil``
* ``parse_flag``       — yes/no cell to ``bool`` (empty reads as ``False``)
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from typing import Any, Optional

from dateutil import parser as date_parser

from ledger_insight.logging_setup import get_logger

logger = get_logger("normalizer")

# Missing date components are filled from a fixed default so that parsing is
# independent of the current day.
_DATE_DEFAULT = datetime(2000, 1, 1)

TRUE_TOKENS = frozenset({"true", "yes", "1"})
FALSE_TOKENS = frozenset({"false", "no", "0"})


class CellNormalizer:
    """Stateless cell normaliser.  All methods are pure functions."""

    _CURRENCY_SYMBOL_RE = re.compile(r"[$€£¥₹]")

    # ISO-style code before or after the figure: "USD 1,200" / "1,200 EUR"
    _CURRENCY_CODE_RE = re.compile(r"^[A-Za-z]{3}\s+|\s*[A-Za-z]{3}$")

    # Parenthetical negative: ``(1234)`` → ``-1234``
    _PAREN_NEG_RE = re.compile(r"^\((.+)\)$")

    # Western thousands grouping: 1,234,567.89
    _GROUPED_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")

    _MULTI_SPACE_RE = re.compile(r"\s+")

    _HAS_DIGIT_RE = re.compile(r"\d")

    # ------------------------------------------------------------------ #
    # Text forms
    # ------------------------------------------------------------------ #

    def stringify(self, raw: Any) -> str:
        """Return the canonical string form of a cell (``""`` for empty)."""
        if raw is None:
            return ""
        if isinstance(raw, bool):
            return "true" if raw else "false"
        if isinstance(raw, int):
            return str(raw)
        if isinstance(raw, float):
            if math.isfinite(raw) and raw.is_integer():
                return str(int(raw))
            return str(raw)
        if isinstance(raw, datetime):
            if raw.time() == time(0, 0):
                return raw.date().isoformat()
            return raw.isoformat(sep=" ")
        if isinstance(raw, date):
            return raw.isoformat()
        return str(raw).strip()

    def normalize_header(self, raw: Any) -> str:
        """Lower-case a header and collapse internal whitespace."""
        text = self.stringify(raw).lower()
        text = text.replace("–", "-").replace("—", "-")
        return self._MULTI_SPACE_RE.sub(" ", text).strip()

    # ------------------------------------------------------------------ #
    # Numbers
    # ------------------------------------------------------------------ #

    def parse_number(self, raw: Any) -> Optional[float]:
        """Parse a plain finite number; ``None`` when the cell is not one.

        Accepts native ints/floats, numeric strings (including exponent
        notation) and thousands-grouped strings such as ``"1,250.75"``.
        Currency symbols are *not* accepted here.
        """
        if isinstance(raw, bool) or raw is None:
            return None
        if isinstance(raw, (int, float)):
            value = float(raw)
            return value if math.isfinite(value) else None

        text = self.stringify(raw)
        if not text or "_" in text:
            return None
        if self._GROUPED_RE.match(text):
            text = text.replace(",", "")
        try:
            value = float(text)
        except ValueError:
            return None
        return value if math.isfinite(value) else None

    def parse_money(self, raw: Any) -> Optional[float]:
        """Leniently parse a monetary amount; ``None`` if nothing numeric remains.

        Handles ``"$1,200.50"``, ``"(5000)"``, ``"1200 EUR"``, ``"USD 15"``.
        """
        direct = self.parse_number(raw)
        if direct is not None:
            return direct
        if raw is None or isinstance(raw, bool):
            return None

        text = self.stringify(raw)
        if not text:
            return None

        negative = False
        m = self._PAREN_NEG_RE.match(text)
        if m:
            text = m.group(1).strip()
            negative = True

        text = self._CURRENCY_SYMBOL_RE.sub("", text)
        text = self._CURRENCY_CODE_RE.sub("", text)
        text = text.replace(",", "").replace(" ", "")
        if text.startswith("-") and negative:
            return None

        try:
            value = float(text)
        except ValueError:
            logger.debug("parse_money: cannot parse %r", raw)
            return None
        if not math.isfinite(value):
            return None
        return -value if negative else value

    def parse_amount(self, raw: Any) -> float:
        """``parse_money`` with unparseable or empty input read as ``0.0``."""
        value = self.parse_money(raw)
        return 0.0 if value is None else value

    def parse_flag(self, raw: Any) -> Optional[bool]:
        """Read a yes/no cell; ``None`` when the value is not a recognised flag."""
        if isinstance(raw, bool):
            return raw
        text = self.stringify(raw).lower()
        if text in TRUE_TOKENS:
            return True
        if not text or text in FALSE_TOKENS:
            return False
        return None

    # ------------------------------------------------------------------ #
    # Dates
    # ------------------------------------------------------------------ #

    def parse_date(self, raw: Any, dayfirst: bool = False) -> Optional[date]:
        """Parse a calendar date; ``None`` when the cell is not a date.

        Bare numbers are never treated as dates, and text must contain at
        least one digit so that words like ``"March"`` or ``"may"`` are not
        promoted to dates.
        """
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        if raw is None or isinstance(raw, (bool, int, float)):
            return None

        text = self.stringify(raw)
        if not text or len(text) > 40 or not self._HAS_DIGIT_RE.search(text):
            return None
        try:
            parsed = date_parser.parse(text, dayfirst=dayfirst, default=_DATE_DEFAULT)
        except (ValueError, OverflowError, TypeError):
            return None
        return parsed.date()


_DEFAULT = CellNormalizer()

stringify_cell = _DEFAULT.stringify
normalize_header = _DEFAULT.normalize_header
parse_number = _DEFAULT.parse_number
parse_money = _DEFAULT.parse_money
parse_amount = _DEFAULT.parse_amount
parse_date = _DEFAULT.parse_date
parse_flag = _DEFAULT.parse_flag
