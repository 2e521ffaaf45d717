"""
Column Profiling.

Infers, for every column of a ``Sheet``, a semantic ``DataType`` plus summary
statistics, without any user-supplied schema.

Type inference
--------------
Up to ``type_sample_size`` non-empty values are fed to four detectors, each
keeping its own tally:

1. **currency** — ``$123.45``-style figures or a figure followed by an ISO
   currency code (``125.50 EUR``)
2. **numeric**  — any finite number, including thousands-grouped text
3. **date**     — anything ``dateutil`` reads as a calendar date
4. **boolean**  — ``true/false/yes/no/1/0``

The first detector in that order whose tally is strictly above
``type_threshold`` of the sample wins; otherwise the column is ``text``.

The sample is picked by a content hash rather than by position, so shuffling
the rows of a sheet never changes the detected type.
"""

from __future__ import annotations

import hashlib
import re
from typing import Dict, List, Optional, Sequence, Tuple

from ledger_insight.config import PIIConfig, ProfilingConfig
from ledger_insight.logging_setup import get_logger
from ledger_insight.normalizer import (
    FALSE_TOKENS,
    TRUE_TOKENS,
    parse_date,
    parse_money,
    parse_number,
    stringify_cell,
)
from ledger_insight.pii_detector import PIIDetector
from ledger_insight.schema import Cell, ColumnMetadata, DataType, Sheet

logger = get_logger("column_profiler")

_BOOLEAN_TOKENS = TRUE_TOKENS | FALSE_TOKENS


def _sample_key(text: str) -> Tuple[bytes, str]:
    return hashlib.blake2b(text.encode("utf-8"), digest_size=8).digest(), text


class ColumnProfiler:
    """Profile the columns of parsed sheets.

    Parameters
    ----------
    config:
        Type-detection thresholds and sample sizes.
    pii_detector:
        Detector used to flag sensitive columns.  A default one is built when
        omitted.
    """

    _CURRENCY_SYMBOL_RE = re.compile(r"^\$?\d+\.?\d*$")
    _CURRENCY_CODE_RE = re.compile(r"^\d+\.?\d*\s?([A-Za-z]{3})$")

    def __init__(
        self,
        config: Optional[ProfilingConfig] = None,
        pii_detector: Optional[PIIDetector] = None,
    ) -> None:
        self._config = config or ProfilingConfig()
        self._pii = pii_detector or PIIDetector(PIIConfig())
        self._codes = frozenset(c.upper() for c in self._config.currency_codes)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def profile_sheet(self, sheet: Sheet) -> List[ColumnMetadata]:
        """Return one ``ColumnMetadata`` per column, in column order."""
        columns = [
            self.profile_column(header, sheet.column(idx))
            for idx, header in enumerate(sheet.headers)
        ]
        logger.info(
            "Profiled sheet '%s': %d columns, %d rows",
            sheet.name, len(columns), sheet.row_count,
        )
        return columns

    def reprofile(
        self, sheet: Sheet, previous: Sequence[ColumnMetadata]
    ) -> List[ColumnMetadata]:
        """Profile again, keeping user overrides from an earlier run.

        Columns are matched to ``previous`` by their original header.  An
        overridden column keeps its display name and data type; statistics
        and the PII flag are always recomputed.
        """
        prior: Dict[str, ColumnMetadata] = {c.original_name: c for c in previous}
        columns: List[ColumnMetadata] = []
        for idx, header in enumerate(sheet.headers):
            old = prior.get(header)
            if old is not None and old.is_overridden:
                meta = self.profile_column(
                    header, sheet.column(idx), data_type=old.data_type
                )
                meta.name = old.name
                meta.is_overridden = True
            else:
                meta = self.profile_column(header, sheet.column(idx))
            columns.append(meta)
        return columns

    def profile_column(
        self,
        header: str,
        values: Sequence[Cell],
        data_type: Optional[DataType] = None,
    ) -> ColumnMetadata:
        """Profile one column.

        Parameters
        ----------
        header:
            Column header as it appears in the sheet.
        values:
            Every data-row value of the column (header excluded).
        data_type:
            Force this type instead of detecting one.
        """
        total = len(values)
        present = [stringify_cell(v) for v in values]
        present = [t for t in present if t]

        null_percent = 100.0 if total == 0 else (total - len(present)) / total * 100.0
        is_pii = self._pii.is_sensitive(header, present)

        if not present:
            return ColumnMetadata(
                name=header,
                data_type=data_type or DataType.TEXT,
                is_pii=is_pii,
                null_percent=100.0,
                unique_count=0,
            )

        detected = data_type or self.detect_type(present)
        min_value, max_value = self._value_range(detected, present)

        samples = list(dict.fromkeys(present))
        meta = ColumnMetadata(
            name=header,
            data_type=detected,
            is_pii=is_pii,
            null_percent=null_percent,
            unique_count=len(samples),
            sample_values=samples[: self._config.sample_value_count],
            min_value=min_value,
            max_value=max_value,
        )
        logger.debug(
            "Column %r: type=%s pii=%s nulls=%.1f%% unique=%d",
            header, detected.value, is_pii, null_percent, meta.unique_count,
        )
        return meta

    def detect_type(self, present: Sequence[str]) -> DataType:
        """Pick a ``DataType`` for non-empty stringified values."""
        sample = self._sample(present)
        if not sample:
            return DataType.TEXT

        tallies = {
            DataType.CURRENCY: sum(1 for v in sample if self._is_currency(v)),
            DataType.NUMERIC: sum(1 for v in sample if parse_number(v) is not None),
            DataType.DATE: sum(1 for v in sample if self._is_date(v)),
            DataType.BOOLEAN: sum(1 for v in sample if v.lower() in _BOOLEAN_TOKENS),
        }
        for dtype, hits in tallies.items():
            if hits / len(sample) > self._config.type_threshold:
                return dtype
        return DataType.TEXT

    # ------------------------------------------------------------------ #
    # Detectors
    # ------------------------------------------------------------------ #

    def _is_currency(self, text: str) -> bool:
        if self._CURRENCY_SYMBOL_RE.match(text):
            return True
        m = self._CURRENCY_CODE_RE.match(text)
        return bool(m) and m.group(1).upper() in self._codes

    def _is_date(self, text: str) -> bool:
        return parse_date(text, dayfirst=self._config.dayfirst) is not None

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _sample(self, present: Sequence[str]) -> List[str]:
        limit = self._config.type_sample_size
        if len(present) <= limit:
            return list(present)
        return sorted(present, key=_sample_key)[:limit]

    def _value_range(
        self, dtype: DataType, present: Sequence[str]
    ) -> Tuple[Optional[str], Optional[str]]:
        if dtype in (DataType.NUMERIC, DataType.CURRENCY):
            numbers = [n for n in (parse_money(v) for v in present) if n is not None]
            if not numbers:
                return None, None
            return stringify_cell(min(numbers)), stringify_cell(max(numbers))

        if dtype is DataType.DATE:
            dates = [
                d.isoformat()
                for d in (parse_date(v, dayfirst=self._config.dayfirst) for v in present)
                if d is not None
            ]
            if not dates:
                return None, None
            return min(dates), max(dates)

        return None, None


def profile_columns(
    sheet: Sheet,
    config: Optional[ProfilingConfig] = None,
    pii_config: Optional[PIIConfig] = None,
) -> List[ColumnMetadata]:
    """Profile every column of ``sheet`` with default or supplied settings."""
    profiler = ColumnProfiler(config=config, pii_detector=PIIDetector(pii_config))
    return profiler.profile_sheet(sheet)
