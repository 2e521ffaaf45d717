"""
PII Heuristics.

A column is flagged sensitive when either

* its lower-cased header contains one of the configured keywords
  (``name``, ``email``, ``phone``, ``id``, ``ssn``, ``social``), or
* more than ``pattern_threshold`` of its sampled values look like an e-mail
  address, a phone number, a capitalised person name or a national-id
  digit string.

The keyword rule is checked first and short-circuits.  The result is binary
and carries no confidence score; callers re-run detection on every profiling
pass rather than caching it.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from ledger_insight.config import PIIConfig
from ledger_insight.logging_setup import get_logger
from ledger_insight.normalizer import stringify_cell
from ledger_insight.schema import Cell

logger = get_logger("pii_detector")


class PIIDetector:
    """Flag columns that probably hold personal data.

    Parameters
    ----------
    config:
        Keyword list, sample size and match threshold.
    """

    _EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

    # International form: "+" then 7–15 digits
    _PHONE_E164_RE = re.compile(r"^\+[1-9]\d{6,14}$")

    # North-American style with separators: (555) 123-4567, +1 555.123.4567
    _PHONE_FORMATTED_RE = re.compile(
        r"^(\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}$"
    )

    # Two or more capitalised words: "Jane Doe", "Mary Ann Smith"
    _PERSON_NAME_RE = re.compile(r"^[A-Z][a-z]+(\s[A-Z][a-z]+)+$")

    _NATIONAL_ID_RE = re.compile(r"^\d{10,15}$")

    def __init__(self, config: Optional[PIIConfig] = None) -> None:
        self._config = config or PIIConfig()
        self._keywords = tuple(k.lower() for k in self._config.keywords)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def is_sensitive(self, header: str, values: Iterable[Cell]) -> bool:
        """Return True when the column should be treated as PII."""
        return self.reason(header, values) is not None

    def reason(self, header: str, values: Iterable[Cell]) -> Optional[str]:
        """Explain why a column is sensitive, or ``None`` when it is not."""
        keyword = self.matching_keyword(header)
        if keyword is not None:
            logger.debug("Header %r flagged PII by keyword %r", header, keyword)
            return f"header contains '{keyword}'"

        sample = self._sample(values)
        if not sample:
            return None

        hits = sum(1 for v in sample if self.matches_pattern(v))
        share = hits / len(sample)
        if share > self._config.pattern_threshold:
            logger.debug(
                "Header %r flagged PII: %d/%d sampled values match a PII pattern",
                header, hits, len(sample),
            )
            return f"{hits} of {len(sample)} sampled values look personal"
        return None

    def matching_keyword(self, header: str) -> Optional[str]:
        lowered = (header or "").lower()
        for keyword in self._keywords:
            if keyword in lowered:
                return keyword
        return None

    def matches_pattern(self, value: str) -> bool:
        """True if a single value looks like an e-mail, phone, name or id."""
        text = value.strip()
        return bool(
            self._EMAIL_RE.match(text)
            or self._PHONE_E164_RE.match(text)
            or self._PHONE_FORMATTED_RE.match(text)
            or self._PERSON_NAME_RE.match(text)
            or self._NATIONAL_ID_RE.match(text)
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _sample(self, values: Iterable[Cell]) -> List[str]:
        sample: List[str] = []
        for raw in values:
            text = stringify_cell(raw)
            if not text:
                continue
            sample.append(text)
            if len(sample) >= self._config.sample_size:
                break
        return sample
