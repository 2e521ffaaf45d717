"""
Header → Trial-Balance Field Resolution.

Maps the free-form column headers of an export onto the 13 canonical
``TrialBalanceField`` values.

Resolution rules
----------------
* Fields are resolved one at a time in canonical order.
* For each field the *remaining* headers are scanned in their original order;
  the first header matching any of the field's case-insensitive regex
  fragments is bound and taken out of the pool.
* A field nobody matches stays unbound.  That is a normal outcome, not an
  error.

The pattern table below is plain data.  Users can extend it at runtime via
``add_pattern`` / ``add_patterns`` or a JSON file (``load_custom_patterns``).

Headers that could have served a field but lost to an earlier one are
recorded as ``MappingAmbiguity`` entries.  For fields left unbound, leftover
headers are ranked with ``rapidfuzz`` and offered as suggestions; a
suggestion never binds a field by itself.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from rapidfuzz import fuzz, process

from ledger_insight.config import MappingConfig
from ledger_insight.logging_setup import get_logger
from ledger_insight.normalizer import normalize_header
from ledger_insight.schema import (
    ColumnMapping,
    MappingAmbiguity,
    TrialBalanceField,
    field_lookup,
)

logger = get_logger("field_mapper")


# ---------------------------------------------------------------------------
# Built-in pattern table
# ---------------------------------------------------------------------------
# Fragments are searched (not anchored) in the lower-cased header.

_BUILTIN_PATTERNS: Dict[TrialBalanceField, List[str]] = {
    TrialBalanceField.ACCOUNT_NUMBER: [
        r"account.*number", r"account.*code", r"account.*id",
        r"acct.*no\b", r"acct.*num", r"account.*no\b",
    ],
    TrialBalanceField.ACCOUNT_NAME: [
        r"account.*name", r"account.*desc", r"description", r"acct.*name",
    ],
    TrialBalanceField.CURRENCY: [r"currency", r"\bcurr\b", r"\bccy\b"],
    TrialBalanceField.OPENING_DEBIT: [
        r"opening.*debit", r"open.*debit", r"beg.*debit", r"beginning.*debit",
    ],
    TrialBalanceField.OPENING_CREDIT: [
        r"opening.*credit", r"open.*credit", r"beg.*credit", r"beginning.*credit",
    ],
    TrialBalanceField.PERIOD_DEBIT: [
        r"period.*debit", r"current.*debit", r"month.*debit",
    ],
    TrialBalanceField.PERIOD_CREDIT: [
        r"period.*credit", r"current.*credit", r"month.*credit",
    ],
    TrialBalanceField.YTD_DEBIT: [r"ytd.*debit", r"year.*debit", r"annual.*debit"],
    TrialBalanceField.YTD_CREDIT: [r"ytd.*credit", r"year.*credit", r"annual.*credit"],
    TrialBalanceField.ENTITY: [r"entity", r"company", r"subsidiary"],
    TrialBalanceField.DEPARTMENT: [r"department", r"dept", r"division"],
    TrialBalanceField.PROJECT: [
        r"project", r"job", r"cost.*center", r"cost.*centre",
    ],
    TrialBalanceField.NOTES: [r"notes", r"note\b", r"comments", r"remarks", r"memo"],
}


def _compile(fragment: str) -> Pattern[str]:
    try:
        return re.compile(fragment, re.IGNORECASE)
    except re.error as exc:
        raise ValueError(f"Invalid header pattern {fragment!r}: {exc}") from exc


class FieldMapper:
    """Resolve headers to canonical trial-balance fields.

    Parameters
    ----------
    config:
        Suggestion thresholds and an optional custom-pattern file.
    extra_patterns:
        ``{field: [fragment, ...]}`` appended to the built-in table at
        construction time.  Keys may be ``TrialBalanceField`` members or any
        spelling accepted by ``field_lookup``.
    """

    def __init__(
        self,
        config: Optional[MappingConfig] = None,
        extra_patterns: Optional[Dict[object, List[str]]] = None,
    ) -> None:
        self._config = config or MappingConfig()
        self._patterns: Dict[TrialBalanceField, List[Pattern[str]]] = {
            f: [_compile(p) for p in _BUILTIN_PATTERNS.get(f, [])]
            for f in TrialBalanceField
        }

        if extra_patterns:
            self.add_patterns(extra_patterns)

        if self._config.custom_pattern_path:
            self.load_custom_patterns(self._config.custom_pattern_path)

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    def resolve(self, headers: Sequence[str]) -> ColumnMapping:
        """Bind each canonical field to at most one header.

        Returns
        -------
        ColumnMapping
            Bindings for all 13 fields (unbound ones are ``None``), plus
            ambiguity records and fuzzy suggestions for unbound fields.
        """
        mapping = ColumnMapping()
        pool: List[str] = list(dict.fromkeys(h for h in headers if h is not None))

        for f in TrialBalanceField:
            candidates = [h for h in pool if self.matches(f, h)]
            if not candidates:
                logger.debug("No header matches field %r", f.value)
                continue

            chosen = candidates[0]
            mapping.bindings[f] = chosen
            pool.remove(chosen)
            logger.info("Bound %r → %r", chosen, f.value)

            if len(candidates) > 1:
                ambiguity = MappingAmbiguity(
                    field=f, chosen=chosen, candidates=tuple(candidates)
                )
                mapping.ambiguities.append(ambiguity)
                logger.warning(
                    "Ambiguous headers for %r: %s; kept %r",
                    f.value, candidates, chosen,
                )

        for f in mapping.unresolved:
            hints = self.suggest(f, pool)
            if hints:
                mapping.suggestions[f] = hints

        return mapping

    def matches(self, f: TrialBalanceField, header: str) -> bool:
        """True if ``header`` matches any fragment registered for ``f``."""
        text = normalize_header(header)
        return any(p.search(text) for p in self._patterns[f])

    def suggest(
        self, f: TrialBalanceField, headers: Sequence[str]
    ) -> List[Tuple[str, float]]:
        """Rank leftover headers against a field's readable name.

        Uses ``token_sort_ratio`` so word order does not matter
        (``"debit ytd"`` vs ``"ytd debit"``).  Only scores at or above
        ``suggestion_threshold`` are returned, best first.
        """
        if not headers:
            return []
        target = f.value.replace("_", " ")
        choices = {h: normalize_header(h) for h in headers}
        results = process.extract(
            target,
            choices,
            scorer=fuzz.token_sort_ratio,
            limit=self._config.suggestion_limit,
            score_cutoff=self._config.suggestion_threshold,
        )
        hints = [(header, float(score)) for _, score, header in results]
        if hints:
            logger.info("Suggestions for unbound %r: %s", f.value, hints)
        return hints

    # ------------------------------------------------------------------ #
    # Extension API
    # ------------------------------------------------------------------ #

    def add_pattern(self, key: object, fragment: str) -> None:
        """Append one regex fragment to a field's pattern list.

        Raises
        ------
        ValueError
            If ``key`` names no canonical field or ``fragment`` is not a valid
            regular expression.
        """
        f = self._field(key)
        compiled = _compile(fragment)
        if any(p.pattern == compiled.pattern for p in self._patterns[f]):
            logger.debug("Pattern %r already registered for %r", fragment, f.value)
            return
        self._patterns[f].append(compiled)
        logger.debug("Added pattern %r for %r", fragment, f.value)

    def add_patterns(self, table: Dict[object, List[str]]) -> None:
        """Bulk-add fragments from a ``{field: [fragment, ...]}`` dict."""
        for key, fragments in table.items():
            if isinstance(fragments, str):
                fragments = [fragments]
            for fragment in fragments:
                self.add_pattern(key, fragment)

    def load_custom_patterns(self, path: Path) -> int:
        """Load fragments from a JSON file; returns the number read."""
        with open(path, encoding="utf-8") as fh:
            data: Dict[str, List[str]] = json.load(fh)
        self.add_patterns(data)
        count = sum(1 if isinstance(v, str) else len(v) for v in data.values())
        logger.info("Loaded %d custom header patterns from %s", count, path)
        return count

    def patterns_for(self, key: object) -> List[str]:
        """Return a copy of the fragments registered for a field."""
        return [p.pattern for p in self._patterns[self._field(key)]]

    @staticmethod
    def _field(key: object) -> TrialBalanceField:
        if isinstance(key, TrialBalanceField):
            return key
        f = field_lookup(str(key))
        if f is None:
            raise ValueError(
                f"Unknown trial-balance field {key!r}. "
                f"Must be one of the TrialBalanceField values."
            )
        return f


def resolve_column_mapping(
    headers: Sequence[str], config: Optional[MappingConfig] = None
) -> ColumnMapping:
    """Resolve ``headers`` with the built-in pattern table."""
    return FieldMapper(config=config).resolve(headers)
