"""
Configuration module for Ledger Insight.

Every detection threshold and tuneable knob lives here so that the
profiling, mapping and analysis modules carry no magic numbers of their own.
The defaults reproduce the behaviour users already rely on (70 % type
majority, 30 % PII pattern share); change them only to deliberately alter
detection sensitivity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional


_DEFAULT_CURRENCY_CODES: FrozenSet[str] = frozenset({
    "USD", "EUR", "GBP", "EGP", "SAR", "AED", "KWD", "QAR", "BHD", "OMR",
    "JOD", "JPY", "CNY", "INR", "CHF", "CAD", "AUD",
})

_DEFAULT_PII_KEYWORDS: tuple[str, ...] = (
    "name", "email", "phone", "id", "ssn", "social",
)


@dataclass(frozen=True)
class ProfilingConfig:
    """Controls column type inference and summary statistics."""

    # A type wins when its detector tally is strictly greater than this share
    # of the sampled non-null values.
    type_threshold: float = 0.70

    # Maximum number of non-null values fed to the type detectors.
    type_sample_size: int = 100

    # Number of distinct example values kept per column.
    sample_value_count: int = 5

    # Interpret ambiguous dates such as 03/04/2024 as day-first.
    dayfirst: bool = False

    # ISO codes accepted as a trailing currency marker ("125.50 EUR").
    currency_codes: FrozenSet[str] = _DEFAULT_CURRENCY_CODES


@dataclass(frozen=True)
class PIIConfig:
    """Controls the personal-data heuristics."""

    # Share of sampled values that must match a PII pattern (strictly greater).
    pattern_threshold: float = 0.30

    # Number of non-null values inspected per column.
    sample_size: int = 50

    # Header substrings that mark a column sensitive on their own.
    keywords: tuple[str, ...] = _DEFAULT_PII_KEYWORDS


@dataclass(frozen=True)
class MappingConfig:
    """Controls header-to-field resolution."""

    # rapidfuzz score (0–100) a leftover header needs before it is offered
    # as a suggestion for an unresolved field.
    suggestion_threshold: float = 70.0

    # Maximum number of suggestions reported per unresolved field.
    suggestion_limit: int = 3

    # Optional JSON file of ``{field: [pattern, ...]}`` appended to the
    # built-in pattern table.
    custom_pattern_path: Optional[Path] = None


@dataclass(frozen=True)
class AnalysisConfig:
    """Controls working-paper generation and trial-balance checks."""

    # Absolute difference under which total debits and credits are considered
    # balanced.
    balance_tolerance: float = 0.005

    # Decimal places used when rounding derived figures for output.
    output_precision: int = 2


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration aggregating all sub-configs."""

    profiling: ProfilingConfig = field(default_factory=ProfilingConfig)
    pii: PIIConfig = field(default_factory=PIIConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # Logging level for the package logger
    log_level: int = logging.INFO
