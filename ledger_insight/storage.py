"""
Dataset & Working-Paper Storage.

The core never talks to a database.  It depends on two narrow contracts:

* ``DatasetProvider.get_sheet(dataset_ref, sheet_name)`` — fetch the parsed
  grid behind a stored dataset.
* ``PersistenceSink.save_dataset`` / ``save_working_paper`` — hand off
  finished artifacts and receive a reference back.  ``latest_dataset`` lets
  importers pick the next version number.

``InMemoryStore`` implements both and is what the HTTP layer and the tests
use.  Datasets are immutable; importing the same logical dataset again
(same name, same engagement) stores a new version beside the old ones.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Tuple

from ledger_insight.errors import ValidationError
from ledger_insight.logging_setup import get_logger
from ledger_insight.schema import Dataset, Sheet, WorkingPaper

logger = get_logger("storage")


class DatasetProvider(Protocol):
    def get_sheet(self, dataset_ref: str, sheet_name: Optional[str] = None) -> Sheet:
        ...


class PersistenceSink(Protocol):
    def latest_dataset(
        self, name: str, engagement_id: Optional[str] = None
    ) -> Optional[Dataset]:
        ...

    def save_dataset(self, dataset: Dataset, sheet: Optional[Sheet] = None) -> str:
        ...

    def save_working_paper(self, paper: WorkingPaper) -> str:
        ...


class InMemoryStore:
    """Thread-safe in-process store implementing both storage contracts."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._datasets: Dict[str, Dataset] = {}
        self._sheets: Dict[str, Sheet] = {}
        self._versions: Dict[Tuple[str, Optional[str]], List[str]] = {}
        self._papers: Dict[str, WorkingPaper] = {}

    # ------------------------------------------------------------------ #
    # Datasets
    # ------------------------------------------------------------------ #

    def next_version(self, name: str, engagement_id: Optional[str] = None) -> int:
        """Version number the next import of this dataset should carry."""
        key = (name.strip().lower(), engagement_id)
        with self._lock:
            return len(self._versions.get(key, [])) + 1

    def save_dataset(self, dataset: Dataset, sheet: Optional[Sheet] = None) -> str:
        """Store a dataset snapshot (and optionally its grid); returns its id.

        Raises
        ------
        ValidationError
            If the id is already taken or the version is not the next one
            for the dataset's identity.
        """
        with self._lock:
            if dataset.id in self._datasets:
                raise ValidationError(f"Dataset '{dataset.id}' is already stored")
            expected = self.next_version(dataset.name, dataset.engagement_id)
            if dataset.version != expected:
                raise ValidationError(
                    f"Dataset '{dataset.name}' must be saved as version "
                    f"{expected}, got {dataset.version}"
                )
            self._datasets[dataset.id] = dataset
            self._versions.setdefault(dataset.identity, []).append(dataset.id)
            if sheet is not None:
                self._sheets[dataset.id] = sheet

        logger.info(
            "Stored dataset '%s' v%d as %s", dataset.name, dataset.version, dataset.id
        )
        return dataset.id

    def get_dataset(self, dataset_ref: str) -> Dataset:
        with self._lock:
            try:
                return self._datasets[dataset_ref]
            except KeyError:
                raise ValidationError(f"Unknown dataset '{dataset_ref}'") from None

    def list_versions(
        self, name: str, engagement_id: Optional[str] = None
    ) -> List[Dataset]:
        """Every stored version of a dataset, oldest first."""
        key = (name.strip().lower(), engagement_id)
        with self._lock:
            return [self._datasets[i] for i in self._versions.get(key, [])]

    def latest_dataset(
        self, name: str, engagement_id: Optional[str] = None
    ) -> Optional[Dataset]:
        versions = self.list_versions(name, engagement_id)
        return versions[-1] if versions else None

    def get_sheet(self, dataset_ref: str, sheet_name: Optional[str] = None) -> Sheet:
        """Return the grid stored with a dataset.

        Raises
        ------
        ValidationError
            If the dataset is unknown, has no stored grid, or the grid's name
            differs from ``sheet_name``.
        """
        dataset = self.get_dataset(dataset_ref)
        with self._lock:
            sheet = self._sheets.get(dataset_ref)
        if sheet is None:
            raise ValidationError(f"Dataset '{dataset_ref}' has no stored rows")
        if sheet_name is not None and sheet_name != sheet.name:
            raise ValidationError(
                f"Dataset '{dataset.name}' holds sheet '{sheet.name}', "
                f"not '{sheet_name}'"
            )
        return sheet

    # ------------------------------------------------------------------ #
    # Working papers
    # ------------------------------------------------------------------ #

    def save_working_paper(self, paper: WorkingPaper) -> str:
        """Store (or replace) a working paper; returns its id."""
        with self._lock:
            replaced = paper.id in self._papers
            self._papers[paper.id] = paper
        logger.info("%s working paper %s", "Replaced" if replaced else "Stored", paper.id)
        return paper.id

    def get_working_paper(self, paper_id: str) -> WorkingPaper:
        with self._lock:
            try:
                return self._papers[paper_id]
            except KeyError:
                raise ValidationError(f"Unknown working paper '{paper_id}'") from None

    def list_working_papers(self, engagement_id: Optional[str] = None) -> List[WorkingPaper]:
        with self._lock:
            papers = list(self._papers.values())
        if engagement_id is None:
            return papers
        return [p for p in papers if p.engagement_id == engagement_id]
