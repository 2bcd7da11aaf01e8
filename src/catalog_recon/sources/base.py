"""
Forward-only ordered cursors consumed by the merge engine.

A cursor is either positioned at an entry or exhausted. Exhausted cursors
report the ``EXHAUSTED`` key, which sorts after every real key, so the merge
treats a missing side exactly like a side that has run out of rows.
"""

from abc import ABC, abstractmethod

from catalog_recon.models import EXHAUSTED, CatalogEntry, ObjectKey


class OrderedSource(ABC):
    """Single-pass cursor over catalog entries sorted by ``ObjectKey``."""

    name: str = "source"

    @property
    @abstractmethod
    def current(self) -> CatalogEntry | None:
        """Entry the cursor is positioned at, or None once exhausted."""

    @abstractmethod
    def advance(self) -> None:
        """Move to the next entry. No-op once exhausted."""

    @property
    def exhausted(self) -> bool:
        return self.current is None

    @property
    def key(self) -> ObjectKey:
        entry = self.current
        return EXHAUSTED if entry is None else entry.key

    def close(self) -> None:
        """Release underlying resources; the cursor reads as exhausted afterwards."""
