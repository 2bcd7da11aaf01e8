"""
Manifest source for three-way reconciliation.

The manifest is the externally approved object list. It is fully
materialized, so it is deduplicated and sorted up front and then walked by
index.
"""

import logging
from collections.abc import Iterable

from catalog_recon.models import CatalogEntry

from .base import OrderedSource

logger = logging.getLogger(__name__)


def deduplicate_manifest(entries: Iterable[CatalogEntry]) -> tuple[list[CatalogEntry], int]:
    """
    Drop repeated keys (first occurrence wins) and sort by ``ObjectKey``.

    Returns:
        Tuple of (unique sorted entries, number of duplicates dropped)
    """
    unique: dict = {}
    total = 0
    for entry in entries:
        total += 1
        unique.setdefault(entry.key, entry)

    ordered = sorted(unique.values(), key=lambda e: e.key)
    return ordered, total - len(ordered)


class ManifestSource(OrderedSource):
    """Index-backed cursor over the manifest entries of one task."""

    name = "manifest"

    def __init__(self, entries: Iterable[CatalogEntry], owners: Iterable[str] | None = None):
        wanted = {owner.upper() for owner in owners} if owners is not None else None
        selected = [e for e in entries if wanted is None or e.owner.upper() in wanted]

        self.entries, self.duplicates_dropped = deduplicate_manifest(selected)
        if self.duplicates_dropped:
            logger.warning(f"Removed {self.duplicates_dropped} duplicate manifest entries")
        self._index = 0

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def current(self) -> CatalogEntry | None:
        if self._index < len(self.entries):
            return self.entries[self._index]
        return None

    def advance(self) -> None:
        if self._index < len(self.entries):
            self._index += 1

    def close(self) -> None:
        self._index = len(self.entries)
