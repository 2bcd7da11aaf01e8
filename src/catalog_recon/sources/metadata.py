"""
Ordered metadata source over one database catalog stream.

Wraps the lazily-pulled iterator returned by a catalog listing function.
Rows are pulled one at a time, so memory use does not depend on catalog size.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from catalog_recon.config import ExclusionPolicy
from catalog_recon.errors import CatalogReconError
from catalog_recon.models import CatalogEntry, ObjectKey

from .base import OrderedSource

logger = logging.getLogger(__name__)

# (connection, owners, policy) -> iterator of entries ordered by ObjectKey
CatalogLister = Callable[[Any, list[str], ExclusionPolicy], Iterable[CatalogEntry]]


class SourceOrderError(CatalogReconError):
    """Raised when a catalog stream yields keys out of ascending order."""

    pass


class OrderedMetadataSource(OrderedSource):
    """
    Forward-only cursor over catalog entries of one side (master or slave).

    Duplicate keys are skipped with a warning so that each key is presented
    at most once. A key lower than its predecessor raises ``SourceOrderError``
    because the merge cannot recover from an unordered stream.
    """

    def __init__(self, entries: Iterable[CatalogEntry] | None, name: str = "source"):
        self.name = name
        self._iterator: Iterator[CatalogEntry] | None = iter(entries) if entries is not None else None
        self._current: CatalogEntry | None = None
        self._last_key: ObjectKey | None = None
        self.rows_read = 0
        self.duplicates_skipped = 0
        self.advance()

    @classmethod
    def empty(cls, name: str = "source") -> "OrderedMetadataSource":
        """Source for a side without a connection; exhausted from the start."""
        return cls(None, name=name)

    @classmethod
    def from_connection(
        cls,
        connection: Any,
        owners: list[str],
        policy: ExclusionPolicy,
        lister: CatalogLister,
        name: str = "source",
    ) -> "OrderedMetadataSource":
        if connection is None:
            return cls.empty(name)
        return cls(lister(connection, owners, policy), name=name)

    @property
    def current(self) -> CatalogEntry | None:
        return self._current

    def advance(self) -> None:
        if self._iterator is None:
            self._current = None
            return

        while True:
            entry = next(self._iterator, None)
            if entry is None:
                self._current = None
                self._iterator = None
                return

            key = entry.key
            if self._last_key is not None:
                if key == self._last_key:
                    self.duplicates_skipped += 1
                    logger.warning(f"{self.name}: duplicate catalog entry {key} skipped")
                    continue
                if key < self._last_key:
                    raise SourceOrderError(
                        f"{self.name}: catalog stream out of order, {key} after {self._last_key}"
                    )

            self._last_key = key
            self._current = entry
            self.rows_read += 1
            return

    def close(self) -> None:
        iterator, self._iterator = self._iterator, None
        self._current = None
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
