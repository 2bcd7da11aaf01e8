"""
Streaming merge-reconciliation.

Walks the master, slave and (three-way) manifest cursors in lockstep as a
sorted k-way merge. Each step takes the smallest current key, records which
sources presented it, classifies it and advances exactly the cursors that
matched. Only the current row of each source is held in memory, plus at most
one batch of keys waiting for deep comparison.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from catalog_recon.compare.deep import DeepComparator
from catalog_recon.errors import CancellationError, SinkError
from catalog_recon.models import EXHAUSTED, Conclusion, ObjectRecord, ReconciliationMode
from catalog_recon.sources import ManifestSource, OrderedSource

from .classify import classify_comparison, classify_presence, is_deferred

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    master_rows: int = 0
    slave_rows: int = 0
    manifest_rows: int = 0
    conclusions: int = 0
    deferred: int = 0
    batches: int = 0


class MergeReconciler:
    """
    Drives one task's sources to completion, emitting one conclusion per key.

    Example:
        >>> merger = MergeReconciler(ReconciliationMode.TWO_WAY, comparator, sink.write)
        >>> stats = merger.run(master_source, slave_source)
    """

    def __init__(
        self,
        mode: ReconciliationMode,
        comparator: DeepComparator,
        emit: Callable[[Conclusion], None],
        batch_size: int = 10,
        cancel_event=None,
    ):
        self.mode = mode
        self.comparator = comparator
        self.emit = emit
        self.batch_size = batch_size
        self.cancel_event = cancel_event

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancellationError("Reconciliation cancelled")

    def _flush(self, pending: list[ObjectRecord], stats: MergeStats) -> None:
        if not pending:
            return
        self._check_cancelled()
        batch = list(pending)
        pending.clear()
        for comparison in self.comparator.compare_batch(batch):
            self.emit(classify_comparison(comparison, self.mode))
            stats.conclusions += 1
        stats.batches += 1

    def run(
        self,
        master: OrderedSource,
        slave: OrderedSource,
        manifest: OrderedSource | None = None,
    ) -> MergeStats:
        """
        Merge the sources and emit every conclusion.

        Args:
            master: Master catalog cursor (possibly empty)
            slave: Slave catalog cursor (possibly empty)
            manifest: Manifest cursor; three-way only

        Returns:
            MergeStats with row and conclusion counts

        Raises:
            CancellationError: If the cancellation event is set
            Exception: Whatever a source raised, after the keys already read
                from every source were concluded
        """
        three_way = self.mode is ReconciliationMode.THREE_WAY
        if three_way and manifest is None:
            manifest = ManifestSource([])

        stats = MergeStats()
        pending: list[ObjectRecord] = []

        try:
            self._merge(master, slave, manifest, three_way, pending, stats)
        except (CancellationError, SinkError):
            raise
        except Exception as e:
            # Keys read before the failure still get their conclusion
            if pending:
                logger.warning(
                    f"Source failed with {len(pending)} keys awaiting comparison, "
                    f"comparing them before stopping: {type(e).__name__}: {e}"
                )
                self._flush(pending, stats)
            raise

        self._flush(pending, stats)

        logger.debug(
            f"Merge finished: {stats.conclusions} conclusions "
            f"(master={stats.master_rows}, slave={stats.slave_rows}, "
            f"manifest={stats.manifest_rows}, deferred={stats.deferred})"
        )
        return stats

    def _merge(
        self,
        master: OrderedSource,
        slave: OrderedSource,
        manifest: OrderedSource | None,
        three_way: bool,
        pending: list[ObjectRecord],
        stats: MergeStats,
    ) -> None:
        while True:
            self._check_cancelled()

            master_key = master.key
            slave_key = slave.key
            manifest_key = manifest.key if three_way else EXHAUSTED

            min_key = min(master_key, slave_key, manifest_key)
            if min_key is EXHAUSTED:
                break

            in_master = master_key == min_key
            in_slave = slave_key == min_key
            in_manifest = manifest_key == min_key

            master_entry = master.current if in_master else None
            slave_entry = slave.current if in_slave else None
            source_entry = master_entry or slave_entry or manifest.current

            record = ObjectRecord(
                key=min_key,
                owner=source_entry.owner,
                name=source_entry.name,
                type=source_entry.type,
                in_master=in_master,
                in_slave=in_slave,
                in_manifest=in_manifest if three_way else None,
                master=master_entry,
                slave=slave_entry,
            )

            if is_deferred(record):
                pending.append(record)
                stats.deferred += 1
            else:
                self.emit(classify_presence(record, self.mode))
                stats.conclusions += 1

            if in_master:
                master.advance()
                stats.master_rows += 1
            if in_slave:
                slave.advance()
                stats.slave_rows += 1
            if in_manifest:
                manifest.advance()
                stats.manifest_rows += 1

            if len(pending) >= self.batch_size:
                self._flush(pending, stats)
