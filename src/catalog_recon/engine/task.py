"""
Per-task execution.

A task owns a pair of dedicated streaming connections (one per side) and a
pair of definition pools for deep comparison. A side whose connection cannot
be opened degrades to an empty source. Every connection and pool the task
opened is closed when the merge completes or fails.
"""

import logging
import time
from collections.abc import Callable, Iterable
from functools import partial
from typing import Any

from opentelemetry import trace

from catalog_recon.compare.deep import DeepComparator, DefinitionFetcher
from catalog_recon.config import ReconcileSettings
from catalog_recon.metrics import TASK_TIME
from catalog_recon.models import CatalogEntry, Conclusion, ConnectionRef, ReconciliationMode, Task
from catalog_recon.sources import CatalogLister, ManifestSource, OrderedMetadataSource
from catalog_recon.sources.oracle import (
    configure_metadata_session,
    fetch_definition,
    list_objects,
    open_connection,
)
from catalog_recon.utils.db_pool import BaseConnectionPool, OracleConnectionPool
from catalog_recon.utils.tracing import add_span_attributes, trace_operation

from .merge import MergeReconciler, MergeStats

logger = logging.getLogger(__name__)


def _close_quietly(resource: Any, label: str) -> None:
    if resource is None:
        return
    try:
        resource.close()
    except Exception as e:
        logger.warning(f"Error closing {label}: {e}")


class TaskRunner:
    """
    Runs the merge for one task with its own connections and pools.

    The connection, listing, pool and fetch collaborators default to the
    Oracle implementations and can be replaced, e.g. with in-memory fakes.
    """

    def __init__(
        self,
        mode: ReconciliationMode,
        settings: ReconcileSettings,
        emit: Callable[[Conclusion], None],
        log: Callable[[str], None] | None = None,
        cancel_event=None,
        connect: Callable[[ConnectionRef], Any] | None = None,
        lister: CatalogLister | None = None,
        pool_factory: Callable[[ConnectionRef], BaseConnectionPool] | None = None,
        fetcher: DefinitionFetcher = fetch_definition,
    ):
        self.mode = mode
        self.settings = settings
        self.emit = emit
        self.log = log or logger.info
        self.cancel_event = cancel_event
        self.connect = connect or partial(open_connection, retries=settings.connect_retries)
        self.lister = lister or partial(list_objects, arraysize=settings.fetch_arraysize)
        self.pool_factory = pool_factory or self._oracle_pool
        self.fetcher = fetcher

    def _oracle_pool(self, ref: ConnectionRef) -> BaseConnectionPool:
        return OracleConnectionPool.for_connection(
            ref,
            session_callback=configure_metadata_session,
            min_size=self.settings.pool_min_size,
            max_size=self.settings.pool_max_size,
            acquire_timeout=self.settings.acquire_timeout,
        )

    def _open_side(self, side: str, ref: ConnectionRef | None) -> Any:
        if ref is None:
            self.log(f"No {side} connection configured, treating it as empty")
            return None
        self.log(f"Connecting to {side} {ref.display_name}")
        try:
            return self.connect(ref)
        except Exception as e:
            self.log(f"Warning: cannot connect to {side} {ref.display_name}, treating it as empty: {e}")
            return None

    def _open_pool(self, side: str, ref: ConnectionRef) -> BaseConnectionPool | None:
        try:
            return self.pool_factory(ref)
        except Exception as e:
            self.log(f"Warning: cannot open {side} definition pool for {ref.display_name}: {e}")
            return None

    def run(self, task: Task, manifest_entries: Iterable[CatalogEntry] | None = None) -> MergeStats:
        """
        Reconcile the owners of one task.

        Args:
            task: Task with its connection pair and owners
            manifest_entries: Manifest entries (three-way), filtered to the
                task's owners here

        Returns:
            MergeStats of the task

        Raises:
            SinkError: If a conclusion cannot be written
            CancellationError: If the cancellation event is set
        """
        policy = self.settings.exclusion_policy(self.mode)
        master_conn = slave_conn = None
        master_pool = slave_pool = None
        sources: list = []
        start = time.time()

        with trace_operation(
            "reconcile_task",
            kind=trace.SpanKind.INTERNAL,
            connection_pair=task.connection_pair_key,
            owner_count=len(task.owners),
            mode=self.mode.value,
        ):
            try:
                master_conn = self._open_side("master", task.master)
                slave_conn = self._open_side("slave", task.slave)

                if master_conn is not None and slave_conn is not None:
                    master_pool = self._open_pool("master", task.master)
                    slave_pool = self._open_pool("slave", task.slave)

                master = OrderedMetadataSource.from_connection(
                    master_conn, task.owners, policy, self.lister, name="master"
                )
                sources.append(master)
                slave = OrderedMetadataSource.from_connection(
                    slave_conn, task.owners, policy, self.lister, name="slave"
                )
                sources.append(slave)

                manifest = None
                if self.mode is ReconciliationMode.THREE_WAY:
                    manifest = ManifestSource(manifest_entries or [], owners=task.owners)
                    sources.append(manifest)

                comparator = DeepComparator(
                    master_pool,
                    slave_pool,
                    batch_size=self.settings.batch_size,
                    fetcher=self.fetcher,
                    cancel_event=self.cancel_event,
                    log=self.log,
                )
                merger = MergeReconciler(
                    self.mode,
                    comparator,
                    self.emit,
                    batch_size=self.settings.batch_size,
                    cancel_event=self.cancel_event,
                )
                stats = merger.run(master, slave, manifest)
                add_span_attributes(
                    conclusions=stats.conclusions,
                    master_rows=stats.master_rows,
                    slave_rows=stats.slave_rows,
                )
                return stats

            finally:
                for source in sources:
                    _close_quietly(source, f"{source.name} source")
                _close_quietly(master_pool, "master pool")
                _close_quietly(slave_pool, "slave pool")
                _close_quietly(master_conn, "master connection")
                _close_quietly(slave_conn, "slave connection")
                TASK_TIME.labels(mode=self.mode.value).observe(time.time() - start)
