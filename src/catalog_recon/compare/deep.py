"""
Deep comparison of object definitions.

Keys present on both live sides are compared by definition. A batch of keys
is processed concurrently: every key fetches its master and slave
definitions in parallel, each fetch holding one pooled connection only for
the duration of the fetch.
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opentelemetry import trace

from catalog_recon.errors import CancellationError
from catalog_recon.metrics import DEEP_COMPARISONS, DEFINITION_FETCH_TIME
from catalog_recon.models import ObjectRecord
from catalog_recon.sources.oracle import fetch_definition
from catalog_recon.utils.db_pool import BaseConnectionPool, ConnectionPoolError
from catalog_recon.utils.tracing import add_span_event, trace_operation

from .normalize import normalize_definition

logger = logging.getLogger(__name__)

# (connection, object_type, object_name, owner) -> definition or None
DefinitionFetcher = Callable[[Any, str, str, str], str | None]


class ComparisonResult(str, Enum):
    EQUAL = "equal"
    DIFFERENT = "different"
    FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class Comparison:
    record: ObjectRecord
    result: ComparisonResult
    detail: str | None = None


class DeepComparator:
    """
    Fetches, normalizes and compares definitions for batches of keys.

    At most ``batch_size`` keys are in flight, so at most ``batch_size``
    connections are held per side at any time.
    """

    def __init__(
        self,
        master_pool: BaseConnectionPool | None,
        slave_pool: BaseConnectionPool | None,
        batch_size: int = 10,
        fetcher: DefinitionFetcher = fetch_definition,
        normalizer: Callable[[str | None, str], str] = normalize_definition,
        cancel_event=None,
        log: Callable[[str], None] | None = None,
    ):
        """
        Initialize deep comparator.

        Args:
            master_pool: Definition pool of the master side
            slave_pool: Definition pool of the slave side
            batch_size: Maximum keys compared concurrently
            fetcher: Definition fetch function
            normalizer: Definition normalization function
            cancel_event: threading.Event checked before each batch
            log: Receives a human-readable line for every failed fetch and
                every difference, e.g. the job log
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.master_pool = master_pool
        self.slave_pool = slave_pool
        self.batch_size = batch_size
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.cancel_event = cancel_event
        self.log = log

    def _fetch(self, side: str, pool: BaseConnectionPool | None, record: ObjectRecord) -> str | None:
        if pool is None:
            return None

        start = time.time()
        try:
            with pool.acquire() as conn:
                return self.fetcher(conn, record.type, record.name, record.owner)
        except ConnectionPoolError as e:
            logger.warning(f"No {side} connection for {record.key}: {e}")
            return None
        except Exception as e:
            logger.error(f"Definition fetch error on {side} for {record.key}: {type(e).__name__}: {e}")
            return None
        finally:
            DEFINITION_FETCH_TIME.labels(side=side).observe(time.time() - start)

    def _decide(self, record: ObjectRecord, master_def: str | None, slave_def: str | None) -> Comparison:
        if master_def is None or slave_def is None:
            failed = "master" if master_def is None else "slave"
            if master_def is None and slave_def is None:
                failed = "master and slave"
            return Comparison(record, ComparisonResult.FETCH_FAILED, f"{failed} definition unavailable")

        try:
            master_norm = self.normalizer(master_def, record.type)
            slave_norm = self.normalizer(slave_def, record.type)
        except Exception as e:
            logger.error(f"Normalization failed for {record.key}: {type(e).__name__}: {e}")
            return Comparison(record, ComparisonResult.FETCH_FAILED, f"normalization failed: {e}")

        if master_norm == slave_norm:
            if record.timestamps_differ:
                logger.debug(f"{record.key}: definitions equal, last-modified times differ")
            return Comparison(record, ComparisonResult.EQUAL)
        return Comparison(record, ComparisonResult.DIFFERENT)

    def _report(self, comparison: Comparison) -> None:
        if self.log is None:
            return
        record = comparison.record
        label = f"{record.owner}.{record.name} ({record.type})"
        if comparison.result is ComparisonResult.FETCH_FAILED:
            self.log(f"Warning: Failed to fetch definition for {label}: {comparison.detail}")
        elif comparison.result is ComparisonResult.DIFFERENT:
            self.log(f"Info: {label} has different definitions")

    def compare_batch(self, records: list[ObjectRecord]) -> list[Comparison]:
        """
        Compare the definitions of a batch of both-sides keys.

        Args:
            records: At most ``batch_size`` records present in master and slave

        Returns:
            One Comparison per record, in input order

        Raises:
            CancellationError: If the cancellation event is set
        """
        if not records:
            return []
        if len(records) > self.batch_size:
            raise ValueError(f"Batch of {len(records)} exceeds batch_size {self.batch_size}")
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CancellationError("Deep comparison cancelled")

        with trace_operation(
            "deep_compare_batch",
            kind=trace.SpanKind.INTERNAL,
            batch_size=len(records),
        ):
            with ThreadPoolExecutor(
                max_workers=2 * len(records),
                thread_name_prefix="deep-compare",
            ) as executor:
                futures = [
                    (
                        record,
                        executor.submit(self._fetch, "master", self.master_pool, record),
                        executor.submit(self._fetch, "slave", self.slave_pool, record),
                    )
                    for record in records
                ]

                comparisons = []
                for record, master_future, slave_future in futures:
                    comparison = self._decide(record, master_future.result(), slave_future.result())
                    DEEP_COMPARISONS.labels(result=comparison.result.value).inc()
                    self._report(comparison)
                    comparisons.append(comparison)

            equal = sum(1 for c in comparisons if c.result is ComparisonResult.EQUAL)
            add_span_event(
                "batch_compared",
                equal=equal,
                failed=sum(1 for c in comparisons if c.result is ComparisonResult.FETCH_FAILED),
            )

        logger.debug(f"Compared batch of {len(records)}: {equal} equal")
        return comparisons
