"""
Definition connection pool.

Each reconciliation task with two live sides opens one pool per side. Deep
comparison borrows a connection for exactly one definition fetch, so the
pool bounds how many fetches run against a database at once. Connections
are opened lazily, health-checked on checkout and in the background, and
recycled once idle or old.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from queue import Empty, Queue
from typing import Any

from opentelemetry import trace

from catalog_recon.errors import ConnectionPoolError, PoolClosedError, PoolExhaustedError
from catalog_recon.metrics import (
    POOL_ACQUIRE_TIME,
    POOL_CONNECTIONS,
    POOL_ERRORS,
    POOL_IN_USE,
    POOL_WAITS,
)
from catalog_recon.utils.tracing import trace_operation

logger = logging.getLogger(__name__)


@dataclass
class PooledConnection:
    """A driver connection plus the bookkeeping used to decide when to recycle it."""

    connection: Any
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = time.monotonic()
        self.use_count += 1


class BaseConnectionPool:
    """
    Bounded pool of driver connections.

    Subclasses implement ``_connect``, ``_ping`` and ``_disconnect``.
    ``min_size`` connections are opened up front so that an unreachable
    database fails the pool's construction instead of every fetch; with
    ``min_size=0`` nothing is opened until the first ``acquire``.
    """

    def __init__(
        self,
        min_size: int = 2,
        max_size: int = 10,
        max_idle_time: float = 300,
        max_lifetime: float = 3600,
        health_check_interval: float = 60,
        acquire_timeout: float = 30.0,
        pool_name: str = "default",
    ):
        """
        Args:
            min_size: Connections opened at construction
            max_size: Upper bound of open connections
            max_idle_time: Seconds an idle connection is kept
            max_lifetime: Seconds after which a connection is replaced
            health_check_interval: Seconds between background health checks
            acquire_timeout: Seconds ``acquire`` waits for a free connection
            pool_name: Connection id; labels logs and metrics

        Raises:
            ValueError: If the sizes are inconsistent
            ConnectionPoolError: If ``min_size > 0`` and no connection opened
        """
        if max_size < 1 or min_size < 0 or min_size > max_size:
            raise ValueError(f"Invalid pool sizes: min_size={min_size}, max_size={max_size}")

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = max_idle_time
        self.max_lifetime = max_lifetime
        self.health_check_interval = health_check_interval
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._idle: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._open: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = False
        self._stop_event = threading.Event()

        self._fill()

        self._health_thread = threading.Thread(
            target=self._health_loop, name=f"pool-health-{pool_name}", daemon=True
        )
        self._health_thread.start()
        logger.debug(f"Pool '{pool_name}' ready (min={min_size}, max={max_size})")

    # Driver hooks

    def _connect(self) -> Any:
        raise NotImplementedError

    def _ping(self, conn: Any) -> bool:
        raise NotImplementedError

    def _disconnect(self, conn: Any) -> None:
        raise NotImplementedError

    # Bookkeeping

    def _fill(self) -> None:
        last_error: Exception | None = None
        for _ in range(self.min_size):
            try:
                self._idle.put_nowait(self._open_connection())
            except Exception as e:
                last_error = e
                logger.warning(f"Pool '{self.pool_name}': initial connection failed: {e}")
                self._count_error("initialization")
        self._publish_sizes()

        if last_error is not None and not self._open:
            raise ConnectionPoolError(
                f"Could not open any connection for pool '{self.pool_name}': {last_error}"
            ) from last_error

    def _open_connection(self) -> PooledConnection:
        pooled = PooledConnection(connection=self._connect())
        with self._lock:
            self._open.append(pooled)
        return pooled

    def _discard(self, pooled: PooledConnection) -> None:
        try:
            self._disconnect(pooled.connection)
        except Exception as e:
            logger.warning(f"Pool '{self.pool_name}': error closing connection: {e}")
        finally:
            with self._lock:
                if pooled in self._open:
                    self._open.remove(pooled)

    def _count_error(self, error_type: str) -> None:
        POOL_ERRORS.labels(connection_id=self.pool_name, error_type=error_type).inc()

    def _publish_sizes(self) -> None:
        with self._lock:
            total = len(self._open)
            in_use = total - self._idle.qsize()
        POOL_CONNECTIONS.labels(connection_id=self.pool_name).set(total)
        POOL_IN_USE.labels(connection_id=self.pool_name).set(in_use)

    def _is_usable(self, pooled: PooledConnection) -> bool:
        """Too old, idle too long or failing its ping means the connection is replaced."""
        now = time.monotonic()
        if now - pooled.created_at > self.max_lifetime:
            return False
        if now - pooled.last_used > self.max_idle_time:
            return False
        try:
            return bool(self._ping(pooled.connection))
        except Exception as e:
            logger.warning(f"Pool '{self.pool_name}': health check failed: {e}")
            self._count_error("health_check")
            return False

    def _health_loop(self) -> None:
        while not self._stop_event.wait(self.health_check_interval):
            try:
                self.check_idle_connections()
            except Exception as e:
                logger.error(f"Pool '{self.pool_name}': health check error: {e}")

    def check_idle_connections(self) -> int:
        """
        Health-check every idle connection, discarding unusable ones.

        Returns:
            Number of connections discarded
        """
        if self._closed:
            return 0

        idle = []
        while True:
            try:
                idle.append(self._idle.get_nowait())
            except Empty:
                break

        discarded = 0
        for pooled in idle:
            if self._is_usable(pooled):
                self._idle.put_nowait(pooled)
            else:
                self._discard(pooled)
                discarded += 1

        if discarded:
            logger.info(f"Pool '{self.pool_name}': recycled {discarded} idle connections")
        self._publish_sizes()
        return discarded

    def _exhausted(self) -> PoolExhaustedError:
        return PoolExhaustedError(f"Pool '{self.pool_name}': no connection within {self.acquire_timeout}s")

    def _checkout(self, deadline: float) -> PooledConnection:
        """An idle connection, a new one while under ``max_size``, or wait for a return."""
        if time.monotonic() >= deadline:
            raise self._exhausted()

        try:
            return self._idle.get_nowait()
        except Empty:
            pass

        with self._lock:
            if len(self._open) < self.max_size:
                try:
                    return self._open_connection()
                except Exception as e:
                    self._count_error("creation")
                    raise ConnectionPoolError(
                        f"Pool '{self.pool_name}': failed to open connection: {e}"
                    ) from e

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise self._exhausted()
        POOL_WAITS.labels(connection_id=self.pool_name).inc()
        try:
            return self._idle.get(timeout=remaining)
        except Empty:
            raise self._exhausted() from None

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of the ``with`` block.

        The connection goes back to the pool when the block exits, raised or
        not; if the pool was closed meanwhile it is closed instead.

        Raises:
            PoolClosedError: If the pool is closed
            PoolExhaustedError: If no connection frees up within ``acquire_timeout``
            ConnectionPoolError: If a new connection cannot be opened
        """
        if self._closed:
            raise PoolClosedError(f"Pool '{self.pool_name}' is closed")

        started = time.monotonic()
        deadline = started + self.acquire_timeout
        pooled: PooledConnection | None = None

        with trace_operation("db_pool_acquire", kind=trace.SpanKind.CLIENT, connection_id=self.pool_name):
            try:
                while True:
                    pooled = self._checkout(deadline)
                    if self._is_usable(pooled):
                        break
                    self._discard(pooled)
                    pooled = None

                pooled.mark_used()
                self._publish_sizes()
                POOL_ACQUIRE_TIME.labels(connection_id=self.pool_name).observe(time.monotonic() - started)

                yield pooled.connection
            finally:
                if pooled is not None:
                    if self._closed:
                        self._discard(pooled)
                    else:
                        self._idle.put_nowait(pooled)
                        self._publish_sizes()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close every connection and stop the health thread. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()

        with self._lock:
            while True:
                try:
                    self._idle.get_nowait()
                except Empty:
                    break
            for pooled in list(self._open):
                self._discard(pooled)

        self._publish_sizes()
        logger.debug(f"Pool '{self.pool_name}' closed")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = len(self._open)
            idle = self._idle.qsize()
        return {
            "pool_name": self.pool_name,
            "total_connections": total,
            "idle_connections": idle,
            "active_connections": total - idle,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "closed": self._closed,
        }
