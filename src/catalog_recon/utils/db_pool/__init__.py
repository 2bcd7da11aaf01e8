"""
Connection pools for definition fetches.

Pools are thread-safe, bounded, health-checked and publish their sizes as
Prometheus gauges labelled by connection id.
"""

from catalog_recon.errors import ConnectionPoolError, PoolClosedError, PoolExhaustedError

from .base import BaseConnectionPool, PooledConnection
from .oracle import OracleConnectionPool

__all__ = [
    "BaseConnectionPool",
    "OracleConnectionPool",
    "PooledConnection",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
]
