"""
Utility modules for catalog reconciliation

Provides:
- db_pool: thread-safe database connection pools
- logging: structured logging configuration
- tracing: OpenTelemetry span helpers
- retry: backoff retry for transient database errors
"""

__all__ = ["db_pool", "logging", "tracing", "retry"]
