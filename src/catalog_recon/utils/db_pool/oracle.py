"""Oracle definition pool (python-oracledb thin mode)."""

import logging
from collections.abc import Callable
from typing import Any

import oracledb
from opentelemetry import trace

from catalog_recon.models import ConnectionRef
from catalog_recon.utils.tracing import trace_operation

from .base import BaseConnectionPool

logger = logging.getLogger(__name__)


class OracleConnectionPool(BaseConnectionPool):
    """
    Pool of oracledb connections to one environment.

    ``session_callback`` runs once on every new connection, e.g. to set the
    DBMS_METADATA transforms that definition fetches depend on. A failing
    callback is logged and the connection is kept.
    """

    def __init__(
        self,
        user: str,
        password: str | None,
        dsn: str,
        session_callback: Callable[[oracledb.Connection], None] | None = None,
        **kwargs: Any,
    ):
        self.user = user
        self.password = password
        self.dsn = dsn
        self.session_callback = session_callback
        super().__init__(**kwargs)

    @classmethod
    def for_connection(cls, ref: ConnectionRef, **kwargs: Any) -> "OracleConnectionPool":
        """Pool for a mapped connection, named after its id."""
        return cls(user=ref.username, password=ref.password, dsn=ref.dsn, pool_name=ref.id, **kwargs)

    def _connect(self) -> oracledb.Connection:
        with trace_operation("oracle_connect", kind=trace.SpanKind.CLIENT, dsn=self.dsn, user=self.user):
            conn = oracledb.connect(user=self.user, password=self.password, dsn=self.dsn)
        if self.session_callback is not None:
            try:
                self.session_callback(conn)
            except oracledb.Error as e:
                logger.warning(f"Session setup failed on {self.dsn}: {e}")
        return conn

    def _ping(self, conn: oracledb.Connection | None) -> bool:
        if conn is None:
            return False
        try:
            conn.ping()
        except oracledb.Error:
            return False
        return True

    def _disconnect(self, conn: oracledb.Connection | None) -> None:
        if conn is None:
            return
        try:
            conn.close()
        except oracledb.Error as e:
            logger.debug(f"Ignoring close error on {self.dsn}: {e}")
