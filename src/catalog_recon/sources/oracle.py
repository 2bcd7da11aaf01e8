"""
Oracle catalog access.

Provides the database-facing functions used by the engine:
- open_connection: dedicated (non-pooled) connection with retries
- list_objects: ordered ``ALL_OBJECTS`` stream for a set of owners
- configure_metadata_session: DBMS_METADATA transforms for comparable DDL
- fetch_definition: DDL text of one object
"""

import logging
from collections.abc import Iterator

import oracledb
from opentelemetry import trace

from catalog_recon.config import ExclusionPolicy
from catalog_recon.metrics import CONNECT_RETRIES
from catalog_recon.models import CatalogEntry, ConnectionRef
from catalog_recon.utils.retry import retry_database_operation
from catalog_recon.utils.tracing import trace_operation

logger = logging.getLogger(__name__)

# DBMS_METADATA object type names that differ from ALL_OBJECTS.OBJECT_TYPE
METADATA_TYPE_NAMES = {
    "DATABASE LINK": "DB_LINK",
    "JOB": "PROCOBJ",
    "PROGRAM": "PROCOBJ",
    "SCHEDULE": "PROCOBJ",
}

SESSION_TRANSFORMS = (
    ("SEGMENT_ATTRIBUTES", False),
    ("SQLTERMINATOR", True),
    ("STORAGE", False),
    ("TABLESPACE", False),
)


def open_connection(ref: ConnectionRef, retries: int = 2) -> oracledb.Connection:
    """
    Open a dedicated connection for a catalog stream.

    Transient listener and network failures are retried with backoff;
    authentication failures raise immediately.
    """

    def _count_retry(attempt: int, error: Exception, delay: float) -> None:
        CONNECT_RETRIES.labels(connection_id=ref.id).inc()

    @retry_database_operation(max_retries=retries, base_delay=0.5, max_delay=5.0, on_retry=_count_retry)
    def _connect() -> oracledb.Connection:
        with trace_operation(
            "oracle_connect",
            kind=trace.SpanKind.CLIENT,
            db_dsn=ref.dsn,
            db_user=ref.username,
        ):
            return oracledb.connect(user=ref.username, password=ref.password, dsn=ref.dsn)

    logger.debug(f"Opening catalog connection to {ref.display_name} ({ref.dsn})")
    return _connect()


def build_catalog_query(owner_count: int, policy: ExclusionPolicy) -> tuple[str, dict[str, str]]:
    """
    Build the catalog listing statement.

    Owners, excluded types and name patterns are all bound; nothing from
    the caller is interpolated into the SQL text.

    Returns:
        Tuple of (sql, bind template without owner values)
    """
    if owner_count < 1:
        raise ValueError("At least one owner is required")

    binds: dict[str, str] = {}
    owner_binds = ", ".join(f":owner{i}" for i in range(owner_count))

    conditions = [f"owner IN ({owner_binds})"]
    if policy.excluded_types:
        type_binds = []
        for i, object_type in enumerate(policy.excluded_types):
            binds[f"xtype{i}"] = object_type
            type_binds.append(f":xtype{i}")
        conditions.append(f"object_type NOT IN ({', '.join(type_binds)})")
    for i, pattern in enumerate(policy.excluded_name_patterns):
        binds[f"xname{i}"] = pattern
        conditions.append(f"object_name NOT LIKE :xname{i}")

    # Keys are compared upper-cased with binary ordering on the Python side
    sql = (
        "SELECT owner, object_name, object_type, last_ddl_time, status "
        "FROM all_objects "
        f"WHERE {' AND '.join(conditions)} "
        "ORDER BY NLSSORT(UPPER(owner), 'NLS_SORT=BINARY'), "
        "NLSSORT(UPPER(object_name), 'NLS_SORT=BINARY'), "
        "NLSSORT(UPPER(object_type), 'NLS_SORT=BINARY')"
    )
    return sql, binds


def list_objects(
    connection: oracledb.Connection,
    owners: list[str],
    policy: ExclusionPolicy,
    arraysize: int = 500,
) -> Iterator[CatalogEntry]:
    """
    Stream catalog entries of ``owners`` ordered by (owner, name, type).

    Rows are fetched ``arraysize`` at a time; the cursor stays open until
    the generator is exhausted or closed.
    """
    sql, binds = build_catalog_query(len(owners), policy)
    for i, owner in enumerate(owners):
        binds[f"owner{i}"] = owner.upper()

    cursor = connection.cursor()
    cursor.arraysize = arraysize
    cursor.prefetchrows = arraysize
    try:
        cursor.execute(sql, binds)
        for owner, name, object_type, last_ddl_time, status in cursor:
            yield CatalogEntry(
                owner=owner,
                name=name,
                type=object_type,
                last_modified=last_ddl_time,
                status=status,
            )
    finally:
        cursor.close()


def configure_metadata_session(connection: oracledb.Connection) -> None:
    """Strip storage clauses and add SQL terminators to DBMS_METADATA output."""
    statements = "".join(
        "DBMS_METADATA.SET_TRANSFORM_PARAM(DBMS_METADATA.SESSION_TRANSFORM, "
        f"'{param}', {'TRUE' if value else 'FALSE'}); "
        for param, value in SESSION_TRANSFORMS
    )
    with connection.cursor() as cursor:
        cursor.execute(f"BEGIN {statements}END;")


def metadata_type_name(object_type: str) -> str:
    upper = object_type.upper()
    return METADATA_TYPE_NAMES.get(upper, upper.replace(" ", "_"))


def fetch_definition(
    connection: oracledb.Connection,
    object_type: str,
    object_name: str,
    owner: str,
) -> str | None:
    """
    Fetch the DDL text of one object.

    Returns:
        Definition text, or None when the database refuses to produce it
        (missing privilege, unsupported type, object dropped meanwhile)
    """
    try:
        with connection.cursor() as cursor:
            cursor.execute(
                "SELECT DBMS_METADATA.GET_DDL(:object_type, :object_name, :owner) FROM DUAL",
                object_type=metadata_type_name(object_type),
                object_name=object_name,
                owner=owner,
            )
            row = cursor.fetchone()
    except oracledb.Error as e:
        logger.debug(f"Definition fetch failed for {owner}.{object_name} ({object_type}): {e}")
        return None

    if row is None or row[0] is None:
        return None

    value = row[0]
    if hasattr(value, "read"):
        value = value.read()
    return str(value)
