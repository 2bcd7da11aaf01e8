"""
Core data model for catalog reconciliation.

Every source (database catalog stream or manifest) converts its rows into
``CatalogEntry`` at its own boundary; the merge engine only ever sees
``ObjectKey``/``CatalogEntry`` and produces immutable ``Conclusion`` records.
"""

import copy
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from catalog_recon.errors import ConfigurationError


class ObjectKey(NamedTuple):
    """Case-normalized (owner, name, type) triple; the merge/sort key."""

    owner: str
    name: str
    type: str

    @classmethod
    def of(cls, owner: str | None, name: str | None, object_type: str | None) -> "ObjectKey":
        return cls(
            (owner or "").upper(),
            (name or "").upper(),
            (object_type or "").upper(),
        )

    def __str__(self) -> str:
        return f"{self.owner}.{self.name} ({self.type})"


class _ExhaustedKey:
    """Sorts after every ObjectKey; stands in for an exhausted cursor."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __lt__(self, other):
        return False

    def __le__(self, other):
        return other is self

    def __gt__(self, other):
        return other is not self

    def __ge__(self, other):
        return True

    def __repr__(self) -> str:
        return "EXHAUSTED"


EXHAUSTED = _ExhaustedKey()


@dataclass(frozen=True)
class CatalogEntry:
    """One object as presented by a single source."""

    owner: str
    name: str
    type: str
    last_modified: datetime | None = None
    status: str | None = None

    @property
    def key(self) -> ObjectKey:
        return ObjectKey.of(self.owner, self.name, self.type)

    @classmethod
    def from_mapping(cls, row: dict[str, Any]) -> "CatalogEntry":
        """
        Build an entry from a manifest or catalog row.

        Accepts ``owner``/``name``/``type`` as well as catalog column names
        (``OWNER``/``OBJECT_NAME``/``OBJECT_TYPE``).
        """
        lowered = {str(k).lower(): v for k, v in row.items()}
        owner = lowered.get("owner")
        name = lowered.get("name", lowered.get("object_name"))
        object_type = lowered.get("type", lowered.get("object_type"))
        if not owner or not name or not object_type:
            raise ConfigurationError(f"Record is missing owner, name or type: {row!r}")
        return cls(
            owner=str(owner).strip(),
            name=str(name).strip(),
            type=str(object_type).strip(),
            last_modified=lowered.get("last_modified", lowered.get("last_ddl_time")),
            status=lowered.get("status"),
        )


@dataclass
class ObjectRecord:
    """
    Merged view of one key across the sources of a task.

    Metadata fields come from master when it presented the key, else from
    slave, else from the manifest.
    """

    key: ObjectKey
    owner: str
    name: str
    type: str
    in_master: bool
    in_slave: bool
    in_manifest: bool | None = None
    master: CatalogEntry | None = None
    slave: CatalogEntry | None = None

    @property
    def master_status(self) -> str | None:
        return self.master.status if self.master else None

    @property
    def slave_status(self) -> str | None:
        return self.slave.status if self.slave else None

    @property
    def timestamps_differ(self) -> bool:
        """Diagnostic only; never used to classify."""
        master_ts = self.master.last_modified if self.master else None
        slave_ts = self.slave.last_modified if self.slave else None
        return master_ts != slave_ts


class ConclusionKind(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Outcome(str, Enum):
    """Machine-readable reason behind a conclusion, used for summary counters."""

    MISSING_IN_SLAVE = "missing_in_slave"
    MASTER_ONLY = "master_only"
    NEW_READY_TO_PROMOTE = "new_ready_to_promote"
    UNDECLARED_SLAVE_ONLY = "undeclared_slave_only"
    MISSING_EVERYWHERE = "missing_everywhere"
    MISSING_UPSTREAM = "missing_upstream"
    IN_SYNC = "in_sync"
    READY_TO_SYNC = "ready_to_sync"
    UNDECLARED_DRIFT = "undeclared_drift"
    CONTENT_MISMATCH = "content_mismatch"
    FETCH_FAILED = "fetch_failed"


MISSING_OUTCOMES = frozenset({
    Outcome.MISSING_IN_SLAVE,
    Outcome.MISSING_EVERYWHERE,
})

NEW_OUTCOMES = frozenset({
    Outcome.NEW_READY_TO_PROMOTE,
    Outcome.MISSING_UPSTREAM,
})


@dataclass(frozen=True)
class Conclusion:
    """Classified outcome for one object key. Written once to the result sink."""

    owner: str
    name: str
    type: str
    in_master: bool
    in_slave: bool
    in_manifest: bool | None
    master_status: str | None
    slave_status: str | None
    text: str
    kind: ConclusionKind
    outcome: Outcome

    @property
    def key(self) -> ObjectKey:
        return ObjectKey.of(self.owner, self.name, self.type)

    @classmethod
    def for_record(
        cls,
        record: ObjectRecord,
        text: str,
        kind: ConclusionKind,
        outcome: Outcome,
    ) -> "Conclusion":
        return cls(
            owner=record.owner,
            name=record.name,
            type=record.type,
            in_master=record.in_master,
            in_slave=record.in_slave,
            in_manifest=record.in_manifest,
            master_status=record.master_status,
            slave_status=record.slave_status,
            text=text,
            kind=kind,
            outcome=outcome,
        )


@dataclass(frozen=True)
class ConnectionRef:
    """Connection descriptor supplied by the connection-mapping collaborator."""

    id: str
    host: str
    port: int
    service_name: str
    username: str
    password: str | None = field(default=None, repr=False)
    name: str | None = None

    @property
    def dsn(self) -> str:
        return f"{self.host}:{self.port}/{self.service_name}"

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectionRef":
        try:
            return cls(
                id=str(data["id"]),
                host=data["host"],
                port=int(data.get("port", 1521)),
                service_name=data.get("service_name") or data["serviceName"],
                username=data["username"],
                password=data.get("password"),
                name=data.get("name"),
            )
        except KeyError as e:
            raise ConfigurationError(f"Connection descriptor is missing {e}") from e


@dataclass
class OwnerMapping:
    master: ConnectionRef | None = None
    slave: ConnectionRef | None = None


@dataclass
class Task:
    """
    A group of owners that share one (master, slave) connection pair.

    ``owners`` keeps first-seen order and holds no duplicates.
    """

    connection_pair_key: str
    master: ConnectionRef | None
    slave: ConnectionRef | None
    owners: list[str] = field(default_factory=list)

    def add_owner(self, owner: str) -> None:
        if owner not in self.owners:
            self.owners.append(owner)

    def describe_owners(self, limit: int = 3) -> str:
        shown = ", ".join(self.owners[:limit])
        if len(self.owners) > limit:
            shown += f"... (+{len(self.owners) - limit})"
        return shown


class ReconciliationMode(str, Enum):
    TWO_WAY = "two_way"
    THREE_WAY = "three_way"


class JobStatus(str, Enum):
    STARTING = "STARTING"
    PREPARING = "PREPARING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


@dataclass
class JobSummary:
    processed: int = 0
    diffs: int = 0
    missing: int = 0
    new: int = 0
    master_rows: int = 0
    slave_rows: int = 0
    manifest_rows: int = 0
    active_tasks: int = 0
    # Tasks whose result rows are incomplete
    failed_tasks: int = 0

    def record(self, conclusion: Conclusion) -> None:
        self.processed += 1
        if conclusion.kind is not ConclusionKind.SUCCESS:
            self.diffs += 1
        if conclusion.outcome in MISSING_OUTCOMES:
            self.missing += 1
        if conclusion.outcome in NEW_OUTCOMES:
            self.new += 1


@dataclass
class Job:
    """
    Progress and log state of one reconciliation run.

    Only the job-processing routine mutates a Job; pollers receive copies
    from ``snapshot()``.
    """

    id: str
    mode: ReconciliationMode
    result_location: str
    status: JobStatus = JobStatus.STARTING
    progress: int = 0
    total: int = 0
    total_tasks: int = 0
    processed_task_index: int = 0
    summary: JobSummary = field(default_factory=JobSummary)
    logs: list[str] = field(default_factory=list)
    error: str | None = None
    created_at: datetime | None = None
    finished_at: datetime | None = None

    def snapshot(self) -> "Job":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        created_at = data.get("created_at")
        finished_at = data.get("finished_at")
        return cls(
            id=data["id"],
            mode=ReconciliationMode(data["mode"]),
            result_location=data["result_location"],
            status=JobStatus(data["status"]),
            progress=data.get("progress", 0),
            total=data.get("total", 0),
            total_tasks=data.get("total_tasks", 0),
            processed_task_index=data.get("processed_task_index", 0),
            summary=JobSummary(**data.get("summary", {})),
            logs=list(data.get("logs", [])),
            error=data.get("error"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            finished_at=datetime.fromisoformat(finished_at) if finished_at else None,
        )
