"""
Pytest configuration and fixtures for catalog reconciliation tests.

Provides in-memory stand-ins for databases: a fake connection holding a
catalog and definitions, a catalog lister, a definition fetcher and a
connection pool, so the engine runs end to end without Oracle.
"""

import threading
from contextlib import contextmanager
from functools import partial

import pytest

from catalog_recon.config import ReconcileSettings
from catalog_recon.engine import TaskRunner
from catalog_recon.jobs import InMemoryJobStore, JobController
from catalog_recon.models import CatalogEntry, ConnectionRef, ObjectKey, OwnerMapping


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "property: property-based test")


class FakeDatabase:
    """Catalog plus definitions of one database."""

    def __init__(self, entries=(), definitions=None, fail_after=None):
        self.entries = list(entries)
        self.definitions = dict(definitions or {})
        # Catalog streams raise after this many rows, like a dropped session
        self.fail_after = fail_after
        self.closed = False
        self.lists = 0

    def close(self):
        self.closed = True


def fake_lister(connection, owners, policy):
    connection.lists += 1
    wanted = {o.upper() for o in owners}
    selected = [
        e for e in connection.entries
        if e.owner.upper() in wanted and not policy.excludes(e.type, e.name)
    ]
    return _stream(sorted(selected, key=lambda e: e.key), connection.fail_after)


def _stream(entries, fail_after):
    for index, catalog_entry in enumerate(entries):
        if index == fail_after:
            raise ConnectionError("ORA-03113: end-of-file on communication channel")
        yield catalog_entry


def fake_fetcher(connection, object_type, object_name, owner):
    return connection.definitions.get(ObjectKey.of(owner, object_name, object_type))


class FakePool:
    """Pool handing out one shared FakeDatabase, tracking concurrency."""

    def __init__(self, database):
        self.database = database
        self.active = 0
        self.max_active = 0
        self.acquired = 0
        self.closed = False
        self._lock = threading.Lock()

    @contextmanager
    def acquire(self):
        with self._lock:
            self.active += 1
            self.acquired += 1
            self.max_active = max(self.max_active, self.active)
        try:
            yield self.database
        finally:
            with self._lock:
                self.active -= 1

    def close(self):
        self.closed = True


def entry(owner, name, object_type="TABLE", status="VALID"):
    return CatalogEntry(owner=owner, name=name, type=object_type, status=status)


def connection_ref(connection_id):
    return ConnectionRef(
        id=connection_id,
        host=f"{connection_id}.example.com",
        port=1521,
        service_name="ORCL",
        username="audit",
        password="secret",
    )


@pytest.fixture
def make_entry():
    return entry


@pytest.fixture
def make_ref():
    return connection_ref


@pytest.fixture
def fake_database():
    return FakeDatabase


@pytest.fixture
def fake_pool():
    return FakePool


@pytest.fixture
def fetcher():
    return fake_fetcher


@pytest.fixture
def lister():
    return fake_lister


@pytest.fixture
def settings(tmp_path):
    return ReconcileSettings(result_dir=str(tmp_path / "jobs"), pool_min_size=0)


@pytest.fixture
def databases():
    """connection id -> FakeDatabase; ids missing from the dict fail to connect."""
    return {}


@pytest.fixture
def pools():
    """connection id -> FakePool created by the runner factory."""
    return {}


@pytest.fixture
def runner_factory(databases, pools):
    def connect(ref):
        if ref.id not in databases:
            raise ConnectionError(f"listener refused connection to {ref.id}")
        return databases[ref.id]

    def pool_factory(ref):
        pool = FakePool(databases[ref.id])
        pools[ref.id] = pool
        return pool

    return partial(
        TaskRunner,
        connect=connect,
        lister=fake_lister,
        pool_factory=pool_factory,
        fetcher=fake_fetcher,
    )


@pytest.fixture
def controller(settings, runner_factory):
    return JobController(settings, store=InMemoryJobStore(), task_runner_factory=runner_factory)


@pytest.fixture
def two_sided_mapping():
    def build(*owners, master="prod", slave="stage"):
        return {
            owner: OwnerMapping(
                master=connection_ref(master) if master else None,
                slave=connection_ref(slave) if slave else None,
            )
            for owner in owners
        }

    return build
