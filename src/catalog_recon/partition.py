"""
Task partitioning.

Owners that resolve to the same (master, slave) connection pair are grouped
into one task, so each pair of databases is streamed exactly once.
"""

import logging
from collections.abc import Iterable

from catalog_recon.models import OwnerMapping, Task
from catalog_recon.utils.tracing import trace_function

logger = logging.getLogger(__name__)


def connection_pair_key(mapping: OwnerMapping) -> str:
    master_id = mapping.master.id if mapping.master else "null"
    slave_id = mapping.slave.id if mapping.slave else "null"
    return f"{master_id}_{slave_id}"


@trace_function("partition_tasks")
def partition_tasks(
    mappings: dict[str, OwnerMapping],
    manifest_owners: Iterable[str] | None = None,
) -> list[Task]:
    """
    Group owners into tasks by connection pair.

    Args:
        mappings: owner -> OwnerMapping
        manifest_owners: When given, only these owners are partitioned

    Returns:
        Tasks in first-seen order of their connection pair
    """
    wanted = {o.upper() for o in manifest_owners} if manifest_owners is not None else None
    tasks: dict[str, Task] = {}

    for owner, mapping in mappings.items():
        if wanted is not None and owner.upper() not in wanted:
            continue
        if mapping is None or (mapping.master is None and mapping.slave is None):
            logger.debug(f"Owner {owner} has no connection on either side, skipped")
            continue

        key = connection_pair_key(mapping)
        task = tasks.get(key)
        if task is None:
            task = Task(connection_pair_key=key, master=mapping.master, slave=mapping.slave)
            tasks[key] = task
        task.add_owner(owner)

    logger.info(f"Partitioned {sum(len(t.owners) for t in tasks.values())} owners into {len(tasks)} tasks")
    return list(tasks.values())
