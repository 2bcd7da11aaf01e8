"""
Loading of owner mappings and manifests from files.

Mappings file (JSON)::

    {
      "HR":  {"master": {"id": "prod", "host": "...", "port": 1521,
                         "service_name": "ORCL", "username": "audit"},
              "slave":  {...}},
      "OPS": {"master": null, "slave": {...}}
    }

A connection without a ``password`` takes it from the environment variable
``RECON_PASSWORD_<CONNECTION_ID>`` (id upper-cased, non-alphanumerics as
underscores).

Manifest file: JSON list of ``{owner, name, type}`` objects, or CSV with
``OWNER``, ``NAME`` (or ``OBJECT_NAME``) and ``TYPE`` (or ``OBJECT_TYPE``)
columns.
"""

import csv
import json
import logging
import os
import re
from dataclasses import replace
from pathlib import Path
from typing import Any

from catalog_recon.errors import ConfigurationError
from catalog_recon.models import CatalogEntry, ConnectionRef, OwnerMapping

logger = logging.getLogger(__name__)

PASSWORD_ENV_PREFIX = "RECON_PASSWORD_"


def password_env_var(connection_id: str) -> str:
    return PASSWORD_ENV_PREFIX + re.sub(r"[^A-Z0-9]", "_", connection_id.upper())


def _resolve_connection(data: dict[str, Any] | None, owner: str, side: str) -> ConnectionRef | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigurationError(f"Owner {owner}: {side} must be an object or null")

    ref = ConnectionRef.from_dict(data)
    if ref.password is None:
        password = os.getenv(password_env_var(ref.id))
        if password is None:
            logger.warning(
                f"No password for connection {ref.id}; set {password_env_var(ref.id)}"
            )
        else:
            ref = replace(ref, password=password)
    return ref


def parse_mappings(data: dict[str, Any]) -> dict[str, OwnerMapping]:
    """Convert the decoded mappings document into OwnerMapping values."""
    if not isinstance(data, dict):
        raise ConfigurationError("Mappings must be a JSON object keyed by owner")

    mappings = {}
    for owner, sides in data.items():
        sides = sides or {}
        mappings[owner.upper()] = OwnerMapping(
            master=_resolve_connection(sides.get("master"), owner, "master"),
            slave=_resolve_connection(sides.get("slave"), owner, "slave"),
        )
    return mappings


def load_mappings(path: str) -> dict[str, OwnerMapping]:
    """
    Load owner mappings from a JSON file.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read mappings file {path}: {e}") from e

    mappings = parse_mappings(data)
    logger.info(f"Loaded {len(mappings)} owner mappings from {path}")
    return mappings


def load_manifest(path: str) -> list[CatalogEntry]:
    """
    Load manifest entries from a JSON or CSV file (by extension).

    Raises:
        ConfigurationError: If the file is missing or a record is incomplete
    """
    try:
        if Path(path).suffix.lower() == ".csv":
            with open(path, newline="", encoding="utf-8-sig") as f:
                rows = list(csv.DictReader(f))
        else:
            with open(path) as f:
                rows = json.load(f)
    except (OSError, json.JSONDecodeError, csv.Error) as e:
        raise ConfigurationError(f"Cannot read manifest file {path}: {e}") from e

    if not isinstance(rows, list):
        raise ConfigurationError(f"Manifest {path} must be a list of records")

    entries = [CatalogEntry.from_mapping(row) for row in rows]
    logger.info(f"Loaded {len(entries)} manifest entries from {path}")
    return entries
