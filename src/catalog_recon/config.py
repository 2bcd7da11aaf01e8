"""
Runtime settings for catalog reconciliation.

Settings are read from environment variables by ``ReconcileSettings.from_env``;
every value has a default suitable for a single-host deployment.
"""

import logging
import os
from dataclasses import dataclass, field

from catalog_recon.errors import ConfigurationError
from catalog_recon.models import ReconciliationMode

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

# Generated segment types never carry a definition worth comparing
BASE_EXCLUDED_TYPES = (
    "LOB",
    "LOB PARTITION",
    "INDEX PARTITION",
    "TABLE PARTITION",
)

# Recycle bin objects
EXCLUDED_NAME_PATTERNS = ("BIN$%",)


@dataclass(frozen=True)
class ExclusionPolicy:
    """
    Catalog filter applied by the metadata source.

    ``excluded_types`` are dropped by object type and ``excluded_name_patterns``
    are SQL ``LIKE`` patterns dropped by object name.
    """

    excluded_types: tuple[str, ...] = BASE_EXCLUDED_TYPES
    excluded_name_patterns: tuple[str, ...] = EXCLUDED_NAME_PATTERNS

    @classmethod
    def for_mode(cls, mode: ReconciliationMode) -> "ExclusionPolicy":
        if mode is ReconciliationMode.THREE_WAY:
            return cls(excluded_types=BASE_EXCLUDED_TYPES + ("INDEX", "SEQUENCE"))
        return cls()

    def excludes(self, object_type: str, object_name: str) -> bool:
        """Python-side mirror of the SQL filter, for sources that cannot push it down."""
        if object_type.upper() in self.excluded_types:
            return True
        for pattern in self.excluded_name_patterns:
            if pattern.endswith("%") and object_name.startswith(pattern[:-1]):
                return True
            if object_name == pattern:
                return True
        return False


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class ReconcileSettings:
    """
    Tunables for the reconciliation engine and job controller.

    Attributes:
        result_dir: Directory that receives one sub-directory per job
        batch_size: Both-sides keys compared concurrently per flush
        pool_min_size: Connections opened eagerly per definition pool
        pool_max_size: Upper bound of connections per definition pool
        acquire_timeout: Seconds to wait for a pooled connection
        fetch_arraysize: Rows fetched per round trip from the catalog stream
        job_store: ``memory`` or ``file``
        state_dir: Directory for the file job store
        connect_retries: Retries for transient connection failures
    """

    result_dir: str = "./temp_jobs"
    batch_size: int = DEFAULT_BATCH_SIZE
    pool_min_size: int = 2
    pool_max_size: int = 10
    acquire_timeout: float = 30.0
    fetch_arraysize: int = 500
    job_store: str = "memory"
    state_dir: str = "./reconciliation_state"
    connect_retries: int = 2
    exclusions: dict[ReconciliationMode, ExclusionPolicy] = field(
        default_factory=lambda: {mode: ExclusionPolicy.for_mode(mode) for mode in ReconciliationMode}
    )

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.pool_min_size < 0 or self.pool_max_size < 1:
            raise ConfigurationError("pool sizes must be positive")
        if self.pool_min_size > self.pool_max_size:
            raise ConfigurationError(
                f"pool_min_size ({self.pool_min_size}) exceeds pool_max_size ({self.pool_max_size})"
            )
        if self.batch_size > self.pool_max_size:
            raise ConfigurationError(
                f"batch_size ({self.batch_size}) cannot exceed pool_max_size "
                f"({self.pool_max_size}); each concurrent comparison holds one "
                "connection per side"
            )
        if self.job_store not in ("memory", "file"):
            raise ConfigurationError(f"Unknown job store: {self.job_store}")

    def exclusion_policy(self, mode: ReconciliationMode) -> ExclusionPolicy:
        return self.exclusions[mode]

    @classmethod
    def from_env(cls) -> "ReconcileSettings":
        """
        Build settings from environment variables

        Environment variables:
            RECON_RESULT_DIR: Result directory (default: ./temp_jobs)
            RECON_BATCH_SIZE: Deep comparison batch size (default: 10)
            RECON_POOL_MIN: Minimum pool size (default: 2)
            RECON_POOL_MAX: Maximum pool size (default: 10)
            RECON_ACQUIRE_TIMEOUT: Pool acquire timeout in seconds (default: 30)
            RECON_FETCH_ARRAYSIZE: Catalog fetch array size (default: 500)
            RECON_JOB_STORE: memory or file (default: memory)
            RECON_STATE_DIR: File job store directory (default: ./reconciliation_state)
            RECON_CONNECT_RETRIES: Connection retries (default: 2)
        """
        settings = cls(
            result_dir=os.getenv("RECON_RESULT_DIR", "./temp_jobs"),
            batch_size=_env_int("RECON_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            pool_min_size=_env_int("RECON_POOL_MIN", 2),
            pool_max_size=_env_int("RECON_POOL_MAX", 10),
            acquire_timeout=_env_float("RECON_ACQUIRE_TIMEOUT", 30.0),
            fetch_arraysize=_env_int("RECON_FETCH_ARRAYSIZE", 500),
            job_store=os.getenv("RECON_JOB_STORE", "memory").lower(),
            state_dir=os.getenv("RECON_STATE_DIR", "./reconciliation_state"),
            connect_retries=_env_int("RECON_CONNECT_RETRIES", 2),
        )
        logger.debug(f"Loaded settings from environment: {settings}")
        return settings
