"""Exception hierarchy for catalog reconciliation."""


class CatalogReconError(Exception):
    """Base exception for all catalog reconciliation errors."""

    pass


class ConfigurationError(CatalogReconError):
    """Raised for invalid settings, mappings or manifest input."""

    pass


class JobNotFoundError(CatalogReconError):
    """Raised when a job id is unknown to the job store."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class JobNotReadyError(CatalogReconError):
    """Raised when a result is requested before the job has completed."""

    def __init__(self, job_id: str, status: str):
        super().__init__(f"Job {job_id} is {status}, result is only available once COMPLETED")
        self.job_id = job_id
        self.status = status


class SinkError(CatalogReconError):
    """Raised when the result sink cannot be written. Fatal for the job."""

    pass


class CancellationError(CatalogReconError):
    """Raised when a job is cancelled via its cancellation token."""

    pass


class ConnectionPoolError(CatalogReconError):
    """Raised when a definition pool cannot hand out a connection."""

    pass


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes free within the acquire timeout."""

    pass


class PoolClosedError(ConnectionPoolError):
    """Raised when acquiring from a pool that was closed."""

    pass
