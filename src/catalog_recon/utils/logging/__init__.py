"""
Logging for catalog reconciliation.

Usage:
    from catalog_recon.utils.logging import configure_from_env

    # once at startup; LOG_* environment variables fill unset arguments
    configure_from_env(level="INFO")

    logger = logging.getLogger(__name__)
    logger.info("Task finished", extra={"job_id": "analysis_...", "task": 2})
"""

from .config import configure_from_env, setup_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
