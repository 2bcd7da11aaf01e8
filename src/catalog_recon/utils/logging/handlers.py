"""
Context-carrying logger wrapper.
"""

import logging
from typing import Any


class ContextLogger:
    """
    Wraps a standard logger and attaches fixed context to every record.

    Keyword arguments of a single call are merged over the fixed context for
    that record only; ``update_context`` changes the fixed context.

    Usage:
        logger = ContextLogger("catalog_recon.jobs", job_id="analysis_...")
        logger.info("Task finished", task=3)
    """

    def __init__(self, name: str, **context):
        """
        Args:
            name: Name of the wrapped standard logger
            **context: Fields attached to every record, e.g. ``job_id``
        """
        self.logger = logging.getLogger(name)
        self.context = dict(context)

    def _log(self, level: int, msg: str, *args, exc_info=None, **kwargs) -> None:
        """
        Emit one record with the fixed context plus per-call fields.

        Args:
            level: Standard logging level
            msg: Message, %-formatted with ``args``
            *args: Message format arguments
            exc_info: Passed through to the standard logger
            **kwargs: Fields for this record only; they win over the fixed context
        """
        self.logger.log(level, msg, *args, exc_info=exc_info, extra={**self.context, **kwargs})

    def debug(self, msg: str, *args, **kwargs) -> None:
        """Log at DEBUG with context."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        """Log at INFO with context."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        """Log at WARNING with context."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, exc_info=None, **kwargs) -> None:
        """Log at ERROR with context; pass ``exc_info=True`` to attach the traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def update_context(self, **context) -> None:
        """
        Add or replace fixed context fields.

        Args:
            **context: Fields attached to every later record
        """
        self.context.update(context)

    def get_context(self) -> dict[str, Any]:
        """Copy of the fixed context."""
        return dict(self.context)
