"""
Tracing decorator.
"""

import functools

from .context import trace_operation


def trace_function(operation_name: str | None = None, **default_attributes):
    """
    Wrap every call of the decorated function in a span.

    The span is named ``operation_name`` or ``<module>.<function>`` and
    carries ``recon.function`` plus the given attributes.

    Example:
        >>> @trace_function("partition_tasks")
        ... def partition_tasks(mappings, manifest_owners=None):
        ...     ...
    """
    def decorator(func):
        name = operation_name or f"{func.__module__}.{func.__name__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with trace_operation(name, function=func.__name__, **default_attributes):
                return func(*args, **kwargs)

        return wrapper
    return decorator
