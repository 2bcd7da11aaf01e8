"""
Span helpers.

Attributes are namespaced under ``recon.`` so reconciliation spans can be
queried apart from driver or exporter attributes.
"""

from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .tracer import get_tracer

ATTRIBUTE_PREFIX = "recon."


def _attribute_value(value):
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


@contextmanager
def trace_operation(
    operation_name: str,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    **attributes
):
    """
    Run the body inside a span.

    An exception escaping the body marks the span as failed, is recorded on
    it and re-raised.

    Args:
        operation_name: Span name, e.g. ``reconcile_task``
        kind: Span kind; CLIENT for database round trips
        **attributes: Attributes set on the span as ``recon.<key>``

    Yields:
        The span

    Example:
        >>> with trace_operation("reconcile_task", owner_count=3) as span:
        ...     stats = merger.run(master, slave)
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(operation_name, kind=kind) as span:
        for key, value in attributes.items():
            span.set_attribute(ATTRIBUTE_PREFIX + key, _attribute_value(value))

        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, f"{type(e).__name__}: {e}"))
            span.record_exception(e)
            raise


def add_span_attributes(**attributes) -> None:
    """Set attributes on the current span, if it is recording."""
    span = trace.get_current_span()
    if not span.is_recording():
        return
    for key, value in attributes.items():
        span.set_attribute(ATTRIBUTE_PREFIX + key, _attribute_value(value))


def add_span_event(name: str, **attributes) -> None:
    """Add an event to the current span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes={
            ATTRIBUTE_PREFIX + key: _attribute_value(value) for key, value in attributes.items()
        })
