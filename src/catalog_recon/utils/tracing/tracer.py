"""
OpenTelemetry tracer setup.

Without ``initialize_tracing`` every span goes to the global provider, a
no-op unless the host process installed one. With it, spans are batched to
an OTLP collector and/or the console.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter

from catalog_recon import __version__

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_NAME = "catalog-reconcile"

_provider: TracerProvider | None = None
_tracer: trace.Tracer | None = None


def _exporters(otlp_endpoint: str | None, console_export: bool) -> dict[str, SpanExporter]:
    exporters: dict[str, SpanExporter] = {}
    if otlp_endpoint:
        exporters["otlp"] = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    if console_export:
        exporters["console"] = ConsoleSpanExporter()
    return exporters


def initialize_tracing(
    service_name: str = DEFAULT_SERVICE_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider exporting reconciliation spans.

    Calling it again returns the tracer of the first call.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP gRPC collector, e.g. ``http://localhost:4317``;
            defaults to the OTLP_ENDPOINT environment variable
        console_export: Also print spans (TRACE_CONSOLE=true does the same)

    Returns:
        Tracer bound to the new provider
    """
    global _provider, _tracer

    if _tracer is not None:
        logger.warning("Tracing already initialized")
        return _tracer

    exporters = _exporters(
        otlp_endpoint or os.getenv("OTLP_ENDPOINT"),
        console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true",
    )

    _provider = TracerProvider(resource=Resource(attributes={
        SERVICE_NAME: service_name,
        SERVICE_VERSION: __version__,
    }))
    for exporter in exporters.values():
        _provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(_provider)

    _tracer = _provider.get_tracer(__name__, __version__)
    if exporters:
        logger.info(f"Tracing initialized for {service_name} (exporters: {', '.join(exporters)})")
    else:
        logger.warning("Tracing initialized without exporters; spans are dropped")
    return _tracer


def get_tracer() -> trace.Tracer:
    """Tracer from ``initialize_tracing``, else from the global provider."""
    if _tracer is not None:
        return _tracer
    return trace.get_tracer(DEFAULT_SERVICE_NAME)


def shutdown_tracing() -> None:
    """Flush pending spans and forget the provider. Safe to call when not initialized."""
    global _provider, _tracer

    if _provider is None:
        return
    try:
        _provider.shutdown()
        logger.debug("Tracing shut down")
    finally:
        _provider = None
        _tracer = None
