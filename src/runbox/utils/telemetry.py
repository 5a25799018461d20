"""OpenTelemetry tracing for the execution engine.

Everything here works against the OpenTelemetry *API* only.  Until
:func:`configure_telemetry` installs an SDK provider, every tracer is a
no-op and spans cost nothing::

    from runbox.utils.telemetry import get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("runbox.execute") as span:
        span.set_attribute(ATTR_PLAN, "scripted-run")

Exporting spans needs the ``otel`` extra (``pip install runbox[otel]``).
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from runbox.models import ExecutionOutcome

# Span attribute keys
ATTR_LANGUAGE = "runbox.language"
ATTR_PROJECT_TYPE = "runbox.project_type"
ATTR_PLAN = "runbox.plan"
ATTR_SANDBOX = "runbox.sandbox"
ATTR_STATUS = "runbox.status"
ATTR_ELAPSED_MS = "runbox.elapsed_ms"
ATTR_MEMORY_KB = "runbox.memory_kb"
ATTR_CAPABILITY = "runbox.policy.capability"
ATTR_IN_FLIGHT = "runbox.admission.in_flight"

OTLP_ENDPOINT_ENV = "RUNBOX_OTLP_ENDPOINT"

_INSTRUMENTATION_NAME = "runbox"
_INSTALL_HINT = "Install it with: pip install runbox[otel]"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a tracer for *name* (no-op until telemetry is configured)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def record_outcome(span: trace.Span, outcome: ExecutionOutcome) -> None:
    """Copy the classified result of one execution onto *span*."""
    span.set_attribute(ATTR_STATUS, outcome.status.value)
    span.set_attribute(ATTR_ELAPSED_MS, outcome.elapsed_ms)
    if outcome.plan is not None:
        span.set_attribute(ATTR_PLAN, outcome.plan)
    if outcome.memory_estimate_kb is not None:
        span.set_attribute(ATTR_MEMORY_KB, outcome.memory_estimate_kb)


def configure_telemetry(
    *,
    service_name: str = "runbox",
    export_to_console: bool = False,
    otlp_endpoint: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> None:
    """Install an SDK tracer provider with the requested exporters.

    Args:
        service_name: Value of the ``service.name`` resource attribute.
        export_to_console: Print finished spans as JSON to stderr.
        otlp_endpoint: OTLP/gRPC collector address.  Falls back to
            ``RUNBOX_OTLP_ENDPOINT`` when not given.
        environ: Environment to read the fallback from (default ``os.environ``).

    Raises:
        ImportError: If ``opentelemetry-sdk`` (or, for OTLP, the exporter
            package) is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
    except ImportError as exc:
        msg = f"opentelemetry-sdk is required for configure_telemetry(). {_INSTALL_HINT}"
        raise ImportError(msg) from exc

    env = os.environ if environ is None else environ
    endpoint = otlp_endpoint or env.get(OTLP_ENDPOINT_ENV) or None

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    for processor in _span_processors(export_to_console, endpoint):
        provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


def _span_processors(export_to_console: bool, endpoint: str | None) -> list[Any]:
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        ConsoleSpanExporter,
        SimpleSpanProcessor,
    )

    processors: list[Any] = []
    if export_to_console:
        # stdout carries the command output, which may be JSON.
        processors.append(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    if endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError as exc:
            msg = f"opentelemetry-exporter-otlp is required for OTLP export. {_INSTALL_HINT}"
            raise ImportError(msg) from exc
        processors.append(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    return processors
