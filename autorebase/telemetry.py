"""OpenTelemetry instrumentation for autorebase.

Telemetry is opt-in: until `init_telemetry` is called with an OTLP endpoint,
spans go to OpenTelemetry's no-op tracer and `record_action` does nothing.
"""

from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from autorebase.logger import get_logger

logger = get_logger(__name__)

METRIC_EXPORT_INTERVAL_MS = 10000

_initialized = False
_tracer: trace.Tracer | None = None
_action_counter: metrics.Counter | None = None
_duration_histogram: metrics.Histogram | None = None


def _install_tracing(endpoint: str, resource: Resource) -> trace.Tracer:
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def _install_metrics(endpoint: str, resource: Resource) -> metrics.Meter:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"),
        export_interval_millis=METRIC_EXPORT_INTERVAL_MS,
    )
    metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))
    return metrics.get_meter(__name__)


def init_telemetry(
    endpoint: str,
    service_name: str,
    service_version: str | None = None,
) -> None:
    """Export traces and metrics to an OTLP/HTTP collector.

    Safe to call more than once; only the first call with an endpoint has an
    effect.

    Args:
        endpoint: Collector base URL (e.g., http://localhost:4318); empty disables telemetry
        service_name: Value of the service.name resource attribute
        service_version: Optional value of the service.version resource attribute
    """
    global _initialized, _tracer, _action_counter, _duration_histogram

    if _initialized or not endpoint:
        return

    attributes = {"service.name": service_name}
    if service_version:
        attributes["service.version"] = service_version
    resource = Resource.create(attributes)

    _tracer = _install_tracing(endpoint, resource)
    meter = _install_metrics(endpoint, resource)
    _action_counter = meter.create_counter(
        "autorebase.actions",
        unit="actions",
        description="Actions produced by the decision engine, by type",
    )
    _duration_histogram = meter.create_histogram(
        "autorebase.event.duration",
        unit="ms",
        description="Time spent handling one event",
    )

    _initialized = True
    logger.info(f"OpenTelemetry exporting to {endpoint} as {service_name}")


def get_tracer() -> trace.Tracer:
    return _tracer or trace.get_tracer(__name__)


def record_action(action_type: str, event_name: str, repo: str, duration_ms: float) -> None:
    """Count one handled event and record how long it took.

    Args:
        action_type: Type of the resulting action (e.g., "rebase")
        event_name: Name of the handled event (e.g., "status-changed")
        repo: Repository in 'owner/repo' format
        duration_ms: Time spent handling the event
    """
    if not _initialized:
        return

    attributes: dict[str, Any] = {
        "action.type": action_type,
        "event.name": event_name,
        "repo": repo,
    }
    if _action_counter:
        _action_counter.add(1, attributes)
    if _duration_histogram and duration_ms > 0:
        _duration_histogram.record(duration_ms, attributes)


def reset_telemetry() -> None:
    """Forget the exporters (tests only; global providers cannot be replaced)."""
    global _initialized, _tracer, _action_counter, _duration_histogram
    _initialized = False
    _tracer = None
    _action_counter = None
    _duration_histogram = None
