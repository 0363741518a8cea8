"""Optional OpenTelemetry tracing/metrics with a Prometheus fallback.

Everything here is a no-op until `initialize()` runs with
`SESSIONWATCH_OTEL_ENABLED` set and the `otel` extra installed.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from fastapi import FastAPI

from sessionwatch import config

logger = logging.getLogger("sessionwatch.observability")


@dataclass(frozen=True)
class _MetricSpec:
    name: str
    description: str
    labels: tuple[str, ...]
    kind: str = "counter"
    unit: str = "1"


_INGESTION = _MetricSpec(
    "sessionwatch_ingestion_events_total",
    "Transcript batches applied to the session directory",
    ("entity", "result", "project"),
)
_INGESTION_LATENCY = _MetricSpec(
    "sessionwatch_ingestion_latency_ms",
    "Latency for parsing and applying transcript batches",
    ("entity", "result", "project"),
    kind="histogram",
    unit="ms",
)
_PARSER_FAILURES = _MetricSpec(
    "sessionwatch_parser_failures_total",
    "Transcript lines or wire messages that failed to decode",
    ("parser", "project"),
)
_LIFECYCLE = _MetricSpec(
    "sessionwatch_lifecycle_events_total",
    "Hook lifecycle events received over the side channel",
    ("event", "result"),
)
_METRICS = (_INGESTION, _INGESTION_LATENCY, _PARSER_FAILURES, _LIFECYCLE)


@dataclass
class _State:
    initialized: bool = False
    enabled: bool = False
    tracer: Any = None
    trace_provider: Any = None
    meter_provider: Any = None
    instrumentor: Any = None
    otel_instruments: dict[str, Any] = field(default_factory=dict)
    prom_instruments: dict[str, Any] = field(default_factory=dict)


_state = _State()


def _signal_endpoint(base_endpoint: str, signal_path: str) -> str | None:
    """OTLP HTTP exporters want the full `/v1/<signal>` URL."""
    endpoint = (base_endpoint or "").strip().rstrip("/")
    if not endpoint:
        return None
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/v1"):
        endpoint = endpoint[: -len("/v1")]
    return endpoint + signal_path


def _clean_labels(spec: _MetricSpec, values: dict[str, str]) -> dict[str, str]:
    return {label: (values.get(label) or "").strip() or "unknown" for label in spec.labels}


def _start_prometheus() -> None:
    try:
        from prometheus_client import Counter, Histogram, start_http_server
    except ImportError as exc:
        logger.warning("prometheus-client unavailable: %s", exc)
        return

    try:
        start_http_server(config.PROM_PORT)
    except OSError as exc:
        logger.warning("Prometheus fallback not started: %s", exc)
        return

    for spec in _METRICS:
        factory = Histogram if spec.kind == "histogram" else Counter
        _state.prom_instruments[spec.name] = factory(spec.name, spec.description, list(spec.labels))
    logger.info("Prometheus metrics listening on port %s", config.PROM_PORT)


def initialize(app: FastAPI | None = None) -> None:
    if _state.initialized:
        if _state.enabled and app is not None and _state.instrumentor is not None:
            _state.instrumentor.instrument_app(app)
        return
    _state.initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (SESSIONWATCH_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    service_name = config.OTEL_SERVICE_NAME or "sessionwatch"
    resource = Resource.create({"service.name": service_name, "service.namespace": "sessionwatch"})

    trace_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=_signal_endpoint(config.OTEL_ENDPOINT, "/v1/traces"))
    trace_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(trace_provider)

    metric_exporter = OTLPMetricExporter(endpoint=_signal_endpoint(config.OTEL_ENDPOINT, "/v1/metrics"))
    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[PeriodicExportingMetricReader(metric_exporter)],
    )
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("sessionwatch")

    for spec in _METRICS:
        create = meter.create_histogram if spec.kind == "histogram" else meter.create_counter
        _state.otel_instruments[spec.name] = create(spec.name, unit=spec.unit, description=spec.description)

    _state.tracer = trace.get_tracer("sessionwatch")
    _state.trace_provider = trace_provider
    _state.meter_provider = meter_provider
    _state.instrumentor = FastAPIInstrumentor()
    _state.enabled = True

    if app is not None:
        _state.instrumentor.instrument_app(app)
    if config.PROM_PORT > 0:
        _start_prometheus()

    logger.info("OpenTelemetry initialized (service=%s endpoint=%s)", service_name, config.OTEL_ENDPOINT)


def shutdown(app: FastAPI | None = None) -> None:
    if not _state.initialized:
        return
    steps = []
    if app is not None and _state.instrumentor is not None:
        steps.append(("FastAPI uninstrumentation", lambda: _state.instrumentor.uninstrument_app(app)))
    if _state.meter_provider is not None:
        steps.append(("Meter provider shutdown", _state.meter_provider.shutdown))
    if _state.trace_provider is not None:
        steps.append(("Trace provider shutdown", _state.trace_provider.shutdown))
    for label, step in steps:
        try:
            step()
        except Exception:
            logger.debug("%s failed", label, exc_info=True)
    _state.enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[Any]:
    if not _state.enabled or _state.tracer is None:
        yield None
        return
    with _state.tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def _record(spec: _MetricSpec, value: float, **labels: str) -> None:
    cleaned = _clean_labels(spec, labels)
    if _state.enabled:
        instrument = _state.otel_instruments.get(spec.name)
        if instrument is not None:
            if spec.kind == "histogram":
                instrument.record(value, cleaned)
            else:
                instrument.add(value, cleaned)
    prom = _state.prom_instruments.get(spec.name)
    if prom is not None:
        if spec.kind == "histogram":
            prom.labels(**cleaned).observe(value)
        else:
            prom.labels(**cleaned).inc(value)


def record_ingestion(entity: str, result: str, duration_ms: float, *, project_id: str) -> None:
    _record(_INGESTION, 1, entity=entity, result=result, project=project_id)
    _record(_INGESTION_LATENCY, max(0.0, float(duration_ms)), entity=entity, result=result, project=project_id)


def record_parser_failure(parser: str, *, project_id: str) -> None:
    _record(_PARSER_FAILURES, 1, parser=parser, project=project_id)


def record_lifecycle_event(event: str, result: str) -> None:
    _record(_LIFECYCLE, 1, event=event, result=result)
