"""
OpenTelemetry Exporter for nixmorph

Architectural Intent:
- Turns rollout events into OTLP metrics and traces
- Subscribes to the event bus; pipelines never call it directly
- One span per host pipeline, from its first stage change to DONE/FAILED

Metrics:
- nixmorph.host.stage_duration_ms: time a host spent reaching each stage
- nixmorph.host.result: one count per finished host, labelled by outcome

Security:
- Endpoint defaults to empty string (must be explicitly configured)
- Non-localhost http:// endpoints rejected unless insecure=True
- Validation in __post_init__ prevents accidental plaintext export
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Optional
from urllib.parse import urlparse
import logging
import time

from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from nixmorph.domain.entities.host_deployment import HostStage
from nixmorph.domain.events.host_events import HostFailedEvent, HostStageChangedEvent
from nixmorph.domain.ports.event_bus_port import EventBusPort

logger = logging.getLogger(__name__)

STAGE_DURATION_METRIC = "nixmorph.host.stage_duration_ms"
RESULT_METRIC = "nixmorph.host.result"


@dataclass
class OTELConfig:
    endpoint: str = ""
    service_name: str = "nixmorph"
    environment: str = "production"
    export_interval: int = 5
    insecure: bool = False

    def __post_init__(self) -> None:
        if self.endpoint:
            parsed = urlparse(self.endpoint)
            is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")
            if parsed.scheme == "http" and not is_localhost and not self.insecure:
                raise ValueError(
                    f"Non-localhost HTTP endpoint '{self.endpoint}' requires "
                    "insecure=True or use https://. "
                    "Set insecure=True to explicitly allow plaintext export."
                )


class OTELExporter:
    """
    Records per-host rollout telemetry.

    Without an endpoint every measurement is only kept in a local buffer.
    """

    def __init__(self, config: OTELConfig):
        self.config = config
        self._initialized = False
        self._metrics_buffer: list[dict[str, Any]] = []
        self._tracer_provider: Optional[TracerProvider] = None
        self._meter_provider: Optional[MeterProvider] = None
        self._tracer: Any = None
        self._instruments: dict[str, Any] = {}
        self._last_change: dict[str, float] = {}
        self._spans: dict[str, Any] = {}

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def metrics_buffer(self) -> list[dict[str, Any]]:
        return list(self._metrics_buffer)

    async def initialize(self) -> None:
        """Initialize OpenTelemetry SDK and exporters."""
        if not self.config.endpoint:
            logger.info("OTEL endpoint not configured, telemetry disabled")
            return

        resource = Resource(
            attributes={
                SERVICE_NAME: self.config.service_name,
                "environment": self.config.environment,
            }
        )

        self._tracer_provider = TracerProvider(resource=resource)
        self._tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=self.config.endpoint, insecure=self.config.insecure)
            )
        )
        self._tracer = self._tracer_provider.get_tracer(__name__)

        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=self.config.endpoint, insecure=self.config.insecure),
            export_interval_millis=self.config.export_interval * 1000,
        )
        self._meter_provider = MeterProvider(resource=resource, metric_readers=[reader])
        meter = self._meter_provider.get_meter(__name__)
        self._instruments = {
            STAGE_DURATION_METRIC: meter.create_histogram(STAGE_DURATION_METRIC, unit="ms"),
            RESULT_METRIC: meter.create_counter(RESULT_METRIC),
        }
        self._initialized = True
        logger.info("OTEL export to %s enabled", self.config.endpoint)

    def attach(self, event_bus: EventBusPort) -> None:
        event_bus.subscribe(HostStageChangedEvent, self._on_stage_changed)
        event_bus.subscribe(HostFailedEvent, self._on_host_failed)

    def record_metric(
        self,
        name: str,
        value: float,
        unit: str = "",
        attributes: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a metric value."""
        self._metrics_buffer.append(
            {
                "name": name,
                "value": value,
                "unit": unit,
                "attributes": attributes or {},
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        instrument = self._instruments.get(name)
        if instrument is None:
            return
        if name == RESULT_METRIC:
            instrument.add(value, attributes=attributes or {})
        else:
            instrument.record(value, attributes=attributes or {})

    def record_stage(self, host: str, stage: str, duration_ms: float) -> None:
        self.record_metric(
            STAGE_DURATION_METRIC,
            duration_ms,
            unit="ms",
            attributes={"host": host, "stage": stage},
        )

    def record_result(self, host: str, success: bool, step: str = "") -> None:
        attributes = {"host": host, "result": "success" if success else "failure"}
        if step:
            attributes["step"] = step
        self.record_metric(RESULT_METRIC, 1.0, attributes=attributes)

    def start_span(
        self,
        name: str,
        attributes: Optional[dict[str, str]] = None,
    ) -> Optional[Any]:
        """Start a tracing span."""
        if not self._initialized:
            return None
        return self._tracer.start_span(name, attributes=attributes or {})

    def end_span(self, span: Any, error: Optional[str] = None) -> None:
        """End a tracing span."""
        if span is None:
            return
        if error is not None:
            span.set_status(Status(StatusCode.ERROR, error))
        span.end()

    async def _on_stage_changed(self, event: HostStageChangedEvent) -> None:
        host = event.aggregate_id
        now = time.monotonic()
        if host not in self._last_change:
            self._spans[host] = self.start_span("nixmorph.host", {"host": host})
        started = self._last_change.get(host, now)
        self._last_change[host] = now
        self.record_stage(host, event.stage, (now - started) * 1000.0)

        if event.stage == HostStage.DONE.value:
            self.record_result(host, success=True)
            self._finish(host)

    async def _on_host_failed(self, event: HostFailedEvent) -> None:
        host = event.aggregate_id
        self.record_result(host, success=False, step=event.stage)
        self._finish(host, error=event.error_message)

    def _finish(self, host: str, error: Optional[str] = None) -> None:
        self._last_change.pop(host, None)
        self.end_span(self._spans.pop(host, None), error)

    async def shutdown(self) -> None:
        """Flush and stop the exporters."""
        for host in list(self._spans):
            self._finish(host, error="unfinished")
        if self._tracer_provider is not None:
            self._tracer_provider.shutdown()
        if self._meter_provider is not None:
            self._meter_provider.shutdown()
        self._initialized = False
        exported = len(self._metrics_buffer)
        self._metrics_buffer.clear()
        if exported:
            logger.debug("Flushed %d buffered metrics", exported)


async def create_exporter(
    endpoint: Optional[str] = None,
    insecure: bool = False,
    service_name: str = "nixmorph",
) -> OTELExporter:
    """Factory function to create OTEL exporter."""
    config = OTELConfig(
        endpoint=endpoint or "",
        service_name=service_name,
        insecure=insecure,
    )
    exporter = OTELExporter(config)
    await exporter.initialize()
    return exporter
