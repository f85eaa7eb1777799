"""
Tracing lifecycle for rent services.

This module defines `TraceLifecycle`, which owns the OpenTelemetry
tracer provider of a process. Starting is idempotent and a no-op when no
OTLP endpoint is configured; stopping is best effort and never raises,
since it runs from signal handlers alongside other cleanup.
"""

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Tracer

from rent_telemetry.lifecycle import LifecycleState
from rent_telemetry.telemetry_config import TelemetryConfig, TracingSettings

_LOGGER = logging.getLogger(__name__)

_DIAGNOSTICS_LOGGER = "opentelemetry"
_DIAGNOSTICS_HANDLER = "rent-telemetry-diagnostics"


def enable_diagnostics() -> None:
    """Turn on verbose OpenTelemetry SDK logging.

    The handler is attached at most once per process, however often this
    is called.
    """
    otel_logger = logging.getLogger(_DIAGNOSTICS_LOGGER)
    otel_logger.setLevel(logging.DEBUG)

    if any(h.get_name() == _DIAGNOSTICS_HANDLER for h in otel_logger.handlers):
        return

    handler = logging.StreamHandler()
    handler.set_name(_DIAGNOSTICS_HANDLER)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    otel_logger.addHandler(handler)
    _LOGGER.debug("🔬 OpenTelemetry diagnostics enabled.")


class TraceLifecycle:
    """Idempotent start/stop around an OTLP tracing pipeline.

    :param surface: Runtime surface used to resolve the service name.
    :type surface: str
    """

    def __init__(self, surface: str = "backend") -> None:
        self.surface = surface
        self.state = LifecycleState.STOPPED
        self.tracer_provider: Optional[TracerProvider] = None
        self.config: Optional[TelemetryConfig] = None

    @property
    def started(self) -> bool:
        return self.state is LifecycleState.STARTED

    def start(self) -> None:
        """Resolve configuration and start exporting spans.

        Does nothing when already started, when ``OTEL_SDK_DISABLED=true``,
        or when no endpoint resolves. In the last case the lifecycle stays
        stopped, so the environment is only looked at again on a later call.

        :raises Exception: Propagated if the exporter or provider cannot be built.
        """
        if self.started:
            return

        settings = TracingSettings()
        if settings.disabled:
            _LOGGER.debug("Tracing disabled by OTEL_SDK_DISABLED.")
            return

        config = TelemetryConfig.from_env(self.surface, tracing=settings)
        if config.exporter_endpoint is None:
            _LOGGER.debug("No OTLP traces endpoint configured, tracing stays off.")
            return

        if settings.debug:
            enable_diagnostics()

        provider = TracerProvider(resource=config.to_resource())
        span_exporter = OTLPSpanExporter(
            endpoint=config.exporter_endpoint,
            headers=config.exporter_headers,
        )
        provider.add_span_processor(BatchSpanProcessor(span_exporter))

        # The SDK keeps the first global provider for the process; a restarted
        # lifecycle still serves its own provider through get_tracer().
        trace.set_tracer_provider(provider)

        self.tracer_provider = provider
        self.config = config
        self.state = LifecycleState.STARTED
        _LOGGER.info(
            "🛰️ Tracing started | service=%s endpoint=%s",
            config.service_name,
            config.exporter_endpoint,
        )

    def stop(self) -> bool:
        """Shut the tracer provider down, swallowing any failure.

        :return: False if the provider raised during shutdown, True otherwise.
        :rtype: bool
        """
        if not self.started:
            return True

        provider = self.tracer_provider
        succeeded = True
        try:
            if provider is not None:
                provider.shutdown()
        except Exception as exc:
            succeeded = False
            _LOGGER.warning("Failed to shutdown tracer provider: %s", exc)
        finally:
            self.tracer_provider = None
            self.config = None
            self.state = LifecycleState.STOPPED

        _LOGGER.info("🛰️ Tracing stopped.")
        return succeeded

    def get_tracer(self, name: str = __name__) -> Tracer:
        """Return a tracer from the live provider, or a no-op one when stopped.

        :param name: Instrumentation scope name.
        :type name: str
        :return: OpenTelemetry tracer instance.
        :rtype: Tracer
        """
        if self.tracer_provider is None:
            return trace.NoOpTracer()
        return self.tracer_provider.get_tracer(name)
