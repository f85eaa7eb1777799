from rent_telemetry.config_resolver import (
    parse_delimited_pairs,
    resolve_export_endpoint,
    resolve_service_resource,
)
from rent_telemetry.http_metrics import HttpMetricsService
from rent_telemetry.job_metrics import (
    JobMetricsRecorder,
    JobRunSummary,
    JobStatus,
    RecordCounts,
)
from rent_telemetry.lifecycle import LifecycleState
from rent_telemetry.profiling import ProfilerLifecycle
from rent_telemetry.runtime import TelemetryRuntime, bootstrap
from rent_telemetry.telemetry_config import TelemetryConfig
from rent_telemetry.tracing import TraceLifecycle

__all__ = [
    "HttpMetricsService",
    "JobMetricsRecorder",
    "JobRunSummary",
    "JobStatus",
    "LifecycleState",
    "ProfilerLifecycle",
    "RecordCounts",
    "TelemetryConfig",
    "TelemetryRuntime",
    "TraceLifecycle",
    "bootstrap",
    "parse_delimited_pairs",
    "resolve_export_endpoint",
    "resolve_service_resource",
]
