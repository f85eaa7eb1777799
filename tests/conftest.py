import pytest

TELEMETRY_ENV_VARS = (
    "OTEL_SDK_DISABLED",
    "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_HEADERS",
    "OTEL_LOG_LEVEL",
    "OTEL_SERVICE_NAME",
    "OTEL_SERVICE_NAME_BACKEND",
    "OTEL_SERVICE_NAME_BATCH",
    "OTEL_ENVIRONMENT",
    "OTEL_RESOURCE_ATTRIBUTES",
    "ENV",
    "CI",
    "SERVICE_VERSION",
    "PYROSCOPE_ENABLED",
    "PYROSCOPE_SERVER_ADDRESS",
    "PYROSCOPE_URL",
    "PYROSCOPE_ENV",
    "PYROSCOPE_APPLICATION_NAME",
    "PYROSCOPE_APPLICATION_NAME_BACKEND",
    "PYROSCOPE_APPLICATION_NAME_BATCH",
    "PYROSCOPE_TAGS",
    "PYROSCOPE_FLUSH_INTERVAL_MS",
    "PYROSCOPE_AUTH_TOKEN",
    "PYROSCOPE_BASIC_AUTH_USER",
    "PYROSCOPE_BASIC_AUTH_PASSWORD",
    "PYROSCOPE_TENANT_ID",
    "PROMETHEUS_PUSHGATEWAY_URL",
    "PROMETHEUS_PUSHGATEWAY_JOB",
    "PROMETHEUS_PUSHGATEWAY_INSTANCE",
    "PROMETHEUS_PUSHGATEWAY_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_telemetry_env(monkeypatch):
    """Start every test from an environment with no telemetry configured.

    CI runners export CI=true, which would otherwise gate profiling off.
    """
    for name in TELEMETRY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
