"""
Telemetry configuration helpers for rent instrumentation.

This module provides `TelemetryConfig`, the derived configuration each
lifecycle builds when it starts, and the pydantic settings objects that
read the raw environment for tracing, profiling and the metrics push
gateway. Settings are instantiated on demand rather than at import time so
that a start attempt always sees the current environment.
"""

import socket
from typing import Optional

from opentelemetry.sdk.resources import Resource
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rent_telemetry.config_resolver import (
    parse_delimited_pairs,
    resolve_export_endpoint,
    resolve_service_resource,
)

DEFAULT_FLUSH_INTERVAL_MS = 10000
DEFAULT_PUSHGATEWAY_JOB = "rent_batch"
DEFAULT_PUSH_TIMEOUT_SECONDS = 10.0

_SETTINGS_CONFIG = SettingsConfigDict(
    env_prefix="",  # Use exact environment variable names (e.g., OTEL_SDK_DISABLED)
    case_sensitive=False,
    extra="ignore",
)


def _strip_or_none(v):
    if v is None:
        return None
    v = str(v).strip()
    return v or None


class TracingSettings(BaseSettings):
    """Raw OpenTelemetry environment for the tracing pipeline."""

    disabled: bool = Field(default=False, validation_alias="OTEL_SDK_DISABLED")
    traces_endpoint: Optional[str] = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_TRACES_ENDPOINT"
    )
    otlp_endpoint: Optional[str] = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otlp_headers: Optional[str] = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_HEADERS"
    )
    log_level: str = Field(default="", validation_alias="OTEL_LOG_LEVEL")

    model_config = _SETTINGS_CONFIG

    @field_validator("disabled", mode="before")
    @classmethod
    def parse_disabled(cls, v):
        """Only the literal string 'true' switches the SDK off."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() == "true"
        return bool(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalise_log_level(cls, v):
        return (v or "").strip().lower()

    @property
    def debug(self) -> bool:
        return self.log_level == "debug"


class ProfilingSettings(BaseSettings):
    """Raw Pyroscope environment plus the runtime markers that gate profiling."""

    enabled_flag: str = Field(default="", validation_alias="PYROSCOPE_ENABLED")
    auth_token: Optional[str] = Field(
        default=None, validation_alias="PYROSCOPE_AUTH_TOKEN"
    )
    basic_auth_user: Optional[str] = Field(
        default=None, validation_alias="PYROSCOPE_BASIC_AUTH_USER"
    )
    basic_auth_password: Optional[str] = Field(
        default=None, validation_alias="PYROSCOPE_BASIC_AUTH_PASSWORD"
    )
    tenant_id: Optional[str] = Field(
        default=None, validation_alias="PYROSCOPE_TENANT_ID"
    )
    tags: Optional[str] = Field(default=None, validation_alias="PYROSCOPE_TAGS")
    flush_interval_ms: int = Field(
        default=DEFAULT_FLUSH_INTERVAL_MS,
        validation_alias="PYROSCOPE_FLUSH_INTERVAL_MS",
    )
    runtime_env: str = Field(default="", validation_alias="ENV")
    ci: str = Field(default="", validation_alias="CI")

    model_config = _SETTINGS_CONFIG

    @field_validator(
        "auth_token",
        "basic_auth_user",
        "basic_auth_password",
        "tenant_id",
        mode="before",
    )
    @classmethod
    def empty_as_none(cls, v):
        return _strip_or_none(v)

    @field_validator("enabled_flag", "runtime_env", "ci", mode="before")
    @classmethod
    def normalise_flag(cls, v):
        return (v or "").strip().lower()

    @field_validator("flush_interval_ms", mode="before")
    @classmethod
    def parse_flush_interval(cls, v):
        """Fall back to the default for anything that isn't a positive number."""
        try:
            interval = int(float(str(v).strip()))
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_FLUSH_INTERVAL_MS
        return interval if interval > 0 else DEFAULT_FLUSH_INTERVAL_MS

    @property
    def force_disabled(self) -> bool:
        return self.enabled_flag == "false"

    @property
    def under_test_or_ci(self) -> bool:
        return self.runtime_env == "test" or self.ci == "true"


class PushgatewaySettings(BaseSettings):
    """Where, and under which grouping, batch metrics are pushed."""

    url: Optional[str] = Field(default=None, validation_alias="PROMETHEUS_PUSHGATEWAY_URL")
    job: str = Field(
        default=DEFAULT_PUSHGATEWAY_JOB, validation_alias="PROMETHEUS_PUSHGATEWAY_JOB"
    )
    instance: str = Field(
        default_factory=socket.gethostname,
        validation_alias="PROMETHEUS_PUSHGATEWAY_INSTANCE",
    )
    timeout_seconds: float = Field(
        default=DEFAULT_PUSH_TIMEOUT_SECONDS,
        validation_alias="PROMETHEUS_PUSHGATEWAY_TIMEOUT_SECONDS",
    )

    model_config = _SETTINGS_CONFIG

    @field_validator("url", mode="before")
    @classmethod
    def empty_url_as_none(cls, v):
        return _strip_or_none(v)

    @field_validator("job", mode="before")
    @classmethod
    def default_job(cls, v):
        return _strip_or_none(v) or DEFAULT_PUSHGATEWAY_JOB

    @field_validator("instance", mode="before")
    @classmethod
    def default_instance(cls, v):
        """Set hostname automatically if not provided"""
        return _strip_or_none(v) or socket.gethostname()

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def parse_timeout(cls, v):
        try:
            timeout = float(str(v).strip())
        except (TypeError, ValueError):
            return DEFAULT_PUSH_TIMEOUT_SECONDS
        return timeout if timeout > 0 else DEFAULT_PUSH_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return self.url is not None


class TelemetryConfig(BaseModel):
    """
    Derived telemetry configuration for one start attempt.

    Built fresh from the environment by `from_env`; it has no identity beyond
    the call that produced it.
    """

    resource_attributes: dict[str, str] = Field(default_factory=dict)
    exporter_endpoint: Optional[str] = None
    exporter_headers: dict[str, str] = Field(default_factory=dict)
    extra_tags: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        surface: str,
        tracing: Optional[TracingSettings] = None,
        profiling: Optional[ProfilingSettings] = None,
    ) -> "TelemetryConfig":
        """
        Create a TelemetryConfig from the current environment.

        :param surface: The runtime surface, e.g. ``backend`` or ``batch``.
        :type surface: str
        :param tracing: Pre-read tracing settings, read from env if omitted.
        :type tracing: TracingSettings | None
        :param profiling: Pre-read profiling settings, read from env if omitted.
        :type profiling: ProfilingSettings | None
        :return: A TelemetryConfig instance
        :rtype: TelemetryConfig
        """
        tracing = tracing or TracingSettings()
        profiling = profiling or ProfilingSettings()

        return cls(
            resource_attributes=resolve_service_resource(surface),
            exporter_endpoint=resolve_export_endpoint(
                tracing.traces_endpoint, tracing.otlp_endpoint
            ),
            exporter_headers=parse_delimited_pairs(tracing.otlp_headers),
            extra_tags=parse_delimited_pairs(profiling.tags),
        )

    @property
    def service_name(self) -> str:
        return self.resource_attributes.get("service.name", "")

    def to_resource(self) -> Resource:
        """Returns an opentelemetry resource hydrated with config values"""
        return Resource.create(attributes=dict(self.resource_attributes))

    def __str__(self):
        return (
            f"TelemetryConfig(resource_attributes={self.resource_attributes}, "
            f"exporter_endpoint={self.exporter_endpoint}, "
            f"exporter_headers={sorted(self.exporter_headers)}, "
            f"extra_tags={self.extra_tags})"
        )
